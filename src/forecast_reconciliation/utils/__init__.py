"""Utility modules for forecast reconciliation."""

from .config import ReconciliationConfig, load_config, setup_logging, setup_logging_from_config

__all__ = [
    "ReconciliationConfig",
    "load_config",
    "setup_logging",
    "setup_logging_from_config",
]
