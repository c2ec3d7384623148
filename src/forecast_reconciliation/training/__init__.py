"""End-to-end reconciliation pipeline."""

from .trainer import ReconciliationTrainer

__all__ = [
    "ReconciliationTrainer",
]
