"""Configuration utilities for the forecast reconciliation framework."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .config_schema import ConfigValidator


@dataclass(frozen=True)
class ReconciliationConfig:
    """
    Options passed alongside every minimum trace reconciliation call.

    Attributes:
        method: Weight matrix estimator name.
        sparse: True, False or ``"auto"``.
        shrinkage: Fixed shrinkage intensity for ``mint_shrink``; estimated
            from the residuals when None.
        summing: Summing matrix construction, ``"leaf_sets"`` or
            ``"level_merge"``. None picks the strategy's own: leaf sets for
            minimum trace, level merging for bottom-up.
    """

    method: str = "wls_var"
    sparse: Union[bool, str] = "auto"
    shrinkage: Optional[float] = None
    summing: Optional[str] = None

    @classmethod
    def from_dict(cls, section: Optional[Dict[str, Any]] = None) -> "ReconciliationConfig":
        """Build from the ``reconciliation`` section of a configuration."""
        section = section or {}
        return cls(
            method=section.get("method", cls.method),
            sparse=section.get("sparse", cls.sparse),
            shrinkage=section.get("shrinkage", cls.shrinkage),
            summing=section.get("summing", cls.summing),
        )


def load_config(config_path: Optional[str] = None, validate_schema: bool = False) -> Dict[str, Any]:
    """
    Load and validate configuration from YAML file.

    Args:
        config_path: Path to configuration file. If None, uses default config.
        validate_schema: Whether to perform full schema validation and fill
            in defaults.

    Returns:
        Configuration dictionary.

    Raises:
        FileNotFoundError: If config file is not found.
        yaml.YAMLError: If YAML parsing fails.
        ValueError: If configuration validation fails.
    """
    if config_path is None:
        config_path = Path(__file__).parent.parent.parent.parent / "configs" / "default.yaml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Error parsing YAML configuration: {e}") from e

    if config is None:
        raise ValueError(f"Configuration file is empty: {config_path}")

    required_sections = ['reconciliation']
    missing_sections = [section for section in required_sections if section not in config]
    if missing_sections:
        raise ValueError(f"Missing required configuration sections: {missing_sections}")

    # YAML reads 1e-1 without a dot as a string
    reconciliation = config['reconciliation'] or {}
    if isinstance(reconciliation.get('shrinkage'), str):
        reconciliation['shrinkage'] = float(reconciliation['shrinkage'])
    config['reconciliation'] = reconciliation

    if validate_schema:
        config = ConfigValidator().validate(config)

    logging.info("Configuration loaded successfully")
    return config


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    console: bool = True
) -> None:
    """
    Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file. If None, no file logging.
        format_string: Custom log format string.
        console: Whether to enable console logging.

    Raises:
        ValueError: If invalid logging level is provided.
    """
    level = level.upper()
    if level not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
        raise ValueError(f"Invalid logging level: {level}")

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logger = logging.getLogger()
    logger.setLevel(getattr(logging, level))
    logger.handlers.clear()

    formatter = logging.Formatter(format_string)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(getattr(logging, level))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(getattr(logging, level))
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logging.info(f"Logging setup complete. Level: {level}")


def setup_logging_from_config(config: Dict[str, Any]) -> None:
    """Configure logging from the ``logging`` section of a configuration."""
    section = config.get('logging') or {}
    setup_logging(
        level=section.get('level', 'INFO'),
        log_file=section.get('file'),
        format_string=section.get('format'),
    )
