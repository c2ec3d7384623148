"""Configuration schema validation for the forecast reconciliation framework.

This module provides schema validation for configuration files, ensuring all
required parameters are present and have valid types and values.
"""

import logging
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

RECONCILIATION_METHODS = ['ols', 'wls_var', 'wls_struct', 'mint_cov', 'mint_shrink']


class ConfigSchema:
    """Configuration schema with its custom field validators."""

    @staticmethod
    def get_base_schema() -> Dict[str, Any]:
        """
        Get the base configuration schema definition.

        Returns:
            Dictionary defining the complete configuration schema with validation rules.
        """
        return {
            'data': {
                'required': False,
                'type': dict,
                'default': {},
                'schema': {
                    'path': {'required': False, 'type': str, 'nullable': True, 'default': None},
                    'index': {'required': False, 'type': str, 'default': 'date'},
                    'value': {'required': False, 'type': str, 'default': 'sales'},
                    'hierarchy': {
                        'required': False,
                        'type': list,
                        'minlength': 1,
                        'default': [['region', 'store']],
                        'validator': 'validate_hierarchy'
                    },
                    'test_size': {'required': False, 'type': int, 'min': 1, 'max': 1000, 'default': 14}
                }
            },
            'reconciliation': {
                'required': True,
                'type': dict,
                'schema': {
                    'strategy': {
                        'required': False,
                        'type': str,
                        'allowed': ['min_trace', 'bottom_up'],
                        'default': 'min_trace'
                    },
                    'method': {
                        'required': False,
                        'type': str,
                        'allowed': RECONCILIATION_METHODS,
                        'default': 'wls_var'
                    },
                    'sparse': {
                        'required': False,
                        'type': (bool, str),
                        'default': 'auto',
                        'validator': 'validate_sparse'
                    },
                    'shrinkage': {
                        'required': False,
                        'type': (int, float),
                        'min': 0.0,
                        'max': 1.0,
                        'nullable': True,
                        'default': None
                    },
                    'summing': {
                        'required': False,
                        'type': str,
                        'allowed': ['leaf_sets', 'level_merge'],
                        'nullable': True,
                        'default': None
                    },
                    'point_forecasts': {
                        'required': False,
                        'type': list,
                        'allowed': ['mean', 'median'],
                        'minlength': 1,
                        'default': ['mean']
                    }
                }
            },
            'models': {
                'required': False,
                'type': dict,
                'default': {},
                'schema': {
                    'type': {
                        'required': False,
                        'type': str,
                        'allowed': ['naive', 'arima'],
                        'default': 'naive'
                    },
                    'arima': {
                        'required': False,
                        'type': dict,
                        'default': {},
                        'schema': {
                            'order': {
                                'required': False,
                                'type': list,
                                'minlength': 3,
                                'maxlength': 3,
                                'default': [1, 0, 0],
                                'validator': 'validate_arima_order'
                            },
                            'trend': {
                                'required': False,
                                'type': str,
                                'allowed': ['n', 'c', 't', 'ct'],
                                'nullable': True,
                                'default': None
                            }
                        }
                    }
                }
            },
            'forecast': {
                'required': False,
                'type': dict,
                'default': {},
                'schema': {
                    'horizon': {'required': False, 'type': int, 'min': 1, 'max': 1000, 'default': 14}
                }
            },
            'evaluation': {
                'required': False,
                'type': dict,
                'default': {},
                'schema': {
                    'levels': {
                        'required': False,
                        'type': list,
                        'default': [80, 95],
                        'validator': 'validate_interval_levels'
                    }
                }
            },
            'logging': {
                'required': False,
                'type': dict,
                'default': {},
                'schema': {
                    'level': {
                        'required': False,
                        'type': str,
                        'allowed': ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        'default': 'INFO'
                    },
                    'file': {
                        'required': False,
                        'type': str,
                        'nullable': True,
                        'default': None,
                        'validator': 'validate_log_file_path'
                    },
                    'format': {
                        'required': False,
                        'type': str,
                        'default': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
                    }
                }
            }
        }

    @staticmethod
    def validate_hierarchy(field: str, value: Any) -> bool:
        """
        Validate a hierarchy specification: dimension names or chains of them.

        Raises:
            ValueError: If an entry is neither a string nor a non-empty list of strings.
        """
        dims = []
        for chain in value:
            chain = [chain] if isinstance(chain, str) else chain
            if not isinstance(chain, list) or not chain or not all(isinstance(d, str) for d in chain):
                raise ValueError(f"{field} entries must be dimension names or lists of them, got {chain}")
            dims.extend(chain)
        if len(set(dims)) != len(dims):
            raise ValueError(f"{field} repeats a dimension: {dims}")
        return True

    @staticmethod
    def validate_sparse(field: str, value: Any) -> bool:
        """
        Validate the sparse option.

        Raises:
            ValueError: If a string other than 'auto', 'true' or 'false' is given.
        """
        if isinstance(value, str) and value.lower() not in ('auto', 'true', 'false'):
            raise ValueError(f"{field} must be true, false or 'auto', got {value}")
        return True

    @staticmethod
    def validate_arima_order(field: str, value: Any) -> bool:
        """
        Validate ARIMA order parameters.

        Args:
            field: Field name for error messages.
            value: ARIMA order list [p, d, q].

        Returns:
            True if valid.

        Raises:
            ValueError: If ARIMA order is invalid.
        """
        if len(value) != 3:
            raise ValueError(f"{field} must have exactly 3 elements [p, d, q]")

        for i, param in enumerate(value):
            if not isinstance(param, int) or param < 0:
                raise ValueError(f"{field}[{i}] must be a non-negative integer")

        if value[1] > 2:
            logger.warning(f"{field}: High differencing order (d={value[1]}) may cause issues")

        return True

    @staticmethod
    def validate_interval_levels(field: str, value: Any) -> bool:
        """
        Validate prediction interval levels, given in percent.

        Raises:
            ValueError: If a level is not strictly between 0 and 100.
        """
        for level in value:
            if not isinstance(level, (int, float)) or not 0 < level < 100:
                raise ValueError(f"{field} levels must be between 0 and 100, got {level}")
        return True

    @staticmethod
    def validate_log_file_path(field: str, value: Any) -> bool:
        """
        Validate log file path and create its directory if needed.

        Raises:
            ValueError: If the path points to a directory.
        """
        if value is None:
            return True

        path = Path(value)
        if path.exists() and path.is_dir():
            raise ValueError(f"{field} points to a directory, not a file: {value}")

        path.parent.mkdir(parents=True, exist_ok=True)
        return True


def _type_name(expected_type: Any) -> str:
    if isinstance(expected_type, tuple):
        return " or ".join(t.__name__ for t in expected_type)
    return expected_type.__name__


class ConfigValidator:
    """Configuration validator using the defined schema."""

    def __init__(self):
        """Initialize the configuration validator."""
        self.schema = ConfigSchema.get_base_schema()
        self.logger = logging.getLogger(__name__)

    def validate(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate and normalize configuration.

        Args:
            config: Configuration dictionary to validate.

        Returns:
            Validated and normalized configuration with defaults applied.

        Raises:
            ValueError: If configuration is invalid.
        """
        try:
            validated_config = self._validate_recursive(dict(config), self.schema, "root")
        except (TypeError, ValueError) as e:
            error_msg = f"Configuration validation failed: {e}"
            self.logger.error(error_msg)
            raise ValueError(error_msg) from e

        self.logger.info("Configuration validation successful")
        return validated_config

    def _validate_recursive(self, config: Dict[str, Any], schema: Dict[str, Any], path: str) -> Dict[str, Any]:
        """Validate one configuration section, filling in defaults."""
        validated = {}

        for field, field_schema in schema.items():
            field_path = f"{path}.{field}"

            if field_schema.get('required', False) and field not in config:
                raise ValueError(f"Required field missing: {field_path}")

            if field in config:
                value = config[field]
            elif 'default' in field_schema:
                value = field_schema['default']
                # Fresh containers so defaults are never shared between configs
                value = type(value)(value) if isinstance(value, (dict, list)) else value
            else:
                continue

            validated[field] = self._validate_field(value, field_schema, field_path)

        unknown_fields = set(config.keys()) - set(schema.keys())
        if unknown_fields:
            self.logger.warning(f"Unknown configuration fields in {path}: {unknown_fields}")

        return validated

    def _validate_field(self, value: Any, field_schema: Dict[str, Any], path: str) -> Any:
        """
        Validate a single configuration field.

        Args:
            value: Value to validate.
            field_schema: Schema definition for the field.
            path: Field path for error messages.

        Returns:
            Validated value.
        """
        if value is None and field_schema.get('nullable', False):
            return None

        expected_type = field_schema.get('type')
        if expected_type and not isinstance(value, expected_type):
            raise ValueError(f"{path} must be of type {_type_name(expected_type)}, got {type(value).__name__}")

        # bool is an int subclass; only ranges of real numbers are checked
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            min_val = field_schema.get('min')
            max_val = field_schema.get('max')

            if min_val is not None and value < min_val:
                raise ValueError(f"{path} must be >= {min_val}, got {value}")
            if max_val is not None and value > max_val:
                raise ValueError(f"{path} must be <= {max_val}, got {value}")

        if isinstance(value, (list, str)):
            minlength = field_schema.get('minlength')
            maxlength = field_schema.get('maxlength')

            if minlength is not None and len(value) < minlength:
                raise ValueError(f"{path} must have length >= {minlength}")
            if maxlength is not None and len(value) > maxlength:
                raise ValueError(f"{path} must have length <= {maxlength}")

        allowed = field_schema.get('allowed')
        if allowed is not None:
            if isinstance(value, list):
                invalid_items = [item for item in value if item not in allowed]
                if invalid_items:
                    raise ValueError(f"{path} contains invalid items {invalid_items}, allowed: {allowed}")
            elif value not in allowed:
                raise ValueError(f"{path} must be one of {allowed}, got {value}")

        validator_name = field_schema.get('validator')
        if validator_name:
            validator_func = getattr(ConfigSchema, validator_name, None)
            if validator_func:
                validator_func(path, value)
            else:
                self.logger.warning(f"Unknown validator: {validator_name}")

        nested_schema = field_schema.get('schema')
        if nested_schema and isinstance(value, dict):
            return self._validate_recursive(value, nested_schema, path)

        return value
