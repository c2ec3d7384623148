"""Runtime validation helpers shared across the reconciliation pipeline.

Numeric options, observation frames and residual matrices are checked at
the public entry points; per-series models get their checks from
``ValidationMixin``.
"""

import logging
from typing import List, Optional, Union

import numpy as np
import pandas as pd


logger = logging.getLogger(__name__)

MIN_TRAINING_OBSERVATIONS = 10
MAX_HORIZON = 1000


def validate_numeric_range(
    value: Union[int, float],
    param_name: str,
    min_val: Optional[Union[int, float]] = None,
    max_val: Optional[Union[int, float]] = None,
) -> None:
    """
    Check that a numeric option lies in the closed range [min_val, max_val].

    Raises:
        ValueError: If value is outside the range.
    """
    if min_val is not None and value < min_val:
        raise ValueError(f"Parameter '{param_name}' must be >= {min_val}, got {value}")
    if max_val is not None and value > max_val:
        raise ValueError(f"Parameter '{param_name}' must be <= {max_val}, got {value}")


def validate_dataframe_structure(
    df: pd.DataFrame,
    param_name: str,
    required_columns: Optional[List[str]] = None,
    numeric_columns: Optional[List[str]] = None
) -> None:
    """
    Validate an observation frame.

    Args:
        df: DataFrame to validate.
        param_name: Parameter name for error messages.
        required_columns: Columns that must be present, e.g. key dimensions.
        numeric_columns: Columns that must hold numbers, e.g. the observed value.

    Raises:
        ValueError: If the frame is empty, lacks a column or a value column
            is not numeric.
    """
    if df.empty:
        raise ValueError(f"Parameter '{param_name}' cannot be an empty DataFrame")

    if required_columns:
        missing_cols = [col for col in required_columns if col not in df.columns]
        if missing_cols:
            raise ValueError(
                f"Parameter '{param_name}' missing required columns: {missing_cols}"
            )

    for col in numeric_columns or []:
        if col in df.columns and not pd.api.types.is_numeric_dtype(df[col]):
            raise ValueError(
                f"Parameter '{param_name}' column '{col}' must be numeric, got {df[col].dtype}"
            )


def validate_array_structure(
    arr: np.ndarray,
    param_name: str,
    min_dims: Optional[int] = None,
    max_dims: Optional[int] = None
) -> None:
    """
    Validate the dimensionality of a non-empty array.

    Raises:
        ValueError: If the array is empty or has too few or too many dimensions.
    """
    if arr.size == 0:
        raise ValueError(f"Parameter '{param_name}' cannot be an empty array")

    if min_dims is not None and arr.ndim < min_dims:
        raise ValueError(
            f"Parameter '{param_name}' must have at least {min_dims} dimensions, got {arr.ndim}"
        )
    if max_dims is not None and arr.ndim > max_dims:
        raise ValueError(
            f"Parameter '{param_name}' must have at most {max_dims} dimensions, got {arr.ndim}"
        )


class ValidationMixin:
    """Checks shared by per-series models before fitting and forecasting."""

    def _validate_fit_inputs(self, y: pd.Series) -> None:
        """Validate the series passed to fit."""
        if not isinstance(y, pd.Series):
            raise ValueError(f"Training data must be a pandas Series, got {type(y).__name__}")
        if y.empty:
            raise ValueError("Training data is empty")
        if not pd.api.types.is_numeric_dtype(y):
            raise ValueError(f"Training data must be numeric, got {y.dtype}")
        if y.isna().all():
            raise ValueError("Training data contains only missing values")

        if len(y) < MIN_TRAINING_OBSERVATIONS:
            logger.warning(
                f"Short training series ({len(y)} observations); forecast variances "
                f"will be poorly estimated"
            )

    def _validate_forecast_inputs(self, horizon: int) -> None:
        if not getattr(self, 'is_fitted', False):
            raise ValueError("Model not fitted. Call fit() first.")

        validate_numeric_range(horizon, 'horizon', min_val=1, max_val=MAX_HORIZON)
