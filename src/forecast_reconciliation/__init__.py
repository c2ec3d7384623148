"""
Forecast Reconciliation for hierarchical and grouped time series.

Reconciles independently produced forecasts of a collection of series so that
they obey the summation constraints of the hierarchy, propagating Gaussian
forecast uncertainty through the reconciliation.
"""

__version__ = "0.2.0"

from . import data, models, training, evaluation, utils
from .exceptions import (
    HierarchyStructureError,
    PositiveDefiniteError,
    ReconciliationError,
    TemporalMismatchError,
    UnsupportedMethodError,
)

__all__ = [
    "data",
    "models",
    "training",
    "evaluation",
    "utils",
    "ReconciliationError",
    "HierarchyStructureError",
    "PositiveDefiniteError",
    "UnsupportedMethodError",
    "TemporalMismatchError",
]
