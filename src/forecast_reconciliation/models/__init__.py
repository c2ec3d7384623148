"""Weight estimation, projection and reconciliation of forecasts."""

from .adapter import ForecastAdapter
from .distributions import Degenerate, Normal, Sample, SeriesForecast
from .linalg import DenseBackend, SparseBackend, make_backend, resolve_sparse, resolve_summing
from .model_table import ModelTable, forecasts_to_frame
from .projection import ReconciliationProjector
from .reconciler import (
    BottomUpReconciler,
    MinTraceReconciler,
    ReconciliationMethod,
    ReconciliationStrategy,
    make_reconciler,
)
from .series_models import ARIMASeriesModel, NaiveSeriesModel, SeriesModel, make_series_model
from .weights import WeightEstimator

__all__ = [
    "ForecastAdapter",
    "Degenerate",
    "Normal",
    "Sample",
    "SeriesForecast",
    "DenseBackend",
    "SparseBackend",
    "make_backend",
    "resolve_sparse",
    "resolve_summing",
    "ModelTable",
    "forecasts_to_frame",
    "ReconciliationProjector",
    "BottomUpReconciler",
    "MinTraceReconciler",
    "ReconciliationMethod",
    "ReconciliationStrategy",
    "make_reconciler",
    "ARIMASeriesModel",
    "NaiveSeriesModel",
    "SeriesModel",
    "make_series_model",
    "WeightEstimator",
]
