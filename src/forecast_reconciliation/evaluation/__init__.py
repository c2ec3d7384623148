"""Evaluation metrics for reconciled forecasts."""

from .metrics import CoherenceMetrics, HierarchicalMetrics, IntervalMetrics, crps

__all__ = [
    "HierarchicalMetrics",
    "IntervalMetrics",
    "CoherenceMetrics",
    "crps",
]
