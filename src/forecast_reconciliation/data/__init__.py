"""Key tables, aggregation structure and summing matrices."""

from .keys import AGGREGATED, aggregate_series, build_key_table, format_key, is_aggregated
from .loader import PanelDataLoader, train_test_split
from .residuals import align_residuals
from .structure import AggregationLevel, KeyStructure
from .summing import SummingMatrixBuilder, merge_level

__all__ = [
    "AGGREGATED",
    "aggregate_series",
    "build_key_table",
    "format_key",
    "is_aggregated",
    "PanelDataLoader",
    "train_test_split",
    "align_residuals",
    "AggregationLevel",
    "KeyStructure",
    "SummingMatrixBuilder",
    "merge_level",
]
