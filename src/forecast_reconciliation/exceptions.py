"""Exceptions raised by the forecast reconciliation framework."""


class ReconciliationError(Exception):
    """Base exception for forecast reconciliation failures."""


class HierarchyStructureError(ReconciliationError, ValueError):
    """Raised when a key table does not describe a usable aggregation structure.

    Covers a missing or ambiguous leaf level, aggregation levels that cannot be
    ordered for merging, duplicated keys, overlapping leaf rows, and residual
    matrices that end up empty after alignment.
    """


class PositiveDefiniteError(ReconciliationError, ValueError):
    """Raised when an estimated weight matrix is not positive definite."""


class UnsupportedMethodError(ReconciliationError, ValueError):
    """Raised when an unknown weight estimation method is requested."""


class TemporalMismatchError(ReconciliationError, ValueError):
    """Raised when series forecasts do not share one horizon and interval."""
