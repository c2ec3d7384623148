"""
Reconciliation strategies.

A strategy takes the base forecasts of a collection of series together with
their key structure and returns coherent forecasts in key table order.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Mapping, Optional, Sequence, Union

from ..data.residuals import ResidualLike, align_residuals
from ..data.structure import KeyStructure
from ..exceptions import HierarchyStructureError, UnsupportedMethodError
from ..utils.config import ReconciliationConfig
from ..utils.logging_utils import PerformanceLogger
from .adapter import ForecastAdapter
from .distributions import PointForecastFn, SeriesForecast
from .linalg import make_backend, resolve_sparse, resolve_summing
from .projection import ReconciliationProjector
from .weights import WeightEstimator


class ReconciliationMethod(Enum):
    """Available reconciliation strategies."""

    MIN_TRACE = "min_trace"
    BOTTOM_UP = "bottom_up"


class ReconciliationStrategy(ABC):
    """Common interface of the reconciliation strategies."""

    method: ReconciliationMethod

    def __init__(self, point_forecasts: Optional[Mapping[str, PointForecastFn]] = None) -> None:
        self.adapter = ForecastAdapter(point_forecasts)
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")
        self.perf_logger = PerformanceLogger(self.logger)
        self.projector: Optional[ReconciliationProjector] = None

    @abstractmethod
    def reconcile(
        self,
        forecasts: Sequence[SeriesForecast],
        key_structure: KeyStructure,
        residuals: Optional[Sequence[ResidualLike]] = None,
    ) -> List[SeriesForecast]:
        """
        Reconcile base forecasts.

        Args:
            forecasts: Base forecasts in key table order.
            key_structure: Key structure of the series.
            residuals: Per-series one-step residuals in key table order, for
                strategies that estimate weights from them.

        Returns:
            Coherent forecasts, one per series in key table order.
        """


class MinTraceReconciler(ReconciliationStrategy):
    """
    Minimum trace reconciliation with an estimated weight matrix.

    The weight estimator is built on construction, so an unknown method
    fails before any forecasts or matrices are touched.
    """

    method = ReconciliationMethod.MIN_TRACE

    def __init__(
        self,
        config: Optional[ReconciliationConfig] = None,
        point_forecasts: Optional[Mapping[str, PointForecastFn]] = None,
    ) -> None:
        """
        Initialize minimum trace reconciler.

        Args:
            config: Reconciliation options; defaults to ``wls_var`` with
                automatic backend selection.
            point_forecasts: Summary functions recomputed from each
                reconciled distribution.

        Raises:
            UnsupportedMethodError: If the configured method is unknown.
            ValueError: If the sparse option, shrinkage or summing
                construction is invalid.
        """
        super().__init__(point_forecasts)
        self.config = config or ReconciliationConfig()
        self.estimator = WeightEstimator(self.config.method, shrinkage=self.config.shrinkage)
        self.use_sparse = resolve_sparse(self.config.sparse)
        self.summing = resolve_summing(self.config.summing, default="leaf_sets")

    def reconcile(
        self,
        forecasts: Sequence[SeriesForecast],
        key_structure: KeyStructure,
        residuals: Optional[Sequence[ResidualLike]] = None,
    ) -> List[SeriesForecast]:
        """
        Reconcile one base forecast per series.

        Raises:
            HierarchyStructureError: If forecasts or residuals do not cover
                every series, or the aligned residuals are empty.
            TemporalMismatchError: If forecasts differ in interval or horizon.
            PositiveDefiniteError: If the weight matrix is not positive definite.
        """
        if len(forecasts) != key_structure.n_series:
            raise HierarchyStructureError(
                f"Minimum trace reconciliation needs one forecast per series: "
                f"expected {key_structure.n_series}, got {len(forecasts)}"
            )
        self.adapter.check_temporal_alignment(forecasts)

        backend = make_backend(self.use_sparse, summing=self.summing)
        with self.perf_logger.timer(f"min_trace reconciliation ({self.config.method})"):
            aligned = None
            if self.estimator.requires_residuals:
                if residuals is None:
                    raise ValueError(f"Method {self.config.method} requires residuals")
                if len(residuals) != key_structure.n_series:
                    raise HierarchyStructureError(
                        f"Expected residuals for {key_structure.n_series} series, got {len(residuals)}"
                    )
                aligned = align_residuals(residuals)

            S = backend.summing_matrix(key_structure)
            W = self.estimator.estimate(S, aligned)
            self.projector = ReconciliationProjector(backend).fit(key_structure, W)
            reconciled = self.adapter.apply(forecasts, self.projector, keys=key_structure.keys)

        self.logger.info(f"Reconciled {len(reconciled)} series with {self.config.method}")
        return reconciled


class BottomUpReconciler(ReconciliationStrategy):
    """
    Bottom-up reconciliation: aggregates are sums of the leaf forecasts.

    Accepts either one base forecast per series, in which case the aggregate
    base forecasts are discarded, or one per leaf series in leaf order. The
    summing matrix is built by merging aggregation levels onto the leaf level
    unless another construction is given.
    """

    method = ReconciliationMethod.BOTTOM_UP

    def __init__(
        self,
        sparse: Union[bool, str] = "auto",
        point_forecasts: Optional[Mapping[str, PointForecastFn]] = None,
        summing: Optional[str] = None,
    ) -> None:
        super().__init__(point_forecasts)
        self.use_sparse = resolve_sparse(sparse)
        self.summing = resolve_summing(summing, default="level_merge")

    def reconcile(
        self,
        forecasts: Sequence[SeriesForecast],
        key_structure: KeyStructure,
        residuals: Optional[Sequence[ResidualLike]] = None,
    ) -> List[SeriesForecast]:
        """
        Sum leaf forecasts into every series.

        Raises:
            HierarchyStructureError: If the forecasts cover neither every series
                nor exactly the leaves.
            TemporalMismatchError: If forecasts differ in interval or horizon.
            HierarchyStructureError: If an aggregation level cannot be merged
                above the leaf level.
        """
        if len(forecasts) == key_structure.n_series:
            leaf_inputs = False
        elif len(forecasts) == key_structure.n_leaves:
            leaf_inputs = True
        else:
            raise HierarchyStructureError(
                f"Bottom-up reconciliation needs {key_structure.n_series} series or "
                f"{key_structure.n_leaves} leaf forecasts, got {len(forecasts)}"
            )
        self.adapter.check_temporal_alignment(forecasts)

        backend = make_backend(self.use_sparse, summing=self.summing)
        with self.perf_logger.timer("bottom_up reconciliation"):
            self.projector = ReconciliationProjector.bottom_up(
                key_structure, backend, leaf_inputs=leaf_inputs
            )
            reconciled = self.adapter.apply(forecasts, self.projector, keys=key_structure.keys)

        self.logger.info(
            f"Reconciled {len(reconciled)} series bottom-up from {key_structure.n_leaves} leaves"
        )
        return reconciled


def make_reconciler(
    strategy: Union[str, ReconciliationMethod] = ReconciliationMethod.MIN_TRACE,
    config: Optional[ReconciliationConfig] = None,
    point_forecasts: Optional[Mapping[str, PointForecastFn]] = None,
) -> ReconciliationStrategy:
    """
    Create a reconciliation strategy.

    Args:
        strategy: ``"min_trace"`` or ``"bottom_up"``.
        config: Reconciliation options; bottom-up uses only ``sparse`` and
            ``summing``.
        point_forecasts: Summary functions recomputed from each reconciled
            distribution.

    Raises:
        UnsupportedMethodError: If the strategy or method is unknown.
    """
    try:
        strategy = ReconciliationMethod(strategy)
    except ValueError as e:
        raise UnsupportedMethodError(
            f"Unknown reconciliation strategy: {strategy!r}. "
            f"Options are: {[m.value for m in ReconciliationMethod]}"
        ) from e

    config = config or ReconciliationConfig()
    if strategy is ReconciliationMethod.BOTTOM_UP:
        return BottomUpReconciler(
            sparse=config.sparse, point_forecasts=point_forecasts, summing=config.summing
        )
    return MinTraceReconciler(config, point_forecasts=point_forecasts)
