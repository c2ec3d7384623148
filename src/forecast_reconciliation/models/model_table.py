"""Collection of fitted per-series models over a key table."""

import logging
from typing import Callable, List, Optional, Sequence

import pandas as pd

from ..data.keys import aggregate_series, format_key
from ..data.structure import KeyStructure
from ..utils.logging_utils import PerformanceLogger
from .distributions import SeriesForecast
from .reconciler import ReconciliationStrategy
from .series_models import NaiveSeriesModel, SeriesModel


def forecasts_to_frame(
    forecasts: Sequence[SeriesForecast],
    dimensions: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Stack per-series forecasts into one long DataFrame."""
    frames = [forecast.to_frame(dimensions) for forecast in forecasts]
    return pd.concat(frames, ignore_index=True)


class ModelTable:
    """
    One fitted model per series of a key table.

    Attributes:
        structure: Key structure of the modelled series.
        models: Fitted models; one per series, or one per leaf when fitted
            with ``leaves_only``.
        history: Wide frame of the training series in key table order.
    """

    def __init__(
        self,
        model_factory: Callable[[], SeriesModel] = NaiveSeriesModel,
        label: str = "value",
    ) -> None:
        """
        Initialize model table.

        Args:
            model_factory: Callable returning a fresh unfitted model.
            label: Name of the forecast variable.
        """
        self.model_factory = model_factory
        self.label = label
        self.structure: Optional[KeyStructure] = None
        self.models: List[SeriesModel] = []
        self.history: Optional[pd.DataFrame] = None
        self.leaves_only = False
        self.logger = logging.getLogger(__name__)
        self.perf_logger = PerformanceLogger(self.logger)

    @property
    def is_fitted(self) -> bool:
        return bool(self.models)

    @property
    def dimensions(self) -> List[str]:
        return self.structure.dimensions if self.structure is not None else []

    def fit(
        self,
        data: pd.DataFrame,
        key_table: pd.DataFrame,
        index: str,
        value: str,
        leaves_only: bool = False,
    ) -> "ModelTable":
        """
        Aggregate long-format observations and fit a model to every series.

        Args:
            data: Observations the key table was built from.
            key_table: Key table of the series to model.
            index: Timestamp column.
            value: Column to forecast.
            leaves_only: Fit models for the leaf series only.

        Returns:
            Self for method chaining.
        """
        wide = aggregate_series(data, key_table, index, value)
        return self.fit_wide(wide, key_table, leaves_only=leaves_only)

    def fit_wide(
        self,
        wide: pd.DataFrame,
        key_table: pd.DataFrame,
        leaves_only: bool = False,
    ) -> "ModelTable":
        """
        Fit a model to every column of a wide frame in key table order.

        Raises:
            HierarchyStructureError: If the key table is malformed.
            ValueError: If the frame does not have one column per series.
        """
        structure = KeyStructure(key_table)
        if wide.shape[1] != structure.n_series:
            raise ValueError(
                f"Expected {structure.n_series} series columns, got {wide.shape[1]}"
            )

        positions = structure.leaf_positions if leaves_only else range(structure.n_series)
        models = []
        with self.perf_logger.timer(f"fitting {len(positions)} series models"):
            for pos in positions:
                model = self.model_factory()
                model.fit(wide.iloc[:, pos])
                models.append(model)

        self.structure = structure
        self.history = wide
        self.models = models
        self.leaves_only = leaves_only
        self.logger.info(f"Fitted {len(models)} series models")
        return self

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise ValueError("Model table not fitted. Call fit() first.")

    @property
    def model_keys(self) -> List[tuple]:
        """Keys of the modelled series, in the order of ``models``."""
        self._check_fitted()
        if self.leaves_only:
            return self.structure.leaf_keys
        return self.structure.keys

    def forecast(self, horizon: int) -> List[SeriesForecast]:
        """Base forecasts of every model, in the order of ``models``."""
        self._check_fitted()
        return [
            model.forecast(
                horizon,
                key=key,
                label=self.label,
                metadata={"series": format_key(key)},
            )
            for model, key in zip(self.models, self.model_keys)
        ]

    def residuals(self) -> List[pd.Series]:
        """One-step residuals of every model, in the order of ``models``."""
        self._check_fitted()
        return [model.residuals() for model in self.models]

    def reconcile(
        self,
        strategy: ReconciliationStrategy,
        horizon: int,
        forecasts: Optional[Sequence[SeriesForecast]] = None,
    ) -> List[SeriesForecast]:
        """
        Forecast every series and reconcile the forecasts.

        Args:
            strategy: Reconciliation strategy to apply.
            horizon: Number of steps ahead.
            forecasts: Base forecasts already produced by ``forecast``; the
                models are not forecast again when given.

        Returns:
            Reconciled forecasts in key table order.

        Raises:
            ValueError: If the given forecasts do not cover ``horizon`` steps.
        """
        self._check_fitted()
        if forecasts is None:
            forecasts = self.forecast(horizon)
        elif any(f.horizon != horizon for f in forecasts):
            raise ValueError(f"Base forecasts must cover {horizon} steps")
        residuals = None if self.leaves_only else self.residuals()
        return strategy.reconcile(forecasts, self.structure, residuals=residuals)

    def to_frame(self, forecasts: Sequence[SeriesForecast]) -> pd.DataFrame:
        """Long DataFrame of forecasts labelled with this table's dimensions."""
        return forecasts_to_frame(forecasts, self.dimensions)
