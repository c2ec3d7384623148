"""Application of a reconciliation projector to per-series forecasts."""

import logging
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..data.keys import format_key
from ..exceptions import HierarchyStructureError, TemporalMismatchError
from .distributions import Degenerate, Normal, PointForecastFn, SeriesForecast
from .projection import ReconciliationProjector


class ForecastAdapter:
    """
    Reconciles forecast distributions across every horizon step.

    Means are always projected. Variances are propagated only when every base
    forecast is Gaussian; otherwise the reconciled forecasts are point masses
    at the reconciled means.
    """

    def __init__(self, point_forecasts: Optional[Mapping[str, PointForecastFn]] = None) -> None:
        """
        Initialize forecast adapter.

        Args:
            point_forecasts: Named summary functions recomputed from each
                reconciled distribution. Defaults to the mean only.
        """
        self.point_forecasts = point_forecasts
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def check_temporal_alignment(forecasts: Sequence[SeriesForecast]) -> Tuple[pd.Index, Optional[str]]:
        """
        Check that all forecasts share one interval and forecast index.

        Returns:
            The common forecast index and interval.

        Raises:
            TemporalMismatchError: If intervals, horizons or timestamps differ.
        """
        if not forecasts:
            raise HierarchyStructureError("No forecasts to reconcile")

        first = forecasts[0]
        for forecast in forecasts[1:]:
            if forecast.interval != first.interval:
                raise TemporalMismatchError(
                    f"Reconciliation of series with different intervals is not supported: "
                    f"{first.interval!r} and {forecast.interval!r}"
                )
            if forecast.horizon != first.horizon or not forecast.index.equals(first.index):
                raise TemporalMismatchError(
                    f"Forecasts cover different horizons: {first.horizon} steps for "
                    f"{format_key(first.key)} and {forecast.horizon} steps for "
                    f"{format_key(forecast.key)}"
                )
        return first.index, first.interval

    @staticmethod
    def is_gaussian(forecasts: Sequence[SeriesForecast]) -> bool:
        return all(isinstance(f.distribution, Normal) for f in forecasts)

    @staticmethod
    def stack(forecasts: Sequence[SeriesForecast]) -> Tuple[np.ndarray, np.ndarray]:
        """Means and variances as (n_series, horizon) matrices."""
        means = np.vstack([f.distribution.mean for f in forecasts])
        variances = np.vstack([f.distribution.variance for f in forecasts])
        return means, variances

    def apply(
        self,
        forecasts: Sequence[SeriesForecast],
        projector: ReconciliationProjector,
        keys: Optional[Sequence[tuple]] = None,
    ) -> List[SeriesForecast]:
        """
        Reconcile base forecasts with a fitted projector.

        Args:
            forecasts: Base forecasts, one per input of the projector.
            projector: Fitted projector.
            keys: Keys of the reconciled series, one per row of ``S``. When
                None the base forecasts' keys are kept; this requires one
                base forecast per series.

        Returns:
            Reconciled forecasts in series order, carrying the base
            forecasts' index, interval, label and metadata.

        Raises:
            TemporalMismatchError: If the base forecasts are not aligned in time.
            HierarchyStructureError: If the number of forecasts does not match.
        """
        self.check_temporal_alignment(forecasts)

        n_inputs = projector.n_inputs
        if len(forecasts) != n_inputs:
            raise HierarchyStructureError(
                f"Expected {n_inputs} forecasts, got {len(forecasts)}"
            )

        n_outputs = projector.n_outputs
        if keys is None:
            if n_outputs != len(forecasts):
                raise HierarchyStructureError("Keys are required when forecasts cover only part of the series")
            keys = [f.key for f in forecasts]

        means, variances = self.stack(forecasts)
        reconciled_means = projector.reconcile_mean(means)

        gaussian = self.is_gaussian(forecasts)
        if gaussian:
            reconciled_variances = np.maximum(projector.reconcile_variance(variances), 0.0)
        else:
            self.logger.info("Non-Gaussian base forecasts; reconciling means only")

        # Labelling template: the series' own base forecast if present, else the first
        templates = forecasts if len(forecasts) == n_outputs else [forecasts[0]] * n_outputs

        reconciled = []
        for i, key in enumerate(keys):
            if gaussian:
                distribution = Normal(reconciled_means[i], np.sqrt(reconciled_variances[i]))
            else:
                distribution = Degenerate(reconciled_means[i])
            reconciled.append(
                templates[i].with_distribution(distribution, self.point_forecasts, key=tuple(key))
            )
        return reconciled
