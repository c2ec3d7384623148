"""
Per-series forecasting models producing base forecasts and residuals.

Each model is fitted to one series and forecasts a Gaussian distribution per
horizon step. Residuals are one-step-ahead in-sample errors indexed like the
training series.
"""

import logging
import warnings
from abc import ABC, abstractmethod
from typing import Any, Dict, Hashable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from pandas.tseries.frequencies import to_offset
from statsmodels.tsa.arima.model import ARIMA as StatsARIMA

from ..utils.type_validation import ValidationMixin
from .distributions import Normal, SeriesForecast


def future_index(index: pd.Index, horizon: int) -> Tuple[pd.Index, Optional[str]]:
    """
    Index of the ``horizon`` steps following ``index`` and its frequency.

    Datetime indexes continue at their (declared or inferred) frequency;
    anything else continues as consecutive integers.
    """
    if isinstance(index, pd.DatetimeIndex) and len(index) > 0:
        freq = index.freqstr or (pd.infer_freq(index) if len(index) >= 3 else None)
        if freq is not None:
            offset = to_offset(freq)
            future = pd.date_range(start=index[-1] + offset, periods=horizon, freq=offset)
            return future, freq

    start = int(index[-1]) + 1 if len(index) > 0 and pd.api.types.is_integer_dtype(index) else len(index)
    return pd.RangeIndex(start, start + horizon), None


class SeriesModel(ValidationMixin, ABC):
    """
    Abstract base class for per-series models.

    Attributes:
        name: Identifier used in log messages.
        logger: Logger instance for the model.
        is_fitted: Whether ``fit`` has completed.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{name}")
        self.is_fitted = False
        self._y: Optional[pd.Series] = None

    def fit(self, y: pd.Series) -> "SeriesModel":
        """
        Fit the model to one series.

        Args:
            y: Observations indexed by timestamp.

        Returns:
            Self for method chaining.

        Raises:
            ValueError: If the series is empty, non-numeric or all missing.
        """
        self._validate_fit_inputs(y)
        self._y = y.sort_index().astype(float)
        self._fit(self._y)
        self.is_fitted = True
        return self

    def forecast(
        self,
        horizon: int,
        key: Sequence[Hashable] = (),
        label: str = "value",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SeriesForecast:
        """
        Forecast the next ``horizon`` steps.

        Args:
            horizon: Number of steps ahead.
            key: Series key attached to the forecast.
            label: Name of the forecast variable.
            metadata: Extra labelling attached to the forecast.

        Returns:
            Gaussian forecast over the horizon.

        Raises:
            ValueError: If the model is not fitted or the horizon is invalid.
        """
        self._validate_forecast_inputs(horizon)
        index, interval = future_index(self._y.index, horizon)
        mean, variance = self._forecast(horizon)

        info = {"model": self.name}
        info.update(metadata or {})
        return SeriesForecast(
            key=tuple(key),
            index=index,
            interval=interval,
            distribution=Normal(mean, np.sqrt(np.maximum(variance, 0.0))),
            label=label,
            metadata=info,
        )

    def residuals(self) -> pd.Series:
        """One-step-ahead residuals; undefined steps are NaN."""
        if not self.is_fitted:
            raise ValueError("Model not fitted. Call fit() first.")
        return self._residuals()

    @abstractmethod
    def _fit(self, y: pd.Series) -> None:
        pass

    @abstractmethod
    def _forecast(self, horizon: int) -> Tuple[np.ndarray, np.ndarray]:
        """Forecast means and variances for steps 1..horizon."""

    @abstractmethod
    def _residuals(self) -> pd.Series:
        pass


class NaiveSeriesModel(SeriesModel):
    """Random walk: forecasts repeat the last observation, variance grows as h * sigma^2."""

    def __init__(self) -> None:
        super().__init__("naive")
        self.last_value: Optional[float] = None
        self.sigma2: Optional[float] = None

    def _fit(self, y: pd.Series) -> None:
        observed = y.dropna()
        self.last_value = float(observed.iloc[-1])
        diffs = observed.diff().dropna()
        self.sigma2 = float(np.mean(diffs.to_numpy() ** 2)) if len(diffs) else 0.0

    def _forecast(self, horizon: int) -> Tuple[np.ndarray, np.ndarray]:
        steps = np.arange(1, horizon + 1)
        return np.full(horizon, self.last_value), steps * self.sigma2

    def _residuals(self) -> pd.Series:
        return self._y.diff()


class ARIMASeriesModel(SeriesModel):
    """statsmodels ARIMA with Gaussian forecast distributions."""

    def __init__(self, order: Sequence[int] = (1, 0, 0), trend: Optional[str] = None) -> None:
        """
        Initialize ARIMA model.

        Args:
            order: (p, d, q) order of the model.
            trend: Trend term passed to statsmodels, e.g. ``"c"``.
        """
        super().__init__("arima")
        if len(order) != 3 or any(int(o) < 0 for o in order):
            raise ValueError(f"ARIMA order must be three non-negative integers, got {order}")
        self.order = tuple(int(o) for o in order)
        self.trend = trend
        self.fitted_model = None

    def _fit(self, y: pd.Series) -> None:
        model = StatsARIMA(y.to_numpy(), order=self.order, trend=self.trend)
        with warnings.catch_warnings():
            # Convergence warnings on short synthetic series are expected
            warnings.simplefilter("ignore")
            self.fitted_model = model.fit()
        self.logger.debug(f"Fitted ARIMA{self.order}, aic={self.fitted_model.aic:.2f}")

    def _forecast(self, horizon: int) -> Tuple[np.ndarray, np.ndarray]:
        forecast_result = self.fitted_model.get_forecast(steps=horizon)
        return (
            np.asarray(forecast_result.predicted_mean, dtype=float),
            np.asarray(forecast_result.var_pred_mean, dtype=float),
        )

    def _residuals(self) -> pd.Series:
        resid = pd.Series(np.asarray(self.fitted_model.resid, dtype=float), index=self._y.index)
        # The first d residuals are the undifferenced observations
        resid.iloc[: self.order[1]] = np.nan
        return resid


MODEL_TYPES = {
    "naive": NaiveSeriesModel,
    "arima": ARIMASeriesModel,
}


def make_series_model(model_type: str = "naive", **kwargs) -> SeriesModel:
    """
    Create a per-series model by name.

    Raises:
        ValueError: If the model type is unknown.
    """
    if model_type not in MODEL_TYPES:
        raise ValueError(f"Unknown model type: {model_type}. Options are: {list(MODEL_TYPES)}")
    return MODEL_TYPES[model_type](**kwargs)
