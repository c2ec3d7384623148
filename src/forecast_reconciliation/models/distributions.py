"""
Forecast distributions and per-series forecast containers.

Distributions are vectorised over horizon steps: element ``h`` of ``mean``
and ``variance`` describes step ``h + 1``.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Hashable, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import norm


class ForecastDistribution:
    """Base class for forecast distributions over a horizon."""

    family: str = "base"

    @property
    def mean(self) -> np.ndarray:
        raise NotImplementedError

    @property
    def variance(self) -> np.ndarray:
        raise NotImplementedError

    @property
    def median(self) -> np.ndarray:
        return self.quantile(0.5)

    def quantile(self, p: float) -> np.ndarray:
        raise NotImplementedError

    def interval(self, level: float = 95) -> Tuple[np.ndarray, np.ndarray]:
        """Central prediction interval at ``level`` percent."""
        alpha = (100 - level) / 200
        return self.quantile(alpha), self.quantile(1 - alpha)

    def __len__(self) -> int:
        return len(self.mean)


class Normal(ForecastDistribution):
    """Gaussian forecast distribution."""

    family = "normal"

    def __init__(self, mu: Sequence[float], sigma: Sequence[float]) -> None:
        self.mu = np.asarray(mu, dtype=float)
        self.sigma = np.asarray(sigma, dtype=float)
        if self.mu.shape != self.sigma.shape:
            raise ValueError(
                f"mu and sigma must have the same shape, got {self.mu.shape} and {self.sigma.shape}"
            )
        if np.any(self.sigma < 0):
            raise ValueError("sigma must be non-negative")

    @property
    def mean(self) -> np.ndarray:
        return self.mu

    @property
    def variance(self) -> np.ndarray:
        return self.sigma ** 2

    def quantile(self, p: float) -> np.ndarray:
        # Zero spread collapses to the mean
        with np.errstate(invalid="ignore", divide="ignore"):
            q = norm.ppf(p, loc=self.mu, scale=self.sigma)
        return np.where(self.sigma == 0, self.mu, q)

    def __repr__(self) -> str:
        return f"Normal(mu={self.mu!r}, sigma={self.sigma!r})"


class Degenerate(ForecastDistribution):
    """Point mass at the forecast value."""

    family = "degenerate"

    def __init__(self, x: Sequence[float]) -> None:
        self.x = np.asarray(x, dtype=float)

    @property
    def mean(self) -> np.ndarray:
        return self.x

    @property
    def variance(self) -> np.ndarray:
        return np.zeros_like(self.x)

    def quantile(self, p: float) -> np.ndarray:
        return self.x.copy()

    def __repr__(self) -> str:
        return f"Degenerate(x={self.x!r})"


class Sample(ForecastDistribution):
    """Empirical distribution of simulated paths, shape (n_draws, horizon)."""

    family = "sample"

    def __init__(self, draws: np.ndarray) -> None:
        draws = np.asarray(draws, dtype=float)
        if draws.ndim != 2:
            raise ValueError(f"draws must be 2-dimensional (n_draws, horizon), got {draws.ndim}")
        self.draws = draws

    @property
    def mean(self) -> np.ndarray:
        return self.draws.mean(axis=0)

    @property
    def variance(self) -> np.ndarray:
        return self.draws.var(axis=0, ddof=1) if self.draws.shape[0] > 1 else np.zeros(self.draws.shape[1])

    def quantile(self, p: float) -> np.ndarray:
        return np.quantile(self.draws, p, axis=0)

    def __len__(self) -> int:
        return self.draws.shape[1]

    def __repr__(self) -> str:
        return f"Sample(n_draws={self.draws.shape[0]}, horizon={self.draws.shape[1]})"


PointForecastFn = Callable[[ForecastDistribution], np.ndarray]

DEFAULT_POINT_FORECASTS: Dict[str, PointForecastFn] = {
    "mean": lambda dist: dist.mean,
}

POINT_FORECAST_FUNCTIONS: Dict[str, PointForecastFn] = {
    "mean": lambda dist: dist.mean,
    "median": lambda dist: dist.median,
}


def compute_point_forecasts(
    distribution: ForecastDistribution,
    point_forecasts: Optional[Mapping[str, PointForecastFn]] = None,
) -> Dict[str, np.ndarray]:
    """Evaluate point forecast summaries of a distribution."""
    functions = DEFAULT_POINT_FORECASTS if point_forecasts is None else point_forecasts
    return {name: np.asarray(fn(distribution), dtype=float) for name, fn in functions.items()}


@dataclass
class SeriesForecast:
    """
    Forecast of one series over a horizon.

    Attributes:
        key: Series key, one value per key dimension.
        index: Timestamps of the forecast steps.
        interval: Frequency of the forecast index, e.g. ``"D"``.
        distribution: Forecast distribution over the horizon.
        label: Name of the forecast variable.
        point_forecasts: Named point summaries of the distribution.
        metadata: Free-form labelling carried through reconciliation.
    """

    key: Tuple[Hashable, ...]
    index: pd.Index
    interval: Optional[str]
    distribution: ForecastDistribution
    label: str = "value"
    point_forecasts: Dict[str, np.ndarray] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if len(self.index) != len(self.distribution):
            raise ValueError(
                f"Forecast index has {len(self.index)} steps but the distribution has "
                f"{len(self.distribution)}"
            )
        if not self.point_forecasts:
            self.point_forecasts = compute_point_forecasts(self.distribution)

    @property
    def horizon(self) -> int:
        return len(self.index)

    def with_distribution(
        self,
        distribution: ForecastDistribution,
        point_forecasts: Optional[Mapping[str, PointForecastFn]] = None,
        key: Optional[Tuple[Hashable, ...]] = None,
    ) -> "SeriesForecast":
        """Copy carrying a new distribution, recomputed point forecasts and the same labelling."""
        return replace(
            self,
            key=self.key if key is None else key,
            distribution=distribution,
            point_forecasts=compute_point_forecasts(distribution, point_forecasts),
            metadata=dict(self.metadata),
        )

    def to_frame(self, dimensions: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Long format: key dimensions, index, distribution and point forecasts."""
        dimensions = dimensions or [f"key_{i}" for i in range(len(self.key))]
        frame = pd.DataFrame({"index": self.index})
        for dim, value in zip(dimensions, self.key):
            frame[dim] = [value] * self.horizon
        frame[self.label] = _step_labels(self.distribution)
        for name, values in self.point_forecasts.items():
            frame[f".{name}"] = values
        return frame[list(dimensions) + ["index", self.label] + [f".{n}" for n in self.point_forecasts]]


def _step_labels(distribution: ForecastDistribution) -> list:
    if isinstance(distribution, Normal):
        return [f"N({m:.4g}, {v:.4g})" for m, v in zip(distribution.mean, distribution.variance)]
    if isinstance(distribution, Degenerate):
        return [f"{x:.4g}" for x in distribution.x]
    return [f"sample[{distribution.draws.shape[0]}]"] * len(distribution)
