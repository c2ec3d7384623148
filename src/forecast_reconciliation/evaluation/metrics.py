"""
Evaluation metrics for reconciled forecasts.

Covers coherence of a set of forecasts against the summing matrix, point
accuracy, prediction interval quality and CRPS of the forecast distributions.
"""

import logging
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from properscoring import crps_ensemble, crps_gaussian
from scipy import sparse, stats
from sklearn.metrics import mean_absolute_error, mean_squared_error

from ..data.keys import format_key
from ..data.structure import KeyStructure
from ..models.distributions import Degenerate, Normal, Sample, SeriesForecast


class IntervalMetrics:
    """Metrics for evaluating prediction intervals."""

    @staticmethod
    def coverage_probability(
        actuals: np.ndarray,
        lower_bounds: np.ndarray,
        upper_bounds: np.ndarray
    ) -> float:
        """
        Calculate empirical coverage probability.

        Args:
            actuals: Actual values.
            lower_bounds: Lower bounds of prediction intervals.
            upper_bounds: Upper bounds of prediction intervals.

        Returns:
            Coverage probability (0-1).
        """
        return float(np.mean((actuals >= lower_bounds) & (actuals <= upper_bounds)))

    @staticmethod
    def interval_width(lower_bounds: np.ndarray, upper_bounds: np.ndarray) -> float:
        """Mean interval width."""
        return float(np.mean(upper_bounds - lower_bounds))

    @staticmethod
    def interval_score(
        actuals: np.ndarray,
        lower_bounds: np.ndarray,
        upper_bounds: np.ndarray,
        alpha: float = 0.1
    ) -> float:
        """
        Calculate the interval score (smaller is better).

        Args:
            actuals: Actual values.
            lower_bounds: Lower bounds of prediction intervals.
            upper_bounds: Upper bounds of prediction intervals.
            alpha: Significance level (e.g., 0.1 for 90% intervals).

        Returns:
            Mean interval score.
        """
        width = upper_bounds - lower_bounds
        lower_penalty = (2 / alpha) * np.maximum(lower_bounds - actuals, 0)
        upper_penalty = (2 / alpha) * np.maximum(actuals - upper_bounds, 0)
        return float(np.mean(width + lower_penalty + upper_penalty))

    @staticmethod
    def quantile_score(actuals: np.ndarray, predictions: np.ndarray, quantile: float) -> float:
        """Pinball loss of predicted quantiles."""
        errors = actuals - predictions
        return float(np.mean(np.maximum(quantile * errors, (quantile - 1) * errors)))


class CoherenceMetrics:
    """Metrics for evaluating hierarchical coherence."""

    @staticmethod
    def coherence_error(
        means: np.ndarray,
        summing_matrix: Union[np.ndarray, sparse.spmatrix],
        leaf_positions: Sequence[int],
    ) -> float:
        """
        Largest absolute gap between each series and the sum of its leaves.

        Args:
            means: Forecast means, shape (n_series, horizon), key table order.
            summing_matrix: Summing matrix of the series.
            leaf_positions: Rows of ``means`` holding the leaf series.

        Returns:
            Maximum absolute coherence error (0 = coherent).
        """
        means = np.asarray(means, dtype=float)
        expected = np.asarray(summing_matrix @ means[list(leaf_positions)])
        return float(np.max(np.abs(expected - means)))

    @staticmethod
    def relative_coherence_error(
        means: np.ndarray,
        summing_matrix: Union[np.ndarray, sparse.spmatrix],
        leaf_positions: Sequence[int],
    ) -> float:
        """Mean absolute coherence gap relative to the forecast magnitude."""
        means = np.asarray(means, dtype=float)
        expected = np.asarray(summing_matrix @ means[list(leaf_positions)])
        return float(np.mean(np.abs(expected - means) / (np.abs(means) + 1e-8)))


def _stack_means(forecasts: Sequence[SeriesForecast]) -> np.ndarray:
    return np.vstack([f.distribution.mean for f in forecasts])


def crps(forecast: SeriesForecast, actual: np.ndarray) -> np.ndarray:
    """
    CRPS of a forecast distribution per horizon step.

    Gaussian forecasts use the closed form, samples the ensemble estimator
    and point masses reduce to the absolute error.
    """
    distribution = forecast.distribution
    actual = np.asarray(actual, dtype=float)
    if isinstance(distribution, Normal):
        return crps_gaussian(actual, mu=distribution.mu, sig=distribution.sigma)
    if isinstance(distribution, Sample):
        return crps_ensemble(actual, distribution.draws.T)
    if isinstance(distribution, Degenerate):
        return np.abs(actual - distribution.x)
    raise TypeError(f"No CRPS for distribution {type(distribution).__name__}")


class HierarchicalMetrics:
    """
    Accuracy and coherence metrics over a collection of series.

    Actuals are given as a wide frame with one column per series in key table
    order, covering at least the forecast horizon.
    """

    def __init__(self, levels: Optional[List[float]] = None) -> None:
        """
        Initialize hierarchical metrics calculator.

        Args:
            levels: Prediction interval levels in percent.
        """
        self.levels = levels if levels is not None else [80, 95]
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _actual_matrix(actuals: pd.DataFrame, forecasts: Sequence[SeriesForecast]) -> np.ndarray:
        if actuals.shape[1] != len(forecasts):
            raise ValueError(
                f"Actuals have {actuals.shape[1]} series but there are {len(forecasts)} forecasts"
            )
        horizon = forecasts[0].horizon
        if len(actuals) < horizon:
            raise ValueError(f"Actuals cover {len(actuals)} steps, forecasts {horizon}")
        return actuals.iloc[:horizon].to_numpy(dtype=float).T

    def compute_point_metrics(
        self,
        forecasts: Sequence[SeriesForecast],
        actuals: pd.DataFrame,
    ) -> Dict[str, float]:
        """RMSE, MAE and sMAPE of the forecast means over all series and steps."""
        truth = self._actual_matrix(actuals, forecasts).ravel()
        pred = _stack_means(forecasts).ravel()

        denominator = (np.abs(truth) + np.abs(pred)) / 2
        valid = denominator != 0
        smape = 100 * float(np.mean(np.abs(truth - pred)[valid] / denominator[valid])) if valid.any() else 0.0

        return {
            "RMSE": float(np.sqrt(mean_squared_error(truth, pred))),
            "MAE": float(mean_absolute_error(truth, pred)),
            "sMAPE": smape,
        }

    def compute_crps(self, forecasts: Sequence[SeriesForecast], actuals: pd.DataFrame) -> float:
        """Mean CRPS over all series and steps."""
        truth = self._actual_matrix(actuals, forecasts)
        scores = [crps(forecast, truth[i]) for i, forecast in enumerate(forecasts)]
        return float(np.mean(np.concatenate(scores)))

    def compute_interval_metrics(
        self,
        forecasts: Sequence[SeriesForecast],
        actuals: pd.DataFrame,
    ) -> Dict[str, float]:
        """Coverage, width and interval score at each configured level."""
        truth = self._actual_matrix(actuals, forecasts)
        metrics = {}
        for level in self.levels:
            bounds = [f.distribution.interval(level) for f in forecasts]
            lower = np.vstack([b[0] for b in bounds])
            upper = np.vstack([b[1] for b in bounds])
            tag = f"{level:g}"
            metrics[f"coverage_{tag}"] = IntervalMetrics.coverage_probability(truth, lower, upper)
            metrics[f"width_{tag}"] = IntervalMetrics.interval_width(lower, upper)
            metrics[f"interval_score_{tag}"] = IntervalMetrics.interval_score(
                truth, lower, upper, alpha=1 - level / 100
            )
        return metrics

    def compute_all_metrics(
        self,
        forecasts: Sequence[SeriesForecast],
        actuals: pd.DataFrame,
        structure: Optional[KeyStructure] = None,
        summing_matrix: Optional[Union[np.ndarray, sparse.spmatrix]] = None,
    ) -> Dict[str, float]:
        """
        Compute point, interval, CRPS and (given S) coherence metrics.

        Args:
            forecasts: Forecasts in key table order.
            actuals: Wide frame of observed values.
            structure: Key structure, needed for coherence metrics.
            summing_matrix: Summing matrix, needed for coherence metrics.

        Returns:
            Dictionary of all computed metrics.
        """
        self.logger.info("Computing evaluation metrics...")

        metrics = self.compute_point_metrics(forecasts, actuals)
        metrics.update(self.compute_interval_metrics(forecasts, actuals))
        metrics["CRPS"] = self.compute_crps(forecasts, actuals)

        if structure is not None and summing_matrix is not None:
            means = _stack_means(forecasts)
            metrics["coherence_error"] = CoherenceMetrics.coherence_error(
                means, summing_matrix, structure.leaf_positions
            )

        self.logger.info(f"Computed {len(metrics)} evaluation metrics")
        return metrics

    def compute_level_metrics(
        self,
        forecasts: Sequence[SeriesForecast],
        actuals: pd.DataFrame,
        structure: KeyStructure,
    ) -> pd.DataFrame:
        """RMSE, MAE and CRPS for each aggregation level."""
        rows = []
        for level in structure.levels:
            subset = [forecasts[pos] for pos in level.positions]
            level_actuals = actuals.iloc[:, list(level.positions)]
            point = self.compute_point_metrics(subset, level_actuals)
            rows.append({
                "level": format_key(
                    ["*" if flag else dim for dim, flag in zip(structure.dimensions, level.pattern)]
                ),
                "n_series": len(level.positions),
                "RMSE": point["RMSE"],
                "MAE": point["MAE"],
                "CRPS": self.compute_crps(subset, level_actuals),
            })
        return pd.DataFrame(rows)

    def diebold_mariano_test(
        self,
        forecasts1: Sequence[SeriesForecast],
        forecasts2: Sequence[SeriesForecast],
        actuals: pd.DataFrame,
    ) -> Dict[str, float]:
        """
        Diebold-Mariano test on squared errors of two sets of forecasts.

        Returns:
            Test statistic and two-sided p-value; a negative statistic favours
            ``forecasts1``.
        """
        truth = self._actual_matrix(actuals, forecasts1).ravel()
        d = (truth - _stack_means(forecasts1).ravel()) ** 2 - (truth - _stack_means(forecasts2).ravel()) ** 2

        d_var = np.var(d, ddof=1) if len(d) > 1 else 0.0
        if d_var == 0:
            return {"dm_statistic": 0.0, "p_value": 1.0}

        dm_stat = np.mean(d) / np.sqrt(d_var / len(d))
        p_value = 2 * (1 - stats.norm.cdf(np.abs(dm_stat)))
        return {"dm_statistic": float(dm_stat), "p_value": float(p_value)}

    def create_performance_report(self, results: Dict[str, Dict[str, float]]) -> str:
        """
        Format metrics of several forecast sets side by side.

        Args:
            results: Mapping from forecast set name (e.g. ``base``) to metrics.

        Returns:
            Formatted report string.
        """
        names = list(results)
        metric_names = sorted({m for metrics in results.values() for m in metrics})
        lines = ["=== Forecast Reconciliation Report ===", ""]
        lines.append(f"{'metric':<22}" + "".join(f"{name:>14}" for name in names))
        for metric in metric_names:
            values = "".join(
                f"{results[name][metric]:>14.4f}" if metric in results[name] else f"{'-':>14}"
                for name in names
            )
            lines.append(f"{metric:<22}{values}")
        return "\n".join(lines)
