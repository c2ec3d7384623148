"""Tests for evaluation metrics."""

import numpy as np
import pandas as pd
import pytest

from forecast_reconciliation.data.summing import SummingMatrixBuilder
from forecast_reconciliation.evaluation.metrics import (
    CoherenceMetrics,
    HierarchicalMetrics,
    IntervalMetrics,
    crps,
)
from forecast_reconciliation.models.distributions import Degenerate, Sample


@pytest.fixture
def coherent_forecasts(three_level_structure, make_forecast):
    """Coherent Gaussian forecasts over three steps."""
    leaves = np.array([[10.0, 11.0, 12.0], [20.0, 21.0, 22.0], [30.0, 31.0, 32.0]])
    S = SummingMatrixBuilder(three_level_structure).build()
    means = S @ leaves
    return [
        make_forecast(key, means[i], sigma=np.full(3, 2.0))
        for i, key in enumerate(three_level_structure.keys)
    ]


@pytest.fixture
def actuals(coherent_forecasts):
    """Actuals one unit above every forecast mean."""
    values = np.vstack([f.distribution.mean for f in coherent_forecasts]).T + 1.0
    return pd.DataFrame(values)


class TestIntervalMetrics:
    """Test cases for IntervalMetrics."""

    def test_coverage(self):
        """Test empirical coverage."""
        actuals = np.array([1.0, 2.0, 3.0, 4.0])
        lower = np.array([0.0, 2.5, 2.0, 3.0])
        upper = np.array([2.0, 3.0, 4.0, 5.0])
        assert IntervalMetrics.coverage_probability(actuals, lower, upper) == 0.75

    def test_interval_score(self):
        """Test the width plus the penalty for misses."""
        score = IntervalMetrics.interval_score(
            np.array([5.0]), np.array([0.0]), np.array([4.0]), alpha=0.2
        )
        assert score == pytest.approx(4.0 + 10.0 * 1.0)

    def test_quantile_score(self):
        """Test the pinball loss."""
        assert IntervalMetrics.quantile_score(np.array([2.0]), np.array([1.0]), 0.9) == pytest.approx(0.9)
        assert IntervalMetrics.quantile_score(np.array([0.0]), np.array([1.0]), 0.9) == pytest.approx(0.1)


class TestCoherenceMetrics:
    """Test cases for CoherenceMetrics."""

    def test_coherent(self, coherent_forecasts, three_level_structure):
        """Test that coherent forecasts have zero error."""
        S = SummingMatrixBuilder(three_level_structure).build(sparse_output=True)
        means = np.vstack([f.distribution.mean for f in coherent_forecasts])
        assert CoherenceMetrics.coherence_error(means, S, three_level_structure.leaf_positions) == 0.0

    def test_incoherent(self, coherent_forecasts, three_level_structure):
        """Test that a shifted total is detected."""
        S = SummingMatrixBuilder(three_level_structure).build()
        means = np.vstack([f.distribution.mean for f in coherent_forecasts])
        means[0] += 5.0
        assert CoherenceMetrics.coherence_error(means, S, three_level_structure.leaf_positions) == 5.0
        assert CoherenceMetrics.relative_coherence_error(
            means, S, three_level_structure.leaf_positions
        ) > 0


class TestCRPS:
    """Test cases for the CRPS of each distribution."""

    def test_degenerate_is_absolute_error(self, make_forecast):
        """Test that a point mass scores its absolute error."""
        forecast = make_forecast(("a",), [1.0, 2.0])
        forecast = forecast.with_distribution(Degenerate([1.0, 2.0]))
        np.testing.assert_allclose(crps(forecast, [2.0, 0.0]), [1.0, 2.0])

    def test_gaussian_and_sample_agree(self, make_forecast):
        """Test that a large sample approximates the Gaussian score."""
        forecast = make_forecast(("a",), [0.0], sigma=[1.0])
        draws = np.random.default_rng(0).normal(0.0, 1.0, (2000, 1))
        sampled = forecast.with_distribution(Sample(draws))

        assert crps(sampled, [0.5])[0] == pytest.approx(crps(forecast, [0.5])[0], abs=0.05)


class TestHierarchicalMetrics:
    """Test cases for HierarchicalMetrics."""

    def test_point_metrics(self, coherent_forecasts, actuals):
        """Test RMSE and MAE of a constant error."""
        metrics = HierarchicalMetrics().compute_point_metrics(coherent_forecasts, actuals)
        assert metrics["RMSE"] == pytest.approx(1.0)
        assert metrics["MAE"] == pytest.approx(1.0)
        assert metrics["sMAPE"] > 0

    def test_all_metrics(self, coherent_forecasts, actuals, three_level_structure):
        """Test the combined metric dictionary."""
        S = SummingMatrixBuilder(three_level_structure).build()
        metrics = HierarchicalMetrics(levels=[80, 95]).compute_all_metrics(
            coherent_forecasts, actuals, three_level_structure, S
        )

        for name in ("RMSE", "MAE", "sMAPE", "CRPS", "coherence_error",
                     "coverage_80", "width_95", "interval_score_95"):
            assert name in metrics
        assert metrics["coherence_error"] == pytest.approx(0.0)
        assert metrics["coverage_95"] == 1.0
        assert metrics["width_95"] > metrics["width_80"]

    def test_level_metrics(self, coherent_forecasts, actuals, three_level_structure):
        """Test one row of metrics per aggregation level."""
        frame = HierarchicalMetrics().compute_level_metrics(
            coherent_forecasts, actuals, three_level_structure
        )
        assert list(frame["n_series"]) == [1, 2, 3]
        assert list(frame["level"]) == ["*/*", "region/*", "region/store"]

    def test_actuals_mismatch(self, coherent_forecasts, actuals):
        """Test that actuals must cover every series and step."""
        evaluator = HierarchicalMetrics()
        with pytest.raises(ValueError, match="5 series"):
            evaluator.compute_point_metrics(coherent_forecasts, actuals.iloc[:, :5])
        with pytest.raises(ValueError, match="cover 2 steps"):
            evaluator.compute_point_metrics(coherent_forecasts, actuals.iloc[:2])

    def test_diebold_mariano(self, coherent_forecasts, actuals):
        """Test that better forecasts give a negative statistic."""
        better = [
            f.with_distribution(Degenerate(f.distribution.mean + 0.9))
            for f in coherent_forecasts
        ]
        worse = [
            f.with_distribution(Degenerate(f.distribution.mean + np.array([0.0, -1.0, 2.0])))
            for f in coherent_forecasts
        ]
        result = HierarchicalMetrics().diebold_mariano_test(better, worse, actuals)
        assert result["dm_statistic"] < 0
        assert 0.0 <= result["p_value"] <= 1.0

        same = HierarchicalMetrics().diebold_mariano_test(better, better, actuals)
        assert same == {"dm_statistic": 0.0, "p_value": 1.0}

    def test_performance_report(self):
        """Test side-by-side report formatting."""
        report = HierarchicalMetrics().create_performance_report({
            "base": {"RMSE": 2.0, "CRPS": 1.0},
            "reconciled": {"RMSE": 1.5},
        })
        assert "Forecast Reconciliation Report" in report
        assert "RMSE" in report
        assert "1.5000" in report
