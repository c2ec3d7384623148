"""Tests for reconciliation strategies and the forecast adapter."""

from unittest.mock import patch

import numpy as np
import pandas as pd
import pytest

from forecast_reconciliation.data.keys import AGGREGATED
from forecast_reconciliation.data.structure import AggregationLevel
from forecast_reconciliation.data.summing import SummingMatrixBuilder
from forecast_reconciliation.exceptions import (
    HierarchyStructureError,
    TemporalMismatchError,
    UnsupportedMethodError,
)
from forecast_reconciliation.models.distributions import (
    POINT_FORECAST_FUNCTIONS,
    Degenerate,
    Normal,
    Sample,
    SeriesForecast,
)
from forecast_reconciliation.models.reconciler import (
    BottomUpReconciler,
    MinTraceReconciler,
    ReconciliationMethod,
    make_reconciler,
)
from forecast_reconciliation.utils.config import ReconciliationConfig


def two_level_forecasts(make_forecast, means=((12.0,), (5.0,), (6.0,)), **kwargs):
    keys = [(AGGREGATED,), ("r1",), ("r2",)]
    return [make_forecast(key, mu, **kwargs) for key, mu in zip(keys, means)]


@pytest.fixture
def misaligned_residuals():
    """Residuals whose indexes overlap on timestamps 2, 3 and 4 only."""
    return [
        pd.Series([1.0, 2.0, -1.0, 0.5], index=[1, 2, 3, 4]),
        pd.Series([0.3, 1.0, -0.7, 9.0], index=[2, 3, 4, 5]),
        pd.Series([5.0, -1.0, 0.2, 0.9, 3.0], index=[1, 2, 3, 4, 5]),
    ]


class TestMinTraceReconciler:
    """Test cases for MinTraceReconciler."""

    def test_coherent_output(self, three_level_structure, make_forecast, sample_residuals):
        """Test that reconciled means add up at every step."""
        rng = np.random.default_rng(1)
        forecasts = [
            make_forecast(key, rng.uniform(10, 100, 4), sigma=rng.uniform(1, 3, 4))
            for key in three_level_structure.keys
        ]
        residuals = [sample_residuals[:, i] for i in range(6)]

        reconciler = MinTraceReconciler(ReconciliationConfig(method="mint_shrink", sparse=False))
        reconciled = reconciler.reconcile(forecasts, three_level_structure, residuals=residuals)

        means = np.vstack([f.distribution.mean for f in reconciled])
        np.testing.assert_allclose(means[0], means[3:].sum(axis=0))
        np.testing.assert_allclose(means[1], means[3] + means[4])
        assert all(isinstance(f.distribution, Normal) for f in reconciled)
        assert [f.key for f in reconciled] == three_level_structure.keys

    def test_worked_example(self, two_level_structure, make_forecast):
        """Test the weighted average of a total and its two parts."""
        forecasts = two_level_forecasts(make_forecast)
        residuals = [[np.sqrt(2.0), -np.sqrt(2.0)], [1.0, -1.0], [1.0, 1.0]]

        reconciler = MinTraceReconciler(ReconciliationConfig(method="wls_var", sparse=False))
        reconciled = reconciler.reconcile(forecasts, two_level_structure, residuals=residuals)

        np.testing.assert_allclose(
            [f.distribution.mean[0] for f in reconciled], [11.5, 5.25, 6.25]
        )
        np.testing.assert_allclose(np.diag(reconciler.projector.W), [2.0, 1.0, 1.0])

    def test_sparse_matches_dense(self, three_level_structure, make_forecast, sample_residuals):
        """Test that both backends give the same reconciled distributions."""
        forecasts = [
            make_forecast(key, [10.0 * (i + 1), 11.0 * (i + 1)], sigma=[1.0 + i, 2.0 + i])
            for i, key in enumerate(three_level_structure.keys)
        ]
        residuals = [sample_residuals[:, i] for i in range(6)]

        results = []
        for flag in (False, True):
            reconciler = MinTraceReconciler(ReconciliationConfig(method="mint_cov", sparse=flag))
            results.append(reconciler.reconcile(forecasts, three_level_structure, residuals))

        for dense, sparse_result in zip(*results):
            np.testing.assert_allclose(dense.distribution.mu, sparse_result.distribution.mu)
            np.testing.assert_allclose(dense.distribution.sigma, sparse_result.distribution.sigma)

    def test_residual_alignment(self, two_level_structure, make_forecast, misaligned_residuals):
        """Test that weights are estimated on the shared timestamps only."""
        reconciler = MinTraceReconciler(ReconciliationConfig(method="mint_cov", sparse=False))
        reconciler.reconcile(
            two_level_forecasts(make_forecast), two_level_structure, residuals=misaligned_residuals
        )

        shared = np.array([
            [2.0, 0.3, -1.0],
            [-1.0, 1.0, 0.2],
            [0.5, -0.7, 0.9],
        ])
        np.testing.assert_allclose(reconciler.projector.W, shared.T @ shared / 3)

    def test_residuals_not_needed(self, two_level_structure, make_forecast):
        """Test that ols and wls_struct reconcile without residuals."""
        for method in ("ols", "wls_struct"):
            reconciler = MinTraceReconciler(ReconciliationConfig(method=method))
            reconciled = reconciler.reconcile(two_level_forecasts(make_forecast), two_level_structure)
            assert reconciled[0].distribution.mean[0] == pytest.approx(
                reconciled[1].distribution.mean[0] + reconciled[2].distribution.mean[0]
            )

    def test_missing_residuals(self, two_level_structure, make_forecast):
        """Test that residual-based methods need residuals."""
        reconciler = MinTraceReconciler(ReconciliationConfig(method="mint_cov"))
        with pytest.raises(ValueError, match="requires residuals"):
            reconciler.reconcile(two_level_forecasts(make_forecast), two_level_structure)

    def test_residual_count(self, two_level_structure, make_forecast):
        """Test that residuals must be supplied for every series."""
        reconciler = MinTraceReconciler(ReconciliationConfig(method="wls_var"))
        with pytest.raises(HierarchyStructureError, match="residuals for 3 series"):
            reconciler.reconcile(
                two_level_forecasts(make_forecast), two_level_structure, residuals=[[1.0, 2.0]]
            )

    def test_forecast_count(self, two_level_structure, make_forecast):
        """Test that min trace needs one forecast per series."""
        forecasts = two_level_forecasts(make_forecast)[1:]
        with pytest.raises(HierarchyStructureError, match="one forecast per series"):
            MinTraceReconciler(ReconciliationConfig(method="ols")).reconcile(forecasts, two_level_structure)

    def test_unknown_method_fails_early(self):
        """Test that an unknown method fails before any backend is chosen."""
        with patch("forecast_reconciliation.models.reconciler.make_backend") as mock_backend:
            with pytest.raises(UnsupportedMethodError):
                MinTraceReconciler(ReconciliationConfig(method="bogus"))
            mock_backend.assert_not_called()

    def test_interval_mismatch(self, two_level_structure, make_forecast):
        """Test that forecasts of different intervals are rejected."""
        forecasts = two_level_forecasts(make_forecast)
        forecasts[2] = make_forecast(("r2",), [6.0], freq="W")
        with pytest.raises(TemporalMismatchError, match="different intervals"):
            MinTraceReconciler(ReconciliationConfig(method="ols")).reconcile(forecasts, two_level_structure)

    def test_horizon_mismatch(self, two_level_structure, make_forecast):
        """Test that forecasts of different horizons are rejected."""
        forecasts = two_level_forecasts(make_forecast)
        forecasts[1] = make_forecast(("r1",), [5.0, 5.0])
        with pytest.raises(TemporalMismatchError, match="different horizons"):
            MinTraceReconciler(ReconciliationConfig(method="ols")).reconcile(forecasts, two_level_structure)

    def test_empty_horizon_mismatch(self, two_level_structure, make_forecast):
        """Test that a forecast without steps next to longer ones is a temporal mismatch."""
        forecasts = two_level_forecasts(make_forecast)
        forecasts[0] = make_forecast((AGGREGATED,), [])
        with pytest.raises(TemporalMismatchError, match="0 steps"):
            MinTraceReconciler(ReconciliationConfig(method="ols")).reconcile(forecasts, two_level_structure)

    def test_degenerate_inputs(self, two_level_structure, make_forecast):
        """Test that point forecasts reconcile to point masses."""
        forecasts = [
            f.with_distribution(Degenerate(f.distribution.mean))
            for f in two_level_forecasts(make_forecast)
        ]
        reconciled = MinTraceReconciler(ReconciliationConfig(method="ols")).reconcile(
            forecasts, two_level_structure
        )

        assert all(isinstance(f.distribution, Degenerate) for f in reconciled)
        total, r1, r2 = (f.distribution.x for f in reconciled)
        np.testing.assert_allclose(total, r1 + r2)
        np.testing.assert_array_equal(reconciled[0].distribution.variance, [0.0])

    def test_sample_inputs(self, two_level_structure, make_forecast):
        """Test that sample forecasts reconcile to point masses at the means."""
        rng = np.random.default_rng(5)
        forecasts = [
            f.with_distribution(Sample(rng.normal(f.distribution.mean, 1.0, (200, 1))))
            for f in two_level_forecasts(make_forecast)
        ]
        reconciled = MinTraceReconciler(ReconciliationConfig(method="wls_struct")).reconcile(
            forecasts, two_level_structure
        )

        assert all(isinstance(f.distribution, Degenerate) for f in reconciled)
        assert reconciled[0].distribution.x[0] == pytest.approx(
            reconciled[1].distribution.x[0] + reconciled[2].distribution.x[0]
        )

    def test_labelling_preserved(self, two_level_structure, make_forecast):
        """Test that index, interval and metadata carry over and point forecasts are recomputed."""
        forecasts = two_level_forecasts(
            make_forecast, means=((12.0, 13.0), (5.0, 5.0), (6.0, 7.0)), metadata={"model": "test"}
        )
        reconciler = MinTraceReconciler(
            ReconciliationConfig(method="ols"),
            point_forecasts={"median": POINT_FORECAST_FUNCTIONS["median"]},
        )
        reconciled = reconciler.reconcile(forecasts, two_level_structure)

        for base, result in zip(forecasts, reconciled):
            assert result.index.equals(base.index)
            assert result.interval == "D"
            assert result.metadata == {"model": "test"}
            assert list(result.point_forecasts) == ["median"]
            np.testing.assert_allclose(result.point_forecasts["median"], result.distribution.mean)


class TestBottomUpReconciler:
    """Test cases for BottomUpReconciler."""

    def test_aggregates_from_leaves(self, two_level_structure, make_forecast):
        """Test that the total becomes the sum of its leaves."""
        forecasts = two_level_forecasts(make_forecast, sigma=[2.0])
        reconciled = BottomUpReconciler(sparse=False).reconcile(forecasts, two_level_structure)

        assert reconciled[0].distribution.mean[0] == pytest.approx(11.0)
        assert reconciled[0].distribution.variance[0] == pytest.approx(8.0)
        assert reconciled[1].distribution.mean[0] == pytest.approx(5.0)

    def test_leaf_only_inputs(self, three_level_structure, make_forecast):
        """Test reconciling forecasts of the leaves only."""
        leaves = [
            make_forecast(key, [float(10 * (i + 1))], sigma=[1.0])
            for i, key in enumerate(three_level_structure.leaf_keys)
        ]
        reconciled = BottomUpReconciler().reconcile(leaves, three_level_structure)

        assert len(reconciled) == 6
        assert [f.key for f in reconciled] == three_level_structure.keys
        np.testing.assert_allclose(
            [f.distribution.mean[0] for f in reconciled], [60, 30, 30, 10, 20, 30]
        )
        np.testing.assert_allclose(
            [f.distribution.variance[0] for f in reconciled], [3, 2, 1, 1, 1, 1]
        )

    def test_wrong_count(self, three_level_structure, make_forecast):
        """Test that partial forecast sets are rejected."""
        forecasts = [make_forecast(key, [1.0]) for key in three_level_structure.keys[:4]]
        with pytest.raises(HierarchyStructureError, match="Bottom-up"):
            BottomUpReconciler().reconcile(forecasts, three_level_structure)

    @pytest.mark.parametrize("sparse", [False, True])
    def test_merges_levels(self, three_level_structure, make_forecast, sparse):
        """Test that the summing matrix is built by merging levels onto the leaves."""
        forecasts = [make_forecast(key, [1.0]) for key in three_level_structure.keys]
        with patch.object(
            SummingMatrixBuilder, "merge_levels", autospec=True,
            side_effect=SummingMatrixBuilder.merge_levels,
        ) as merge:
            reconciler = BottomUpReconciler(sparse=sparse)
            reconciled = reconciler.reconcile(forecasts, three_level_structure)

        assert reconciler.summing == "level_merge"
        merge.assert_called_once()
        np.testing.assert_allclose(
            [f.distribution.mean[0] for f in reconciled], [3, 2, 1, 1, 1, 1]
        )

    def test_leaf_sets_on_request(self, three_level_structure, make_forecast):
        """Test that a configured leaf set construction skips level merging."""
        forecasts = [make_forecast(key, [1.0]) for key in three_level_structure.keys]
        with patch.object(SummingMatrixBuilder, "merge_levels") as merge:
            BottomUpReconciler(sparse=False, summing="leaf_sets").reconcile(
                forecasts, three_level_structure
            )
        merge.assert_not_called()

    def test_unordered_level(self, three_level_structure, make_forecast):
        """Test that a level not ordered above the leaves fails reconciliation."""
        forecasts = [make_forecast(key, [1.0]) for key in three_level_structure.keys]
        with patch.object(AggregationLevel, "is_more_aggregated_than", return_value=False):
            with pytest.raises(HierarchyStructureError, match="cannot be ordered"):
                BottomUpReconciler(sparse=False).reconcile(forecasts, three_level_structure)

    def test_unknown_summing(self):
        """Test that unknown summing constructions are rejected on construction."""
        with pytest.raises(ValueError, match="Unknown summing matrix strategy"):
            BottomUpReconciler(summing="recursive")


class TestMakeReconciler:
    """Test cases for the strategy factory."""

    def test_strategies(self):
        """Test creating each strategy."""
        assert isinstance(make_reconciler("min_trace"), MinTraceReconciler)
        assert isinstance(make_reconciler(ReconciliationMethod.BOTTOM_UP), BottomUpReconciler)

    def test_config_passed(self):
        """Test that the configuration reaches the weight estimator."""
        reconciler = make_reconciler("min_trace", ReconciliationConfig(method="mint_shrink", shrinkage=0.3))
        assert reconciler.estimator.method == "mint_shrink"
        assert reconciler.estimator.shrinkage == 0.3

    def test_summing_passed(self, two_level_structure, make_forecast):
        """Test that the summing construction reaches both strategies."""
        assert make_reconciler("min_trace").summing == "leaf_sets"
        assert make_reconciler("bottom_up").summing == "level_merge"

        config = ReconciliationConfig(method="ols", sparse=False, summing="level_merge")
        reconciler = make_reconciler("min_trace", config)
        with patch.object(
            SummingMatrixBuilder, "merge_levels", autospec=True,
            side_effect=SummingMatrixBuilder.merge_levels,
        ) as merge:
            reconciled = reconciler.reconcile(two_level_forecasts(make_forecast), two_level_structure)

        assert merge.called
        assert reconciled[0].distribution.mean[0] == pytest.approx(35.0 / 3.0)
        assert make_reconciler(
            "bottom_up", ReconciliationConfig(summing="leaf_sets")
        ).summing == "leaf_sets"

    def test_unknown_strategy(self):
        """Test that unknown strategies are rejected."""
        with pytest.raises(UnsupportedMethodError, match="Unknown reconciliation strategy"):
            make_reconciler("top_down")


class TestSeriesForecast:
    """Test cases for forecast containers."""

    def test_index_length_checked(self):
        """Test that the index must match the distribution horizon."""
        with pytest.raises(ValueError, match="steps"):
            SeriesForecast(
                key=("a",),
                index=pd.RangeIndex(3),
                interval=None,
                distribution=Normal([1.0, 2.0], [1.0, 1.0]),
            )

    def test_interval_and_quantiles(self):
        """Test central intervals of a Gaussian forecast."""
        dist = Normal([0.0], [1.0])
        lower, upper = dist.interval(95)
        assert lower[0] == pytest.approx(-1.959964, rel=1e-5)
        assert upper[0] == pytest.approx(1.959964, rel=1e-5)
        np.testing.assert_allclose(Normal([3.0], [0.0]).interval(80), ([3.0], [3.0]))

    def test_invalid_normal(self):
        """Test that Normal parameters are validated."""
        with pytest.raises(ValueError, match="same shape"):
            Normal([1.0, 2.0], [1.0])
        with pytest.raises(ValueError, match="non-negative"):
            Normal([1.0], [-1.0])

    def test_to_frame(self, make_forecast):
        """Test long-format output of a forecast."""
        forecast = make_forecast(("North", AGGREGATED), [1.0, 2.0], sigma=[1.0, 2.0])
        frame = forecast.to_frame(["region", "store"])

        assert list(frame.columns) == ["region", "store", "index", "value", ".mean"]
        assert len(frame) == 2
        assert frame["value"].iloc[1] == "N(2, 4)"
        assert frame["store"].iloc[0] is AGGREGATED
