"""Pytest configuration and fixtures for testing."""

import pytest
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Any, Callable, Dict, Sequence

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from forecast_reconciliation.data.keys import AGGREGATED, ROWS_COLUMN, build_key_table
from forecast_reconciliation.data.structure import KeyStructure
from forecast_reconciliation.models.distributions import Normal, SeriesForecast
from forecast_reconciliation.utils.config_schema import ConfigValidator


@pytest.fixture
def sample_config() -> Dict[str, Any]:
    """Provide a validated configuration for testing."""
    return ConfigValidator().validate({
        "data": {
            "index": "date",
            "value": "sales",
            "hierarchy": [["region", "store"]],
            "test_size": 7
        },
        "reconciliation": {
            "strategy": "min_trace",
            "method": "wls_var",
            "sparse": False,
            "point_forecasts": ["mean", "median"]
        },
        "models": {"type": "naive"},
        "forecast": {"horizon": 7},
        "evaluation": {"levels": [80, 95]},
        "logging": {"level": "INFO"}
    })


@pytest.fixture
def sample_panel() -> pd.DataFrame:
    """Long-format panel: two regions, three stores, 60 days."""
    rng = np.random.default_rng(42)
    dates = pd.date_range("2024-01-01", periods=60, freq="D")

    frames = []
    for region, store, level in [("North", "N_1", 50), ("North", "N_2", 80), ("South", "S_1", 120)]:
        sales = level + np.cumsum(rng.normal(0, 2, len(dates)))
        frames.append(pd.DataFrame({
            "date": dates,
            "region": region,
            "store": store,
            "sales": sales
        }))

    return pd.concat(frames, ignore_index=True)


@pytest.fixture
def grouped_panel() -> pd.DataFrame:
    """Long-format panel crossing two states with two categories, 30 days."""
    rng = np.random.default_rng(7)
    dates = pd.date_range("2024-01-01", periods=30, freq="D")

    frames = []
    for state in ["CA", "TX"]:
        for category in ["FOODS", "HOBBIES"]:
            frames.append(pd.DataFrame({
                "date": dates,
                "state": state,
                "category": category,
                "sales": rng.uniform(10, 20, len(dates))
            }))

    return pd.concat(frames, ignore_index=True)


@pytest.fixture
def three_level_key_table(sample_panel) -> pd.DataFrame:
    """Key table: total, two regions, three stores."""
    return build_key_table(sample_panel, [["region", "store"]])


@pytest.fixture
def three_level_structure(three_level_key_table) -> KeyStructure:
    return KeyStructure(three_level_key_table)


@pytest.fixture
def grouped_structure(grouped_panel) -> KeyStructure:
    """Key structure of the state x category grouping."""
    return KeyStructure(build_key_table(grouped_panel, ["state", "category"]))


@pytest.fixture
def two_level_key_table() -> pd.DataFrame:
    """Key table: one total and two regional leaves."""
    return pd.DataFrame({
        "region": [AGGREGATED, "r1", "r2"],
        ROWS_COLUMN: [(0, 1, 2, 3), (0, 1), (2, 3)]
    })


@pytest.fixture
def two_level_structure(two_level_key_table) -> KeyStructure:
    return KeyStructure(two_level_key_table)


@pytest.fixture
def sample_residuals() -> np.ndarray:
    """Residual matrix (50 timestamps x 6 series) with full column rank."""
    rng = np.random.default_rng(0)
    common = rng.normal(0, 1, (50, 1))
    return rng.normal(0, 1, (50, 6)) + 0.5 * common


@pytest.fixture
def make_forecast() -> Callable[..., SeriesForecast]:
    """Factory building Gaussian forecasts over a daily index."""

    def _make(
        key: Sequence,
        mu: Sequence[float],
        sigma: Sequence[float] = None,
        start: str = "2024-03-01",
        freq: str = "D",
        metadata: Dict[str, Any] = None,
    ) -> SeriesForecast:
        mu = np.asarray(mu, dtype=float)
        sigma = np.ones_like(mu) if sigma is None else np.asarray(sigma, dtype=float)
        return SeriesForecast(
            key=tuple(key),
            index=pd.date_range(start, periods=len(mu), freq=freq),
            interval=freq,
            distribution=Normal(mu, sigma),
            metadata=dict(metadata or {}),
        )

    return _make
