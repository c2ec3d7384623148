#!/usr/bin/env python3
"""
Generate a synthetic region/store sales panel for forecast reconciliation.

Each store's daily sales combine a store level, a region-wide AR(1) shock,
weekly seasonality and store-level noise, so that stores within a region
have correlated forecast errors.
"""

import argparse
from pathlib import Path

import numpy as np
import pandas as pd

REGIONS = {
    "North": ["N_1", "N_2", "N_3"],
    "South": ["S_1", "S_2"],
    "West": ["W_1", "W_2", "W_3", "W_4"],
}


def generate_region_shock(n_days: int, phi: float, sigma: float, rng: np.random.Generator) -> np.ndarray:
    """AR(1) shock shared by the stores of one region."""
    shock = np.zeros(n_days)
    innovations = rng.normal(0, sigma, n_days)
    for t in range(1, n_days):
        shock[t] = phi * shock[t - 1] + innovations[t]
    return shock


def generate_store_sales(
    n_days: int,
    base_level: float,
    weekly_pattern: np.ndarray,
    region_shock: np.ndarray,
    noise_std: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """Daily sales of one store, rounded and kept non-negative."""
    weekly = weekly_pattern[np.arange(n_days) % 7]
    sales = base_level * weekly + region_shock + rng.normal(0, noise_std, n_days)
    return np.maximum(0, np.round(sales, 2))


def generate_panel(n_days: int = 180, start: str = "2023-01-01", seed: int = 42) -> pd.DataFrame:
    """Long-format panel with columns date, region, store and sales."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range(start, periods=n_days, freq="D")

    frames = []
    for region, stores in REGIONS.items():
        shock = generate_region_shock(n_days, phi=0.7, sigma=rng.uniform(2, 5), rng=rng)
        for store in stores:
            weekly = rng.uniform(0.8, 1.0, 7)
            weekly[5:] = rng.uniform(1.1, 1.4, 2)
            sales = generate_store_sales(
                n_days,
                base_level=rng.uniform(40, 120),
                weekly_pattern=weekly / weekly.mean(),
                region_shock=shock,
                noise_std=rng.uniform(2, 6),
                rng=rng,
            )
            frames.append(pd.DataFrame({"date": dates, "region": region, "store": store, "sales": sales}))

    return pd.concat(frames, ignore_index=True)


def main() -> None:
    """Generate the panel and write it to CSV."""
    parser = argparse.ArgumentParser(
        description="Generate a synthetic region/store sales panel",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--output", type=str, default="data/panel.csv", help="Output CSV path")
    parser.add_argument("--n-days", type=int, default=180, help="Number of days")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()

    panel = generate_panel(n_days=args.n_days, seed=args.seed)

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    panel.to_csv(output, index=False)

    print(f"Saved {output}: {panel.shape}")
    print(f"  Regions: {panel['region'].nunique()}")
    print(f"  Stores: {panel['store'].nunique()}")
    print(f"  Mean daily sales: {panel['sales'].mean():.2f}")


if __name__ == "__main__":
    main()
