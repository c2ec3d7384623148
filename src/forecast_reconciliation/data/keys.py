"""Key tables describing hierarchical and grouped collections of series.

A key table has one row per series and one column per key dimension. A cell
holds either a concrete category or the ``AGGREGATED`` marker, meaning the
series is summed over that dimension. The trailing ``.rows`` column stores the
positions of the observation rows belonging to the series.
"""

import itertools
import logging
from typing import Hashable, List, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..utils.type_validation import validate_dataframe_structure

logger = logging.getLogger(__name__)

ROWS_COLUMN = ".rows"


class _AggregatedMarker:
    """Singleton placed in key cells that are summed over."""

    _instance = None

    def __new__(cls) -> "_AggregatedMarker":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<aggregated>"

    def __reduce__(self):
        return (_AggregatedMarker, ())


AGGREGATED = _AggregatedMarker()

KeySpec = Sequence[Union[str, Sequence[str]]]


def is_aggregated(value: object) -> bool:
    """Return True if a key cell is the aggregated marker."""
    return value is AGGREGATED


def format_key(key: Sequence[Hashable]) -> str:
    """Render a series key as a readable label, e.g. ``North/<aggregated>``."""
    return "/".join(str(value) for value in key)


def _normalise_chains(hierarchy: KeySpec) -> List[Tuple[str, ...]]:
    chains = []
    for chain in hierarchy:
        if isinstance(chain, str):
            chains.append((chain,))
        else:
            chains.append(tuple(chain))
    if not chains or any(len(chain) == 0 for chain in chains):
        raise ValueError("hierarchy must contain at least one non-empty dimension chain")

    dims = [dim for chain in chains for dim in chain]
    if len(set(dims)) != len(dims):
        raise ValueError(f"Dimensions appear more than once in hierarchy: {dims}")
    return chains


def build_key_table(data: pd.DataFrame, hierarchy: KeySpec) -> pd.DataFrame:
    """
    Build the key table for every aggregate of an observation panel.

    Each entry of ``hierarchy`` is a chain of nested dimensions ordered from
    coarsest to finest (``["region", "store"]``), or a single dimension name.
    Chains are crossed with each other, so ``["state", "category"]`` yields a
    grouped structure with state totals, category totals, their crossings and
    the grand total.

    Args:
        data: Long-format observations, one row per series and timestamp.
        hierarchy: Dimension chains to aggregate over.

    Returns:
        Key table with one row per series, most aggregated series first and
        leaf series last, plus the ``.rows`` column of observation positions.

    Raises:
        ValueError: If dimensions are missing from ``data`` or contain nulls.
    """
    chains = _normalise_chains(hierarchy)
    dims = [dim for chain in chains for dim in chain]
    validate_dataframe_structure(data, "data", required_columns=dims)

    null_dims = [dim for dim in dims if data[dim].isna().any()]
    if null_dims:
        raise ValueError(f"Key dimensions contain missing values: {null_dims}")

    # Every combination of chain depths, fewest kept dimensions first
    depth_choices = [range(len(chain) + 1) for chain in chains]
    combinations = sorted(
        itertools.product(*depth_choices),
        key=lambda depths: sum(depths),
    )

    records = []
    all_rows = tuple(range(len(data)))
    for depths in combinations:
        kept = [dim for chain, depth in zip(chains, depths) for dim in chain[:depth]]

        if not kept:
            record = {dim: AGGREGATED for dim in dims}
            record[ROWS_COLUMN] = all_rows
            records.append(record)
            continue

        groups = data.groupby(kept, sort=True).indices
        for values, positions in groups.items():
            if not isinstance(values, tuple):
                values = (values,)
            kept_values = dict(zip(kept, values))
            record = {dim: kept_values.get(dim, AGGREGATED) for dim in dims}
            record[ROWS_COLUMN] = tuple(int(p) for p in np.sort(positions))
            records.append(record)

    key_table = pd.DataFrame.from_records(records, columns=dims + [ROWS_COLUMN])
    logger.info(
        f"Built key table with {len(key_table)} series over dimensions {dims}"
    )
    return key_table


def aggregate_series(
    data: pd.DataFrame,
    key_table: pd.DataFrame,
    index: str,
    value: str,
) -> pd.DataFrame:
    """
    Sum observations into one column per series of a key table.

    Args:
        data: Observations the key table was built from.
        key_table: Key table whose ``.rows`` refer to positions in ``data``.
        index: Timestamp column.
        value: Column to sum.

    Returns:
        Wide DataFrame indexed by timestamp with one column per series, in key
        table order, labelled with ``format_key``.
    """
    validate_dataframe_structure(
        data, "data", required_columns=[index, value], numeric_columns=[value]
    )
    dims = [col for col in key_table.columns if col != ROWS_COLUMN]

    columns = {}
    for _, row in key_table.iterrows():
        label = format_key([row[dim] for dim in dims])
        subset = data.iloc[list(row[ROWS_COLUMN])]
        columns[label] = subset.groupby(index)[value].sum()

    wide = pd.DataFrame(columns).sort_index()
    wide.index.name = index
    return wide
