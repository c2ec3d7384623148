"""Aggregation structure derived from a key table."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from ..exceptions import HierarchyStructureError
from .keys import ROWS_COLUMN, format_key, is_aggregated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregationLevel:
    """
    Series sharing one pattern of aggregated dimensions.

    Attributes:
        pattern: One flag per key dimension, True where the level is summed.
        positions: Positions of the level's series in key table order.
    """

    pattern: Tuple[bool, ...]
    positions: Tuple[int, ...]

    @property
    def is_leaf(self) -> bool:
        return not any(self.pattern)

    @property
    def kept_dimensions(self) -> Tuple[int, ...]:
        """Indices of the dimensions this level is not aggregated over."""
        return tuple(i for i, flag in enumerate(self.pattern) if not flag)

    def is_more_aggregated_than(self, other: "AggregationLevel") -> bool:
        """Elementwise comparison of aggregated flags, strict in one dimension."""
        return (
            all(o <= s for o, s in zip(other.pattern, self.pattern))
            and any(o < s for o, s in zip(other.pattern, self.pattern))
        )


def _as_rows(value) -> Tuple[int, ...]:
    if isinstance(value, (int, np.integer)):
        return (int(value),)
    return tuple(int(v) for v in value)


class KeyStructure:
    """
    Leaf identification and leaf sets for every series of a key table.

    The key table is grouped by aggregated-flag pattern into levels. The one
    level with no aggregated dimension holds the leaf series, whose key table
    order fixes the column order of the summing matrix. Every other series is
    resolved to the leaves whose values agree with it on its non-aggregated
    dimensions.

    Attributes:
        key_table: The key table, re-indexed from zero.
        dimensions: Key dimension names.
        keys: Series keys in key table order.
        levels: Aggregation levels in order of first appearance.
        leaf_positions: Positions of leaf series; leaf ``j`` is column ``j``.
        agg: For every series, the leaf columns it sums.
    """

    def __init__(self, key_table: pd.DataFrame) -> None:
        if ROWS_COLUMN not in key_table.columns:
            raise HierarchyStructureError(
                f"Key table must contain a '{ROWS_COLUMN}' column"
            )
        if key_table.empty:
            raise HierarchyStructureError("Key table is empty")

        self.key_table = key_table.reset_index(drop=True)
        self.dimensions: List[str] = [c for c in key_table.columns if c != ROWS_COLUMN]
        if not self.dimensions:
            raise HierarchyStructureError("Key table has no key dimensions")

        self.keys: List[Tuple] = [
            tuple(row) for row in self.key_table[self.dimensions].itertuples(index=False)
        ]
        self._check_unique_keys()

        self.levels = self._group_levels()
        leaf_levels = [level for level in self.levels if level.is_leaf]
        if len(leaf_levels) != 1:
            raise HierarchyStructureError(
                f"Expected exactly one level without aggregated dimensions, "
                f"found {len(leaf_levels)}"
            )
        self.leaf_level = leaf_levels[0]
        self.leaf_positions: Tuple[int, ...] = self.leaf_level.positions

        self._check_leaf_rows()
        self.agg: List[Tuple[int, ...]] = self._resolve_leaf_sets()

        logger.info(
            f"Derived key structure: {self.n_series} series, {self.n_leaves} leaves, "
            f"{len(self.levels)} aggregation levels"
        )

    @property
    def n_series(self) -> int:
        return len(self.keys)

    @property
    def n_leaves(self) -> int:
        return len(self.leaf_positions)

    @property
    def aggregate_positions(self) -> Tuple[int, ...]:
        """Positions of the non-leaf series in key table order."""
        leaves = set(self.leaf_positions)
        return tuple(i for i in range(self.n_series) if i not in leaves)

    @property
    def leaf_keys(self) -> List[Tuple]:
        return [self.keys[pos] for pos in self.leaf_positions]

    @property
    def labels(self) -> List[str]:
        return [format_key(key) for key in self.keys]

    def leaf_counts(self) -> np.ndarray:
        """Number of leaves summed into each series."""
        return np.array([len(cols) for cols in self.agg], dtype=int)

    def is_leaf(self, position: int) -> bool:
        return position in set(self.leaf_positions)

    def _check_unique_keys(self) -> None:
        seen: Dict[Tuple, int] = {}
        for pos, key in enumerate(self.keys):
            if key in seen:
                raise HierarchyStructureError(
                    f"Duplicate series key {format_key(key)} at rows {seen[key]} and {pos}"
                )
            seen[key] = pos

    def _group_levels(self) -> List[AggregationLevel]:
        grouped: Dict[Tuple[bool, ...], List[int]] = {}
        for pos, key in enumerate(self.keys):
            pattern = tuple(is_aggregated(value) for value in key)
            grouped.setdefault(pattern, []).append(pos)
        return [
            AggregationLevel(pattern=pattern, positions=tuple(positions))
            for pattern, positions in grouped.items()
        ]

    def _check_leaf_rows(self) -> None:
        """Leaf series must not share observation rows."""
        seen: Dict[int, int] = {}
        for pos in self.leaf_positions:
            for row in _as_rows(self.key_table.at[pos, ROWS_COLUMN]):
                if row in seen:
                    raise HierarchyStructureError(
                        f"Leaf series {format_key(self.keys[seen[row]])} and "
                        f"{format_key(self.keys[pos])} share observation row {row}"
                    )
                seen[row] = pos

    def _resolve_leaf_sets(self) -> List[Tuple[int, ...]]:
        leaf_keys = self.leaf_keys
        agg: List[Tuple[int, ...]] = [()] * self.n_series

        for level in self.levels:
            kept = level.kept_dimensions
            lookup = {
                tuple(self.keys[pos][d] for d in kept): pos for pos in level.positions
            }
            members: Dict[int, List[int]] = {pos: [] for pos in level.positions}
            for column, leaf_key in enumerate(leaf_keys):
                pos = lookup.get(tuple(leaf_key[d] for d in kept))
                if pos is not None:
                    members[pos].append(column)

            for pos, columns in members.items():
                if not columns:
                    raise HierarchyStructureError(
                        f"Series {format_key(self.keys[pos])} does not match any leaf series"
                    )
                agg[pos] = tuple(columns)

        return agg
