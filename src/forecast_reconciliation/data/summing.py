"""Summing matrix construction for hierarchical and grouped series."""

import logging
from typing import Dict, Union

import numpy as np
from scipy import sparse

from ..exceptions import HierarchyStructureError
from ..utils.logging_utils import log_function_call
from .keys import format_key
from .structure import AggregationLevel, KeyStructure

logger = logging.getLogger(__name__)


def merge_level(
    structure: KeyStructure,
    base: AggregationLevel,
    level: AggregationLevel,
) -> Dict[int, np.ndarray]:
    """
    Derive the summing matrix rows of ``level`` against the leaf columns.

    The leaves are grouped on the dimensions ``level`` keeps. Each group maps
    to the level series carrying the same values, which gives a column
    permutation of the level's identity block.

    Args:
        structure: Key structure the levels belong to.
        base: Level accumulated so far; ``level`` must be more aggregated.
        level: Level to merge.

    Returns:
        Mapping from series position to its summing matrix row.

    Raises:
        HierarchyStructureError: If ``level`` cannot be ordered above ``base``
            or one of its series sums no leaves.
    """
    if not level.is_more_aggregated_than(base):
        raise HierarchyStructureError(
            f"Aggregation level {level.pattern} cannot be ordered above {base.pattern}"
        )

    kept = level.kept_dimensions
    lookup = {
        tuple(structure.keys[pos][d] for d in kept): k
        for k, pos in enumerate(level.positions)
    }
    cols = np.array(
        [lookup.get(tuple(key[d] for d in kept), -1) for key in structure.leaf_keys],
        dtype=int,
    )

    matched = cols >= 0
    block = np.zeros((len(level.positions), structure.n_leaves))
    block[:, matched] = np.eye(len(level.positions))[:, cols[matched]]

    empty = np.flatnonzero(block.sum(axis=1) == 0)
    if empty.size:
        pos = level.positions[empty[0]]
        raise HierarchyStructureError(
            f"Series {format_key(structure.keys[pos])} does not match any leaf series"
        )

    return {pos: block[k] for k, pos in enumerate(level.positions)}


class SummingMatrixBuilder:
    """Builds the summing matrix S (series x leaves) of a key structure."""

    def __init__(self, structure: KeyStructure) -> None:
        """
        Initialize summing matrix builder.

        Args:
            structure: Key structure providing levels and leaf sets.
        """
        self.structure = structure
        self.logger = logging.getLogger(__name__)

    STRATEGIES = ("leaf_sets", "level_merge")

    @log_function_call()
    def build(
        self,
        sparse_output: bool = False,
        strategy: str = "leaf_sets",
    ) -> Union[np.ndarray, sparse.csr_matrix]:
        """
        Build S in dense or sparse form.

        Args:
            sparse_output: Return a ``scipy.sparse.csr_matrix`` from the
                coordinate construction instead of a dense array.
            strategy: Dense construction, ``"leaf_sets"`` or ``"level_merge"``.

        Returns:
            Summing matrix with one row per series in key table order.

        Raises:
            ValueError: If the strategy is unknown.
        """
        if strategy not in self.STRATEGIES:
            raise ValueError(f"Unknown summing matrix strategy: {strategy}")

        if sparse_output:
            S = self.to_sparse()
        elif strategy == "level_merge":
            S = self.merge_levels()
        else:
            S = self.from_leaf_sets()

        self.logger.info(
            f"Built {'sparse' if sparse_output else 'dense'} summing matrix: {S.shape}"
        )
        return S

    def from_leaf_sets(self) -> np.ndarray:
        """Dense S with ones at each series' resolved leaf columns."""
        S = np.zeros((self.structure.n_series, self.structure.n_leaves))
        for row, columns in enumerate(self.structure.agg):
            S[row, list(columns)] = 1.0
        return S

    def merge_levels(self) -> np.ndarray:
        """
        Dense S built by merging aggregation levels onto the leaf level.

        Levels are merged from least to most aggregated. Rows are collected
        per series position and stacked back into key table order at the end.
        """
        levels = sorted(
            self.structure.levels,
            key=lambda lvl: (sum(lvl.pattern), lvl.pattern),
        )
        base = levels[0]
        if not base.is_leaf:
            raise HierarchyStructureError("Least aggregated level is not the leaf level")

        identity = np.eye(self.structure.n_leaves)
        rows: Dict[int, np.ndarray] = {
            pos: identity[k] for k, pos in enumerate(base.positions)
        }
        for level in levels[1:]:
            rows.update(merge_level(self.structure, base, level))

        return np.vstack([rows[pos] for pos in range(self.structure.n_series)])

    def to_sparse(self) -> sparse.csr_matrix:
        """Sparse S from a coordinate list of (series, leaf) pairs."""
        lengths = self.structure.leaf_counts()
        row_ids = np.repeat(np.arange(self.structure.n_series), lengths)
        col_ids = np.concatenate([np.asarray(cols, dtype=int) for cols in self.structure.agg])
        values = np.ones(len(col_ids))
        return sparse.coo_matrix(
            (values, (row_ids, col_ids)),
            shape=(self.structure.n_series, self.structure.n_leaves),
        ).tocsr()
