"""
Dense and sparse linear algebra backends for reconciliation.

A backend is chosen once per reconciliation call and used for every matrix
product from the summing matrix to the per-step variances.
"""

import importlib.util
import logging
from abc import ABC, abstractmethod
from typing import Optional, Union

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import spsolve

from ..data.structure import KeyStructure
from ..data.summing import SummingMatrixBuilder

logger = logging.getLogger(__name__)

Matrix = Union[np.ndarray, sparse.spmatrix]


def sparse_available() -> bool:
    """Whether a sparse linear algebra capability can be located at runtime."""
    return importlib.util.find_spec("scipy.sparse") is not None


def resolve_sparse(flag: Optional[Union[bool, str]] = "auto") -> bool:
    """
    Resolve the ``sparse`` option to a boolean.

    Args:
        flag: True, False, ``"auto"`` or None (same as ``"auto"``). The strings
            ``"true"`` and ``"false"`` are accepted as well.

    Returns:
        True if the sparse backend should be used.

    Raises:
        ValueError: If the flag is not recognised.
    """
    if flag is None:
        return sparse_available()
    if isinstance(flag, (bool, np.bool_)):
        return bool(flag)
    if isinstance(flag, str):
        value = flag.strip().lower()
        if value == "auto":
            return sparse_available()
        if value in ("true", "false"):
            return value == "true"
    raise ValueError(f"sparse must be True, False or 'auto', got {flag!r}")


def resolve_summing(strategy: Optional[str], default: str = "leaf_sets") -> str:
    """
    Resolve the ``summing`` option to a summing matrix construction.

    Args:
        strategy: ``"leaf_sets"``, ``"level_merge"`` or None for ``default``.
        default: Construction used when no strategy is configured.

    Raises:
        ValueError: If the strategy is unknown.
    """
    strategy = default if strategy is None else strategy
    if strategy not in SummingMatrixBuilder.STRATEGIES:
        raise ValueError(
            f"Unknown summing matrix strategy: {strategy!r}. "
            f"Options are: {list(SummingMatrixBuilder.STRATEGIES)}"
        )
    return strategy


class LinearAlgebraBackend(ABC):
    """
    Matrix operations needed to project base forecasts.

    Attributes:
        summing: Construction of the summing matrix, ``"leaf_sets"`` or
            ``"level_merge"``.
    """

    name: str = "base"

    def __init__(self, summing: str = "leaf_sets") -> None:
        self.summing = resolve_summing(summing)

    @abstractmethod
    def summing_matrix(self, structure: KeyStructure) -> Matrix:
        """Summing matrix S of the structure."""

    @abstractmethod
    def selection_matrix(self, structure: KeyStructure) -> Matrix:
        """Matrix J (leaves x series) picking the leaf series."""

    @abstractmethod
    def projector(self, S: Matrix, W: np.ndarray, structure: KeyStructure) -> Matrix:
        """Projector P (leaves x series) for the weight matrix W."""

    @abstractmethod
    def variance_diagonal(self, SP: Matrix, covariance: np.ndarray) -> np.ndarray:
        """Diagonal of ``SP @ covariance @ SP.T``."""

    def product(self, A: Matrix, B: Matrix) -> Matrix:
        return A @ B

    def apply(self, operator: Matrix, values: np.ndarray) -> np.ndarray:
        return np.asarray(operator @ values)

    @staticmethod
    def to_dense(matrix: Matrix) -> np.ndarray:
        if sparse.issparse(matrix):
            return matrix.toarray()
        return np.asarray(matrix)


class DenseBackend(LinearAlgebraBackend):
    """NumPy backend inverting over all series."""

    name = "dense"

    def summing_matrix(self, structure: KeyStructure) -> np.ndarray:
        return SummingMatrixBuilder(structure).build(sparse_output=False, strategy=self.summing)

    def selection_matrix(self, structure: KeyStructure) -> np.ndarray:
        J = np.zeros((structure.n_leaves, structure.n_series))
        J[np.arange(structure.n_leaves), list(structure.leaf_positions)] = 1.0
        return J

    def projector(self, S: np.ndarray, W: np.ndarray, structure: KeyStructure) -> np.ndarray:
        # R = S^T W^-1, P = (R S)^-1 R
        R = np.linalg.solve(W, S).T
        return np.linalg.solve(R @ S, R)

    def variance_diagonal(self, SP: np.ndarray, covariance: np.ndarray) -> np.ndarray:
        return np.sum((SP @ covariance) * SP, axis=1)


class SparseBackend(LinearAlgebraBackend):
    """
    SciPy sparse backend solving the aggregation constraint system.

    With the contrast matrix ``U = [I | -S_agg]`` (columns in key table
    order) the projector is ``P = J - J W U^T (U W U^T)^-1 U``, where the
    inverse is replaced by a direct sparse solve of size n_aggregates.
    """

    name = "sparse"

    def summing_matrix(self, structure: KeyStructure) -> sparse.csr_matrix:
        builder = SummingMatrixBuilder(structure)
        if self.summing == "level_merge":
            return sparse.csr_matrix(builder.build(strategy="level_merge"))
        return builder.build(sparse_output=True)

    def selection_matrix(self, structure: KeyStructure) -> sparse.csr_matrix:
        return sparse.csr_matrix(
            (
                np.ones(structure.n_leaves),
                (np.arange(structure.n_leaves), np.asarray(structure.leaf_positions)),
            ),
            shape=(structure.n_leaves, structure.n_series),
        )

    def contrast_matrix(self, S: sparse.spmatrix, structure: KeyStructure) -> sparse.csc_matrix:
        """Constraint matrix U with one row per aggregate series."""
        aggregates = np.asarray(structure.aggregate_positions, dtype=int)
        leaves = np.asarray(structure.leaf_positions, dtype=int)
        n_agg = len(aggregates)

        s_agg = sparse.csr_matrix(S)[aggregates].tocoo()
        rows = np.concatenate([np.arange(n_agg), s_agg.row])
        cols = np.concatenate([aggregates, leaves[s_agg.col]])
        values = np.concatenate([np.ones(n_agg), -s_agg.data])
        return sparse.csc_matrix(
            (values, (rows, cols)),
            shape=(n_agg, structure.n_series),
        )

    def projector(self, S: sparse.spmatrix, W: np.ndarray, structure: KeyStructure) -> sparse.csr_matrix:
        J = self.selection_matrix(structure)
        n_agg = len(structure.aggregate_positions)
        if n_agg == 0:
            return J

        U = self.contrast_matrix(S, structure)
        WUt = sparse.csr_matrix(W) @ U.T
        A = sparse.csc_matrix(U @ WUt)

        X = spsolve(A, U)
        if sparse.issparse(X):
            X = sparse.csr_matrix(X)
        else:
            X = sparse.csr_matrix(np.asarray(X).reshape(n_agg, structure.n_series))

        return sparse.csr_matrix(J - J @ WUt @ X)

    def variance_diagonal(self, SP: sparse.spmatrix, covariance: np.ndarray) -> np.ndarray:
        weighted = np.asarray(SP @ covariance)
        return np.asarray(SP.multiply(weighted).sum(axis=1)).ravel()


def make_backend(
    sparse_flag: Optional[Union[bool, str]] = "auto",
    summing: str = "leaf_sets",
) -> LinearAlgebraBackend:
    """Pick the backend for a resolved ``sparse`` option and summing construction."""
    backend_cls = SparseBackend if resolve_sparse(sparse_flag) else DenseBackend
    backend = backend_cls(summing=summing)
    logger.info(f"Using {backend.name} linear algebra backend with {backend.summing} summing matrix")
    return backend
