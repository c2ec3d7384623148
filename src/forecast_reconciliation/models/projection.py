"""
Projection of base forecasts onto the coherent subspace.

The projector P maps the base forecasts of every series to leaf forecasts;
``S @ P`` then yields coherent forecasts for all series.
"""

import logging
from typing import Optional

import numpy as np

from ..data.structure import KeyStructure
from ..utils.logging_utils import PerformanceLogger
from .linalg import DenseBackend, LinearAlgebraBackend, Matrix
from .weights import cov2cor


class ReconciliationProjector:
    """
    Projector combining the summing matrix and a weight matrix.

    Attributes:
        backend: Linear algebra backend used for every product.
        S: Summing matrix.
        W: Weight matrix, or None for bottom-up projection.
        P: Projector (leaves x series).
        SP: Reconciliation operator ``S @ P`` (series x series).
        operator: Matrix applied to stacked base forecasts; ``SP``, or ``S``
            when only leaf forecasts are supplied.
        correlation: Correlation matrix used for variance propagation.
    """

    def __init__(self, backend: Optional[LinearAlgebraBackend] = None) -> None:
        self.backend = backend or DenseBackend()
        self.S: Optional[Matrix] = None
        self.W: Optional[np.ndarray] = None
        self.P: Optional[Matrix] = None
        self.SP: Optional[Matrix] = None
        self.operator: Optional[Matrix] = None
        self.correlation: Optional[np.ndarray] = None
        self.logger = logging.getLogger(__name__)
        self.perf_logger = PerformanceLogger(self.logger)

    @property
    def is_fitted(self) -> bool:
        return self.operator is not None

    def fit(self, structure: KeyStructure, weights: np.ndarray) -> "ReconciliationProjector":
        """
        Compute the minimum trace projector for a weight matrix.

        Args:
            structure: Key structure of the series being reconciled.
            weights: Symmetric positive definite weight matrix over series.

        Returns:
            Self for method chaining.

        Raises:
            ValueError: If the weight matrix size does not match the series.
        """
        weights = np.asarray(weights, dtype=float)
        if weights.shape != (structure.n_series, structure.n_series):
            raise ValueError(
                f"Weight matrix must be {structure.n_series}x{structure.n_series}, "
                f"got {weights.shape}"
            )

        with self.perf_logger.timer(f"{self.backend.name} projector"):
            self.S = self.backend.summing_matrix(structure)
            self.W = weights
            self.P = self.backend.projector(self.S, weights, structure)
            self.SP = self.backend.product(self.S, self.P)
            self.operator = self.SP
            self.correlation = cov2cor(weights)

        self.logger.info(
            f"Computed projector {self.P.shape} with {self.backend.name} backend"
        )
        return self

    @classmethod
    def bottom_up(
        cls,
        structure: KeyStructure,
        backend: Optional[LinearAlgebraBackend] = None,
        leaf_inputs: bool = False,
    ) -> "ReconciliationProjector":
        """
        Projector keeping only the leaf base forecasts.

        Leaf variances pass through the summation unchanged, so the
        correlation used for variance propagation is the identity.

        Args:
            structure: Key structure of the series being reconciled.
            backend: Linear algebra backend, dense by default.
            leaf_inputs: Base forecasts cover the leaves only, in leaf column
                order, and are summed by ``S`` directly.
        """
        projector = cls(backend)
        projector.S = projector.backend.summing_matrix(structure)
        projector.P = projector.backend.selection_matrix(structure)
        projector.SP = projector.backend.product(projector.S, projector.P)
        if leaf_inputs:
            projector.operator = projector.S
            projector.correlation = np.eye(structure.n_leaves)
        else:
            projector.operator = projector.SP
            projector.correlation = np.eye(structure.n_series)
        projector.logger.info(
            f"Computed bottom-up projector over {structure.n_leaves} leaves"
        )
        return projector

    @property
    def n_inputs(self) -> int:
        """Number of base forecasts the operator expects."""
        return self.operator.shape[1]

    @property
    def n_outputs(self) -> int:
        return self.operator.shape[0]

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise ValueError("Projector not fitted. Call fit() first.")

    def reconcile_mean(self, means: np.ndarray) -> np.ndarray:
        """
        Reconcile base forecast means.

        Args:
            means: Base means, shape (n_inputs, horizon) or (n_inputs,).

        Returns:
            Coherent means, one row per series.
        """
        self._check_fitted()
        return self.backend.apply(self.operator, np.asarray(means, dtype=float))

    def reconcile_variance(self, variances: np.ndarray) -> np.ndarray:
        """
        Reconcile base forecast variances step by step.

        For each step the correlation matrix is rescaled by that step's
        standard deviations, ``W_h = R1 * outer(sd, sd)``, and the reconciled
        variances are the diagonal of ``SP W_h SP^T``.

        Args:
            variances: Base variances, shape (n_inputs, horizon).

        Returns:
            Reconciled variances, shape (n_series, horizon).
        """
        self._check_fitted()
        variances = np.asarray(variances, dtype=float)
        if variances.ndim == 1:
            variances = variances[:, np.newaxis]

        sd = np.sqrt(variances)
        reconciled = np.empty((self.n_outputs, variances.shape[1]))
        for h in range(variances.shape[1]):
            covariance = self.correlation * np.outer(sd[:, h], sd[:, h])
            reconciled[:, h] = self.backend.variance_diagonal(self.operator, covariance)
            self.logger.debug(f"Reconciled variances for step {h + 1}")
        return reconciled

    def coherence_residual(self) -> float:
        """Largest absolute entry of ``S P S - S``; zero for an exact projector."""
        self._check_fitted()
        S = self.backend.to_dense(self.S)
        SPS = self.backend.to_dense(self.backend.product(self.SP, self.S))
        return float(np.max(np.abs(SPS - S)))
