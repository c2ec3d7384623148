"""
Weight matrix estimation for minimum trace reconciliation.

The weight matrix approximates the cross-sectional covariance of one-step
forecast errors. Five estimators are supported, from the identity (``ols``)
to a shrinkage estimator blending the diagonal of the sample covariance with
the full sample covariance (``mint_shrink``).
"""

import logging
from typing import Optional, Union

import numpy as np
import pandas as pd
from scipy import sparse
from sklearn.covariance import EmpiricalCovariance

from ..exceptions import (
    HierarchyStructureError,
    PositiveDefiniteError,
    UnsupportedMethodError,
)
from ..utils.type_validation import validate_array_structure, validate_numeric_range

logger = logging.getLogger(__name__)

METHODS = ("ols", "wls_var", "wls_struct", "mint_cov", "mint_shrink")
RESIDUAL_METHODS = ("wls_var", "mint_cov", "mint_shrink")
EIGENVALUE_TOLERANCE = 1e-8


def cov2cor(covariance: np.ndarray) -> np.ndarray:
    """Scale a covariance matrix to the corresponding correlation matrix."""
    sd = np.sqrt(np.diag(covariance))
    return covariance / np.outer(sd, sd)


def sample_covariance(residuals: np.ndarray) -> np.ndarray:
    """Uncentered sample covariance ``R^T R / n`` of a residual matrix."""
    return EmpiricalCovariance(assume_centered=True).fit(residuals).covariance_


def shrinkage_intensity(residuals: np.ndarray, covariance: np.ndarray) -> float:
    """
    Shrinkage intensity towards the diagonal target.

    Ratio of the summed variances of the off-diagonal sample correlations to
    the summed squared differences between the sample correlations and the
    target's (identity) correlations, clipped to [0, 1].

    Args:
        residuals: Aligned residual matrix (timestamps x series).
        covariance: Uncentered sample covariance of ``residuals``.

    Returns:
        Shrinkage intensity lambda.
    """
    n = residuals.shape[0]
    if n < 2:
        return 1.0

    xs = residuals / np.sqrt(np.diag(covariance))
    v = (1 / (n * (n - 1))) * ((xs ** 2).T @ (xs ** 2) - (1 / n) * (xs.T @ xs) ** 2)
    np.fill_diagonal(v, 0)

    target_cor = np.eye(covariance.shape[0])
    d = (cov2cor(covariance) - target_cor) ** 2

    denominator = d.sum()
    if denominator == 0:
        return 1.0
    return float(np.clip(v.sum() / denominator, 0.0, 1.0))


def check_positive_definite(weights: np.ndarray, tolerance: float = EIGENVALUE_TOLERANCE) -> None:
    """
    Raise if a symmetric weight matrix has an eigenvalue below ``tolerance``.

    Raises:
        PositiveDefiniteError: If the matrix is not positive definite.
    """
    eigenvalues = np.linalg.eigvalsh(weights)
    if np.any(eigenvalues < tolerance):
        raise PositiveDefiniteError(
            f"Weight matrix must be positive definite; smallest eigenvalue is "
            f"{eigenvalues.min():.3e}"
        )


class WeightEstimator:
    """
    Estimates the weight matrix W used by the reconciliation projector.

    | method      | W                                                   |
    |-------------|-----------------------------------------------------|
    | ols         | identity                                            |
    | wls_var     | diagonal of the sample covariance                   |
    | wls_struct  | diagonal of leaf counts (row sums of S)             |
    | mint_cov    | sample covariance                                   |
    | mint_shrink | lambda * diagonal target + (1 - lambda) * sample cov|
    """

    def __init__(self, method: str = "wls_var", shrinkage: Optional[float] = None) -> None:
        """
        Initialize weight estimator.

        Args:
            method: One of ``ols``, ``wls_var``, ``wls_struct``, ``mint_cov``,
                ``mint_shrink``.
            shrinkage: Fixed shrinkage intensity for ``mint_shrink``. When None
                it is estimated from the residuals.

        Raises:
            UnsupportedMethodError: If the method is unknown.
            ValueError: If the shrinkage intensity lies outside [0, 1].
        """
        if method not in METHODS:
            raise UnsupportedMethodError(
                f"Unknown reconciliation method: {method!r}. Options are: {list(METHODS)}"
            )
        if shrinkage is not None:
            validate_numeric_range(shrinkage, "shrinkage", min_val=0.0, max_val=1.0)

        self.method = method
        self.shrinkage = shrinkage
        self.shrinkage_: Optional[float] = None
        self.logger = logging.getLogger(__name__)

    @property
    def requires_residuals(self) -> bool:
        return self.method in RESIDUAL_METHODS

    def estimate(
        self,
        summing_matrix: Union[np.ndarray, sparse.spmatrix],
        residuals: Optional[Union[np.ndarray, pd.DataFrame]] = None,
    ) -> np.ndarray:
        """
        Estimate the weight matrix.

        Args:
            summing_matrix: Summing matrix S, dense or sparse.
            residuals: Aligned residual matrix (timestamps x series). Required
                for ``wls_var``, ``mint_cov`` and ``mint_shrink``.

        Returns:
            Symmetric positive definite matrix of size n_series x n_series.

        Raises:
            HierarchyStructureError: If residual columns do not match S rows.
            PositiveDefiniteError: If the estimate is not positive definite.
        """
        n_series = summing_matrix.shape[0]
        self.logger.info(f"Estimating weight matrix using {self.method}...")

        if self.method == "ols":
            W = np.eye(n_series)
        elif self.method == "wls_struct":
            W = np.diag(np.asarray(summing_matrix.sum(axis=1), dtype=float).ravel())
        else:
            res = self._prepare_residuals(residuals, n_series)
            covariance = sample_covariance(res)

            if self.method == "wls_var":
                W = np.diag(np.diag(covariance))
            elif self.method == "mint_cov":
                W = covariance
            else:
                W = self._shrink(res, covariance)

        check_positive_definite(W)
        return W

    def _prepare_residuals(
        self,
        residuals: Optional[Union[np.ndarray, pd.DataFrame]],
        n_series: int,
    ) -> np.ndarray:
        if residuals is None:
            raise ValueError(f"Method {self.method} requires residuals")

        res = np.asarray(residuals, dtype=float)
        if res.ndim == 2 and res.shape[0] == 0:
            raise HierarchyStructureError("Residual matrix has no rows")
        validate_array_structure(res, "residuals", min_dims=2, max_dims=2)
        if res.shape[1] != n_series:
            raise HierarchyStructureError(
                f"Residuals cover {res.shape[1]} series but the hierarchy has {n_series}"
            )
        return res

    def _shrink(self, residuals: np.ndarray, covariance: np.ndarray) -> np.ndarray:
        target = np.diag(np.diag(covariance))
        if np.any(np.diag(target) <= 0):
            raise PositiveDefiniteError(
                "Shrinkage target has a zero residual variance"
            )

        if self.shrinkage is None:
            lam = shrinkage_intensity(residuals, covariance)
        else:
            lam = float(self.shrinkage)
        self.shrinkage_ = lam
        self.logger.info(f"Shrinkage intensity: {lam:.4f}")

        return lam * target + (1 - lam) * covariance
