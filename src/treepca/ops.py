"""Pure math operations behind subspace statistics.

All functions are stateless and operate on raw tensors; no tree or
node concepts leak in here. Point sets are column-major: a (d, n)
matrix holds n points in R^d.
"""

from __future__ import annotations

import logging

import torch
from torch import Tensor

logger = logging.getLogger("treepca")

# Relative energy threshold for truncating singular values / eigenvalues.
# The null-space step reuses it as an absolute residual-norm tolerance.
EPSILON = 0.1


def center_columns(points: Tensor) -> tuple[Tensor, Tensor]:
    """Mean-center a column-major point matrix.

    Args:
        points: (d, n) matrix where columns are points.

    Returns:
        centered: (d, n) matrix with the column mean subtracted.
        mean: (d,) column mean.
    """
    mean = points.mean(dim=1)
    return points - mean.unsqueeze(1), mean


def compute_left_svd(matrix: Tensor) -> tuple[Tensor, Tensor]:
    """SVD keeping only singular values and left singular vectors.

    Args:
        matrix: (d, n) matrix.

    Returns:
        left_vectors: (d, min(d, n)) left singular vectors as columns.
        singular_values: (min(d, n),) matching singular values.
    """
    # full_matrices=False gives the economy SVD, U is (d, min(d, n))
    U, S, _ = torch.linalg.svd(matrix, full_matrices=False)

    if torch.isnan(S).any():
        raise ValueError(
            "SVD produced NaN singular values. Check input points for "
            "NaN/Inf or try using float64 precision."
        )

    return U, S


def energy_mask(values: Tensor, epsilon: float = EPSILON) -> Tensor:
    """Boolean mask of entries at least `epsilon` times the largest one.

    Order is untouched; the mask selects, it never sorts.
    """
    if values.numel() == 0:
        return torch.zeros(0, dtype=torch.bool, device=values.device)
    return values >= epsilon * values.max()


def truncate_by_energy(
    values: Tensor, vectors: Tensor, epsilon: float = EPSILON
) -> tuple[Tensor, Tensor]:
    """Energy-relative truncation of paired values and column vectors.

    Args:
        values: (m,) non-negative values (singular values or eigenvalues).
        vectors: (d, m) columns paired 1:1 with `values`.
        epsilon: Relative threshold against the maximum value.

    Returns:
        kept_values: (k,) retained values in their original order.
        kept_vectors: (d, k) matching columns.
    """
    mask = energy_mask(values, epsilon)
    return values[mask], vectors[:, mask]


def sanitize_eigenvalues(values: Tensor) -> Tensor:
    """Clamp non-finite or negative eigenvalues to zero."""
    bad = ~torch.isfinite(values) | (values < 0)
    if bad.any():
        logger.debug("Clamping %d unstable eigenvalues to zero", int(bad.sum()))
    return torch.where(bad, torch.zeros_like(values), values)


def projection_residual(basis: Tensor, vectors: Tensor) -> tuple[Tensor, Tensor]:
    """Project vectors onto an orthonormal basis and return the leftover.

    Args:
        basis: (d, k) orthonormal columns.
        vectors: (d, m) columns or a single (d,) vector.

    Returns:
        coefficients: (k, m) or (k,) projection coefficients, basis^T v.
        residual: same shape as `vectors`, v - basis @ coefficients.
    """
    coefficients = basis.T @ vectors
    return coefficients, vectors - basis @ coefficients


def orthonormal_basis(columns: Tensor) -> Tensor:
    """Orthonormal basis for the column space via reduced QR.

    Columns that are (numerically) combinations of earlier ones have a
    negligible diagonal entry in R and their Q columns point outside the
    column space. Such columns are removed and the rest refactored, so
    the result is (d, c') with c' <= c. A (d, 0) input yields a (d, 0)
    basis instead of calling into QR.
    """
    rtol = torch.finfo(columns.dtype).eps ** 0.5

    while columns.shape[1] > 0:
        Q, R = torch.linalg.qr(columns, mode="reduced")
        diagonal = R.diagonal().abs()
        dependent = diagonal <= rtol * diagonal.max()
        if not dependent.any():
            return Q

        # Columns past min(d, c) have no pivot; keep them for the next pass
        keep = torch.ones(columns.shape[1], dtype=torch.bool, device=columns.device)
        keep[:diagonal.shape[0]] = ~dependent
        columns = columns[:, keep]

    return columns.new_zeros(columns.shape[0], 0)


def symmetric_eig(matrix: Tensor) -> tuple[Tensor, Tensor]:
    """Eigendecomposition of a symmetric matrix.

    Returns:
        eigenvalues: (m,) possibly containing NaN for ill-conditioned input;
            callers sanitize.
        rotation: (m, m) orthonormal eigenvectors as columns.
    """
    if matrix.shape[0] == 0:
        return matrix.new_zeros(0), matrix.new_zeros(0, 0)
    return torch.linalg.eigh(matrix)


def explained_variance_ratio(eigenvalues: Tensor) -> Tensor:
    """Cumulative fraction of variance, largest eigenvalues first.

    Args:
        eigenvalues: (k,) variances in any order.

    Returns:
        cumulative_ratio: (k,) cumulative fraction of the total, computed
            over the values sorted in descending order.
    """
    variance = eigenvalues.sort(descending=True).values
    total = variance.sum()
    if total == 0:
        return torch.zeros_like(variance)
    return torch.cumsum(variance, dim=0) / total
