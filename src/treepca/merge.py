"""Subspace merging — leftside null-space basis and eigensystem assembly.

Merging two child statistics never touches raw points. The parent's
covariance is expressed in the coordinate system spanned by the left
child's eigenbasis plus the directions of the right child (and of the
mean shift) that the left eigenbasis misses. The resulting small
symmetric matrix is the scaled covariance of the union restricted to
that subspace:

    C = f1 * C_left + f2 * C_right + f3 * (mu_R - mu_L)(mu_R - mu_L)^T

with f1 = n_L/n, f2 = n_R/n and f3 = n_L n_R / n^2 (the two-group
within/between variance decomposition).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import torch
from torch import Tensor

from treepca.ops import EPSILON, orthonormal_basis, projection_residual

if TYPE_CHECKING:
    from treepca.subspace import SubspaceStat

logger = logging.getLogger("treepca")


@dataclass(frozen=True, eq=False)
class LeftsideNullspace:
    """Everything the eigensystem needs about the right child, seen from the left."""

    basis: Tensor  # (d, c) orthonormal, c may be 0
    projection_of_right_eigenbasis: Tensor  # (k_left, k_right)
    mean_diff: Tensor  # (d,) right mean - left mean
    projection_of_mean_diff: Tensor  # (k_left,)

    @property
    def size(self) -> int:
        return self.basis.shape[1]


def merge_basis(stat: SubspaceStat) -> tuple[Tensor, Tensor]:
    """Eigenvectors and eigenvalues a child contributes to a merge.

    A single-point leaf carries no variance, so its zero column is left
    out and it contributes a (d, 0) basis.
    """
    if stat.kind == "trivial":
        return stat.eigenvectors[:, :0], stat.eigenvalues[:0]
    return stat.eigenvectors, stat.eigenvalues


def merge_weights(left_count: int, right_count: int) -> tuple[float, float, float]:
    """Return (f1, f2, f3) = (n_L/n, n_R/n, n_L*n_R/n^2)."""
    n = left_count + right_count
    factor1 = left_count / n
    factor2 = right_count / n
    factor3 = (left_count * right_count) / (n * n)
    return factor1, factor2, factor3


def compute_leftside_nullspace(
    left: SubspaceStat,
    right: SubspaceStat,
    epsilon: float = EPSILON,
) -> LeftsideNullspace:
    """Basis for what the right eigenbasis and mean shift add to the left one.

    Each right eigenvector and the mean difference are projected onto the
    left eigenbasis. Residuals whose Euclidean norm exceeds `epsilon`
    (an absolute tolerance) survive; right-eigenbasis residuals come
    first, the mean-difference residual last. The survivors are
    orthonormalized with QR. When nothing survives the basis is (d, 0).

    Args:
        left: Left child statistic (read only).
        right: Right child statistic (read only).
        epsilon: Residual norm tolerance.

    Returns:
        LeftsideNullspace with the basis and the projections reused by
        setup_eigensystem.
    """
    left_eigenbasis, _ = merge_basis(left)
    right_eigenbasis, _ = merge_basis(right)

    mean_diff = right.means - left.means

    projection_of_right_eigenbasis, right_residue = projection_residual(
        left_eigenbasis, right_eigenbasis
    )
    projection_of_mean_diff, mean_diff_residue = projection_residual(
        left_eigenbasis, mean_diff
    )

    # Drop residuals already captured by the left eigenbasis
    keep = right_residue.norm(dim=0) > epsilon
    include_mean = bool(mean_diff_residue.norm() > epsilon)
    span_set = right_residue[:, keep]
    if include_mean:
        span_set = torch.cat([span_set, mean_diff_residue.unsqueeze(1)], dim=1)

    basis = orthonormal_basis(span_set)

    logger.debug(
        "Leftside null space: %d/%d right residuals kept, mean shift %s, size=%d",
        int(keep.sum()), right_residue.shape[1],
        "kept" if include_mean else "dropped",
        basis.shape[1],
    )

    return LeftsideNullspace(
        basis=basis,
        projection_of_right_eigenbasis=projection_of_right_eigenbasis,
        mean_diff=mean_diff,
        projection_of_mean_diff=projection_of_mean_diff,
    )


def setup_eigensystem(
    left: SubspaceStat,
    right: SubspaceStat,
    nullspace: LeftsideNullspace,
) -> Tensor:
    """Assemble the symmetric eigensystem in (left eigenbasis | null space) coordinates.

    Block layout, with P = L^T R, p = L^T dmu, Q = N^T R, q = N^T dmu:

        top-left     f1 diag(lambda_L) + f2 P diag(lambda_R) P^T + f3 p p^T
        top-right    f2 P diag(lambda_R) Q^T + f3 p q^T
        bottom-left  transpose of top-right
        bottom-right f2 Q diag(lambda_R) Q^T + f3 q q^T

    The off-diagonal and bottom-right blocks only exist for a non-empty
    null-space basis. A single-point child contributes no
    eigenvectors, so two merged single points can give a (0, 0) system.

    Returns:
        (m, m) symmetric matrix, m = left basis size + null-space size.
    """
    factor1, factor2, factor3 = merge_weights(left.count, right.count)
    _, left_eigenvalues = merge_basis(left)
    right_eigenvectors, right_eigenvalues = merge_basis(right)

    projection = nullspace.projection_of_right_eigenbasis
    projected_mean = nullspace.projection_of_mean_diff

    # P diag(lambda_R): scale each projected right column by its eigenvalue
    scaled_projection = projection * right_eigenvalues.unsqueeze(0)

    top_left = (
        factor1 * torch.diag(left_eigenvalues)
        + factor2 * (scaled_projection @ projection.T)
        + factor3 * torch.outer(projected_mean, projected_mean)
    )

    if nullspace.size == 0:
        return top_left

    nullspace_projection = nullspace.basis.T @ right_eigenvectors
    nullspace_mean = nullspace.basis.T @ nullspace.mean_diff
    scaled_nullspace = nullspace_projection * right_eigenvalues.unsqueeze(0)

    top_right = (
        factor2 * (scaled_projection @ nullspace_projection.T)
        + factor3 * torch.outer(projected_mean, nullspace_mean)
    )
    bottom_right = (
        factor2 * (scaled_nullspace @ nullspace_projection.T)
        + factor3 * torch.outer(nullspace_mean, nullspace_mean)
    )

    return torch.cat([
        torch.cat([top_left, top_right], dim=1),
        torch.cat([top_right.T, bottom_right], dim=1),
    ], dim=0)
