"""Subspace analysis — orthonormality, coverage, and exact comparisons."""

from __future__ import annotations

from typing import TYPE_CHECKING

import torch
from torch import Tensor

from treepca.ops import EPSILON, projection_residual
from treepca.subspace import SubspaceStat

if TYPE_CHECKING:
    from treepca.tree import SubspaceNode


def orthonormality_error(stat: SubspaceStat) -> float:
    """Max absolute deviation of V^T V from the identity.

    The single-point leaf's zero column is a documented degenerate basis
    and reports 0.0, as does an empty basis.
    """
    if stat.kind == "trivial" or stat.rank == 0:
        return 0.0
    V = stat.eigenvectors
    gram = V.T @ V
    eye = torch.eye(stat.rank, dtype=gram.dtype, device=gram.device)
    return (gram - eye).abs().max().item()


def direction_coverage(stat: SubspaceStat, direction: Tensor) -> float:
    """Norm of the unit direction's projection onto the eigenbasis, in [0, 1]."""
    norm = direction.norm()
    if norm < 1e-12:
        raise ValueError("Cannot measure coverage of a zero direction.")
    unit = (direction / norm).to(dtype=stat.eigenvectors.dtype)
    coefficients, _ = projection_residual(stat.eigenvectors, unit)
    return min(coefficients.norm().item(), 1.0)


def _centered_block(stat: SubspaceStat, points: Tensor) -> Tensor:
    block = points[:, stat.start:stat.end].to(dtype=stat.means.dtype)
    return block - stat.means.unsqueeze(1)


def subspace_coverage(stat: SubspaceStat, points: Tensor) -> float:
    """Fraction of the centered energy of the stat's points captured by its basis.

    Returns 1.0 when the points carry no energy (all identical).
    """
    centered = _centered_block(stat, points)
    total = centered.square().sum().item()
    if total < 1e-12:
        return 1.0
    coefficients, _ = projection_residual(stat.eigenvectors, centered)
    return coefficients.square().sum().item() / total


def compare_with_exact(
    stat: SubspaceStat,
    points: Tensor,
    epsilon: float = EPSILON,
) -> dict[str, float | int]:
    """Compare a statistic against a brute-force decomposition of its range.

    Returns a dict with:
        - mean_error: L2 distance between the stat's mean and the exact centroid
        - rank / exact_rank: retained dimensionality of each
        - total_variance: exact total variance of the points (trace of covariance)
        - captured_variance: variance of the points along the stat's basis
        - coverage: captured_variance / total_variance
        - eigenvalue_sum / exact_eigenvalue_sum: retained eigenvalue mass
    """
    exact = SubspaceStat.from_points(points, stat.start, stat.count, epsilon=epsilon)
    centered = _centered_block(stat, points)

    total_variance = centered.square().sum().item() / stat.count
    coverage = subspace_coverage(stat, points)

    return {
        "mean_error": (stat.means - exact.means).norm().item(),
        "rank": stat.rank,
        "exact_rank": exact.rank,
        "total_variance": total_variance,
        "captured_variance": coverage * total_variance,
        "coverage": coverage,
        "eigenvalue_sum": stat.eigenvalues.sum().item(),
        "exact_eigenvalue_sum": exact.eigenvalues.sum().item(),
    }


def tree_summary(root: SubspaceNode) -> dict:
    """Node counts, depth and rank distribution for a built tree."""
    nodes = list(root.iter_nodes())
    ranks = [node.stat.rank for node in nodes]
    leaves = [node for node in nodes if node.is_leaf]

    return {
        "num_points": root.count,
        "num_nodes": len(nodes),
        "num_leaves": len(leaves),
        "num_trivial_leaves": sum(1 for node in leaves if node.stat.kind == "trivial"),
        "depth": root.depth(),
        "root_rank": root.stat.rank,
        "min_rank": min(ranks),
        "max_rank": max(ranks),
        "mean_rank": sum(ranks) / len(ranks),
    }
