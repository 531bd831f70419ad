"""Input validation helpers for treepca public APIs."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import torch
from torch import Tensor

if TYPE_CHECKING:
    from treepca.subspace import SubspaceStat

logger = logging.getLogger("treepca")


def check_point_matrix(points: Tensor) -> None:
    """Validate that points form a (d, n) matrix with at least one column."""
    if points.dim() != 2:
        raise ValueError(
            f"Points must be a 2-D (dim, num_points) matrix, got shape "
            f"{tuple(points.shape)}."
        )
    if points.shape[1] == 0:
        raise ValueError("Point matrix has no columns.")


def check_column_range(points: Tensor, start: int, count: int) -> None:
    """Validate a contiguous column range [start, start + count)."""
    if count < 1:
        raise ValueError(
            f"A node must span at least one point, got count={count}."
        )
    n = points.shape[1]
    if start < 0 or start + count > n:
        raise ValueError(
            f"Column range [{start}, {start + count}) is outside the point "
            f"matrix with {n} columns."
        )


def check_children_compatible(left: SubspaceStat, right: SubspaceStat) -> None:
    """Validate that two child stats can be merged (left then right)."""
    if left.dim != right.dim:
        raise ValueError(
            f"Cannot merge: children have different dimensions "
            f"({left.dim} vs {right.dim})."
        )
    if right.start != left.start + left.count:
        raise ValueError(
            f"Cannot merge: right child starts at column {right.start} but "
            f"left child covers [{left.start}, {left.start + left.count}). "
            "The left range must immediately precede the right range."
        )
    if left.means.dtype != right.means.dtype:
        raise ValueError(
            f"Cannot merge: children have different dtypes "
            f"({left.means.dtype} vs {right.means.dtype})."
        )
    if left.means.device != right.means.device:
        raise ValueError(
            f"Cannot merge: children live on different devices "
            f"({left.means.device} vs {right.means.device})."
        )


def check_tensor_health(tensor: Tensor, name: str = "tensor") -> None:
    """Check for NaN/Inf in a tensor."""
    if torch.isnan(tensor).any():
        raise ValueError(
            f"NaN detected in {name}. Subspace statistics need finite "
            "coordinates; clean or impute the input points first."
        )
    if torch.isinf(tensor).any():
        raise ValueError(
            f"Inf detected in {name}. This usually indicates overflow "
            "upstream. Try rescaling the points or using float64 precision."
        )
