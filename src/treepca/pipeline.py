"""High-level convenience wrappers around files on disk."""

from __future__ import annotations

import logging
from pathlib import Path

import torch

from treepca.io import DEFAULT_KEY, load_points
from treepca.ops import EPSILON
from treepca.subspace import SubspaceStat
from treepca.tree import DEFAULT_LEAF_SIZE, SubspaceNode, build_tree

logger = logging.getLogger("treepca")


def init_tree(
    points_path: str | Path,
    leaf_size: int = DEFAULT_LEAF_SIZE,
    epsilon: float = EPSILON,
    key: str = DEFAULT_KEY,
    dtype: torch.dtype | None = None,
) -> SubspaceNode:
    """Load a point file and build its subspace tree in one call.

    Args:
        points_path: .safetensors file with a (dim, num_points) tensor.
        leaf_size: Maximum points per leaf.
        epsilon: Truncation threshold.
        key: Tensor name inside the file.
        dtype: Optional dtype to cast points to before building.

    Returns:
        Root SubspaceNode.
    """
    points = load_points(points_path, key=key, dtype=dtype)
    return build_tree(points, leaf_size=leaf_size, epsilon=epsilon)


def merge_saved(
    left_path: str | Path,
    right_path: str | Path,
    output_path: str | Path | None = None,
    epsilon: float = EPSILON,
) -> SubspaceStat:
    """Merge two saved statistics, optionally saving the parent.

    Args:
        left_path: Directory of the left child stat.
        right_path: Directory of the right child stat.
        output_path: Directory to save the merged stat to, if given.
        epsilon: Truncation threshold.

    Returns:
        The merged SubspaceStat.
    """
    left = SubspaceStat.load(left_path)
    right = SubspaceStat.load(right_path)
    merged = SubspaceStat.from_children(left, right, epsilon=epsilon)

    logger.info(
        "Merged %s and %s: count=%d, rank=%d",
        left_path, right_path, merged.count, merged.rank,
    )

    if output_path is not None:
        merged.save(output_path)
    return merged


def extract_stat(node: SubspaceNode, output_path: str | Path) -> SubspaceStat:
    """Save a node's statistic to disk and return it."""
    node.stat.save(output_path)
    return node.stat
