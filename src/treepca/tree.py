"""Minimal bottom-up tree driver over contiguous column ranges.

Points are not reordered: the range [0, n) is bisected at its midpoint
until each range holds at most `leaf_size` columns. Leaves are built
with SubspaceStat.from_points, internal nodes with
SubspaceStat.from_children once both children exist. Callers with a
spatially sorted point matrix get a spatial tree for free.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from torch import Tensor

from treepca._validate import check_point_matrix
from treepca.ops import EPSILON
from treepca.subspace import SubspaceStat

logger = logging.getLogger("treepca")

DEFAULT_LEAF_SIZE = 16


@dataclass
class SubspaceNode:
    """A tree node owning one SubspaceStat and, unless a leaf, two children."""

    stat: SubspaceStat
    left: SubspaceNode | None = None
    right: SubspaceNode | None = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None

    @property
    def start(self) -> int:
        return self.stat.start

    @property
    def count(self) -> int:
        return self.stat.count

    def iter_nodes(self) -> Iterator[SubspaceNode]:
        """Yield nodes in post-order: both children before their parent."""
        if self.left is not None:
            yield from self.left.iter_nodes()
        if self.right is not None:
            yield from self.right.iter_nodes()
        yield self

    def iter_leaves(self) -> Iterator[SubspaceNode]:
        for node in self.iter_nodes():
            if node.is_leaf:
                yield node

    def depth(self) -> int:
        if self.is_leaf:
            return 0
        return 1 + max(self.left.depth(), self.right.depth())


def build_tree(
    points: Tensor,
    leaf_size: int = DEFAULT_LEAF_SIZE,
    epsilon: float = EPSILON,
) -> SubspaceNode:
    """Build SubspaceStats for every node of a bisection tree.

    Args:
        points: (d, n) point matrix, columns are points.
        leaf_size: Maximum number of points per leaf (>= 1).
        epsilon: Truncation threshold passed to every constructor.

    Returns:
        Root SubspaceNode covering all n columns.
    """
    check_point_matrix(points)
    if leaf_size < 1:
        raise ValueError(f"leaf_size must be >= 1, got {leaf_size}")

    n = points.shape[1]
    logger.info("Building subspace tree: %d points, dim=%d, leaf_size=%d", n, points.shape[0], leaf_size)

    root = _build(points, 0, n, leaf_size, epsilon)

    logger.info(
        "Subspace tree built: depth=%d, root rank=%d",
        root.depth(), root.stat.rank,
    )
    return root


def _build(points: Tensor, start: int, count: int, leaf_size: int, epsilon: float) -> SubspaceNode:
    if count <= leaf_size:
        return SubspaceNode(stat=SubspaceStat.from_points(points, start, count, epsilon=epsilon))

    left_count = count // 2
    left = _build(points, start, left_count, leaf_size, epsilon)
    right = _build(points, start + left_count, count - left_count, leaf_size, epsilon)
    stat = SubspaceStat.from_children(left.stat, right.stat, epsilon=epsilon)
    return SubspaceNode(stat=stat, left=left, right=right)
