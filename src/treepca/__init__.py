"""treepca — Mergeable subspace statistics for binary partition trees.

Every tree node carries a compact orthonormal-basis summary of its
points. Leaves decompose their points directly; internal nodes merge
their two children's summaries without revisiting any point.
"""

__version__ = "0.1.0"

from treepca.io import load_points, save_points
from treepca.ops import (
    EPSILON,
    center_columns,
    compute_left_svd,
    explained_variance_ratio,
    orthonormal_basis,
    projection_residual,
    sanitize_eigenvalues,
    truncate_by_energy,
)
from treepca.merge import (
    LeftsideNullspace,
    compute_leftside_nullspace,
    merge_basis,
    setup_eigensystem,
)
from treepca.subspace import SubspaceStat
from treepca.tree import SubspaceNode, build_tree
from treepca.analysis import (
    compare_with_exact,
    direction_coverage,
    orthonormality_error,
    subspace_coverage,
    tree_summary,
)
from treepca.pipeline import extract_stat, init_tree, merge_saved

__all__ = [
    # Core
    "SubspaceStat",
    "EPSILON",
    # Merge steps
    "LeftsideNullspace",
    "compute_leftside_nullspace",
    "merge_basis",
    "setup_eigensystem",
    # Tree
    "SubspaceNode",
    "build_tree",
    # I/O
    "load_points",
    "save_points",
    # Pipeline
    "init_tree",
    "merge_saved",
    "extract_stat",
    # Ops
    "center_columns",
    "compute_left_svd",
    "truncate_by_energy",
    "sanitize_eigenvalues",
    "projection_residual",
    "orthonormal_basis",
    "explained_variance_ratio",
    # Analysis
    "orthonormality_error",
    "direction_coverage",
    "subspace_coverage",
    "compare_with_exact",
    "tree_summary",
]
