"""End-to-end example of building and merging subspace statistics.

This example uses synthetic points to demonstrate the workflow.
Replace the point generation with `treepca.load_points(path)` for real use.
"""

import torch

from treepca import SubspaceStat, build_tree, compare_with_exact, tree_summary


def make_synthetic_points(
    dim: int = 16,
    num_points: int = 512,
    intrinsic_dim: int = 3,
    noise: float = 0.01,
) -> torch.Tensor:
    """Points near a random low-dimensional plane, one point per column."""
    plane, _ = torch.linalg.qr(torch.randn(dim, intrinsic_dim, dtype=torch.float64))
    coeffs = torch.randn(intrinsic_dim, num_points, dtype=torch.float64)
    coeffs = coeffs * torch.linspace(3.0, 1.0, intrinsic_dim, dtype=torch.float64).unsqueeze(1)
    return plane @ coeffs + noise * torch.randn(dim, num_points, dtype=torch.float64)


def main():
    print("Creating 512 synthetic points in 16 dimensions...")
    points = make_synthetic_points()

    # ── Leaves: exact decomposition ──
    print("\n── Leaves ──")
    left = SubspaceStat.from_points(points, start=0, count=256)
    right = SubspaceStat.from_points(points, start=256, count=256)
    print(f"  Left leaf rank: {left.rank}, right leaf rank: {right.rank}")

    # ── Merge: no raw points touched ──
    print("\n── Merge ──")
    parent = SubspaceStat.from_children(left, right)
    print(f"  Parent covers [{parent.start}, {parent.end}) with rank {parent.rank}")
    print(f"  Eigenvalues: {[round(v, 4) for v in parent.eigenvalues.tolist()]}")

    # ── Whole tree ──
    print("\n── Tree ──")
    root = build_tree(points, leaf_size=32)
    summary = tree_summary(root)
    print(f"  Nodes: {summary['num_nodes']}, depth: {summary['depth']}, root rank: {summary['root_rank']}")

    report = compare_with_exact(root.stat, points)
    print(f"  Variance coverage vs exact: {report['coverage']:.2%}")
    print(f"  Mean error: {report['mean_error']:.2e}")

    # ── Serialization ──
    print("\n── Save & Load ──")
    root.stat.save("/tmp/treepca_demo_root")
    loaded = SubspaceStat.load("/tmp/treepca_demo_root")
    print(f"  Loaded stat with rank {loaded.rank} over {loaded.count} points")

    print("\nDone!")


if __name__ == "__main__":
    main()
