"""treepca CLI — build, inspect and merge subspace statistics."""

from __future__ import annotations

import json as json_mod
import logging
import time
from pathlib import Path

import click
import torch

from treepca.analysis import compare_with_exact, orthonormality_error, tree_summary
from treepca.io import load_points
from treepca.ops import EPSILON, explained_variance_ratio
from treepca.pipeline import extract_stat, merge_saved
from treepca.subspace import SubspaceStat
from treepca.tree import DEFAULT_LEAF_SIZE, build_tree

_DTYPES = {"float32": torch.float32, "float64": torch.float64}


def _load_points_or_fail(points_path: str, dtype: str) -> torch.Tensor:
    try:
        return load_points(points_path, dtype=_DTYPES[dtype])
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))


def _load_stat_or_fail(stat_path: str) -> SubspaceStat:
    try:
        return SubspaceStat.load(stat_path)
    except FileNotFoundError as e:
        raise click.ClickException(str(e))


@click.group()
@click.version_option(package_name="treepca")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging.")
def cli(verbose: bool):
    """treepca — Mergeable subspace statistics for partition trees."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(name)s %(levelname)s: %(message)s",
    )


@cli.command()
@click.argument("points_path", type=click.Path(exists=True))
@click.option("-o", "--output", required=True, type=click.Path(), help="Output directory for the root statistic.")
@click.option("--leaf-size", type=int, default=DEFAULT_LEAF_SIZE, help="Maximum points per leaf.")
@click.option("--epsilon", type=float, default=EPSILON, help="Relative energy truncation threshold.")
@click.option("--dtype", type=click.Choice(sorted(_DTYPES)), default="float64", help="Computation precision.")
def build(points_path: str, output: str, leaf_size: int, epsilon: float, dtype: str):
    """Build a subspace tree over a point file and save the root statistic."""
    points = _load_points_or_fail(points_path, dtype)
    click.echo(f"\n  Loaded {points.shape[1]} points in {points.shape[0]} dimensions")

    click.echo(f"  Building tree (leaf size {leaf_size})...")
    try:
        root = build_tree(points, leaf_size=leaf_size, epsilon=epsilon)
    except ValueError as e:
        raise click.ClickException(str(e))

    extract_stat(root, output)
    summary = tree_summary(root)
    click.echo(f"  Saved to: {output}")
    click.echo(
        f"  Nodes: {summary['num_nodes']}, Leaves: {summary['num_leaves']}, "
        f"Depth: {summary['depth']}, Root rank: {summary['root_rank']}"
    )
    click.echo()


@cli.command()
@click.argument("stat_path", type=click.Path(exists=True))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def info(stat_path: str, as_json: bool):
    """Show a statistic's range, dimension, rank and eigenvalues."""
    stat = _load_stat_or_fail(stat_path)
    eigenvalues = stat.eigenvalues.tolist()
    ratio = explained_variance_ratio(stat.eigenvalues)

    if as_json:
        output = {
            "path": stat_path,
            "start": stat.start,
            "count": stat.count,
            "kind": stat.kind,
            "dim": stat.dim,
            "rank": stat.rank,
            "eigenvalues": eigenvalues,
            "orthonormality_error": orthonormality_error(stat),
        }
        click.echo(json_mod.dumps(output, indent=2))
        return

    click.echo(f"\n  Statistic: {stat_path}")
    click.echo(f"  Range: [{stat.start}, {stat.end}) ({stat.count} points)")
    click.echo(f"  Kind: {stat.kind}")
    click.echo(f"  Dimension: {stat.dim}")
    click.echo(f"  Rank (k): {stat.rank}")

    click.echo(f"\n  Eigenvalues (stored order):")
    for i, value in enumerate(eigenvalues):
        click.echo(f"    [{i}] {value:.6g}")

    if stat.rank > 0 and ratio[-1] > 0:
        click.echo(f"\n  Variance share of top direction: {ratio[0].item():.1%}")

    click.echo()


@cli.command()
@click.argument("left_path", type=click.Path(exists=True))
@click.argument("right_path", type=click.Path(exists=True))
@click.option("-o", "--output", required=True, type=click.Path(), help="Output directory for the merged statistic.")
@click.option("--epsilon", type=float, default=EPSILON, help="Relative energy truncation threshold.")
def merge(left_path: str, right_path: str, output: str, epsilon: float):
    """Merge two saved statistics (left range must precede right range)."""
    click.echo(f"\n  Merging {Path(left_path).name} + {Path(right_path).name}...")
    try:
        merged = merge_saved(left_path, right_path, output, epsilon=epsilon)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    click.echo(f"  Saved to: {output}")
    click.echo(f"  Range: [{merged.start}, {merged.end}), Rank: {merged.rank}")
    click.echo()


@cli.command()
@click.argument("stat_path", type=click.Path(exists=True))
@click.option("--tolerance", type=float, default=1e-6, help="Maximum allowed orthonormality error.")
def validate(stat_path: str, tolerance: float):
    """Run health checks on a saved statistic."""
    stat = _load_stat_or_fail(stat_path)
    issues = {"errors": [], "warnings": []}

    click.echo(f"\n  Validating: {stat_path}")
    click.echo(f"  Range: [{stat.start}, {stat.end}), dim={stat.dim}, k={stat.rank}")

    # Check for NaN/Inf
    for name, tensor in [
        ("means", stat.means),
        ("eigenvectors", stat.eigenvectors),
        ("eigenvalues", stat.eigenvalues),
    ]:
        if torch.isnan(tensor).any():
            issues["errors"].append(f"NaN in {name}")
        if torch.isinf(tensor).any():
            issues["errors"].append(f"Inf in {name}")

    # Check shape pairing
    if stat.eigenvalues.shape[0] != stat.rank:
        issues["errors"].append(
            f"{stat.eigenvalues.shape[0]} eigenvalues for {stat.rank} eigenvectors"
        )
    if stat.eigenvectors.shape[0] != stat.dim:
        issues["errors"].append(
            f"eigenvectors have {stat.eigenvectors.shape[0]} rows, means has {stat.dim}"
        )

    if (stat.eigenvalues < 0).any():
        issues["errors"].append("Negative eigenvalues")

    # Check eigenvector orthonormality
    if not issues["errors"]:
        err = orthonormality_error(stat)
        if err > tolerance:
            issues["warnings"].append(
                f"Eigenvectors not orthonormal (max error: {err:.2e})"
            )

    if stat.kind == "trivial":
        issues["warnings"].append("Single-point statistic (zero basis)")

    # Report
    if issues["errors"]:
        click.echo(f"\n  ERRORS ({len(issues['errors'])}):")
        for err in issues["errors"]:
            click.echo(f"    [ERROR] {err}")
    if issues["warnings"]:
        click.echo(f"\n  WARNINGS ({len(issues['warnings'])}):")
        for warn in issues["warnings"]:
            click.echo(f"    [WARN]  {warn}")
    if not issues["errors"] and not issues["warnings"]:
        click.echo(f"\n  All checks passed.")

    click.echo()
    if issues["errors"]:
        raise SystemExit(1)


@cli.command()
@click.argument("points_path", type=click.Path(exists=True))
@click.option("--leaf-size", type=int, default=DEFAULT_LEAF_SIZE, help="Maximum points per leaf.")
@click.option("--epsilon", type=float, default=EPSILON, help="Relative energy truncation threshold.")
@click.option("--dtype", type=click.Choice(sorted(_DTYPES)), default="float64", help="Computation precision.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def compare(points_path: str, leaf_size: int, epsilon: float, dtype: str, as_json: bool):
    """Compare the merged root statistic against an exact decomposition."""
    points = _load_points_or_fail(points_path, dtype)
    try:
        root = build_tree(points, leaf_size=leaf_size, epsilon=epsilon)
    except ValueError as e:
        raise click.ClickException(str(e))
    report = compare_with_exact(root.stat, points, epsilon=epsilon)

    if as_json:
        click.echo(json_mod.dumps(report, indent=2))
        return

    click.echo(f"\n  Root vs exact decomposition ({points.shape[1]} points, leaf size {leaf_size})")
    click.echo(f"  Mean error:         {report['mean_error']:.3e}")
    click.echo(f"  Rank (merged/exact): {report['rank']} / {report['exact_rank']}")
    click.echo(f"  Variance coverage:  {report['coverage']:.1%}")
    click.echo(
        f"  Eigenvalue mass:    {report['eigenvalue_sum']:.6g} "
        f"(exact {report['exact_eigenvalue_sum']:.6g})"
    )
    click.echo()


@cli.command()
@click.argument("points_path", type=click.Path(exists=True))
@click.option("--leaf-size", type=int, default=DEFAULT_LEAF_SIZE, help="Maximum points per leaf.")
@click.option("--repeats", type=int, default=3, help="Timing repetitions.")
def benchmark(points_path: str, leaf_size: int, repeats: int):
    """Benchmark tree construction against one exact decomposition."""
    if repeats < 1:
        raise click.ClickException("--repeats must be >= 1")
    points = _load_points_or_fail(points_path, "float64")
    n = points.shape[1]

    click.echo(f"\n  Benchmarking: {points_path}")
    click.echo(f"  Points: {n}, Dim: {points.shape[0]}, Leaf size: {leaf_size}")

    times = []
    for _ in range(repeats):
        start = time.perf_counter()
        try:
            root = build_tree(points, leaf_size=leaf_size)
        except ValueError as e:
            raise click.ClickException(str(e))
        times.append(time.perf_counter() - start)
    avg_tree = sum(times) / len(times)
    click.echo(f"\n  build_tree():          {avg_tree * 1000:.2f} ms (avg of {repeats})")

    times = []
    for _ in range(repeats):
        start = time.perf_counter()
        SubspaceStat.from_points(points, 0, n)
        times.append(time.perf_counter() - start)
    avg_exact = sum(times) / len(times)
    click.echo(f"  exact from_points():   {avg_exact * 1000:.2f} ms (avg of {repeats})")

    summary = tree_summary(root)
    click.echo(f"\n  Nodes: {summary['num_nodes']}, Mean rank: {summary['mean_rank']:.2f}")
    click.echo()
