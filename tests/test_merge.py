"""Tests for treepca.merge — null-space basis and eigensystem assembly."""

import torch
import pytest

from treepca.merge import (
    LeftsideNullspace,
    compute_leftside_nullspace,
    merge_basis,
    merge_weights,
    setup_eigensystem,
)
from treepca.subspace import SubspaceStat


def _stat(start, count, means, eigenvectors, eigenvalues, kind="decomposed"):
    """Build a SubspaceStat directly from float64 values."""
    return SubspaceStat(
        start=start,
        count=count,
        means=torch.tensor(means, dtype=torch.float64),
        eigenvectors=torch.tensor(eigenvectors, dtype=torch.float64).reshape(len(means), -1),
        eigenvalues=torch.tensor(eigenvalues, dtype=torch.float64),
        kind=kind,
    )


def _axis(dim, i):
    v = torch.zeros(dim, dtype=torch.float64)
    v[i] = 1.0
    return v


class TestMergeWeights:
    def test_balanced(self):
        assert merge_weights(2, 2) == (0.5, 0.5, 0.25)

    def test_unbalanced(self):
        f1, f2, f3 = merge_weights(1, 3)
        assert f1 == pytest.approx(0.25)
        assert f2 == pytest.approx(0.75)
        assert f3 == pytest.approx(3 / 16)


class TestMergeBasis:
    def test_trivial_leaf_contributes_nothing(self):
        stat = SubspaceStat.from_points(torch.randn(3, 2, dtype=torch.float64), 1, 1)
        vectors, values = merge_basis(stat)
        assert vectors.shape == (3, 0)
        assert values.shape == (0,)

    def test_decomposed_leaf_unchanged(self):
        stat = _stat(0, 4, [0.0, 0.0], [[1.0], [0.0]], [2.0])
        vectors, values = merge_basis(stat)
        assert vectors is stat.eigenvectors
        assert values is stat.eigenvalues

    def test_trivial_left_leaves_only_nullspace(self):
        left = SubspaceStat.from_points(torch.tensor([[0.0], [0.0]], dtype=torch.float64), 0, 1)
        right = _stat(1, 3, [2.0, 0.0], [[0.0], [1.0]], [0.5])

        ns = compute_leftside_nullspace(left, right)
        assert ns.projection_of_right_eigenbasis.shape == (0, 1)
        assert ns.size == 2

        system = setup_eigensystem(left, right, ns)
        assert system.shape == (2, 2)


class TestLeftsideNullspace:
    def test_square_scenario(self):
        points = torch.tensor([[0.0, 1.0, 0.0, 1.0], [0.0, 0.0, 1.0, 1.0]], dtype=torch.float64)
        left = SubspaceStat.from_points(points, 0, 2)
        right = SubspaceStat.from_points(points, 2, 2)

        ns = compute_leftside_nullspace(left, right)
        assert isinstance(ns, LeftsideNullspace)
        assert torch.allclose(ns.mean_diff, torch.tensor([0.0, 1.0], dtype=torch.float64))
        assert ns.projection_of_right_eigenbasis.shape == (1, 1)
        assert abs(ns.projection_of_right_eigenbasis.item()) == pytest.approx(1.0)
        assert ns.projection_of_mean_diff.abs().max().item() < 1e-12

        # Right basis is parallel to the left one; only the mean shift survives
        assert ns.size == 1
        assert torch.allclose(ns.basis[:, 0].abs(), torch.tensor([0.0, 1.0], dtype=torch.float64))

    def test_orthogonal_children(self):
        left = _stat(0, 4, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0])
        right = _stat(4, 4, [0.0, 0.0, 5.0], [0.0, 1.0, 0.0], [1.0])

        ns = compute_leftside_nullspace(left, right)
        assert ns.size == 2
        assert torch.allclose(ns.basis.T @ ns.basis, torch.eye(2, dtype=torch.float64), atol=1e-12)
        # Right residual first, mean-difference residual last
        assert torch.allclose(ns.basis[:, 0].abs(), _axis(3, 1))
        assert torch.allclose(ns.basis[:, 1].abs(), _axis(3, 2))

    def test_basis_orthogonal_to_left(self):
        gen = torch.Generator().manual_seed(3)
        points = torch.randn(6, 10, generator=gen, dtype=torch.float64)
        left = SubspaceStat.from_points(points, 0, 4)
        right = SubspaceStat.from_points(points, 4, 6)

        ns = compute_leftside_nullspace(left, right)
        assert ns.size >= 1
        cross = left.eigenvectors.T @ ns.basis
        assert cross.abs().max().item() < 1e-10

    def test_small_mean_shift_is_dropped(self):
        left = _stat(0, 4, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0])
        right = _stat(4, 4, [0.0, 0.0, 0.05], [0.0, 1.0, 0.0], [1.0])

        ns = compute_leftside_nullspace(left, right)
        assert ns.size == 1
        assert torch.allclose(ns.basis[:, 0].abs(), _axis(3, 1))

    def test_epsilon_is_absolute_tolerance(self):
        left = _stat(0, 4, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0])
        right = _stat(4, 4, [0.0, 0.0, 5.0], [0.0, 1.0, 0.0], [1.0])

        ns = compute_leftside_nullspace(left, right, epsilon=10.0)
        assert ns.size == 0
        assert ns.basis.shape == (3, 0)

    def test_right_spanned_by_left_is_empty(self):
        s = 2 ** -0.5
        left = _stat(0, 4, [0.0, 0.0, 0.0], [[1.0, 0.0], [0.0, 1.0], [0.0, 0.0]], [2.0, 1.0])
        right = _stat(4, 4, [1.0, 0.0, 0.0], [s, s, 0.0], [0.5])

        ns = compute_leftside_nullspace(left, right)
        assert ns.size == 0
        assert ns.basis.shape == (3, 0)

    def test_dependent_mean_shift_adds_nothing(self):
        # Mean shift lies in the span of the right residuals
        left = _stat(0, 4, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0])
        right = _stat(4, 4, [3.0, 2.0, 0.0], [0.0, 1.0, 0.0], [1.0])

        ns = compute_leftside_nullspace(left, right)
        assert ns.size == 1
        assert torch.allclose(ns.basis[:, 0].abs(), _axis(3, 1))


class TestSetupEigensystem:
    def test_symmetric(self):
        gen = torch.Generator().manual_seed(7)
        points = torch.randn(5, 16, generator=gen, dtype=torch.float64)
        left = SubspaceStat.from_points(points, 0, 6)
        right = SubspaceStat.from_points(points, 6, 10)
        ns = compute_leftside_nullspace(left, right)

        system = setup_eigensystem(left, right, ns)
        m = left.rank + ns.size
        assert system.shape == (m, m)
        assert torch.allclose(system, system.T, atol=1e-12)

    def test_empty_right_basis(self):
        left = _stat(0, 3, [0.0, 0.0, 0.0], [[1.0, 0.0], [0.0, 1.0], [0.0, 0.0]], [2.0, 1.0])
        right = SubspaceStat(
            start=3,
            count=1,
            means=torch.tensor([0.03, 0.04, 0.0], dtype=torch.float64),
            eigenvectors=torch.zeros(3, 0, dtype=torch.float64),
            eigenvalues=torch.zeros(0, dtype=torch.float64),
            kind="decomposed",
        )

        ns = compute_leftside_nullspace(left, right)
        assert ns.size == 0

        system = setup_eigensystem(left, right, ns)
        f1, _, f3 = merge_weights(3, 1)
        p = ns.projection_of_mean_diff
        expected = f1 * torch.diag(left.eigenvalues) + f3 * torch.outer(p, p)
        assert system.shape == (2, 2)
        assert torch.allclose(system, expected, atol=1e-12)

    def test_spanned_right_basis(self):
        s = 2 ** -0.5
        left = _stat(0, 4, [0.0, 0.0, 0.0], [[1.0, 0.0], [0.0, 1.0], [0.0, 0.0]], [2.0, 1.0])
        right = _stat(4, 4, [1.0, 0.0, 0.0], [s, s, 0.0], [0.5])

        ns = compute_leftside_nullspace(left, right)
        system = setup_eigensystem(left, right, ns)

        P = ns.projection_of_right_eigenbasis
        p = ns.projection_of_mean_diff
        expected = (
            0.5 * torch.diag(left.eigenvalues)
            + 0.5 * P @ torch.diag(right.eigenvalues) @ P.T
            + 0.25 * torch.outer(p, p)
        )
        assert torch.allclose(system, expected, atol=1e-12)

    def test_reproduces_union_covariance(self):
        # Left points live in the (x0, x1) plane, right points in (x2, x3)
        gen = torch.Generator().manual_seed(11)
        left_points = torch.zeros(4, 10, dtype=torch.float64)
        left_points[:2] = torch.randn(2, 10, generator=gen, dtype=torch.float64) * torch.tensor([[2.0], [1.0]], dtype=torch.float64)
        right_points = torch.zeros(4, 8, dtype=torch.float64)
        right_points[2:] = torch.randn(2, 8, generator=gen, dtype=torch.float64) * torch.tensor([[1.5], [1.0]], dtype=torch.float64)
        right_points[0] += 4.0
        points = torch.cat([left_points, right_points], dim=1)

        left = SubspaceStat.from_points(points, 0, 10)
        right = SubspaceStat.from_points(points, 10, 8)
        assert left.rank == 2
        assert right.rank == 2

        ns = compute_leftside_nullspace(left, right)
        system = setup_eigensystem(left, right, ns)
        basis = torch.cat([left.eigenvectors, ns.basis], dim=1)

        centered = points - points.mean(dim=1, keepdim=True)
        exact_cov = centered @ centered.T / points.shape[1]
        assert torch.allclose(basis @ system @ basis.T, exact_cov, atol=1e-10)
