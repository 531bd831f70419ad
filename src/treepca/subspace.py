"""SubspaceStat — per-node orthonormal-basis summary of a point set.

Two constructors, one per node type:

    from_points    — leaf: mean-center a column range and decompose it
    from_children  — internal node: merge two child summaries without
                     revisiting their points
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import torch
from safetensors.torch import load_file, save_file
from torch import Tensor

from treepca._validate import (
    check_children_compatible,
    check_column_range,
    check_point_matrix,
    check_tensor_health,
)
from treepca.merge import (
    compute_leftside_nullspace,
    merge_basis,
    merge_weights,
    setup_eigensystem,
)
from treepca.ops import (
    EPSILON,
    center_columns,
    compute_left_svd,
    sanitize_eigenvalues,
    symmetric_eig,
    truncate_by_energy,
)

logger = logging.getLogger("treepca")

StatKind = Literal["trivial", "decomposed", "merged"]


@dataclass(frozen=True, eq=False)
class SubspaceStat:
    """Mean, orthonormal eigenbasis and eigenvalues of a contiguous point range.

    Eigenvalues and eigenvector columns are paired by index. They are
    not sorted; callers must not assume any order.
    """

    start: int
    count: int
    means: Tensor  # (d,)
    eigenvectors: Tensor  # (d, k), orthonormal columns
    eigenvalues: Tensor  # (k,)
    kind: StatKind

    @property
    def dim(self) -> int:
        return self.means.shape[0]

    @property
    def rank(self) -> int:
        return self.eigenvectors.shape[1]

    @property
    def end(self) -> int:
        return self.start + self.count

    @classmethod
    def from_points(
        cls,
        points: Tensor,
        start: int,
        count: int,
        epsilon: float = EPSILON,
    ) -> SubspaceStat:
        """Exact leaf construction over columns [start, start + count).

        A single point yields the trivial variant: one zero eigenvalue and
        a (d, 1) zero eigenvector. Otherwise the centered columns are
        decomposed with SVD and singular values below `epsilon` times the
        largest are dropped. Eigenvalues are sigma^2 / count.

        Args:
            points: (d, n) point matrix, columns are points.
            start: First column covered.
            count: Number of columns covered (>= 1).
            epsilon: Relative energy threshold.
        """
        check_point_matrix(points)
        check_column_range(points, start, count)

        block = points[:, start:start + count]
        check_tensor_health(block, f"points[:, {start}:{start + count}]")

        if count == 1:
            return cls._trivial(block[:, 0], start)

        centered, means = center_columns(block)
        left_vectors, singular_values = compute_left_svd(centered)
        kept_values, kept_vectors = truncate_by_energy(
            singular_values, left_vectors, epsilon
        )

        logger.debug(
            "Leaf [%d, %d): kept %d/%d directions",
            start, start + count, kept_values.shape[0], singular_values.shape[0],
        )

        return cls(
            start=start,
            count=count,
            means=means,
            eigenvectors=kept_vectors,
            eigenvalues=kept_values.square() / count,
            kind="decomposed",
        )

    @classmethod
    def _trivial(cls, point: Tensor, start: int) -> SubspaceStat:
        return cls(
            start=start,
            count=1,
            means=point.clone(),
            eigenvectors=point.new_zeros(point.shape[0], 1),
            eigenvalues=point.new_zeros(1),
            kind="trivial",
        )

    @classmethod
    def from_children(
        cls,
        left: SubspaceStat,
        right: SubspaceStat,
        epsilon: float = EPSILON,
    ) -> SubspaceStat:
        """Merge two child statistics into their parent's.

        The left child's range must immediately precede the right child's.
        Neither child is modified; the parent owns fresh tensors.

        Steps: leftside null-space basis, eigensystem assembly,
        eigendecomposition, rotation of [left eigenbasis | null space],
        eigenvalue sanitization, energy truncation, weighted mean.
        """
        check_children_compatible(left, right)

        nullspace = compute_leftside_nullspace(left, right, epsilon)
        eigensystem = setup_eigensystem(left, right, nullspace)

        evalues, rotation = symmetric_eig(eigensystem)

        # Rotate the left eigenbasis plus the leftside null space
        left_eigenbasis, _ = merge_basis(left)
        combined_subspace = torch.cat([left_eigenbasis, nullspace.basis], dim=1)
        global_eigenbasis = combined_subspace @ rotation

        evalues = sanitize_eigenvalues(evalues)
        kept_values, kept_vectors = truncate_by_energy(
            evalues, global_eigenbasis, epsilon
        )

        factor1, factor2, _ = merge_weights(left.count, right.count)
        means = factor1 * left.means + factor2 * right.means

        logger.debug(
            "Merged [%d, %d) + [%d, %d): k_left=%d k_right=%d null=%d -> k=%d",
            left.start, left.end, right.start, right.end,
            left.rank, right.rank, nullspace.size, kept_values.shape[0],
        )

        return cls(
            start=left.start,
            count=left.count + right.count,
            means=means,
            eigenvectors=kept_vectors,
            eigenvalues=kept_values,
            kind="merged",
        )

    def to(self, device: str | torch.device | None = None, dtype: torch.dtype | None = None) -> SubspaceStat:
        """Return a copy with all tensors moved to a device and/or dtype."""
        moved = {}
        for attr in ["means", "eigenvectors", "eigenvalues"]:
            t = getattr(self, attr)
            if device is not None:
                t = t.to(device=device)
            if dtype is not None:
                t = t.to(dtype=dtype)
            moved[attr] = t

        return SubspaceStat(start=self.start, count=self.count, kind=self.kind, **moved)

    def save(self, path: str | Path) -> None:
        """Serialize the statistic to a directory."""
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)

        # contiguous() needed for safetensors
        tensors = {
            "means": self.means.contiguous(),
            "eigenvectors": self.eigenvectors.contiguous(),
            "eigenvalues": self.eigenvalues.contiguous(),
        }
        save_file(tensors, str(path / "stat.safetensors"))

        meta = {
            "start": self.start,
            "count": self.count,
            "kind": self.kind,
            "dim": self.dim,
            "rank": self.rank,
        }
        with open(path / "stat_meta.json", "w") as f:
            json.dump(meta, f, indent=2)

    @classmethod
    def load(cls, path: str | Path) -> SubspaceStat:
        """Deserialize a statistic from a directory written by save()."""
        path = Path(path)

        meta_path = path / "stat_meta.json"
        if not meta_path.exists():
            raise FileNotFoundError(f"No stat_meta.json in {path}")

        with open(meta_path) as f:
            meta = json.load(f)

        tensors = load_file(str(path / "stat.safetensors"))

        return cls(
            start=meta["start"],
            count=meta["count"],
            means=tensors["means"],
            eigenvectors=tensors["eigenvectors"],
            eigenvalues=tensors["eigenvalues"],
            kind=meta["kind"],
        )
