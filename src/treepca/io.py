"""Load and save point matrices as safetensors files.

A point file holds one (dim, num_points) tensor under a key, columns
being points. Row-major datasets (one point per row) can be stored
with `columns=False` and are transposed on load.
"""

from __future__ import annotations

from pathlib import Path

import torch
from safetensors.torch import load_file, save_file
from torch import Tensor

DEFAULT_KEY = "points"


def load_points(
    path: str | Path,
    key: str = DEFAULT_KEY,
    columns: bool = True,
    dtype: torch.dtype | None = None,
) -> Tensor:
    """Load a point matrix from a .safetensors file.

    Args:
        path: File to read.
        key: Tensor name inside the file.
        columns: If False, the stored tensor is (num_points, dim) and is
            transposed to column-major.
        dtype: Optional dtype to cast to (e.g. torch.float64).

    Returns:
        (dim, num_points) contiguous tensor.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No point file at {path}")

    tensors = load_file(str(path))
    if key not in tensors:
        available = ", ".join(sorted(tensors.keys()))
        raise ValueError(
            f"Key '{key}' not found in {path.name}. Available keys: [{available}]."
        )

    points = tensors[key]
    if points.dim() != 2:
        raise ValueError(
            f"Expected a 2-D point matrix under '{key}', got shape {tuple(points.shape)}."
        )

    if not columns:
        points = points.T
    if dtype is not None:
        points = points.to(dtype=dtype)

    return points.contiguous()


def save_points(
    points: Tensor,
    path: str | Path,
    key: str = DEFAULT_KEY,
) -> None:
    """Save a (dim, num_points) matrix to a .safetensors file."""
    if points.dim() != 2:
        raise ValueError(
            f"Expected a 2-D point matrix, got shape {tuple(points.shape)}."
        )
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    save_file({key: points.contiguous()}, str(path))
