"""Tests for treepca.io — point matrix files."""

import torch
import pytest
from safetensors.torch import save_file

from treepca.io import load_points, save_points


class TestLoadSavePoints:
    def test_roundtrip(self, tmp_path):
        points = torch.randn(3, 12, dtype=torch.float64)
        save_points(points, tmp_path / "points.safetensors")
        loaded = load_points(tmp_path / "points.safetensors")
        assert loaded.shape == (3, 12)
        assert torch.equal(loaded, points)

    def test_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "points.safetensors"
        save_points(torch.randn(2, 4), path)
        assert path.exists()

    def test_custom_key(self, tmp_path):
        points = torch.randn(2, 5)
        save_points(points, tmp_path / "p.safetensors", key="cloud")
        loaded = load_points(tmp_path / "p.safetensors", key="cloud")
        assert torch.equal(loaded, points)

    def test_row_major_file_is_transposed(self, tmp_path):
        rows = torch.randn(10, 3)
        save_file({"points": rows}, str(tmp_path / "rows.safetensors"))
        loaded = load_points(tmp_path / "rows.safetensors", columns=False)
        assert loaded.shape == (3, 10)
        assert torch.equal(loaded, rows.T)

    def test_dtype_cast(self, tmp_path):
        save_points(torch.randn(2, 4), tmp_path / "p.safetensors")
        loaded = load_points(tmp_path / "p.safetensors", dtype=torch.float64)
        assert loaded.dtype == torch.float64

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_points(tmp_path / "missing.safetensors")

    def test_missing_key_raises(self, tmp_path):
        save_points(torch.randn(2, 4), tmp_path / "p.safetensors")
        with pytest.raises(ValueError, match="not found"):
            load_points(tmp_path / "p.safetensors", key="other")

    def test_wrong_rank_raises(self, tmp_path):
        save_file({"points": torch.randn(5)}, str(tmp_path / "vec.safetensors"))
        with pytest.raises(ValueError, match="2-D"):
            load_points(tmp_path / "vec.safetensors")

    def test_save_rejects_vectors(self, tmp_path):
        with pytest.raises(ValueError):
            save_points(torch.randn(5), tmp_path / "vec.safetensors")
