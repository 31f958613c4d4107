"""Tests for the consecutive-layer difference check."""
import numpy as np
import pytest
from PIL import Image

from flaglayers.layer_diff import average_difference, check_image_layers, check_output_root
from flaglayers.types import DimensionMismatchError


def _layer(color, size=(10, 10)):
    layer = np.zeros((size[1], size[0], 4), dtype=np.uint8)
    layer[...] = color
    return layer


def _write(directory, name, layer):
    directory.mkdir(parents=True, exist_ok=True)
    Image.fromarray(layer).save(directory / name)


class TestAverageDifference:
    """Test the per-pair difference metric."""

    def test_identical(self):
        assert average_difference(_layer([1, 2, 3, 255]), _layer([1, 2, 3, 255])) == 0.0

    def test_ignores_alpha(self):
        assert average_difference(_layer([0, 0, 0, 0]), _layer([0, 0, 0, 255])) == 0.0

    def test_value(self):
        diff = average_difference(_layer([0, 0, 0, 255]), _layer([30, 0, 0, 255]))
        assert diff == pytest.approx(10.0)

    def test_size_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            average_difference(_layer([0, 0, 0, 255]), _layer([0, 0, 0, 255], size=(5, 5)))


class TestCheckLayers:
    """Test directory-level checks."""

    def test_flags_near_identical_pair(self, tmp_path):
        image_dir = tmp_path / "xx"
        _write(image_dir, "xx__00.png", _layer([255, 0, 0, 255]))
        _write(image_dir, "xx__01.png", _layer([253, 0, 0, 255]))
        _write(image_dir, "xx__02.png", _layer([0, 0, 255, 255]))
        _write(image_dir, "xx__full.png", _layer([0, 0, 255, 255]))

        warnings = check_image_layers(image_dir)

        assert len(warnings) == 1
        assert (warnings[0].previous, warnings[0].current) == ("xx__00.png", "xx__01.png")

    def test_output_root(self, tmp_path):
        _write(tmp_path / "aa", "aa__00.png", _layer([255, 0, 0, 255]))
        _write(tmp_path / "aa", "aa__01.png", _layer([0, 255, 0, 255]))
        _write(tmp_path / "bb", "bb__00.png", _layer([9, 9, 9, 255]))
        _write(tmp_path / "bb", "bb__01.png", _layer([9, 9, 9, 255]))
        (tmp_path / "manifest.json").write_text("{}")

        issues = check_output_root(tmp_path)

        assert list(issues) == ["bb"]

    def test_missing_root(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            check_output_root(tmp_path / "missing")
