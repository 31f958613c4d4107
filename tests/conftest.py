"""Pytest configuration and fixtures."""
import numpy as np
import pytest


def _rgba(hex_color: str, alpha: int = 255):
    h = hex_color.lstrip("#")
    return [int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16), alpha]


@pytest.fixture
def solid_raster():
    """Factory for a single-color opaque raster."""
    def make(color: str = "#0000ff", width: int = 64, height: int = 48) -> np.ndarray:
        raster = np.zeros((height, width, 4), dtype=np.uint8)
        raster[:, :] = _rgba(color)
        return raster
    return make


@pytest.fixture
def paint():
    """Factory that paints a rectangle [y0:y1, x0:x1] onto a raster in place."""
    def fill(raster: np.ndarray, y0: int, y1: int, x0: int, x1: int, color: str, alpha: int = 255):
        raster[y0:y1, x0:x1] = _rgba(color, alpha)
        return raster
    return fill


@pytest.fixture
def two_rects_raster(solid_raster, paint):
    """Green field with two separated red rectangles: three regions."""
    raster = solid_raster("#008000", 60, 40)
    paint(raster, 5, 15, 5, 20, "#ff0000")
    paint(raster, 25, 35, 35, 55, "#ff0000")
    return raster


GRID_COLORS = [
    "#000000", "#000080", "#0000ff", "#008000",
    "#008080", "#0080ff", "#00ff00", "#00ff80",
    "#800000", "#800080", "#ff0000", "#ff8000",
]


@pytest.fixture
def stripes_raster():
    """Twelve vertical stripes of pairwise well-separated colors."""
    raster = np.zeros((20, 60, 4), dtype=np.uint8)
    for i, color in enumerate(GRID_COLORS):
        raster[:, i * 5:(i + 1) * 5] = _rgba(color)
    return raster


@pytest.fixture
def grid_colors():
    return list(GRID_COLORS)
