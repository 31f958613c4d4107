"""Tests for 4-connected region segmentation."""
import numpy as np
import pytest
from scipy import ndimage

from flaglayers.segment import segment_regions


def _label_count(raster):
    """Independent per-color 4-connected component count."""
    flat = raster.reshape(-1, 4)
    opaque = flat[:, 3] > 0
    total = 0
    for color in np.unique(flat[opaque, :3], axis=0):
        mask = np.all(raster[..., :3] == color, axis=-1) & (raster[..., 3] > 0)
        _, n = ndimage.label(mask)
        total += n
    return total


class TestSegmentRegions:
    """Test flood-fill segmentation."""

    def test_single_color(self, solid_raster):
        regions = segment_regions(solid_raster("#0000ff", 32, 24))

        assert len(regions) == 1
        assert regions[0].color == "#0000ff"
        assert regions[0].area == 32 * 24

    def test_two_rects(self, two_rects_raster):
        regions = segment_regions(two_rects_raster)

        assert len(regions) == 3
        assert sorted(r.color for r in regions) == ["#008000", "#ff0000", "#ff0000"]
        assert regions[0].color == "#008000"  # seeded at the origin

    def test_diagonal_is_not_connected(self, solid_raster, paint):
        raster = solid_raster("#ffffff", 4, 4)
        paint(raster, 0, 1, 0, 1, "#000000")
        paint(raster, 1, 2, 1, 2, "#000000")

        regions = segment_regions(raster)

        assert sum(r.color == "#000000" for r in regions) == 2

    def test_transparent_excluded(self, solid_raster):
        raster = solid_raster("#ff0000", 6, 6)
        raster[:, 3] = 0

        regions = segment_regions(raster)

        assert len(regions) == 2
        covered = np.concatenate([r.pixels for r in regions])
        assert not np.any(covered % 6 == 3)

    def test_partition(self, stripes_raster):
        stripes_raster[5:7, :] = 0
        regions = segment_regions(stripes_raster)

        covered = np.concatenate([r.pixels for r in regions])
        opaque = np.nonzero(stripes_raster.reshape(-1, 4)[:, 3] > 0)[0]

        assert len(covered) == len(np.unique(covered))
        np.testing.assert_array_equal(np.sort(covered), opaque)

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_matches_connected_component_labelling(self, seed):
        rng = np.random.default_rng(seed)
        colors = np.array([[255, 0, 0], [0, 0, 255], [0, 255, 0]], dtype=np.uint8)
        raster = np.zeros((30, 40, 4), dtype=np.uint8)
        raster[..., :3] = colors[rng.integers(0, 3, size=(30, 40))]
        raster[..., 3] = np.where(rng.random((30, 40)) < 0.1, 0, 255)

        regions = segment_regions(raster)

        assert len(regions) == _label_count(raster)

    def test_bbox(self, two_rects_raster):
        red = [r for r in segment_regions(two_rects_raster) if r.color == "#ff0000"]
        boxes = sorted((r.bbox.min_x, r.bbox.min_y, r.bbox.max_x, r.bbox.max_y) for r in red)
        assert boxes == [(5, 5, 19, 14), (35, 25, 54, 34)]

    def test_empty_raster(self):
        assert segment_regions(np.zeros((0, 0, 4), dtype=np.uint8)) == []
