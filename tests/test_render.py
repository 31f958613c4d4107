"""Tests for layer rendering and file naming."""
import numpy as np
import pytest
from PIL import Image

from flaglayers.packer import pack_regions_into_layers
from flaglayers.render import layer_filename, render_layer, write_layer_png
from flaglayers.segment import segment_regions
from flaglayers.types import DimensionMismatchError, LayerPlan, Region


class TestRenderLayer:
    """Test rendering plans onto transparent canvases."""

    def test_layers_reassemble_the_image(self, two_rects_raster):
        plans = pack_regions_into_layers(segment_regions(two_rects_raster))
        layers = [render_layer(plan, two_rects_raster) for plan in plans]

        # exactly one layer is opaque at every pixel
        opaque = np.stack([layer[..., 3] > 0 for layer in layers])
        assert np.all(opaque.sum(axis=0) == 1)

        composite = np.zeros_like(two_rects_raster)
        for layer in layers:
            mask = layer[..., 3] > 0
            composite[mask] = layer[mask]
        np.testing.assert_array_equal(composite, two_rects_raster)

    def test_only_plan_pixels(self, solid_raster):
        raster = solid_raster("#ff0000", 4, 4)
        plan = LayerPlan(index=0, color="#ff0000", regions=[Region("#ff0000", [0, 5], 4)],
                         area=2, brightness=0.2)

        layer = render_layer(plan, raster)

        assert layer.shape == raster.shape
        assert layer.reshape(-1, 4)[[0, 5], 3].tolist() == [255, 255]
        assert int((layer[..., 3] > 0).sum()) == 2

    def test_width_mismatch(self, solid_raster):
        plan = LayerPlan(index=0, color="#ff0000", regions=[Region("#ff0000", [0], 8)],
                         area=1, brightness=0.2)
        with pytest.raises(DimensionMismatchError):
            render_layer(plan, solid_raster("#ff0000", 4, 4))

    def test_out_of_range(self, solid_raster):
        plan = LayerPlan(index=0, color="#ff0000", regions=[Region("#ff0000", [99], 4)],
                         area=1, brightness=0.2)
        with pytest.raises(DimensionMismatchError):
            render_layer(plan, solid_raster("#ff0000", 4, 4))


class TestLayerFiles:
    """Test naming and writing of layer files."""

    def test_filename(self):
        assert layer_filename("us", 3) == "us__03.png"
        assert layer_filename("us", 3, "#ff0000") == "us__03.png"
        assert layer_filename("us", 3, "#ff0000", with_color=True) == "us__03_ff0000.png"

    def test_write_png(self, tmp_path, solid_raster):
        layer = solid_raster("#00ff00", 5, 3)
        layer[0, 0] = 0

        path = write_layer_png(layer, tmp_path, "x__00.png")

        with Image.open(path) as img:
            assert img.mode == "RGBA"
            np.testing.assert_array_equal(np.array(img), layer)
