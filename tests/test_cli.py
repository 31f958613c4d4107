"""Tests for the command line interface."""
import json

import numpy as np
from PIL import Image

from flaglayers.cli import create_parser, main


def _write_png(path, color, size=(12, 8)):
    raster = np.zeros((size[1], size[0], 4), dtype=np.uint8)
    raster[...] = color
    Image.fromarray(raster).save(path)


class TestParser:
    """Test argument parsing defaults."""

    def test_extract_defaults(self):
        args = create_parser().parse_args(["extract", "flags"])

        assert args.output == "output"
        assert args.layers == 6
        assert args.colors == 8
        assert args.split_mode == "order"
        assert "eu" in args.skip.split(",")

    def test_check_diff_defaults(self):
        args = create_parser().parse_args(["check-diff", "out"])
        assert args.threshold == 5.0


class TestMain:
    """Test end-to-end command runs."""

    def test_extract(self, tmp_path, two_rects_raster):
        src = tmp_path / "src"
        src.mkdir()
        Image.fromarray(two_rects_raster).save(src / "aa.png")
        out = tmp_path / "out"

        code = main(["extract", str(src), "-o", str(out), "--layers", "4", "--skip", ""])

        assert code == 0
        manifest = json.loads((out / "manifest.json").read_text())
        assert len(manifest["aa"]["files"]) == 4

    def test_extract_missing_source(self, tmp_path):
        assert main(["extract", str(tmp_path / "missing")]) == 1

    def test_extract_invalid_layers(self, tmp_path):
        assert main(["extract", str(tmp_path), "--layers", "0"]) == 1

    def test_check_diff_clean(self, tmp_path):
        (tmp_path / "aa").mkdir()
        _write_png(tmp_path / "aa" / "aa__00.png", [255, 0, 0, 255])
        _write_png(tmp_path / "aa" / "aa__01.png", [0, 0, 255, 255])

        assert main(["check-diff", str(tmp_path)]) == 0

    def test_check_diff_warns(self, tmp_path, capsys):
        (tmp_path / "aa").mkdir()
        _write_png(tmp_path / "aa" / "aa__00.png", [255, 0, 0, 255])
        _write_png(tmp_path / "aa" / "aa__01.png", [255, 0, 0, 255])

        assert main(["check-diff", str(tmp_path)]) == 1
        assert "aa__00.png -> aa__01.png" in capsys.readouterr().out
