"""SVG and raster source loading into RGBA arrays."""
import io
import logging
import subprocess
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
from PIL import Image, ImageOps

from flaglayers.types import Raster, RasterizationError

logger = logging.getLogger(__name__)

SVG_SUFFIXES = {".svg"}
RASTER_SUFFIXES = {".png", ".webp", ".gif", ".bmp", ".tif", ".tiff"}


def render_svg(svg_source: str, width: int = 640) -> Raster:
    """
    Render SVG markup to an RGBA raster on a transparent background.

    The output is fit to ``width`` with the document's aspect ratio.
    Converters are tried in order of preference.

    Args:
        svg_source: SVG document text
        width: Output width in pixels

    Returns:
        (H, W, 4) uint8 raster

    Raises:
        RasterizationError: If no converter could render the markup
    """
    converters = [
        ("cairosvg", _render_with_cairosvg),
        ("rsvg-convert", _render_with_rsvg),
    ]

    errors = []
    for name, converter in converters:
        try:
            png_bytes = converter(svg_source, width)
            raster = png_bytes_to_raster(png_bytes)
            logger.debug(f"Rendered SVG using {name}: {raster.shape[1]}x{raster.shape[0]}")
            return raster
        except Exception as e:
            logger.debug(f"{name} rendering failed: {e}")
            errors.append(f"{name}: {e}")

    raise RasterizationError(
        "No SVG renderer succeeded (" + "; ".join(errors) + ").\n"
        "Install cairosvg (pip install cairosvg, requires the Cairo library) "
        "or librsvg's rsvg-convert."
    )


def _render_with_cairosvg(svg_source: str, width: int) -> bytes:
    """Render using cairosvg (requires Cairo library)."""
    import cairosvg

    return cairosvg.svg2png(
        bytestring=svg_source.encode("utf-8"),
        output_width=width,
        background_color=None,
    )


def _render_with_rsvg(svg_source: str, width: int) -> bytes:
    """Render using rsvg-convert (external tool)."""
    result = subprocess.run(
        ["rsvg-convert", "-w", str(width), "-f", "png"],
        input=svg_source.encode("utf-8"),
        check=True,
        capture_output=True,
    )
    return result.stdout


def png_bytes_to_raster(data: bytes) -> Raster:
    """Decode encoded image bytes into an (H, W, 4) uint8 array."""
    with Image.open(io.BytesIO(data)) as img:
        return np.array(img.convert("RGBA"), dtype=np.uint8)


def load_raster(path: Union[str, Path]) -> Raster:
    """
    Load a raster image file as RGBA.

    Raises:
        FileNotFoundError: If file doesn't exist
        RasterizationError: If the file cannot be decoded
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")
    try:
        with Image.open(path) as img:
            img = ImageOps.exif_transpose(img)
            return np.array(img.convert("RGBA"), dtype=np.uint8)
    except (IOError, OSError) as e:
        raise RasterizationError(f"Failed to load image {path}: {e}")


def load_source(
    path: Union[str, Path],
    width: int = 640
) -> Tuple[Raster, Optional[str]]:
    """
    Load a source image, rendering it first when it is an SVG.

    Args:
        path: Path to an ``.svg`` or raster image
        width: Render width for SVG sources

    Returns:
        Tuple of (raster, svg_source); svg_source is None for raster inputs
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Source file not found: {path}")
    if path.suffix.lower() in SVG_SUFFIXES:
        svg_source = path.read_text(encoding="utf-8")
        return render_svg(svg_source, width), svg_source
    return load_raster(path), None
