"""Palette snapping and border halo repair for rendered rasters."""
import logging
from typing import Optional

import numpy as np

from flaglayers.types import LayerConfig, Palette, Raster

logger = logging.getLogger(__name__)


QUANTIZE_CHUNK = 65536


def quantize_to_palette(
    raster: Raster,
    palette: Palette,
    alpha_floor: int = 32,
    chunk_size: int = QUANTIZE_CHUNK
) -> Raster:
    """
    Snap every opaque pixel to its nearest palette color.

    Pixels with alpha below ``alpha_floor`` are zeroed; all others are
    replaced by the closest palette color (squared RGB distance, earlier
    palette entries winning ties) at full opacity. The input is not modified.

    Args:
        raster: (H, W, 4) uint8 RGBA raster
        palette: Non-empty palette
        alpha_floor: Opacity floor below which pixels become transparent
        chunk_size: Pixels per distance batch, bounding temporary memory

    Returns:
        New quantized raster with the same shape

    Raises:
        ValueError: If the palette is empty or the raster is not RGBA
    """
    if not palette:
        raise ValueError("Cannot quantize with an empty palette")
    if raster.ndim != 3 or raster.shape[2] != 4:
        raise ValueError(f"Expected (H, W, 4) RGBA raster, got shape {raster.shape}")

    h, w = raster.shape[:2]
    flat = raster.reshape(-1, 4)
    out = np.zeros_like(flat, dtype=np.uint8)

    opaque = flat[:, 3] >= alpha_floor
    if np.any(opaque):
        pixels = flat[opaque, :3].astype(np.int32)
        pal = palette.rgb
        nearest = np.empty(len(pixels), dtype=np.intp)
        step = max(1, int(chunk_size))
        for start in range(0, len(pixels), step):
            batch = pixels[start:start + step]
            # (n, K) squared distances; argmin returns the first minimum
            dist = np.sum((batch[:, None, :] - pal[None, :, :]) ** 2, axis=2)
            nearest[start:start + step] = np.argmin(dist, axis=1)
        out[opaque, :3] = pal[nearest].astype(np.uint8)
        out[opaque, 3] = 255

    return out.reshape(h, w, 4)


def _fill_leading_edge(
    view: np.ndarray,
    span: int,
    white_floor: int,
    white_min_alpha: int
) -> int:
    """
    Back-fill the run before the first solid pixel along axis 0 of ``view``.

    ``view`` is an (L, M, 4) view whose first axis points inward from one
    edge. For each of the M lines, the first ``span + 1`` pixels are scanned;
    transparent and near-white pixels are skipped, and the first remaining
    pixel's color is written over everything before it.

    Returns:
        Number of lines that were patched
    """
    depth = min(span + 1, view.shape[0])
    if depth == 0 or view.shape[1] == 0:
        return 0

    window = view[:depth]
    alpha = window[..., 3]
    near_white = (
        (alpha >= white_min_alpha)
        & np.all(window[..., :3] >= white_floor, axis=-1)
    )
    solid = (alpha > 0) & ~near_white

    has_solid = solid.any(axis=0)
    first = np.argmax(solid, axis=0)
    lines = np.nonzero(has_solid & (first > 0))[0]

    for m in lines:
        stop = int(first[m])
        color = window[stop, m, :3].copy()
        view[:stop, m, :3] = color
        view[:stop, m, 3] = 255

    return len(lines)


def extend_edge_coverage(
    raster: Raster,
    span: Optional[int] = None,
    config: Optional[LayerConfig] = None
) -> Raster:
    """
    Patch thin transparent or near-white borders left by rasterization.

    Scans inward from all four canvas edges, one line at a time, up to
    ``span`` pixels, and propagates the first non-white opaque color outward.
    Operates in place.

    Args:
        raster: Quantized (H, W, 4) raster, modified in place
        span: Maximum scan depth (defaults to ``config.edge_fill_span``)
        config: Pipeline configuration

    Returns:
        The same raster, for chaining
    """
    config = config or LayerConfig()
    span = config.edge_fill_span if span is None else span
    if raster.size == 0:
        return raster

    views = {
        "top": raster,
        "bottom": raster[::-1],
        "left": raster.transpose(1, 0, 2),
        "right": raster.transpose(1, 0, 2)[::-1],
    }
    for edge, view in views.items():
        patched = _fill_leading_edge(view, span, config.white_floor, config.white_min_alpha)
        if patched:
            logger.debug(f"Edge fill ({edge}): patched {patched} lines")

    return raster
