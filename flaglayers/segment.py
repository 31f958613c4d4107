"""4-connected same-color region segmentation of quantized rasters."""
import logging
from typing import List

import numpy as np

from flaglayers.colors import rgb_to_hex
from flaglayers.types import Raster, Region

logger = logging.getLogger(__name__)


def segment_regions(raster: Raster) -> List[Region]:
    """
    Flood-fill a quantized raster into maximal 4-connected regions.

    Uses an explicit stack and a visited bitmap over row-major pixel
    indices, so each pixel is visited exactly once and recursion depth is
    never an issue. Transparent pixels (alpha 0) are marked visited but
    belong to no region. Regions are emitted in scan order of their seed.

    Args:
        raster: (H, W, 4) uint8 quantized raster

    Returns:
        List of regions; pixel sets are disjoint and cover every opaque pixel
    """
    if raster.ndim != 3 or raster.shape[2] != 4:
        raise ValueError(f"Expected (H, W, 4) RGBA raster, got shape {raster.shape}")

    height, width = raster.shape[:2]
    total = width * height
    if total == 0:
        return []

    flat = raster.reshape(-1, 4)
    packed = (
        (flat[:, 0].astype(np.int64) << 16)
        | (flat[:, 1].astype(np.int64) << 8)
        | flat[:, 2].astype(np.int64)
    )
    # -1 marks transparency so it never matches a real color key
    keys = np.where(flat[:, 3] > 0, packed, -1).tolist()
    visited = bytearray(total)

    regions: List[Region] = []

    for seed in range(total):
        if visited[seed]:
            continue
        key = keys[seed]
        visited[seed] = 1
        if key < 0:
            continue

        stack = [seed]
        pixels = []
        while stack:
            cur = stack.pop()
            pixels.append(cur)
            x = cur % width

            if x + 1 < width:
                n = cur + 1
                if not visited[n] and keys[n] == key:
                    visited[n] = 1
                    stack.append(n)
            if x > 0:
                n = cur - 1
                if not visited[n] and keys[n] == key:
                    visited[n] = 1
                    stack.append(n)
            n = cur + width
            if n < total and not visited[n] and keys[n] == key:
                visited[n] = 1
                stack.append(n)
            n = cur - width
            if n >= 0 and not visited[n] and keys[n] == key:
                visited[n] = 1
                stack.append(n)

        color = rgb_to_hex(((key >> 16) & 0xFF, (key >> 8) & 0xFF, key & 0xFF))
        regions.append(Region(color=color, pixels=np.array(pixels, dtype=np.int64), width=width))

    logger.info(f"Segmented {width}x{height} raster into {len(regions)} regions")
    return regions
