"""Debug utilities for region and layer coverage auditing."""
import logging
from typing import List

import numpy as np

from flaglayers.types import LayerPlan, Raster, Region

logger = logging.getLogger(__name__)


def _coverage_counts(index_lists: List[np.ndarray], total: int) -> np.ndarray:
    counts = np.zeros(total, dtype=np.int32)
    for indices in index_lists:
        if len(indices):
            np.add.at(counts, indices, 1)
    return counts


def audit_regions(regions: List[Region], raster: Raster, phase: str = "segmentation") -> dict:
    """
    Check that regions partition the opaque pixels of a raster.

    Args:
        regions: Regions produced from ``raster``
        raster: Quantized (H, W, 4) raster
        phase: Description of the phase (for logging)

    Returns:
        Dictionary with audit statistics
    """
    total = raster.shape[0] * raster.shape[1]
    opaque = raster.reshape(-1, 4)[:, 3] > 0
    counts = _coverage_counts([r.pixels for r in regions], total)

    stats = {
        "total_regions": len(regions),
        "opaque_pixels": int(opaque.sum()),
        "covered_pixels": int((counts > 0).sum()),
        "overlapping_pixels": int((counts > 1).sum()),
        "missing_pixels": int((opaque & (counts == 0)).sum()),
        "transparent_covered": int((~opaque & (counts > 0)).sum()),
    }

    if stats["overlapping_pixels"] or stats["missing_pixels"] or stats["transparent_covered"]:
        logger.error(
            f"Region audit ({phase}): {stats['overlapping_pixels']} overlapping, "
            f"{stats['missing_pixels']} missing, "
            f"{stats['transparent_covered']} transparent pixels claimed"
        )
    else:
        logger.info(
            f"Region audit ({phase}): {stats['total_regions']} regions cover "
            f"{stats['covered_pixels']} opaque pixels"
        )
    return stats


def audit_layer_plans(plans: List[LayerPlan], raster: Raster, phase: str = "packing") -> dict:
    """
    Measure how completely and exclusively layer plans cover the raster.

    Returns:
        Dictionary with ``coverage`` (fraction of opaque pixels in some layer)
        and ``overlapping_pixels`` (pixels claimed by more than one layer)
    """
    total = raster.shape[0] * raster.shape[1]
    opaque = raster.reshape(-1, 4)[:, 3] > 0
    counts = _coverage_counts([p.pixel_indices() for p in plans], total)

    opaque_count = int(opaque.sum())
    covered = int((opaque & (counts > 0)).sum())
    stats = {
        "layers": len(plans),
        "opaque_pixels": opaque_count,
        "covered_pixels": covered,
        "overlapping_pixels": int((counts > 1).sum()),
        "coverage": covered / opaque_count if opaque_count else 0.0,
    }

    if stats["overlapping_pixels"]:
        logger.error(f"Layer audit ({phase}): {stats['overlapping_pixels']} pixels in more than one layer")
    else:
        logger.debug(f"Layer audit ({phase}): {len(plans)} layers, coverage {stats['coverage']:.1%}")
    return stats


def region_preview(regions: List[Region], shape: tuple) -> np.ndarray:
    """
    Render regions with distinct false colors for stage dumps.

    Colors come from a fixed golden-ratio hue walk, so output is deterministic.
    """
    h, w = shape[:2]
    preview = np.zeros((h * w, 3), dtype=np.uint8)
    for i, region in enumerate(regions):
        hue = (i * 0.618033988749895) % 1.0
        r = int(127 + 127 * np.cos(2 * np.pi * hue))
        g = int(127 + 127 * np.cos(2 * np.pi * (hue + 1 / 3)))
        b = int(127 + 127 * np.cos(2 * np.pi * (hue + 2 / 3)))
        preview[region.pixels] = (r, g, b)
    return preview.reshape(h, w, 3)
