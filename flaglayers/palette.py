"""Palette extraction from paint declarations and raster histograms."""
import logging
from typing import Iterable, List, Optional, Set
from xml.etree import ElementTree as ET

import numpy as np

from flaglayers.colors import color_distance_sq, hex_to_rgb, rgb_to_hex, to_hex
from flaglayers.types import Color, LayerConfig, Palette, PaintEntry, PaintSource, Raster

logger = logging.getLogger(__name__)

PAINT_PROPS = ("fill", "stroke")

# Content under these elements is drawn by reference, on top of base fills.
OVERLAY_CONTAINERS = {"defs", "symbol", "pattern", "mask", "clippath"}


def _local_name(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].lower()


def _parse_style(style: str) -> List[tuple]:
    pairs = []
    for part in style.split(";"):
        if ":" not in part:
            continue
        key, value = part.split(":", 1)
        key = key.strip().lower()
        value = value.strip()
        if key and value:
            pairs.append((key, value))
    return pairs


def extract_paint_entries(svg_source: str) -> List[PaintEntry]:
    """
    Collect fill/stroke declarations from SVG markup.

    Both attribute (``fill="#f00"``) and inline-style (``style="fill:#f00"``)
    forms are reported, tagged with their provenance. Entries declared inside
    definition containers or on ``<use>`` elements are flagged as overlay.

    Args:
        svg_source: SVG document text

    Returns:
        Paint entries in document order; empty if the markup does not parse
    """
    try:
        root = ET.fromstring(svg_source)
    except ET.ParseError as e:
        logger.warning(f"Could not parse SVG markup, falling back to raster palette: {e}")
        return []

    entries: List[PaintEntry] = []

    def walk(element, in_overlay: bool):
        name = _local_name(element.tag)
        overlay = in_overlay or name == "use"
        for prop in PAINT_PROPS:
            color = to_hex(element.get(prop))
            if color:
                entries.append(PaintEntry(color, PaintSource.ATTRIBUTE, prop, overlay))
        style = element.get("style")
        if style:
            for key, value in _parse_style(style):
                if key in PAINT_PROPS:
                    color = to_hex(value)
                    if color:
                        entries.append(PaintEntry(color, PaintSource.STYLE, key, overlay))
        child_overlay = in_overlay or name in OVERLAY_CONTAINERS
        for child in element:
            walk(child, child_overlay)

    walk(root, False)
    return entries


def extract_palette(svg_source: str) -> List[Color]:
    """Distinct declared paint colors, in order of first appearance."""
    seen: Set[Color] = set()
    colors = []
    for entry in extract_paint_entries(svg_source):
        if entry.color not in seen:
            seen.add(entry.color)
            colors.append(entry.color)
    return colors


def force_top_colors(entries: Iterable[PaintEntry]) -> Set[Color]:
    """Colors that are only ever declared by overlay (definition/use) content."""
    overlay = set()
    base = set()
    for entry in entries:
        (overlay if entry.overlay else base).add(entry.color)
    return overlay - base


def _histogram(raster: Raster, alpha_floor: int) -> List[Color]:
    """Opaque pixel colors ranked by frequency, first appearance breaking ties."""
    flat = raster.reshape(-1, 4)
    opaque = flat[flat[:, 3] >= alpha_floor]
    if len(opaque) == 0:
        return []
    packed = (
        (opaque[:, 0].astype(np.int64) << 16)
        | (opaque[:, 1].astype(np.int64) << 8)
        | opaque[:, 2].astype(np.int64)
    )
    unique, first_index, counts = np.unique(packed, return_index=True, return_counts=True)
    order = np.lexsort((first_index, -counts))
    return [
        rgb_to_hex(((int(v) >> 16) & 0xFF, (int(v) >> 8) & 0xFF, int(v) & 0xFF))
        for v in unique[order]
    ]


def _accept(
    candidates: Iterable[Color],
    accepted: List[Color],
    max_colors: int,
    min_distance: float
) -> List[Color]:
    """Greedy perceptual-separation walk shared by both palette paths."""
    min_distance_sq = min_distance * min_distance
    for color in candidates:
        if len(accepted) >= max_colors:
            break
        if color in accepted:
            continue
        rgb = hex_to_rgb(color)
        if any(color_distance_sq(rgb, hex_to_rgb(c)) < min_distance_sq for c in accepted):
            continue
        accepted.append(color)
    return accepted


def derive_palette_from_raster(
    raster: Raster,
    max_colors: int = 8,
    min_distance: float = 80.0,
    alpha_floor: int = 32
) -> List[Color]:
    """
    Derive a palette by frequency-sampling a rendered raster.

    Args:
        raster: (H, W, 4) RGBA raster
        max_colors: Maximum number of colors to keep
        min_distance: Minimum Euclidean RGB distance between kept colors
        alpha_floor: Pixels with alpha below this are ignored

    Returns:
        Colors in descending frequency order
    """
    if raster is None or raster.size == 0:
        return []
    return _accept(_histogram(raster, alpha_floor), [], max_colors, min_distance)


def simplify_palette(
    candidates: Optional[Iterable[Color]],
    raster: Optional[Raster] = None,
    config: Optional[LayerConfig] = None
) -> Palette:
    """
    Merge near-duplicate colors down to a bounded, separated palette.

    Candidates are walked in input order. When none survive, the palette
    is derived from the raster histogram with a doubled search pool, and
    if that still yields nothing the most frequent raster color is kept.

    Args:
        candidates: Candidate colors (typically from :func:`extract_palette`)
        raster: Rendered raster used for the histogram fallback
        config: Pipeline configuration

    Returns:
        Palette; empty only when the raster has no opaque pixels
    """
    config = config or LayerConfig()
    normalized = [c for c in (to_hex(c) for c in (candidates or [])) if c]
    accepted = _accept(normalized, [], config.max_palette_colors, config.min_color_distance)

    if not accepted and raster is not None:
        derived = derive_palette_from_raster(
            raster,
            max_colors=config.max_palette_colors * 2,
            min_distance=config.min_color_distance,
            alpha_floor=config.alpha_floor
        )
        accepted = _accept(derived, [], config.max_palette_colors, config.min_color_distance)
        if not accepted:
            ranked = _histogram(raster, config.alpha_floor)
            if ranked:
                accepted = [ranked[0]]
        logger.debug(f"Derived palette from raster histogram: {accepted}")

    return Palette(tuple(accepted[:config.max_palette_colors]))
