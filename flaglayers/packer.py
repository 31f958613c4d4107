"""Pack color regions into a fixed number of ordered, non-overlapping layers.

The packer is a pure function of (regions, configuration, force-top colors).
Steps, in order:

1. group regions by color
2. split heavily detailed color groups into clip-window pieces
3. merge the smallest unpinned buckets until within the layer cap
4. split the largest buckets until the layer floor is reached
5. round-robin selection by color if still over the cap
6. order by reveal brightness
"""
import logging
import math
from typing import Dict, Iterable, List, Optional, Set

import numpy as np

from flaglayers.colors import is_white_color, luminosity
from flaglayers.types import Bucket, ClipWindow, Color, LayerConfig, LayerPlan, Region

logger = logging.getLogger(__name__)

WHITE_DEMOTION = 3.0
DARK_DEMOTION = 1.0


def group_by_color(regions: Iterable[Region]) -> List[Bucket]:
    """One bucket per color, in order of each color's first region."""
    by_color: Dict[Color, Bucket] = {}
    for region in regions:
        if region.color not in by_color:
            by_color[region.color] = Bucket()
        by_color[region.color].regions.append(region)
    return list(by_color.values())


def _bounding_window(bucket: Bucket) -> ClipWindow:
    box = bucket.regions[0].bbox
    for region in bucket.regions[1:]:
        box = box.union(region.bbox)
    return ClipWindow(box.min_x, box.min_y, box.max_x + 1, box.max_y + 1)


def _bisect_window(window: ClipWindow, vertical: bool) -> List[ClipWindow]:
    if vertical and window.x1 - window.x0 >= 2:
        mid = (window.x0 + window.x1) // 2
        return [
            ClipWindow(window.x0, window.y0, mid, window.y1),
            ClipWindow(mid, window.y0, window.x1, window.y1),
        ]
    if not vertical and window.y1 - window.y0 >= 2:
        mid = (window.y0 + window.y1) // 2
        return [
            ClipWindow(window.x0, window.y0, window.x1, mid),
            ClipWindow(window.x0, mid, window.x1, window.y1),
        ]
    return [window]


def clip_windows(window: ClipWindow, pieces: int) -> List[ClipWindow]:
    """
    Bisect a viewport into ``pieces`` disjoint windows.

    Splits alternate vertical then horizontal, always cutting the largest
    remaining window. Windows too thin to cut are left whole, so fewer
    pieces may come back.
    """
    windows = [window]
    vertical = True
    while len(windows) < pieces:
        largest = max(range(len(windows)), key=lambda i: (windows[i].area, -i))
        halves = _bisect_window(windows[largest], vertical)
        if len(halves) == 1:
            halves = _bisect_window(windows[largest], not vertical)
            if len(halves) == 1:
                break
        windows[largest:largest + 1] = halves
        vertical = not vertical
    return windows


def _clip_bucket(bucket: Bucket, window: ClipWindow) -> Bucket:
    fragments = []
    for region in bucket.regions:
        xs, ys = region.coords()
        inside = window.contains(xs, ys)
        if np.all(inside):
            fragments.append(region)
        elif np.any(inside):
            fragments.append(region.fragment(region.pixels[inside]))
    return Bucket(regions=fragments, clip=window)


def expand_detailed_groups(
    buckets: List[Bucket],
    config: Optional[LayerConfig] = None
) -> List[Bucket]:
    """
    Split color groups with many separate regions into clip-window pieces.

    A group holding more than ``split_entry_threshold`` regions is divided
    into two pieces (three when it holds more than twice the threshold) by
    bisecting its bounding viewport. Pieces are pinned: area merging leaves
    them alone.
    """
    config = config or LayerConfig()
    threshold = config.split_entry_threshold
    expanded: List[Bucket] = []

    for bucket in buckets:
        if bucket.pinned or len(bucket.regions) <= threshold:
            expanded.append(bucket)
            continue

        pieces = 2 if len(bucket.regions) <= 2 * threshold else config.max_split_pieces
        windows = clip_windows(_bounding_window(bucket), pieces)
        parts = [_clip_bucket(bucket, w) for w in windows]
        parts = [p for p in parts if p.regions]

        if len(parts) < 2:
            expanded.append(bucket)
            continue

        logger.debug(
            f"Expanded {bucket.dominant_color()} ({len(bucket.regions)} regions) "
            f"into {len(parts)} clip pieces"
        )
        expanded.extend(parts)

    return expanded


def merge_to_cap(buckets: List[Bucket], target: int) -> List[Bucket]:
    """
    Merge the two smallest unpinned buckets until at most ``target`` remain.

    Stops early when fewer than two unpinned buckets are left.
    """
    buckets = list(buckets)
    while len(buckets) > target:
        mergeable = sorted(
            (b for b in buckets if not b.pinned),
            key=lambda b: b.area
        )
        if len(mergeable) < 2:
            break
        first, second = mergeable[0], mergeable[1]
        buckets = [b for b in buckets if b is not first and b is not second]
        buckets.append(Bucket(regions=first.regions + second.regions))
    return buckets


def _split_single_region(region: Region, clip: Optional[ClipWindow], mode: str) -> Optional[List[Bucket]]:
    if region.area < 2:
        return None

    if mode == "midline":
        xs, ys = region.coords()
        bbox = region.bbox
        if bbox.width >= bbox.height:
            mid = (bbox.min_x + bbox.max_x + 1) // 2
            first_mask = xs < mid
        else:
            mid = (bbox.min_y + bbox.max_y + 1) // 2
            first_mask = ys < mid
        first, second = region.pixels[first_mask], region.pixels[~first_mask]
    else:
        half = math.ceil(region.area / 2)
        first, second = region.pixels[:half], region.pixels[half:]

    if len(first) == 0 or len(second) == 0:
        return None
    return [
        Bucket(regions=[region.fragment(first)], clip=clip),
        Bucket(regions=[region.fragment(second)], clip=clip),
    ]


def split_bucket(bucket: Bucket, mode: str = "order") -> Optional[List[Bucket]]:
    """
    Split a bucket into two non-empty buckets, or return None.

    Multi-region buckets are divided by greedy area balancing (each region,
    largest first, goes to the lighter side). A single region is bisected
    by pixel visit order, or along its bounding-box midline in
    ``"midline"`` mode.
    """
    if not bucket.regions:
        return None
    regions = sorted(bucket.regions, key=lambda r: r.area, reverse=True)
    if len(regions) == 1:
        return _split_single_region(regions[0], bucket.clip, mode)

    a = Bucket(clip=bucket.clip)
    b = Bucket(clip=bucket.clip)
    area_a = area_b = 0
    for region in regions:
        if area_a <= area_b:
            a.regions.append(region)
            area_a += region.area
        else:
            b.regions.append(region)
            area_b += region.area
    return [a, b]


def split_to_floor(buckets: List[Bucket], target: int, mode: str = "order") -> List[Bucket]:
    """
    Split the largest splittable bucket until ``target`` buckets exist.

    Accepts fewer buckets when nothing can be split any further.
    """
    buckets = list(buckets)
    while len(buckets) < target:
        buckets.sort(key=lambda b: b.area, reverse=True)
        parts = None
        candidate = None
        for bucket in buckets:
            if bucket.area > 1:
                parts = split_bucket(bucket, mode)
                if parts:
                    candidate = bucket
                    break
        if candidate is None:
            logger.debug(f"No splittable bucket left; stopping at {len(buckets)} layers")
            break
        buckets = [b for b in buckets if b is not candidate]
        buckets.extend(parts)
    return buckets


def bucket_score(bucket: Bucket, config: Optional[LayerConfig] = None) -> float:
    """
    Reveal brightness of a bucket's dominant color.

    Near-black colors are pushed below every ordinary color, and white below
    near-black, so salient colors reveal first.
    """
    config = config or LayerConfig()
    color = bucket.dominant_color()
    score = luminosity(color)
    if is_white_color(color, config.white_floor):
        return score - WHITE_DEMOTION
    if score < config.dark_luminosity:
        return score - DARK_DEMOTION
    return score


def _reveal_key(bucket: Bucket, force_top: Set[Color], config: LayerConfig):
    color = bucket.dominant_color()
    return (
        is_white_color(color, config.white_floor),
        color not in force_top,
        -bucket_score(bucket, config),
        bucket.area,
    )


def order_buckets(
    buckets: List[Bucket],
    force_top: Optional[Set[Color]] = None,
    config: Optional[LayerConfig] = None
) -> List[Bucket]:
    """
    Sort buckets into reveal order.

    Brightest first, ties broken by smaller area. Force-top buckets go ahead
    of ordinary ones, but white-dominant buckets always come last.
    """
    config = config or LayerConfig()
    force_top = force_top or set()
    return sorted(buckets, key=lambda b: _reveal_key(b, force_top, config))


def _fold(target: Bucket, extra: Bucket) -> None:
    target.regions.extend(extra.regions)
    if target.clip != extra.clip:
        target.clip = None


def _fold_home(leftover: Bucket, chosen: List[Bucket]) -> Bucket:
    """Smallest chosen bucket that keeps its dominant color after absorbing ``leftover``."""
    keeps_color = [
        b for b in chosen
        if Bucket(regions=b.regions + leftover.regions).dominant_color() == b.dominant_color()
    ]
    return min(keeps_color or chosen, key=lambda b: b.area)


def select_round_robin(
    buckets: List[Bucket],
    target: int,
    force_top: Optional[Set[Color]] = None,
    config: Optional[LayerConfig] = None
) -> List[Bucket]:
    """
    Reduce an over-budget bucket list to ``target`` entries.

    Colors are visited in reveal order, taking one bucket per color per
    round, so every color gets a representative while the budget allows.
    Buckets that miss the cut are folded into the chosen bucket of the same
    color, or else into the smallest chosen bucket whose dominant color
    survives the fold, keeping every pixel covered.
    """
    if len(buckets) <= target:
        return list(buckets)

    queues: Dict[Color, List[Bucket]] = {}
    for bucket in order_buckets(buckets, force_top, config):
        queues.setdefault(bucket.dominant_color(), []).append(bucket)

    selected: List[Bucket] = []
    while len(selected) < target:
        progressed = False
        for queue in queues.values():
            if queue and len(selected) < target:
                selected.append(queue.pop(0))
                progressed = True
        if not progressed:
            break

    chosen = [Bucket(regions=list(b.regions), clip=b.clip) for b in selected]
    by_color: Dict[Color, Bucket] = {}
    for original, copy in zip(selected, chosen):
        by_color.setdefault(original.dominant_color(), copy)

    for color, queue in queues.items():
        for leftover in queue:
            home = by_color.get(color) or _fold_home(leftover, chosen)
            _fold(home, leftover)

    logger.debug(f"Round-robin selection kept {len(chosen)} of {len(buckets)} buckets")
    return chosen


def _to_plans(
    buckets: List[Bucket],
    force_top: Set[Color],
    config: LayerConfig
) -> List[LayerPlan]:
    plans = []
    for idx, bucket in enumerate(buckets):
        color = bucket.dominant_color()
        plans.append(LayerPlan(
            index=idx,
            color=color,
            regions=list(bucket.regions),
            area=bucket.area,
            brightness=bucket_score(bucket, config),
            force_top=color in force_top,
            clip=bucket.clip,
        ))

    # Stacking order follows reveal order, with force-top plans drawn above
    stacking = sorted(plans, key=lambda p: (p.force_top, p.index))
    for z, plan in enumerate(stacking):
        plan.z = z
    return plans


def pack_regions_into_layers(
    regions: List[Region],
    config: Optional[LayerConfig] = None,
    force_top: Optional[Iterable[Color]] = None
) -> List[LayerPlan]:
    """
    Pack segmented regions into exactly ``target_layers`` ordered plans.

    Fewer plans are returned only when splitting is impossible, and an image
    made of a single region always yields a single plan.

    Args:
        regions: Regions from :func:`flaglayers.segment.segment_regions`
        config: Packing thresholds
        force_top: Colors whose layers are kept above natural ordering

    Returns:
        Layer plans in reveal order (``plan.index`` is the position)
    """
    config = config or LayerConfig()
    force_top = set(force_top or ())
    if not regions:
        return []

    target = config.target_layers
    buckets = group_by_color(regions)
    logger.debug(f"Packing {len(regions)} regions in {len(buckets)} color groups into {target} layers")

    if len(regions) > 1:
        buckets = expand_detailed_groups(buckets, config)
        buckets = merge_to_cap(buckets, target)
        buckets = split_to_floor(buckets, target, config.split_mode)
        buckets = select_round_robin(buckets, target, force_top, config)

    ordered = order_buckets(buckets, force_top, config)
    plans = _to_plans(ordered, force_top, config)
    logger.info(f"Packed {len(regions)} regions into {len(plans)} layers")
    return plans
