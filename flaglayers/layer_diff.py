"""Quality check that consecutive layers differ visibly."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Union

import numpy as np
from PIL import Image

from flaglayers.types import DimensionMismatchError, Raster

logger = logging.getLogger(__name__)


@dataclass
class LayerDiffWarning:
    """Two consecutive layers whose average difference is too small."""
    previous: str
    current: str
    diff: float


def average_difference(a: Raster, b: Raster) -> float:
    """
    Mean absolute per-channel RGB difference between two rasters.

    Raises:
        DimensionMismatchError: If the rasters differ in size
    """
    if a.shape[:2] != b.shape[:2]:
        raise DimensionMismatchError(
            f"Layer sizes differ: {a.shape[1]}x{a.shape[0]} vs {b.shape[1]}x{b.shape[0]}"
        )
    diff = np.abs(a[..., :3].astype(np.int16) - b[..., :3].astype(np.int16))
    return float(diff.mean()) if diff.size else 0.0


def _load(path: Path) -> Raster:
    with Image.open(path) as img:
        return np.array(img.convert("RGBA"), dtype=np.uint8)


def check_image_layers(image_dir: Union[str, Path], threshold: float = 5.0) -> List[LayerDiffWarning]:
    """Compare each layer PNG in ``image_dir`` with the one before it."""
    image_dir = Path(image_dir)
    layers = sorted(p for p in image_dir.glob("*.png") if not p.stem.endswith("__full"))
    warnings = []
    previous = None
    for path in layers:
        current = _load(path)
        if previous is not None:
            prev_path, prev_raster = previous
            diff = average_difference(prev_raster, current)
            if diff <= threshold:
                warnings.append(LayerDiffWarning(prev_path.name, path.name, round(diff, 2)))
        previous = (path, current)
    return warnings


def check_output_root(output_root: Union[str, Path], threshold: float = 5.0) -> Dict[str, List[LayerDiffWarning]]:
    """
    Run :func:`check_image_layers` for every image directory under a root.

    Returns:
        Mapping of image key to its warnings; keys without warnings are omitted
    """
    output_root = Path(output_root)
    if not output_root.is_dir():
        raise FileNotFoundError(f"Output directory not found: {output_root}")

    issues = {}
    for image_dir in sorted(p for p in output_root.iterdir() if p.is_dir()):
        warnings = check_image_layers(image_dir, threshold)
        if warnings:
            logger.warning(f"{image_dir.name}: {len(warnings)} low-difference layer pairs")
            issues[image_dir.name] = warnings
    return issues
