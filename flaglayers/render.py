"""Rasterize layer plans into transparent, same-size RGBA layers."""
import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image

from flaglayers.types import DimensionMismatchError, LayerPlan, Raster

logger = logging.getLogger(__name__)


def render_layer(plan: LayerPlan, quantized: Raster) -> Raster:
    """
    Render one layer plan.

    The result is fully transparent except for the plan's pixels, which are
    copied verbatim from the quantized raster.

    Args:
        plan: Layer plan to render
        quantized: (H, W, 4) quantized raster the plan was built from

    Returns:
        New (H, W, 4) uint8 raster

    Raises:
        DimensionMismatchError: If the plan was built for a different width
    """
    height, width = quantized.shape[:2]
    for region in plan.regions:
        if region.width != width:
            raise DimensionMismatchError(
                f"Layer {plan.index} was built for width {region.width}, raster is {width}"
            )

    src = quantized.reshape(-1, 4)
    out = np.zeros_like(src)
    indices = plan.pixel_indices()
    if len(indices):
        if indices.max() >= src.shape[0]:
            raise DimensionMismatchError(
                f"Layer {plan.index} references pixels outside a {width}x{height} raster"
            )
        out[indices] = src[indices]
    return out.reshape(height, width, 4)


def layer_filename(
    key: str,
    index: int,
    color: Optional[str] = None,
    ext: str = "png",
    with_color: bool = False
) -> str:
    """Build ``<key>__<NN>[_<hex>].<ext>``."""
    name = f"{key}__{index:02d}"
    if with_color and color:
        name += f"_{color.lstrip('#')}"
    return f"{name}.{ext}"


def write_layer_png(
    layer: Raster,
    output_dir: Union[str, Path],
    filename: str
) -> Path:
    """
    Save a rendered layer as an RGBA PNG.

    Args:
        layer: (H, W, 4) uint8 raster
        output_dir: Directory to write into (must exist)
        filename: File name within ``output_dir``

    Returns:
        Path to the written file
    """
    path = Path(output_dir) / filename
    Image.fromarray(np.ascontiguousarray(layer, dtype=np.uint8)).save(path)
    logger.debug(f"Wrote layer {path}")
    return path
