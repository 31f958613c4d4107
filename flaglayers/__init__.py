"""flaglayers: split flag images into ordered, non-overlapping reveal layers."""
from flaglayers.types import (
    BBox,
    Bucket,
    ClipWindow,
    DimensionMismatchError,
    EmptyRasterError,
    FlagLayerError,
    LayerConfig,
    LayerPlan,
    Location,
    ManifestEntry,
    PaintEntry,
    PaintSource,
    Palette,
    PaletteError,
    RasterizationError,
    Region,
)

__version__ = "0.1.0"

__all__ = [
    "BBox",
    "Bucket",
    "ClipWindow",
    "DimensionMismatchError",
    "EmptyRasterError",
    "FlagLayerError",
    "LayerConfig",
    "LayerPlan",
    "Location",
    "ManifestEntry",
    "PaintEntry",
    "PaintSource",
    "Palette",
    "PaletteError",
    "RasterizationError",
    "Region",
]
