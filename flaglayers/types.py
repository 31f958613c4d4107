"""Core types for the flag layer extraction pipeline."""
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

import numpy as np

# Canonical lowercase "#rrggbb" string; ``None`` stands for pure transparency.
Color = str

# (H, W, 4) uint8 RGBA array, row-major.
Raster = np.ndarray

DEFAULT_SKIP_KEYS = frozenset(
    {"asean", "cp", "eu", "gb-wls", "mf", "um", "un", "xx"}
)


class PaintSource(Enum):
    """Where a paint declaration was found on its element."""
    ATTRIBUTE = auto()
    STYLE = auto()


@dataclass(frozen=True)
class PaintEntry:
    """A single fill/stroke declaration found in vector markup."""
    color: Color
    source: PaintSource
    prop: str = "fill"  # "fill" or "stroke"
    overlay: bool = False  # declared inside <defs>/<symbol>/... or on <use>


@dataclass(frozen=True)
class Palette:
    """Immutable, ordered set of representative colors for one image."""
    colors: Tuple[Color, ...] = ()

    def __len__(self) -> int:
        return len(self.colors)

    def __iter__(self):
        return iter(self.colors)

    def __bool__(self) -> bool:
        return bool(self.colors)

    @property
    def rgb(self) -> np.ndarray:
        """(K, 3) int32 array of palette colors."""
        if not self.colors:
            return np.zeros((0, 3), dtype=np.int32)
        return np.array(
            [[int(c[i:i + 2], 16) for i in (1, 3, 5)] for c in self.colors],
            dtype=np.int32
        )

    def nearest(self, color: Color) -> Optional[Color]:
        """Return the palette color closest to ``color`` (squared RGB distance)."""
        if not self.colors:
            return None
        target = np.array([int(color[i:i + 2], 16) for i in (1, 3, 5)], dtype=np.int32)
        dist = np.sum((self.rgb - target) ** 2, axis=1)
        return self.colors[int(np.argmin(dist))]


@dataclass
class BBox:
    """Inclusive axis-aligned pixel bounding box."""
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        return self.max_y - self.min_y + 1

    def union(self, other: "BBox") -> "BBox":
        return BBox(
            min(self.min_x, other.min_x),
            min(self.min_y, other.min_y),
            max(self.max_x, other.max_x),
            max(self.max_y, other.max_y),
        )


@dataclass(frozen=True)
class ClipWindow:
    """Half-open rectangle [x0, x1) x [y0, y1) restricting a layer plan."""
    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def area(self) -> int:
        return max(0, self.x1 - self.x0) * max(0, self.y1 - self.y0)

    def contains(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        return (xs >= self.x0) & (xs < self.x1) & (ys >= self.y0) & (ys < self.y1)


@dataclass
class Region:
    """Maximal 4-connected set of pixels sharing one quantized color.

    ``pixels`` holds flat row-major indices (``y * width + x``) in the order
    the flood fill visited them. Fragments produced by the packer reuse this
    type with a subset of the parent's pixels.
    """
    color: Color
    pixels: np.ndarray
    width: int
    bbox: Optional[BBox] = None

    def __post_init__(self):
        self.pixels = np.asarray(self.pixels, dtype=np.int64)
        if self.bbox is None and len(self.pixels) > 0:
            xs = self.pixels % self.width
            ys = self.pixels // self.width
            self.bbox = BBox(int(xs.min()), int(ys.min()), int(xs.max()), int(ys.max()))

    @property
    def area(self) -> int:
        return int(len(self.pixels))

    def coords(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (xs, ys) arrays for the region's pixels."""
        return self.pixels % self.width, self.pixels // self.width

    def fragment(self, pixels: np.ndarray) -> "Region":
        """Create a same-colored region from a subset of this region's pixels."""
        return Region(color=self.color, pixels=pixels, width=self.width)


@dataclass
class Bucket:
    """Working group of regions while packing, before it becomes a LayerPlan."""
    regions: List[Region] = field(default_factory=list)
    clip: Optional[ClipWindow] = None

    @property
    def area(self) -> int:
        return sum(r.area for r in self.regions)

    @property
    def colors(self) -> FrozenSet[Color]:
        return frozenset(r.color for r in self.regions)

    @property
    def pinned(self) -> bool:
        """Clip-window pieces are kept apart from area-based merging."""
        return self.clip is not None

    def dominant_color(self) -> Color:
        """Color with the largest total area; first seen wins ties."""
        area_by_color: Dict[Color, int] = {}
        for region in self.regions:
            area_by_color[region.color] = area_by_color.get(region.color, 0) + region.area
        best = None
        best_area = -1
        for color, area in area_by_color.items():
            if area > best_area:
                best, best_area = color, area
        return best or "#ffffff"


@dataclass
class LayerPlan:
    """Planned output layer: its regions/fragments, color and ordering keys."""
    index: int
    color: Color
    regions: List[Region]
    area: int
    brightness: float
    force_top: bool = False
    clip: Optional[ClipWindow] = None
    z: int = 0

    @property
    def colors(self) -> FrozenSet[Color]:
        return frozenset(r.color for r in self.regions)

    def pixel_indices(self) -> np.ndarray:
        """All flat pixel indices contributed by this plan."""
        if not self.regions:
            return np.zeros(0, dtype=np.int64)
        return np.concatenate([r.pixels for r in self.regions])


@dataclass(frozen=True)
class Location:
    """Geographic anchor attached to a manifest entry."""
    lat: float
    lon: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}


@dataclass
class ManifestEntry:
    """Per-image manifest record consumed by the presentation layer."""
    colors: List[Color]
    files: List[str]
    z: List[int]
    full: str
    location: Optional[Location] = None

    def to_dict(self) -> dict:
        return {
            "colors": list(self.colors),
            "files": list(self.files),
            "z": list(self.z),
            "full": self.full,
            "location": self.location.to_dict() if self.location else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ManifestEntry":
        loc = data.get("location")
        return cls(
            colors=list(data.get("colors", [])),
            files=list(data.get("files", [])),
            z=list(data.get("z", [])),
            full=data.get("full", ""),
            location=Location(float(loc["lat"]), float(loc["lon"])) if loc else None,
        )


@dataclass
class LayerConfig:
    """Configuration for the layer extraction pipeline."""
    # Packing
    target_layers: int = 6
    split_entry_threshold: int = 12
    max_split_pieces: int = 3
    split_mode: str = "order"  # "order" or "midline"

    # Palette
    max_palette_colors: int = 8
    min_color_distance: float = 80.0

    # Quantization / edge repair
    alpha_floor: int = 32
    edge_fill_span: int = 8
    white_floor: int = 250
    white_min_alpha: int = 16

    # Reveal ordering
    dark_luminosity: float = 0.12

    # Rendering
    render_width: int = 640
    color_in_filename: bool = False

    # Batch
    skip_keys: FrozenSet[str] = DEFAULT_SKIP_KEYS
    workers: int = 1

    # Quality check
    diff_threshold: float = 5.0

    # Debug output
    save_stages: bool = False
    stages_dir: Optional[Path] = None

    def __post_init__(self):
        if self.target_layers < 1:
            raise ValueError(f"target_layers must be >= 1, got {self.target_layers}")
        if self.max_palette_colors < 1:
            raise ValueError(f"max_palette_colors must be >= 1, got {self.max_palette_colors}")
        if self.min_color_distance < 0:
            raise ValueError(f"min_color_distance must be >= 0, got {self.min_color_distance}")
        if self.edge_fill_span < 0:
            raise ValueError(f"edge_fill_span must be >= 0, got {self.edge_fill_span}")
        if self.max_split_pieces not in (2, 3):
            raise ValueError(f"max_split_pieces must be 2 or 3, got {self.max_split_pieces}")
        if self.split_mode not in ("order", "midline"):
            raise ValueError(f"split_mode must be 'order' or 'midline', got {self.split_mode!r}")
        if not 0 <= self.alpha_floor <= 255:
            raise ValueError(f"alpha_floor must be in [0, 255], got {self.alpha_floor}")
        self.skip_keys = frozenset(self.skip_keys)
        if self.stages_dir is not None:
            self.stages_dir = Path(self.stages_dir)


class FlagLayerError(Exception):
    """Base exception for layer extraction errors."""
    pass


class RasterizationError(FlagLayerError):
    """Raised when a vector source cannot be rendered to a raster."""
    pass


class PaletteError(FlagLayerError):
    """Raised when no palette can be derived for an image."""
    pass


class EmptyRasterError(FlagLayerError):
    """Raised when a raster has no opaque pixels or yields no regions."""
    pass


class DimensionMismatchError(FlagLayerError):
    """Raised when two rasters of different dimensions are combined."""
    pass
