"""Color parsing, canonical hex keys, and perceptual helpers."""
from typing import Optional, Sequence, Tuple, Union

import numpy as np
from PIL import ImageColor

from flaglayers.types import Color

_IGNORED_PAINTS = {"none", "transparent", "currentcolor", "inherit", "context-fill", "context-stroke"}


def to_hex(value: Optional[str]) -> Optional[Color]:
    """
    Normalize a paint value to canonical ``#rrggbb``.

    Accepts anything Pillow's ImageColor understands (hex shorthand,
    ``rgb()``, ``hsl()``, CSS names). Returns None for ``none``, fully
    transparent colors, paint-server references and unparseable values.

    Args:
        value: Raw paint string from markup

    Returns:
        Canonical hex color or None
    """
    if not value:
        return None
    s = str(value).strip().lower()
    if not s or s in _IGNORED_PAINTS or s.startswith("url("):
        return None
    try:
        parsed = ImageColor.getrgb(s)
    except ValueError:
        return None
    if len(parsed) == 4 and parsed[3] == 0:
        return None
    return rgb_to_hex(parsed[:3])


def rgb_to_hex(rgb: Sequence[int]) -> Color:
    """Format an RGB triple as ``#rrggbb``."""
    r, g, b = (int(c) for c in rgb[:3])
    return f"#{r:02x}{g:02x}{b:02x}"


def hex_to_rgb(hex_color: Color) -> Tuple[int, int, int]:
    """Parse ``#rrggbb`` (or ``#rgb``) into an RGB triple."""
    h = hex_color.lstrip("#")
    if len(h) == 3:
        h = "".join(ch * 2 for ch in h)
    if len(h) != 6:
        raise ValueError(f"Not a hex color: {hex_color!r}")
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def color_distance_sq(
    a: Union[Color, Sequence[int]],
    b: Union[Color, Sequence[int]]
) -> int:
    """Squared Euclidean distance between two colors in RGB space."""
    ra = hex_to_rgb(a) if isinstance(a, str) else a
    rb = hex_to_rgb(b) if isinstance(b, str) else b
    dr = int(ra[0]) - int(rb[0])
    dg = int(ra[1]) - int(rb[1])
    db = int(ra[2]) - int(rb[2])
    return dr * dr + dg * dg + db * db


def srgb_to_linear(srgb: np.ndarray) -> np.ndarray:
    """
    Convert sRGB to linear RGB.

    Args:
        srgb: sRGB values in range [0, 1]

    Returns:
        Linear RGB values
    """
    return np.where(
        srgb <= 0.04045,
        srgb / 12.92,
        ((srgb + 0.055) / 1.055) ** 2.4
    )


def luminosity(color: Optional[Color]) -> float:
    """
    Relative luminance (WCAG) of a hex color, in [0, 1].

    Returns 0.0 for missing or unparseable colors.
    """
    if not color:
        return 0.0
    try:
        rgb = np.array(hex_to_rgb(color), dtype=np.float64) / 255.0
    except ValueError:
        return 0.0
    r, g, b = srgb_to_linear(rgb)
    return float(0.2126 * r + 0.7152 * g + 0.0722 * b)


def is_nearly_white(
    r: int, g: int, b: int, a: int = 255,
    floor: int = 250,
    min_alpha: int = 16
) -> bool:
    """True for sufficiently opaque pixels whose channels are all >= ``floor``."""
    if a < min_alpha:
        return False
    return r >= floor and g >= floor and b >= floor


def is_white_color(color: Color, floor: int = 250) -> bool:
    """Hex-color variant of :func:`is_nearly_white` for fully opaque colors."""
    try:
        r, g, b = hex_to_rgb(color)
    except ValueError:
        return False
    return is_nearly_white(r, g, b, 255, floor=floor)
