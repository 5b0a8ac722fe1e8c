"""Small raster math helpers.

Keep pure functions here for easy testing and reuse: resolution and scale
derivation, tile grid geometry and the grayscale → power mapping.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Dict, Tuple

from .constants import RasterConstants


@dataclass(frozen=True)
class ImageSize:
    """Pixel dimensions of the image after scaling to the beam size."""

    width: int
    height: int

    @property
    def pixels(self) -> int:
        return self.width * self.height

    def to_dict(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class GridSize:
    """Number of tiles per axis."""

    x: int
    y: int

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y}


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties towards +infinity.

    Python's round() is half-to-even; image sizes and progress percentages
    are rounded half-up.
    """
    return int(math.floor(value + 0.5))


def compute_ppm(ppi: float) -> float:
    """Source pixel pitch derived from ppi, rounded to 10 decimals.

    254 ppi gives 0.1, 25.4 ppi gives 1.0.
    """
    return round(2540 / (ppi * 100), RasterConstants.PPM_DECIMALS)


def compute_scale_ratio(ppm: float, beam_size: float) -> float:
    """Ratio between source pixels and beam-sized output pixels."""
    return ppm / beam_size


def scaled_size(width: int, height: int, scale_ratio: float) -> ImageSize:
    """Image size after applying the scale ratio."""
    return ImageSize(
        width=round_half_up(width * scale_ratio),
        height=round_half_up(height * scale_ratio),
    )


def compute_grid_size(image_size: ImageSize, buffer_size: int = RasterConstants.BUFFER_SIZE) -> GridSize:
    """Number of tiles needed to cover the image."""
    return GridSize(
        x=math.ceil(image_size.width / buffer_size),
        y=math.ceil(image_size.height / buffer_size),
    )


def tile_extent(index: int, total: int, buffer_size: int = RasterConstants.BUFFER_SIZE) -> int:
    """Edge length of the tile at grid `index` along an axis of `total` pixels.

    Every tile is `buffer_size` long except the last one, which holds the
    remainder. When `total` is an exact multiple of `buffer_size` the last
    tile is a full buffer, never zero.
    """
    return min(buffer_size, total - index * buffer_size)


def beam_offset(beam_size: float) -> float:
    """Half-pixel offset that centres the beam on a pixel."""
    return beam_size * 1000 / 2000


def real_beam_range(range_max: float, power_min: float, power_max: float) -> Tuple[float, float]:
    """Beam range in device units from the power percentages.

    Both bounds are percentages of the configured range maximum; the
    configured range minimum does not take part.
    """
    return range_max / 100 * power_min, range_max / 100 * power_max


def map_power(raw: float, range_min: float, range_max: float) -> float:
    """Map a raw sample (0-255) linearly into [range_min, range_max]."""
    return raw * (range_max - range_min) / RasterConstants.SAMPLE_MAX + range_min


def format_number(value: float) -> str:
    """Render a number the way it reads in a header: integral floats lose '.0'."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)
