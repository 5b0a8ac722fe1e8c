"""Pixel tile storage.

The scaled image is held as a grid of RGBA buffers no larger than
`RasterConstants.BUFFER_SIZE` on a side. The producer side (`build_tiles`)
scales the source into white-filled tiles with Pillow; the engine side
(`TileStore`) reassembles the grid from ``addCell`` messages and answers
"raw power at (x, y)" queries.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np
from PIL import Image

from .constants import RasterConstants
from .processing import GridSize, ImageSize, compute_grid_size, tile_extent
from .protocol import PixelRangeError, ProtocolError

logger = logging.getLogger(__name__)

CHANNELS = RasterConstants.CHANNELS


@dataclass(frozen=True)
class Tile:
    """One grid cell: a read-only flat RGBA buffer of width*height*4 bytes."""

    x: int
    y: int
    width: int
    height: int
    buffer: np.ndarray

    def __post_init__(self):
        expected = self.width * self.height * CHANNELS
        if self.buffer.size != expected:
            raise ProtocolError(
                f"Tile ({self.x}, {self.y}) buffer has {self.buffer.size} bytes, "
                f"expected {expected} ({self.width}x{self.height} RGBA)"
            )

    def __repr__(self) -> str:
        return f"Tile(({self.x}, {self.y}), {self.width}x{self.height})"


def freeze_buffer(data) -> np.ndarray:
    """Return a flat, read-only uint8 view of `data`."""
    buffer = np.asarray(data, dtype=np.uint8).reshape(-1)
    if buffer.flags.writeable:
        buffer = buffer.copy()
        buffer.flags.writeable = False
    return buffer


def _render_tile(
    source: Image.Image,
    gx: int,
    gy: int,
    width: int,
    height: int,
    scale_ratio: float,
    buffer_size: int,
    resample,
) -> Image.Image:
    """Fill a white tile and draw the matching part of `source` into it."""
    # White background first: no alpha left to interpret downstream
    tile = Image.new("RGBA", (width, height), (255, 255, 255, 255))

    sx = gx * buffer_size / scale_ratio
    sy = gy * buffer_size / scale_ratio
    # Rounded image sizes can ask for slightly more than the source holds;
    # clip the source box and shrink the destination by the same ratio
    ex = min(sx + width / scale_ratio, source.width)
    ey = min(sy + height / scale_ratio, source.height)
    dw = min(width, int(round((ex - sx) * scale_ratio)))
    dh = min(height, int(round((ey - sy) * scale_ratio)))

    if ex > sx and ey > sy and dw > 0 and dh > 0:
        part = source.resize((dw, dh), resample, box=(sx, sy, ex, ey))
        tile.alpha_composite(part, dest=(0, 0))
    return tile


def build_tiles(
    image: Image.Image,
    image_size: ImageSize,
    scale_ratio: float,
    buffer_size: int = RasterConstants.BUFFER_SIZE,
    smoothing: bool = False,
) -> Tuple[GridSize, List[List[Tile]]]:
    """Scale `image` into a grid of white-backed RGBA tiles.

    Args:
        image: Decoded source image (any Pillow mode)
        image_size: Target size after scaling (see processing.scaled_size)
        scale_ratio: Output pixels per source pixel
        buffer_size: Maximum tile edge
        smoothing: Bilinear resampling instead of nearest neighbour

    Returns:
        (grid_size, rows) where rows[gy][gx] is a Tile
    """
    grid_size = compute_grid_size(image_size, buffer_size)
    source = image if image.mode == "RGBA" else image.convert("RGBA")
    resample = Image.Resampling.BILINEAR if smoothing else Image.Resampling.NEAREST

    rows: List[List[Tile]] = []
    for gy in range(grid_size.y):
        height = tile_extent(gy, image_size.height, buffer_size)
        row = []
        for gx in range(grid_size.x):
            width = tile_extent(gx, image_size.width, buffer_size)
            tile_image = _render_tile(source, gx, gy, width, height, scale_ratio, buffer_size, resample)
            row.append(Tile(gx, gy, width, height, freeze_buffer(tile_image)))
        rows.append(row)

    logger.info(
        f"Built {grid_size.x}x{grid_size.y} tile grid for "
        f"{image_size.width}x{image_size.height}px image"
    )
    return grid_size, rows


class TileStore:
    """Engine-side tile grid answering raw power queries.

    Coordinates passed to `get_power` are machine coordinates (y=0 at the
    bottom); the store flips them onto the top-left-origin tile rows.
    """

    def __init__(self, image_size: ImageSize, buffer_size: int = RasterConstants.BUFFER_SIZE):
        self.image_size = image_size
        self.buffer_size = buffer_size
        self.grid_size = compute_grid_size(image_size, buffer_size)
        self._tiles: Dict[Tuple[int, int], Tile] = {}

    def add(self, gx: int, gy: int, buffer) -> Tile:
        """Store the buffer for grid cell (gx, gy).

        Raises:
            ProtocolError: if the cell is outside the grid or the buffer size
                does not match the cell
        """
        if not (0 <= gx < self.grid_size.x and 0 <= gy < self.grid_size.y):
            raise ProtocolError(
                f"Tile ({gx}, {gy}) outside {self.grid_size.x}x{self.grid_size.y} grid"
            )
        tile = Tile(
            gx,
            gy,
            tile_extent(gx, self.image_size.width, self.buffer_size),
            tile_extent(gy, self.image_size.height, self.buffer_size),
            freeze_buffer(buffer),
        )
        self._tiles[(gx, gy)] = tile
        return tile

    def missing(self) -> List[Tuple[int, int]]:
        """Grid cells that have not been received yet."""
        return [
            (gx, gy)
            for gy in range(self.grid_size.y)
            for gx in range(self.grid_size.x)
            if (gx, gy) not in self._tiles
        ]

    def __len__(self) -> int:
        return len(self._tiles)

    def get_power(self, x: int, y: int) -> float:
        """Raw sample at (x, y): 255 - mean(R, G, B), alpha ignored.

        Raises:
            PixelRangeError: if x or y is outside the image
        """
        if x < 0 or x >= self.image_size.width:
            raise PixelRangeError(f"Out of range: x = {x}")
        if y < 0 or y >= self.image_size.height:
            raise PixelRangeError(f"Out of range: y = {y}")

        y = self.image_size.height - y - 1

        gx = x // self.buffer_size
        gy = y // self.buffer_size
        tile = self._tiles[(gx, gy)]

        if gx:
            x -= gx * self.buffer_size
        if gy:
            y -= gy * self.buffer_size

        i = (y * tile.width + x) * CHANNELS
        data = tile.buffer
        return RasterConstants.SAMPLE_MAX - (int(data[i]) + int(data[i + 1]) + int(data[i + 2])) / 3
