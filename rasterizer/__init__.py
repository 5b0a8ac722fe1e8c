"""Raster image to laser G-code toolpath engine."""

from .constants import RasterConstants
from .driver import Rasterizer, RunSummary
from .protocol import (
    ConfigurationError,
    EventKind,
    OutputEvent,
    PixelRangeError,
    ProtocolError,
    RasterError,
    RunCancelledError,
)
from .settings import Offsets, PowerRange, Precision, RasterSettings

__version__ = RasterConstants.VERSION

__all__ = [
    "Rasterizer",
    "RunSummary",
    "RasterSettings",
    "PowerRange",
    "Precision",
    "Offsets",
    "OutputEvent",
    "EventKind",
    "RasterError",
    "ConfigurationError",
    "PixelRangeError",
    "ProtocolError",
    "RunCancelledError",
]
