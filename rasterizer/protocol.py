"""Rasterizer message protocol: message types, output events and errors.

Producer → engine messages: ``init`` (settings + derived values), ``addCell``
(one tile buffer), ``parse`` (start streaming).
Engine → producer messages: ``gcode`` (text + percent, ``type="header"`` for
the preamble), ``done`` and, on failure, ``error``.

The wire form of every message is ``{"type": ..., "data": ...}`` (see
`Message.to_dict`). Everything here is a plain data structure so sequences
can be built, inspected and tested without a worker thread.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


# Producer → engine
INIT = "init"
ADD_CELL = "addCell"
PARSE = "parse"

# Engine → producer
GCODE = "gcode"
DONE = "done"
ERROR = "error"

HEADER = "header"


@dataclass
class Message:
    """A single message crossing the producer/engine boundary."""

    type: str
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire form"""
        out: Dict[str, Any] = {"type": self.type}
        if self.data is not None:
            out["data"] = self.data
        return out

    def __repr__(self) -> str:
        return f"Message({self.type})"


def init_message(data: Dict[str, Any]) -> Message:
    return Message(INIT, data)


def add_cell_message(x: int, y: int, buffer) -> Message:
    return Message(ADD_CELL, {"x": x, "y": y, "buffer": buffer})


def parse_message() -> Message:
    return Message(PARSE)


def gcode_message(text: str, percent: int, header: bool = False) -> Message:
    data = {"text": text, "percent": percent}
    if header:
        data["type"] = HEADER
    return Message(GCODE, data)


def done_message() -> Message:
    return Message(DONE)


def error_message(exc: BaseException) -> Message:
    return Message(ERROR, {"message": str(exc), "exception": exc})


class EventKind(str, Enum):
    HEADER = "header"
    GCODE = "gcode"
    DONE = "done"


@dataclass(frozen=True)
class OutputEvent:
    """One item of a run's output stream, as seen by the caller.

    A run yields exactly one HEADER, zero or more GCODE chunks with
    non-decreasing `percent`, then exactly one DONE.
    """

    kind: EventKind
    text: str = ""
    percent: int = 0

    @classmethod
    def from_message(cls, message: Message) -> "OutputEvent":
        """Convert an engine → producer message into an event.

        Raises:
            ProtocolError: for message types that are not output events
        """
        if message.type == DONE:
            return cls(EventKind.DONE, percent=100)
        if message.type == GCODE:
            data = message.data or {}
            kind = EventKind.HEADER if data.get("type") == HEADER else EventKind.GCODE
            return cls(kind, data.get("text", ""), int(data.get("percent", 0)))
        raise ProtocolError(f"Not an output message: {message.type}")

    @property
    def is_done(self) -> bool:
        return self.kind is EventKind.DONE


# Exceptions for rasterization errors
class RasterError(Exception):
    """Base class for rasterizer errors."""


class ConfigurationError(RasterError, ValueError):
    """Raised when settings are missing or invalid."""


class PixelRangeError(RasterError, IndexError):
    """Raised when a pixel coordinate falls outside the image."""


class ProtocolError(RasterError):
    """Raised when messages arrive out of order or in the wrong state."""


class RunCancelledError(RasterError):
    """Raised when a run is cancelled between lines."""


def raise_for_error(message: Message, fallback: Optional[str] = None) -> None:
    """Re-raise the exception carried by an ``error`` message."""
    if message.type != ERROR:
        return
    data = message.data or {}
    exc = data.get("exception")
    if isinstance(exc, BaseException):
        raise exc
    raise RasterError(data.get("message") or fallback or "Rasterization failed")
