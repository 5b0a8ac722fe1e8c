"""Rasterization engine: the consumer side of a run.

The engine receives ``init``, ``addCell`` and ``parse`` messages strictly in
that order, rebuilds the tile grid, walks the chosen scan order and posts
the G-code back one line at a time. All scan state (tile store, command
state, direction toggle) lives in the engine instance and is never shared
with the producer.

    Idle --init--> Initialized --addCell*--> Initialized --parse--> Streaming --> Done
"""

from __future__ import annotations
import logging
import threading
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from . import protocol
from .commands import CommandEmitter, CommandState
from .constants import RasterConstants
from .processing import ImageSize, format_number
from .protocol import ConfigurationError, Message, ProtocolError, RunCancelledError
from .scan import Line, diagonal_lines, row_major_lines
from .settings import RasterSettings
from .tiles import TileStore
from .transport import ChannelBase

logger = logging.getLogger(__name__)


class EngineState(Enum):
    IDLE = "idle"
    INITIALIZED = "initialized"
    STREAMING = "streaming"
    DONE = "done"


def _image_size_from(value: Any) -> ImageSize:
    if isinstance(value, ImageSize):
        return value
    if isinstance(value, dict) and "width" in value and "height" in value:
        width, height = value["width"], value["height"]
        if isinstance(width, int) and isinstance(height, int) and width >= 0 and height >= 0:
            return ImageSize(width, height)
    raise ConfigurationError(f"image_size must be non-negative integer width/height, got {value!r}")


class RasterEngine:
    """Turns a tile grid into a stream of G-code messages.

    Args:
        outbox: Channel receiving ``gcode`` / ``done`` / ``error`` messages
        cancel_event: Optional token checked between lines
    """

    def __init__(self, outbox: ChannelBase, cancel_event: Optional[threading.Event] = None):
        self.outbox = outbox
        self.cancel_event = cancel_event
        self.state = EngineState.IDLE
        self.command_state = CommandState()

        self.settings: Optional[RasterSettings] = None
        self.tiles: Optional[TileStore] = None
        self.emitter: Optional[CommandEmitter] = None
        self.image_size: Optional[ImageSize] = None
        self.version = RasterConstants.VERSION
        self.ppm: Optional[float] = None

    # Message handlers ------------------------------------------------------

    def handle(self, message: Message) -> None:
        """Dispatch one producer message.

        Raises:
            ProtocolError: on unknown types or out-of-order messages
        """
        if self.state is EngineState.DONE:
            raise ProtocolError(f"Run already done, got {message.type}")

        if message.type == protocol.INIT:
            self.init(message.data)
        elif message.type == protocol.ADD_CELL:
            self.add_cell(message.data)
        elif message.type == protocol.PARSE:
            self.parse()
        else:
            raise ProtocolError(f"Unknown message type: {message.type}")

    def init(self, data: Optional[Dict[str, Any]]) -> None:
        """Reset run state from settings plus derived values."""
        if self.state is not EngineState.IDLE:
            raise ProtocolError(f"init received in state {self.state.value}")
        if not isinstance(data, dict):
            raise ConfigurationError("init requires a settings payload")

        self.settings = RasterSettings.from_dict(data)
        self.image_size = _image_size_from(data.get("image_size"))
        buffer_size = data.get("buffer_size", RasterConstants.BUFFER_SIZE)
        if isinstance(buffer_size, bool) or not isinstance(buffer_size, int) or buffer_size <= 0:
            raise ConfigurationError(f"buffer_size must be a positive integer, got {buffer_size!r}")

        self.version = data.get("version", RasterConstants.VERSION)
        self.ppm = data.get("ppm", self.settings.ppm)
        self.tiles = TileStore(self.image_size, buffer_size)
        self.command_state.reset()
        self.emitter = CommandEmitter(self.settings, self.tiles.get_power, self.command_state)
        self.state = EngineState.INITIALIZED

        logger.info(
            f"Engine initialized: {self.image_size.width}x{self.image_size.height}px, "
            f"grid {self.tiles.grid_size.x}x{self.tiles.grid_size.y}, "
            f"{'diagonal' if self.settings.diagonal else 'row-major'} scan"
        )

    def add_cell(self, data: Optional[Dict[str, Any]]) -> None:
        if self.state is not EngineState.INITIALIZED:
            raise ProtocolError(f"addCell received in state {self.state.value}")
        try:
            gx, gy, buffer = data["x"], data["y"], data["buffer"]
        except (KeyError, TypeError) as exc:
            raise ProtocolError(f"addCell payload missing {exc}") from exc
        tile = self.tiles.add(gx, gy, buffer)
        logger.debug(f"Received {tile!r}")

    def parse(self) -> None:
        """Stream header, G-code lines and done for the whole image."""
        if self.state is not EngineState.INITIALIZED:
            raise ProtocolError(f"parse received in state {self.state.value}")
        missing = self.tiles.missing()
        if missing:
            raise ProtocolError(f"parse received with {len(missing)} missing tile(s), first {missing[0]}")

        self.state = EngineState.STREAMING
        self.outbox.post(protocol.gcode_message(self.header_text(), 0, header=True))

        chunks = 0
        for line, percent in self.lines():
            self._check_cancelled()
            gcode = self.emitter.process_line(line)
            if gcode:
                self.outbox.post(protocol.gcode_message("\n".join(gcode), percent))
                chunks += 1

        self.outbox.post(protocol.done_message())
        self.state = EngineState.DONE
        logger.info(f"Engine done: {chunks} chunks, stats={self.emitter.stats.to_dict()}")

    # Helpers ---------------------------------------------------------------

    def lines(self) -> Iterator[Tuple[Line, int]]:
        size = self.image_size
        if self.settings.diagonal:
            return diagonal_lines(size.width, size.height)
        return row_major_lines(size.width, size.height)

    def header_text(self) -> str:
        """Commented run metadata followed by feed-rate setup."""
        s = self.settings
        size = self.image_size
        beam_range = s.real_beam_range
        feed_rate = format_number(s.feed_rate)

        headers: List[str] = [
            f"; Generated by {RasterConstants.GENERATOR_NAME} - {self.version}",
            f"; Size       : {format_number(size.width * s.beam_size)} x "
            f"{format_number(size.height * s.beam_size)} mm",
            f"; Resolution : {format_number(self.ppm)} PPM - {format_number(s.ppi)} PPI",
            f"; Beam size  : {format_number(s.beam_size)} mm",
            f"; Beam range : {format_number(beam_range.min)} to {format_number(beam_range.max)}",
            f"; Beam power : {format_number(s.beam_power.min)} to {format_number(s.beam_power.max)} %",
            f"; Feed rate  : {feed_rate} mm/min",
        ]

        options = s.enabled_options
        if options:
            headers.append("; Options    : " + ", ".join(options))

        headers.extend(["", f"G0 F{feed_rate}", f"G1 F{feed_rate}", ""])
        return "\n".join(headers)

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RunCancelledError("Run cancelled")

    # Worker loop -----------------------------------------------------------

    def run(self, inbox: ChannelBase) -> None:
        """Process inbox messages until the run is done, fails or the inbox closes.

        Any failure is reported as a single ``error`` message; nothing else is
        posted after it.
        """
        while self.state is not EngineState.DONE:
            message = inbox.receive()
            if message is None:
                logger.debug("Inbox closed before run completed")
                return
            try:
                self.handle(message)
            except RunCancelledError as exc:
                logger.info("Rasterization cancelled")
                self.outbox.post(protocol.error_message(exc))
                return
            except Exception as exc:
                logger.exception(f"Rasterization failed on {message.type}: {exc}")
                self.outbox.post(protocol.error_message(exc))
                return


class RasterWorker(threading.Thread):
    """Runs a RasterEngine on its own thread."""

    def __init__(self, inbox: ChannelBase, outbox: ChannelBase, cancel_event: Optional[threading.Event] = None):
        super().__init__(name="raster-engine", daemon=True)
        self.inbox = inbox
        self.engine = RasterEngine(outbox, cancel_event=cancel_event)

    def run(self) -> None:
        self.engine.run(self.inbox)
