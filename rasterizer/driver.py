"""Rasterizer driver: the producer side of a run.

Scales a decoded image into tiles, starts an engine worker, streams
``init`` / ``addCell`` / ``parse`` to it and relays the engine's output back
to the caller as a finite iterator of `OutputEvent`.
"""

from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from PIL import Image

from . import protocol
from .constants import RasterConstants
from .engine import RasterWorker
from .processing import GridSize, ImageSize, scaled_size
from .protocol import ConfigurationError, Message, OutputEvent, RasterError
from .settings import RasterSettings
from .tiles import Tile, build_tiles
from .transport import QueueChannel

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """What one run produced, filled in as events arrive."""

    chunks: int = 0
    commands: int = 0
    bytes: int = 0
    percent: int = 0
    completed: bool = False
    elapsed: float = 0.0

    def record(self, event: OutputEvent) -> None:
        if event.kind is protocol.EventKind.GCODE:
            self.chunks += 1
            self.commands += event.text.count("\n") + 1
        self.bytes += len(event.text)
        self.percent = event.percent
        self.completed = event.is_done

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunks": self.chunks,
            "commands": self.commands,
            "bytes": self.bytes,
            "percent": self.percent,
            "completed": self.completed,
            "elapsed_s": round(self.elapsed, 3),
        }


class _AnyEvent:
    """Cancellation token that is set when any of its events is set."""

    def __init__(self, *events: Optional[threading.Event]):
        self._events = [e for e in events if e is not None]

    def is_set(self) -> bool:
        return any(e.is_set() for e in self._events)


class Rasterizer:
    """Image → G-code orchestrator.

    Usage:
        rasterizer = Rasterizer(RasterSettings(ppi=300, diagonal=True))
        rasterizer.load_image(Image.open("logo.png"))
        for event in rasterizer.rasterize():
            ...

    A run is started by each call to `rasterize`; the returned iterator is
    single use.
    """

    def __init__(self, settings: Optional[RasterSettings] = None, buffer_size: int = RasterConstants.BUFFER_SIZE):
        if isinstance(buffer_size, bool) or not isinstance(buffer_size, int) or buffer_size <= 0:
            raise ConfigurationError(f"buffer_size must be a positive integer, got {buffer_size!r}")
        self.settings = settings if settings is not None else RasterSettings()
        if not isinstance(self.settings, RasterSettings):
            raise ConfigurationError("settings must be a RasterSettings instance")
        self.buffer_size = buffer_size
        self.version = RasterConstants.VERSION

        self.image: Optional[Image.Image] = None
        self.ppm: Optional[float] = None
        self.scale_ratio: Optional[float] = None
        self.image_size: Optional[ImageSize] = None
        self.grid_size: Optional[GridSize] = None
        self.tiles: Optional[List[List[Tile]]] = None
        self.time: Optional[float] = None  # seconds taken by the last run
        self.summary: Optional[RunSummary] = None

    def load_image(self, image: Image.Image) -> ImageSize:
        """Compute the output size for `image` and build its tile grid.

        Raises:
            ConfigurationError: if `image` is not a Pillow image
        """
        if not isinstance(image, Image.Image):
            raise ConfigurationError("Image instance required as first parameter.")

        self.image = image
        self.ppm = self.settings.ppm
        self.scale_ratio = self.settings.scale_ratio
        self.image_size = scaled_size(image.width, image.height, self.scale_ratio)
        self.grid_size, self.tiles = build_tiles(
            image,
            self.image_size,
            self.scale_ratio,
            buffer_size=self.buffer_size,
            smoothing=self.settings.smoothing,
        )
        logger.info(
            f"Loaded {image.width}x{image.height}px image -> "
            f"{self.image_size.width}x{self.image_size.height}px at {self.settings.beam_size} mm/px"
        )
        return self.image_size

    def init_data(self) -> Dict[str, Any]:
        """Settings plus derived values, as sent in the ``init`` message."""
        data = self.settings.to_dict()
        data.update(
            version=self.version,
            ppm=self.ppm,
            scale_ratio=self.scale_ratio,
            image_size=self.image_size.to_dict(),
            grid_size=self.grid_size.to_dict(),
            buffer_size=self.buffer_size,
        )
        return data

    def messages(self) -> Iterator[Message]:
        """Producer messages for one run, in protocol order."""
        yield protocol.init_message(self.init_data())
        for row in self.tiles:
            for tile in row:
                # Read-only buffers are handed over by reference
                yield protocol.add_cell_message(tile.x, tile.y, tile.buffer)
        yield protocol.parse_message()

    def rasterize(self, cancel_event: Optional[threading.Event] = None, csv_logger=None) -> Iterator[OutputEvent]:
        """Start a run and return its event stream.

        Args:
            cancel_event: Optional token; once set, the run stops at the next
                line boundary and iteration raises RunCancelledError
            csv_logger: Optional CSVLogger receiving one row per event

        Returns:
            Iterator yielding one header, the G-code chunks, then done

        Raises:
            ConfigurationError: immediately, if no image has been loaded
        """
        if self.tiles is None:
            raise ConfigurationError("No image loaded.")
        return self._stream(cancel_event, csv_logger)

    def _stream(self, cancel_event: Optional[threading.Event], csv_logger) -> Iterator[OutputEvent]:
        started = time.time()
        last_event_at = started
        summary = RunSummary()
        self.summary = summary

        inbox, outbox = QueueChannel(), QueueChannel()
        abandon = threading.Event()
        worker = RasterWorker(inbox, outbox, cancel_event=_AnyEvent(cancel_event, abandon))
        worker.start()
        logger.info(f"Rasterizing {self.image_size.width}x{self.image_size.height}px image")

        try:
            for message in self.messages():
                inbox.post(message)

            while True:
                message = outbox.receive()
                if message is None:
                    raise RasterError("Engine stopped before the run completed")
                protocol.raise_for_error(message)

                event = OutputEvent.from_message(message)
                summary.record(event)

                if csv_logger:
                    now = time.time()
                    csv_logger.log_event(
                        phase=event.kind.value,
                        event="DONE" if event.is_done else f"CHUNK {summary.chunks}" if summary.chunks else "HEADER",
                        duration_ms=(now - last_event_at) * 1000,
                        bytes_emitted=len(event.text),
                        percent=event.percent,
                        lines=event.text.count("\n") + 1 if event.text else 0,
                        state="COMPLETE" if event.is_done else "ACTIVE",
                    )
                    last_event_at = now

                yield event
                if event.is_done:
                    break
        except RasterError as exc:
            if csv_logger:
                csv_logger.log_event(phase="error", event=type(exc).__name__, duration_ms=0, state="ERROR")
            raise
        finally:
            # Stops the engine early if the caller stopped iterating
            abandon.set()
            inbox.close()
            worker.join(timeout=5.0)
            self.time = time.time() - started
            summary.elapsed = self.time
            logger.info(
                f"Rasterization {'complete' if summary.completed else 'stopped'}: "
                f"{summary.chunks} chunks, {summary.bytes} bytes in {self.time:.2f}s"
            )

    def gcode(self, cancel_event: Optional[threading.Event] = None, csv_logger=None) -> str:
        """Run to completion and return the whole program as one string."""
        texts = [event.text for event in self.rasterize(cancel_event, csv_logger) if not event.is_done]
        return "\n".join(texts) + "\n"
