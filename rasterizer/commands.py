"""G-code command emission.

Separates command text generation from the scan loop so that lines can be
turned into commands (and inspected) without a worker thread:
- `format_value` fixes the decimal rendering of every token
- `CommandState` remembers the last emitted value per letter
- `CommandEmitter` turns one pixel line into travel/burn commands
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional, Tuple

from .constants import RasterConstants
from .processing import map_power
from .scan import Line, trim_line
from .settings import RasterSettings

logger = logging.getLogger(__name__)

TRAVEL = RasterConstants.TRAVEL
BURN = RasterConstants.BURN


def format_value(value: float, precision: int) -> str:
    """Fixed-point rendering with `precision` decimals, ties rounded up.

    Rounds the exact binary value of `value`, so 0.125 -> "0.13" and
    1.005 (stored as 1.00499...) -> "1.00".
    """
    if value == 0:
        value = 0.0  # no "-0.00"
    quantum = Decimal(1).scaleb(-precision)
    return f"{Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP):f}"


@dataclass
class CommandState:
    """Last emitted formatted value for each command letter.

    Spans the whole run; reset only when a new run is initialised.
    """

    last: Dict[str, str] = field(default_factory=dict)

    def reset(self) -> None:
        self.last.clear()

    @property
    def motion_mode(self) -> Optional[str]:
        """Formatted G value of the last emitted command ("0" travel, "1" burn)."""
        return self.last.get("G")


@dataclass
class CommandStats:
    """Counters for one run."""

    lines: int = 0
    skipped_lines: int = 0
    travel_commands: int = 0
    burn_commands: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "lines": self.lines,
            "skipped_lines": self.skipped_lines,
            "travel_commands": self.travel_commands,
            "burn_commands": self.burn_commands,
        }


class CommandEmitter:
    """Turns pixel lines into G-code command lines.

    Args:
        settings: Run settings (precision, verbosity, trimming, ...)
        power_at: Raw sample lookup, usually TileStore.get_power
        state: Redundancy-suppression state owned by the engine
    """

    def __init__(
        self,
        settings: RasterSettings,
        power_at: Callable[[int, int], float],
        state: Optional[CommandState] = None,
    ):
        self.settings = settings
        self.power_at = power_at
        self.state = state if state is not None else CommandState()
        self.stats = CommandStats()
        self.beam_range = settings.real_beam_range
        self.beam_offset = settings.beam_offset
        # Flipped before each processed line, so the first line runs forward
        self.reverse_line = True

    def command(self, *tokens: Tuple[str, float]) -> Optional[str]:
        """Format tokens, dropping those equal to the last emitted value.

        In verbose mode every token is kept. Returns None when nothing is left.
        """
        parts = []
        for letter, value in tokens:
            text = format_value(value, self.settings.precision.for_letter(letter))
            if self.settings.verbose_g or text != self.state.last.get(letter):
                self.state.last[letter] = text
                parts.append(f"{letter}{text}")
        return " ".join(parts) if parts else None

    def travel(self, x: float, y: float) -> Optional[str]:
        text = self.command(("G", TRAVEL), ("X", x), ("Y", y), ("S", 0))
        if text:
            self.stats.travel_commands += 1
        return text

    def burn(self, x: float, y: float, power: float) -> Optional[str]:
        text = self.command(("G", BURN), ("X", x), ("Y", y), ("S", power))
        if text:
            self.stats.burn_commands += 1
        return text

    def position(self, x: int, y: int) -> Tuple[float, float]:
        """Physical coordinates (mm) of the centre of pixel (x, y)."""
        beam_size = self.settings.beam_size
        offsets = self.settings.offsets
        return (
            x * beam_size + self.beam_offset + offsets.X,
            y * beam_size + self.beam_offset + offsets.Y,
        )

    def process_line(self, line: Line) -> Optional[List[str]]:
        """Convert one pixel line into command lines.

        Returns:
            List of command lines, or None if the line produced nothing
            (fully white and trimmed, or empty)
        """
        if self.settings.trim_line:
            line = trim_line(line, self.power_at)
            if line is None:
                self.stats.skipped_lines += 1
                return None

        # Boustrophedon: every other processed row runs backwards
        self.reverse_line = not self.reverse_line
        if not self.settings.diagonal and self.reverse_line:
            line = line[::-1]

        gcode: List[str] = []

        def push(text: Optional[str]) -> None:
            if text:
                gcode.append(text)

        for i, (x, y) in enumerate(line):
            raw = self.power_at(x, y)
            px, py = self.position(x, y)

            if i == 0:
                # Move to start of line with the beam off
                push(self.travel(px, py))

            if not self.settings.burn_white and raw == 0:
                if i:
                    push(self.travel(px, py))
                continue

            power = map_power(raw, self.beam_range.min, self.beam_range.max)
            # Never switch from travel to burn mid-line without reaching the
            # pixel in travel mode first
            if i and self.state.motion_mode == str(TRAVEL):
                push(self.travel(px, py))
            push(self.burn(px, py, power))

        if not gcode:
            self.stats.skipped_lines += 1
            return None

        self.stats.lines += 1
        logger.debug(f"Line of {len(line)} pixels -> {len(gcode)} commands")
        return gcode
