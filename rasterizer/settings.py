"""Run settings for the rasterizer.

`RasterSettings` is immutable for the duration of a run and validated on
construction, so a bad configuration fails before any G-code is produced.
Defaults match the usual 0.1 mm diode-laser setup:

    ppi        254          source resolution (25.4 ppi == 1 pixel/mm)
    beam_size  0.1          beam diameter in mm (one output pixel)
    beam_range 0 .. 1       device power range (firmware S units)
    beam_power 0 .. 100     % of beam_range.max used for white .. black
    feed_rate  1500         mm/min
    precision  X2 Y2 S4     decimals per emitted value
    offsets    X0 Y0        mm added to every emitted coordinate
    trim_line  True         strip leading/trailing white pixels
    burn_white True         inner white pixels as G1 S0 (False: G0 travel)
    verbose_g  True         repeat unchanged tokens on every command
    diagonal   False        scan anti-diagonals instead of rows
    smoothing  False        bilinear instead of nearest-neighbour scaling
"""

from __future__ import annotations
import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional

from .constants import RasterConstants
from .processing import beam_offset, compute_ppm, compute_scale_ratio, real_beam_range
from .protocol import ConfigurationError
from .validators import parse_bool, pick, safe_float, safe_int


MAX_PRECISION = 20


def _check_number(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{field_name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigurationError(f"{field_name} must be finite, got {value!r}")
    return value


def _check_positive(value: Any, field_name: str) -> float:
    _check_number(value, field_name)
    if value <= 0:
        raise ConfigurationError(f"{field_name} must be > 0, got {value!r}")
    return value


@dataclass(frozen=True)
class PowerRange:
    """A min/max pair (device units or percentages)."""

    min: float = 0.0
    max: float = 1.0

    def __post_init__(self):
        _check_number(self.min, "range min")
        _check_number(self.max, "range max")

    @classmethod
    def from_value(cls, value: Any, field_name: str, default: "PowerRange") -> "PowerRange":
        if value is None:
            return default
        if isinstance(value, PowerRange):
            return value
        if isinstance(value, dict):
            return cls(
                min=safe_float(value.get("min"), f"{field_name}.min", default=default.min),
                max=safe_float(value.get("max"), f"{field_name}.max", default=default.max),
            )
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return cls(
                min=safe_float(value[0], f"{field_name}.min"),
                max=safe_float(value[1], f"{field_name}.max"),
            )
        raise ConfigurationError(f"{field_name} must be a {{min, max}} mapping, got {value!r}")


@dataclass(frozen=True)
class Precision:
    """Number of decimals emitted for each command letter."""

    X: int = 2
    Y: int = 2
    S: int = 4

    def __post_init__(self):
        for letter in ("X", "Y", "S"):
            value = getattr(self, letter)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"precision.{letter} must be an integer, got {value!r}")
            if not 0 <= value <= MAX_PRECISION:
                raise ConfigurationError(
                    f"precision.{letter} must be between 0 and {MAX_PRECISION}, got {value}"
                )

    def for_letter(self, letter: str) -> int:
        """Decimals for a command letter; letters without a setting use 0 (G)."""
        return getattr(self, letter, 0) if letter in ("X", "Y", "S") else 0

    @classmethod
    def from_value(cls, value: Any) -> "Precision":
        if value is None:
            return cls()
        if isinstance(value, Precision):
            return value
        if not isinstance(value, dict):
            raise ConfigurationError(f"precision must be a mapping, got {value!r}")
        default = cls()
        return cls(**{
            letter: safe_int(
                pick(value, letter, letter.lower()),
                f"precision.{letter}",
                default=getattr(default, letter),
            )
            for letter in ("X", "Y", "S")
        })


@dataclass(frozen=True)
class Offsets:
    """Global coordinate offsets in mm."""

    X: float = 0.0
    Y: float = 0.0

    def __post_init__(self):
        _check_number(self.X, "offsets.X")
        _check_number(self.Y, "offsets.Y")

    @classmethod
    def from_value(cls, value: Any) -> "Offsets":
        if value is None:
            return cls()
        if isinstance(value, Offsets):
            return value
        if not isinstance(value, dict):
            raise ConfigurationError(f"offsets must be a mapping, got {value!r}")
        return cls(
            X=safe_float(pick(value, "X", "x"), "offsets.X", default=0.0),
            Y=safe_float(pick(value, "Y", "y"), "offsets.Y", default=0.0),
        )


@dataclass(frozen=True)
class RasterSettings:
    """Validated, immutable settings for one rasterization run."""

    ppi: float = 254
    beam_size: float = 0.1
    beam_range: PowerRange = field(default_factory=lambda: PowerRange(0, 1))
    beam_power: PowerRange = field(default_factory=lambda: PowerRange(0, 100))
    feed_rate: float = 1500
    precision: Precision = field(default_factory=Precision)
    offsets: Offsets = field(default_factory=Offsets)
    trim_line: bool = True
    burn_white: bool = True
    verbose_g: bool = True
    diagonal: bool = False
    smoothing: bool = False

    def __post_init__(self):
        _check_positive(self.ppi, "ppi")
        _check_positive(self.beam_size, "beam_size")
        _check_positive(self.feed_rate, "feed_rate")
        for name, kind in (
            ("beam_range", PowerRange),
            ("beam_power", PowerRange),
            ("precision", Precision),
            ("offsets", Offsets),
        ):
            if not isinstance(getattr(self, name), kind):
                raise ConfigurationError(f"{name} must be a {kind.__name__}")
        for name in RasterConstants.HEADER_OPTIONS:
            if not isinstance(getattr(self, name), bool):
                raise ConfigurationError(f"{name} must be a boolean")

    # Derived values -------------------------------------------------------

    @property
    def ppm(self) -> float:
        return compute_ppm(self.ppi)

    @property
    def scale_ratio(self) -> float:
        return compute_scale_ratio(self.ppm, self.beam_size)

    @property
    def beam_offset(self) -> float:
        return beam_offset(self.beam_size)

    @property
    def real_beam_range(self) -> PowerRange:
        """Beam range actually used for power mapping (see processing.real_beam_range)."""
        low, high = real_beam_range(self.beam_range.max, self.beam_power.min, self.beam_power.max)
        return PowerRange(low, high)

    @property
    def enabled_options(self) -> list:
        return [name for name in RasterConstants.HEADER_OPTIONS if getattr(self, name)]

    # Serialization --------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the init message / JSON"""
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "RasterSettings":
        """Build settings from a loose payload.

        Accepts snake_case or camelCase keys (``beamSize``, ``trimLine``...).
        Missing keys take their defaults; unknown keys are ignored.

        Raises:
            ConfigurationError: if a value cannot be parsed or is out of range
        """
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            raise ConfigurationError("Settings payload must be a mapping")

        default = cls()
        return cls(
            ppi=safe_float(pick(payload, "ppi"), "ppi", default=default.ppi),
            beam_size=safe_float(pick(payload, "beam_size", "beamSize"), "beam_size", default=default.beam_size),
            beam_range=PowerRange.from_value(
                pick(payload, "beam_range", "beamRange"), "beam_range", default.beam_range
            ),
            beam_power=PowerRange.from_value(
                pick(payload, "beam_power", "beamPower"), "beam_power", default.beam_power
            ),
            feed_rate=safe_float(pick(payload, "feed_rate", "feedRate"), "feed_rate", default=default.feed_rate),
            precision=Precision.from_value(pick(payload, "precision")),
            offsets=Offsets.from_value(pick(payload, "offsets")),
            trim_line=parse_bool(pick(payload, "trim_line", "trimLine"), default.trim_line),
            burn_white=parse_bool(pick(payload, "burn_white", "burnWhite"), default.burn_white),
            verbose_g=parse_bool(pick(payload, "verbose_g", "verboseG"), default.verbose_g),
            diagonal=parse_bool(pick(payload, "diagonal"), default.diagonal),
            smoothing=parse_bool(pick(payload, "smoothing"), default.smoothing),
        )
