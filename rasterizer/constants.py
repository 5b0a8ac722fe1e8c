"""Shared rasterizer constants used by the engine, the driver and the CLI."""


class RasterConstants:
    """Single source of truth for tiling limits and G-code vocabulary."""

    # Maximum tile edge in pixels; a single RGBA buffer above this is
    # impractical to allocate and transfer in one piece
    BUFFER_SIZE = 2048

    # 25.4 ppi == 1 pixel per millimetre
    MM_PER_INCH = 25.4

    # Decimal places kept when deriving ppm from ppi
    PPM_DECIMALS = 10

    # Raw samples are inverted 8-bit gray values
    SAMPLE_MAX = 255

    # Bytes per pixel in a tile buffer (R, G, B, A)
    CHANNELS = 4

    # Command letters, in emission order
    COMMAND_LETTERS = ("G", "X", "Y", "S")

    # Motion modes
    TRAVEL = 0
    BURN = 1

    # Options reported in the header when enabled, in this order
    HEADER_OPTIONS = ("smoothing", "trim_line", "burn_white", "verbose_g", "diagonal")

    GENERATOR_NAME = "gcode-rasterizer"
    VERSION = "1.0.0"
