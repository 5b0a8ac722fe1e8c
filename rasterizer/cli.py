#!/usr/bin/env python3
"""Thin CLI around the `Rasterizer` driver.

Keep this a small wrapper: parse options, call library functions and
return meaningful exit codes (0 ok, 1 usage, 2 run failed).
"""

import argparse
import logging
import sys

from PIL import Image

from .constants import RasterConstants
from .csv_logger import CSVLogger
from .driver import Rasterizer
from .protocol import RasterError
from .settings import Offsets, PowerRange, Precision, RasterSettings


def _range(text):
    """Parse ``MIN:MAX`` into a PowerRange."""
    try:
        low, high = text.split(":")
        return PowerRange(float(low), float(high))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected MIN:MAX, got {text!r}")


def _pair(text):
    try:
        x, y = text.split(":")
        return float(x), float(y)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X:Y, got {text!r}")


def _add_toggle(parser, name, default, help_text):
    parser.add_argument(f"--{name}", dest=name.replace("-", "_"), action="store_true", default=default, help=help_text)
    parser.add_argument(f"--no-{name}", dest=name.replace("-", "_"), action="store_false")


def build_parser():
    parser = argparse.ArgumentParser(prog=RasterConstants.GENERATOR_NAME, description="Raster image to laser G-code")
    parser.add_argument("--version", action="version", version=f"%(prog)s {RasterConstants.VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="cmd")

    p = sub.add_parser("rasterize", help="convert an image to G-code")
    p.add_argument("image")
    p.add_argument("-o", "--output", help="G-code file (default: stdout)")
    p.add_argument("--ppi", type=float, default=254)
    p.add_argument("--beam-size", type=float, default=0.1, help="mm per output pixel")
    p.add_argument("--beam-range", type=_range, default=PowerRange(0, 1), help="device power MIN:MAX")
    p.add_argument("--beam-power", type=_range, default=PowerRange(0, 100), help="power %% MIN:MAX")
    p.add_argument("--feed-rate", type=float, default=1500, help="mm/min")
    p.add_argument("--precision", type=int, nargs=3, metavar=("X", "Y", "S"), default=(2, 2, 4))
    p.add_argument("--offsets", type=_pair, default=(0.0, 0.0), help="mm X:Y")
    p.add_argument("--csv", help="write a per-event run log")
    _add_toggle(p, "trim-line", True, "strip white pixels at line ends")
    _add_toggle(p, "burn-white", True, "emit white pixels as G1 S0")
    _add_toggle(p, "verbose-g", True, "repeat unchanged tokens")
    _add_toggle(p, "diagonal", False, "scan anti-diagonals")
    _add_toggle(p, "smoothing", False, "bilinear scaling")
    return parser


def settings_from_args(args) -> RasterSettings:
    x, y, s = args.precision
    return RasterSettings(
        ppi=args.ppi,
        beam_size=args.beam_size,
        beam_range=args.beam_range,
        beam_power=args.beam_power,
        feed_rate=args.feed_rate,
        precision=Precision(X=x, Y=y, S=s),
        offsets=Offsets(*args.offsets),
        trim_line=args.trim_line,
        burn_white=args.burn_white,
        verbose_g=args.verbose_g,
        diagonal=args.diagonal,
        smoothing=args.smoothing,
    )


def rasterize(args) -> int:
    rasterizer = Rasterizer(settings_from_args(args))
    with Image.open(args.image) as image:
        image.load()
        rasterizer.load_image(image)

    out = open(args.output, "w") if args.output else sys.stdout
    csv_logger = CSVLogger(args.csv) if args.csv else None
    try:
        for event in rasterizer.rasterize(csv_logger=csv_logger):
            if not event.is_done:
                out.write(event.text + "\n")
    finally:
        if csv_logger:
            csv_logger.close()
        if out is not sys.stdout:
            out.close()

    summary = rasterizer.summary
    print(
        f"{summary.chunks} chunks, {summary.bytes} bytes in {rasterizer.time:.2f}s",
        file=sys.stderr,
    )
    return 0


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.cmd == "rasterize":
        try:
            return rasterize(args)
        except (RasterError, OSError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
