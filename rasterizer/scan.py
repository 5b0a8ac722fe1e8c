"""Scan-order generators and line trimming.

A line is a list of (x, y) pixel coordinates walked as one motion pass.
Generators yield ``(line, percent)`` pairs, `percent` being the progress to
report once that line has been emitted. Together the lines of either
generator cover every pixel of the image exactly once.
"""

from __future__ import annotations
from typing import Callable, Iterator, List, Optional, Tuple

from .processing import round_half_up

Pixel = Tuple[int, int]
Line = List[Pixel]


def row_major_lines(width: int, height: int) -> Iterator[Tuple[Line, int]]:
    """One line per row, ascending x.

    Direction alternation (boustrophedon) is applied by the emitter, not here.
    """
    for y in range(height):
        line = [(x, y) for x in range(width)]
        yield line, round_half_up(y / height * 100)


def diagonal_lines(width: int, height: int) -> Iterator[Tuple[Line, int]]:
    """Zigzag over anti-diagonals.

    Parity of x+y picks the step: odd walks south-west (x-1, y+1), even walks
    north-east (x+1, y-1). Hitting an edge clamps the position onto the next
    diagonal and ends the current line. Progress counts down from
    width*height + 1 steps.
    """
    total = width * height + 1
    remaining = total
    x, y = 0, 0
    line: Line = []

    for _ in range(width * height):
        line.append((x, y))
        remaining -= 1
        eol = False

        if (x + y) % 2:
            # south-west
            x -= 1
            y += 1
            if y == height:
                y -= 1
                x += 2
                eol = True
            if x < 0:
                x = 0
                eol = True
        else:
            # north-east
            x += 1
            y -= 1
            if x == width:
                x -= 1
                y += 2
                eol = True
            if y < 0:
                y = 0
                eol = True

        if eol:
            yield line, 100 - round_half_up((remaining - 1) / total * 100)
            line = []

    if line:
        yield line, 100 - round_half_up((remaining - 1) / total * 100)


def trim_line(line: Line, power_at: Callable[[int, int], float]) -> Optional[Line]:
    """Strip leading and trailing zero-power pixels.

    Scans inward from both ends in a single pass and stops as soon as both
    the first and the last non-zero pixel are known.

    Returns:
        The trimmed slice, or None if every pixel has zero power
    """
    start = end = None
    last = len(line) - 1

    for i in range(len(line)):
        j = last - i
        if start is None and power_at(*line[i]):
            start = i
        if end is None and power_at(*line[j]):
            end = j + 1
        if start is not None and end is not None:
            return line[start:end]

    return None
