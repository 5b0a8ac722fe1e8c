import pytest
from rasterizer.scan import diagonal_lines, row_major_lines, trim_line


def covered(lines):
    return [pixel for line, _ in lines for pixel in line]


@pytest.mark.parametrize("width,height", [(1, 1), (3, 3), (4, 2), (2, 5), (1, 4), (5, 1)])
def test_every_pixel_exactly_once(width, height):
    expected = {(x, y) for x in range(width) for y in range(height)}
    for generator in (row_major_lines, diagonal_lines):
        pixels = covered(list(generator(width, height)))
        assert len(pixels) == width * height
        assert set(pixels) == expected


def test_row_major_lines_and_percent():
    lines = list(row_major_lines(3, 4))
    assert lines[0][0] == [(0, 0), (1, 0), (2, 0)]
    assert [percent for _, percent in lines] == [0, 25, 50, 75]


def test_diagonal_3x3():
    lines = [line for line, _ in diagonal_lines(3, 3)]
    assert lines[0] == [(0, 0)]
    assert lines[1] == [(1, 0), (0, 1)]
    assert lines[2] == [(0, 2), (1, 1), (2, 0)]
    assert len(set(covered(diagonal_lines(3, 3)))) == 9


@pytest.mark.parametrize("width,height", [(3, 3), (7, 2), (2, 7)])
def test_diagonal_percent_non_decreasing(width, height):
    percents = [percent for _, percent in diagonal_lines(width, height)]
    assert percents == sorted(percents)
    assert 0 <= percents[0] and percents[-1] <= 100


def test_empty_image_yields_nothing():
    assert list(row_major_lines(0, 0)) == []
    assert list(diagonal_lines(0, 5)) == []


def test_trim_line():
    power = {0: 0, 1: 0, 2: 10, 3: 0, 4: 30, 5: 0}
    line = [(x, 0) for x in range(6)]
    power_at = lambda x, y: power[x]
    trimmed = trim_line(line, power_at)
    assert trimmed == [(2, 0), (3, 0), (4, 0)]
    assert trim_line(trimmed, power_at) == trimmed


def test_trim_line_single_pixel():
    line = [(x, 0) for x in range(5)]
    assert trim_line(line, lambda x, y: 1 if x == 2 else 0) == [(2, 0)]


def test_trim_all_white_line():
    line = [(x, 0) for x in range(4)]
    assert trim_line(line, lambda x, y: 0) is None
    assert trim_line([], lambda x, y: 0) is None
