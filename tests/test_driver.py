import re
import threading

import pytest
from PIL import Image

from rasterizer import ConfigurationError, EventKind, Rasterizer, RasterSettings, RunCancelledError
from rasterizer.processing import ImageSize


def black_white():
    img = Image.new("RGB", (2, 1), "white")
    img.putpixel((0, 0), (0, 0, 0))
    return img


def burn_points(text):
    return re.findall(r"G1 X(\S+) Y(\S+)", text)


def test_rasterize_without_image():
    with pytest.raises(ConfigurationError, match="No image loaded"):
        Rasterizer().rasterize()


def test_load_image_requires_pillow_image():
    with pytest.raises(ConfigurationError):
        Rasterizer().load_image("logo.png")


def test_load_image_scales():
    r = Rasterizer(RasterSettings(ppi=127))
    size = r.load_image(Image.new("RGB", (30, 10), "white"))
    assert size == ImageSize(60, 20)
    assert r.ppm == pytest.approx(0.2)
    assert r.scale_ratio == pytest.approx(2.0)


def test_end_to_end_black_white():
    r = Rasterizer()
    r.load_image(black_white())
    events = list(r.rasterize())
    assert [e.kind for e in events] == [EventKind.HEADER, EventKind.GCODE, EventKind.DONE]
    assert events[1].text == "G0 X0.05 Y0.05 S0.0000\nG1 X0.05 Y0.05 S1.0000"
    assert events[1].percent == 0
    assert r.summary.chunks == 1
    assert r.summary.commands == 2
    assert r.summary.completed
    assert r.time is not None and r.time >= 0


def test_gcode_program():
    r = Rasterizer()
    r.load_image(black_white())
    program = r.gcode()
    assert program.startswith("; Generated by gcode-rasterizer - 1.0.0\n")
    assert "G1 F1500\n\nG0 X0.05 Y0.05 S0.0000\nG1 X0.05 Y0.05 S1.0000\n" in program
    assert program.endswith("S1.0000\n")


def test_white_image_produces_no_chunks():
    r = Rasterizer()
    r.load_image(Image.new("RGB", (5, 5), "white"))
    assert [e.kind for e in r.rasterize()] == [EventKind.HEADER, EventKind.DONE]


def test_multi_tile_run_covers_every_pixel():
    r = Rasterizer(RasterSettings(trim_line=False), buffer_size=4)
    r.load_image(Image.new("RGB", (10, 6), "black"))
    assert (r.grid_size.x, r.grid_size.y) == (3, 2)
    points = burn_points(r.gcode())
    assert len(points) == 60
    assert len(set(points)) == 60


def test_diagonal_run_covers_every_pixel():
    r = Rasterizer(RasterSettings(diagonal=True))
    r.load_image(Image.new("RGB", (3, 3), "black"))
    events = list(r.rasterize())
    points = [p for e in events for p in burn_points(e.text)]
    assert len(points) == 9
    assert len(set(points)) == 9
    percents = [e.percent for e in events if e.kind is EventKind.GCODE]
    assert percents == sorted(percents)


def test_percent_non_decreasing():
    r = Rasterizer()
    r.load_image(Image.new("RGB", (4, 7), "black"))
    percents = [e.percent for e in r.rasterize()]
    assert percents == sorted(percents)
    assert percents[-1] == 100


def test_cancelled_run_raises():
    cancel = threading.Event()
    cancel.set()
    r = Rasterizer()
    r.load_image(Image.new("RGB", (3, 3), "black"))
    kinds = []
    with pytest.raises(RunCancelledError):
        for event in r.rasterize(cancel_event=cancel):
            kinds.append(event.kind)
    assert EventKind.DONE not in kinds
    assert not r.summary.completed


def test_engine_error_propagates(monkeypatch):
    r = Rasterizer()
    r.load_image(black_white())
    data = r.init_data()
    data["ppi"] = "not a number"
    monkeypatch.setattr(r, "init_data", lambda: data)
    with pytest.raises(ConfigurationError):
        list(r.rasterize())


def test_abandoned_iteration_stops_worker():
    r = Rasterizer()
    r.load_image(Image.new("RGB", (20, 20), "black"))
    events = r.rasterize()
    assert next(events).kind is EventKind.HEADER
    events.close()
    assert not r.summary.completed
    assert r.time is not None


def test_init_data():
    r = Rasterizer(RasterSettings(smoothing=True))
    r.load_image(black_white())
    data = r.init_data()
    assert data["image_size"] == {"width": 2, "height": 1}
    assert data["grid_size"] == {"x": 1, "y": 1}
    assert data["buffer_size"] == 2048
    assert data["version"] == "1.0.0"
    assert data["smoothing"] is True


def test_bad_buffer_size():
    with pytest.raises(ConfigurationError):
        Rasterizer(buffer_size=0)
