import threading

import numpy as np
import pytest
from PIL import Image

from rasterizer import protocol
from rasterizer.driver import Rasterizer
from rasterizer.engine import EngineState, RasterEngine
from rasterizer.protocol import ProtocolError, RunCancelledError
from rasterizer.settings import RasterSettings
from rasterizer.transport import MockChannel


def producer_messages(image, settings=None, buffer_size=2048):
    r = Rasterizer(settings, buffer_size=buffer_size)
    r.load_image(image)
    return list(r.messages())


def feed(engine, messages):
    for message in messages:
        engine.handle(message)


def test_parse_before_init():
    engine = RasterEngine(MockChannel())
    with pytest.raises(ProtocolError):
        engine.handle(protocol.parse_message())


def test_add_cell_before_init():
    engine = RasterEngine(MockChannel())
    with pytest.raises(ProtocolError):
        engine.handle(protocol.add_cell_message(0, 0, np.zeros(4, dtype=np.uint8)))


def test_unknown_message():
    engine = RasterEngine(MockChannel())
    with pytest.raises(ProtocolError):
        engine.handle(protocol.Message("resize"))


def test_init_twice():
    messages = producer_messages(Image.new("RGB", (2, 2), "white"))
    engine = RasterEngine(MockChannel())
    engine.handle(messages[0])
    with pytest.raises(ProtocolError):
        engine.handle(messages[0])


def test_parse_with_missing_tiles():
    messages = producer_messages(Image.new("RGB", (6, 2), "white"), buffer_size=4)
    engine = RasterEngine(MockChannel())
    engine.handle(messages[0])
    engine.handle(messages[1])
    with pytest.raises(ProtocolError, match="missing"):
        engine.handle(messages[-1])


def test_event_order_and_header():
    out = MockChannel()
    engine = RasterEngine(out)
    feed(engine, producer_messages(Image.new("RGB", (10, 5), "black")))
    assert engine.state is EngineState.DONE
    assert out.types == ["gcode"] * 6 + ["done"]

    header = out.messages[0].data
    assert header["type"] == "header"
    assert header["percent"] == 0
    assert header["text"].splitlines() == [
        "; Generated by gcode-rasterizer - 1.0.0",
        "; Size       : 1 x 0.5 mm",
        "; Resolution : 0.1 PPM - 254 PPI",
        "; Beam size  : 0.1 mm",
        "; Beam range : 0 to 1",
        "; Beam power : 0 to 100 %",
        "; Feed rate  : 1500 mm/min",
        "; Options    : trim_line, burn_white, verbose_g",
        "",
        "G0 F1500",
        "G1 F1500",
    ]
    assert header["text"].endswith("G1 F1500\n")

    percents = [m.data["percent"] for m in out.messages[1:-1]]
    assert percents == [0, 20, 40, 60, 80]


def test_header_without_options():
    settings = RasterSettings(trim_line=False, burn_white=False, verbose_g=False)
    out = MockChannel()
    feed(RasterEngine(out), producer_messages(Image.new("RGB", (1, 1), "white"), settings))
    assert "; Options" not in out.messages[0].data["text"]


def test_messages_after_done_rejected():
    engine = RasterEngine(MockChannel())
    feed(engine, producer_messages(Image.new("RGB", (1, 1), "white")))
    with pytest.raises(ProtocolError):
        engine.handle(protocol.parse_message())


def test_white_image_only_header_and_done():
    out = MockChannel()
    feed(RasterEngine(out), producer_messages(Image.new("RGB", (4, 4), "white")))
    assert out.types == ["gcode", "done"]


def test_empty_image():
    out = MockChannel()
    feed(RasterEngine(out), producer_messages(Image.new("RGB", (1, 1), "white"), RasterSettings(beam_size=100)))
    assert out.types == ["gcode", "done"]


def test_run_reports_cancellation():
    inbox = MockChannel()
    for message in producer_messages(Image.new("RGB", (3, 3), "black")):
        inbox.post(message)
    cancel = threading.Event()
    cancel.set()
    out = MockChannel()
    RasterEngine(out, cancel_event=cancel).run(inbox)
    assert out.types == ["gcode", "error"]
    assert isinstance(out.messages[-1].data["exception"], RunCancelledError)


def test_run_reports_errors_and_stops():
    inbox = MockChannel()
    inbox.post(protocol.parse_message())
    inbox.post(protocol.init_message({}))
    out = MockChannel()
    RasterEngine(out).run(inbox)
    assert out.types == ["error"]
    assert isinstance(out.messages[0].data["exception"], ProtocolError)


def test_run_returns_when_inbox_empty():
    out = MockChannel()
    engine = RasterEngine(out)
    engine.run(MockChannel())
    assert engine.state is EngineState.IDLE
    assert out.types == []


def test_init_rejects_bad_payload():
    engine = RasterEngine(MockChannel())
    with pytest.raises(protocol.ConfigurationError):
        engine.handle(protocol.init_message({"image_size": {"width": -1, "height": 1}}))
    with pytest.raises(protocol.ConfigurationError):
        engine.handle(protocol.init_message(None))
