import pytest
from rasterizer import protocol
from rasterizer.protocol import EventKind, OutputEvent
from rasterizer.transport import MockChannel, QueueChannel


def test_message_wire_form():
    assert protocol.parse_message().to_dict() == {"type": "parse"}
    msg = protocol.add_cell_message(1, 2, b"\x00" * 4)
    assert msg.to_dict() == {"type": "addCell", "data": {"x": 1, "y": 2, "buffer": b"\x00" * 4}}


def test_header_event():
    event = OutputEvent.from_message(protocol.gcode_message("; hi", 0, header=True))
    assert event == OutputEvent(EventKind.HEADER, "; hi", 0)
    assert not event.is_done


def test_gcode_and_done_events():
    assert OutputEvent.from_message(protocol.gcode_message("G1", 40)).kind is EventKind.GCODE
    done = OutputEvent.from_message(protocol.done_message())
    assert done.is_done
    assert done.percent == 100


def test_non_output_message_rejected():
    with pytest.raises(protocol.ProtocolError):
        OutputEvent.from_message(protocol.parse_message())


def test_raise_for_error_reraises_carried_exception():
    exc = protocol.PixelRangeError("Out of range: x = 5")
    with pytest.raises(protocol.PixelRangeError) as info:
        protocol.raise_for_error(protocol.error_message(exc))
    assert info.value is exc


def test_raise_for_error_without_exception():
    with pytest.raises(protocol.RasterError, match="boom"):
        protocol.raise_for_error(protocol.Message(protocol.ERROR, {"message": "boom"}))
    # non-error messages pass through
    protocol.raise_for_error(protocol.done_message())


def test_queue_channel_fifo_and_close():
    ch = QueueChannel()
    ch.post(protocol.init_message({}))
    ch.post(protocol.parse_message())
    assert ch.receive(timeout=0.1).type == protocol.INIT
    assert ch.receive(timeout=0.1).type == protocol.PARSE
    assert ch.receive(timeout=0.01) is None
    ch.close()
    assert ch.closed
    assert ch.receive(timeout=0.1) is None
    with pytest.raises(RuntimeError):
        ch.post(protocol.parse_message())


def test_mock_channel_records():
    ch = MockChannel()
    ch.post(protocol.done_message())
    assert ch.types == ["done"]
    assert ch.receive().type == "done"
    assert ch.receive() is None
    assert len(ch.messages) == 1
