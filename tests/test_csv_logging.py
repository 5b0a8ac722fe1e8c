"""Tests for CSV logging integration."""

import csv

from PIL import Image

from rasterizer.csv_logger import CSVLogger
from rasterizer.driver import Rasterizer


def read_rows(path):
    with open(path, "r") as f:
        return list(csv.DictReader(f))


def test_csv_logger_basic(tmp_path):
    csv_path = tmp_path / "test.csv"

    with CSVLogger(str(csv_path)) as logger:
        logger.log_event(phase="gcode", event="CHUNK 1", duration_ms=100.5, bytes_emitted=10, percent=50, lines=2)

    rows = read_rows(csv_path)
    assert len(rows) == 1
    assert rows[0]["phase"] == "gcode"
    assert rows[0]["event"] == "CHUNK 1"
    assert rows[0]["bytes_emitted"] == "10"
    assert rows[0]["percent"] == "50"
    assert rows[0]["lines"] == "2"
    assert rows[0]["state"] == "ACTIVE"


def test_csv_logger_cumulative_bytes(tmp_path):
    csv_path = tmp_path / "test.csv"

    with CSVLogger(str(csv_path)) as logger:
        logger.log_event(phase="gcode", event="OP1", duration_ms=10, bytes_emitted=100)
        logger.log_event(phase="gcode", event="OP2", duration_ms=10, bytes_emitted=50)
        logger.log_event(phase="gcode", event="OP3", duration_ms=0, bytes_emitted=25)

    rows = read_rows(csv_path)
    assert [int(r["cumulative_bytes"]) for r in rows] == [100, 150, 175]
    assert rows[2]["throughput_kbps"] == "0.00"
    assert rows[2]["percent"] == ""


def test_rasterize_with_csv_logging(tmp_path):
    csv_path = tmp_path / "run.csv"
    r = Rasterizer()
    r.load_image(Image.new("RGB", (3, 2), "black"))

    with CSVLogger(str(csv_path)) as logger:
        events = list(r.rasterize(csv_logger=logger))

    rows = read_rows(csv_path)
    assert len(rows) == len(events) == 4
    assert [row["phase"] for row in rows] == ["header", "gcode", "gcode", "done"]
    assert [row["event"] for row in rows] == ["HEADER", "CHUNK 1", "CHUNK 2", "DONE"]
    assert rows[-1]["state"] == "COMPLETE"
    assert int(rows[-1]["cumulative_bytes"]) == r.summary.bytes
