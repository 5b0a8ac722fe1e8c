"""CSV logging utilities for rasterization runs.

Provides CSVLogger class for tracking run events with timing and
throughput metrics, one row per header/chunk/done event.
"""

from __future__ import annotations
import csv
import time
from datetime import datetime
from pathlib import Path
from typing import Optional


class CSVLogger:
    """Logs run events to CSV file with timing and throughput metrics.

    CSV Format:
        run_start, timestamp, elapsed_s, phase, event, duration_ms,
        bytes_emitted, cumulative_bytes, throughput_kbps, percent,
        lines, state

    Usage:
        with CSVLogger("path/to/run.csv") as csv_logger:
            for event in rasterizer.rasterize(csv_logger=csv_logger):
                ...
    """

    COLUMNS = [
        "run_start",
        "timestamp",
        "elapsed_s",
        "phase",
        "event",
        "duration_ms",
        "bytes_emitted",
        "cumulative_bytes",
        "throughput_kbps",
        "percent",
        "lines",
        "state",
    ]

    def __init__(self, csv_path: str):
        """Initialize CSV logger.

        Args:
            csv_path: Path to CSV file (will be created/overwritten)
        """
        self.csv_path = Path(csv_path)
        self.csv_file = open(self.csv_path, "w", newline="")
        self.csv_writer = csv.writer(self.csv_file)
        self.csv_writer.writerow(self.COLUMNS)

        self.start_time = time.time()
        self.run_start_str = datetime.fromtimestamp(self.start_time).strftime("%Y-%m-%d %H:%M:%S")
        self.cumulative_bytes = 0

    def log_event(
        self,
        phase: str,
        event: str,
        duration_ms: float,
        bytes_emitted: int = 0,
        percent: Optional[int] = None,
        lines: int = 0,
        state: str = "ACTIVE",
    ):
        """Log one run event.

        Args:
            phase: Event kind (header, gcode, done, error)
            event: Event label (HEADER, CHUNK n, DONE, exception name)
            duration_ms: Time since the previous event in milliseconds
            bytes_emitted: Characters of G-code text carried by the event
            percent: Progress percentage (0-100)
            lines: Command lines carried by the event
            state: ACTIVE, COMPLETE or ERROR
        """
        self.cumulative_bytes += bytes_emitted
        throughput_kbps = (bytes_emitted / 1024) / (duration_ms / 1000) if duration_ms > 0 else 0
        elapsed_s = time.time() - self.start_time
        now_str = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        self.csv_writer.writerow(
            [
                self.run_start_str,
                now_str,
                f"{elapsed_s:.3f}",
                phase,
                event,
                f"{duration_ms:.0f}",
                bytes_emitted,
                self.cumulative_bytes,
                f"{throughput_kbps:.2f}",
                percent if percent is not None else "",
                lines,
                state,
            ]
        )
        self.csv_file.flush()

    def close(self):
        if self.csv_file and not self.csv_file.closed:
            self.csv_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
