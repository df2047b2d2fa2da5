"""Unit tests for evileye/report.py and the latency tracker behind its summary."""

from __future__ import annotations

import io
from pathlib import Path

from evileye.models.outcome import ScanFailure, ScanStage, ScanSuccess
from evileye.report import SEPARATOR, ReportPrinter
from evileye.utils.stats import LatencyTracker


def _printer() -> tuple[ReportPrinter, io.StringIO]:
    stream = io.StringIO()
    return ReportPrinter(stream), stream


class TestReportPrinter:
    def test_header_and_count(self) -> None:
        printer, stream = _printer()
        printer.start(Path("/data/shots"))
        printer.found(0)
        assert stream.getvalue() == "Running evileye from /data/shots\nNumber of found images: 0\n"

    def test_success_block(self) -> None:
        printer, stream = _printer()
        printer(ScanSuccess(path=Path("/a.png"), text="Hello\nworld", has_secret=False))
        assert stream.getvalue().splitlines() == [
            "Image Path: /a.png",
            "Extracted Text:",
            "Hello",
            "world",
            "Contains Secrets: false",
            SEPARATOR,
        ]

    def test_secret_block_names_rule(self) -> None:
        printer, stream = _printer()
        printer(ScanSuccess(path=Path("/k.png"), text="password: x", has_secret=True, rule="password-assignment"))
        lines = stream.getvalue().splitlines()
        assert "Contains Secrets: true" in lines
        assert "Matched Rule: password-assignment" in lines

    def test_failure_block(self) -> None:
        printer, stream = _printer()
        printer(ScanFailure(path=Path("/bad.gif"), stage=ScanStage.DECODE, message="cannot identify image file"))
        assert stream.getvalue().splitlines() == [
            "Image Path: /bad.gif",
            "Scan Failed (decode): cannot identify image file",
            SEPARATOR,
        ]

    def test_summary(self) -> None:
        printer, stream = _printer()
        tracker = LatencyTracker()
        tracker.record(10.0)
        tracker.record(30.0)
        printer.summary(
            [
                ScanSuccess(path=Path("/1.png"), text="", has_secret=False),
                ScanSuccess(path=Path("/2.png"), text="token=x", has_secret=True, rule="token-assignment"),
                ScanFailure(path=Path("/3.png"), stage=ScanStage.TIMEOUT, message="slow"),
            ],
            tracker,
        )
        assert stream.getvalue() == "Scanned 3 images: 1 with secrets, 1 failed (avg 20.0 ms)\n"

    def test_summary_labels_windowed_p99(self) -> None:
        printer, stream = _printer()
        tracker = LatencyTracker(window=10)
        for _ in range(11):
            tracker.record(5.0)
        printer.summary([ScanSuccess(path=Path("/1.png"), text="", has_secret=False)], tracker)
        assert stream.getvalue() == (
            "Scanned 1 images: 0 with secrets, 0 failed (avg 5.0 ms, p99 5.0 ms over last 10)\n"
        )


class TestLatencyTracker:
    def test_empty(self) -> None:
        tracker = LatencyTracker()
        assert tracker.avg_ms == 0.0
        assert tracker.p99_ms == 0.0
        assert tracker.count == 0

    def test_p99_needs_ten_samples(self) -> None:
        tracker = LatencyTracker()
        for value in range(1, 10):
            tracker.record(float(value))
        assert tracker.p99_ms == 0.0
        tracker.record(10.0)
        assert tracker.p99_ms == 9.0

    def test_average_covers_whole_run(self) -> None:
        tracker = LatencyTracker(window=3)
        for value in (100.0, 1.0, 2.0, 3.0):
            tracker.record(value)
        assert tracker.count == 4
        assert tracker.avg_ms == 26.5
        assert tracker.windowed is True

    def test_p99_uses_recent_window(self) -> None:
        tracker = LatencyTracker(window=10)
        tracker.record(1000.0)
        for value in range(1, 11):
            tracker.record(float(value))
        assert tracker.p99_ms == 9.0
        assert tracker.avg_ms == 1055.0 / 11
