"""Report Sink: human-readable scan report on stdout.

One block per outcome, printed as outcomes complete. Failures get an explicit
line naming the stage; no image is silently omitted.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Sequence, TextIO

from evileye.models.outcome import ScanFailure, ScanOutcome, ScanSuccess
from evileye.utils.stats import LatencyTracker

SEPARATOR = "-" * 35


class ReportPrinter:
    """Writes the scan report. Called from the event loop thread only."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream or sys.stdout

    def _write(self, line: str = "") -> None:
        print(line, file=self._stream, flush=True)

    def start(self, root: Path) -> None:
        self._write(f"Running evileye from {root}")

    def found(self, count: int) -> None:
        self._write(f"Number of found images: {count}")

    def __call__(self, outcome: ScanOutcome) -> None:
        self._write(f"Image Path: {outcome.path}")
        if isinstance(outcome, ScanFailure):
            self._write(f"Scan Failed ({outcome.stage.value}): {outcome.message}")
        else:
            self._write("Extracted Text:")
            self._write(outcome.text)
            self._write(f"Contains Secrets: {'true' if outcome.has_secret else 'false'}")
            if outcome.rule:
                self._write(f"Matched Rule: {outcome.rule}")
        self._write(SEPARATOR)

    def summary(self, outcomes: Sequence[ScanOutcome], latency: Optional[LatencyTracker] = None) -> None:
        failed = sum(1 for o in outcomes if not o.ok)
        flagged = sum(1 for o in outcomes if isinstance(o, ScanSuccess) and o.has_secret)
        line = f"Scanned {len(outcomes)} images: {flagged} with secrets, {failed} failed"
        if latency is not None and latency.count:
            line += f" (avg {latency.avg_ms:.1f} ms"
            if latency.p99_ms:
                line += f", p99 {latency.p99_ms:.1f} ms"
                if latency.windowed:
                    line += f" over last {latency.window}"
            line += ")"
        self._write(line)
