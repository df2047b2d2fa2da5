"""Latency statistics for the end-of-run summary.

Provides ``LatencyTracker``: the average over every recorded scan duration,
and a p99 over a bounded window of the most recent samples, so very large
runs do not keep unbounded history.
"""

from __future__ import annotations

from collections import deque


class LatencyTracker:
    """Per-image scan durations.

    ``avg_ms`` and ``count`` cover every sample recorded. ``p99_ms`` covers
    only the last *window* samples.

    Thread-safety:
        Safe for single-threaded asyncio use (all access from the event loop).
        NOT safe for concurrent OS-thread access (not needed here).

    Args:
        window: Maximum number of samples retained for the p99.
    """

    def __init__(self, window: int = 1000) -> None:
        self._times: deque[float] = deque(maxlen=window)
        self._total_ms = 0.0
        self._count = 0

    def record(self, duration_ms: float) -> None:
        """Add a latency sample; the oldest leaves the p99 window when it is full."""
        self._times.append(duration_ms)
        self._total_ms += duration_ms
        self._count += 1

    @property
    def window(self) -> int:
        return self._times.maxlen or 0

    @property
    def windowed(self) -> bool:
        """True once older samples have been evicted from the p99 window."""
        return self._count > len(self._times)

    @property
    def avg_ms(self) -> float:
        """Arithmetic mean of all samples, 0.0 when empty."""
        if not self._count:
            return 0.0
        return self._total_ms / self._count

    @property
    def p99_ms(self) -> float:
        """99th percentile of the samples in the window.

        Returns 0.0 when fewer than 10 samples are available (avoids misleading
        p99 values from tiny sample sets).
        """
        if len(self._times) < 10:
            return 0.0
        sorted_times = sorted(self._times)
        # Use floor index so we never go out-of-bounds
        idx = max(0, int(len(sorted_times) * 0.99) - 1)
        return sorted_times[idx]

    @property
    def count(self) -> int:
        """Number of samples recorded over the whole run."""
        return self._count
