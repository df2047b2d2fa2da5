"""Pipeline Coordinator: bounded fan-out of candidate images to OCR workers.

Each candidate is driven through the Text Extractor and then the Secret
Detector inside a ThreadPoolExecutor slot. The asyncio side owns the work
queue, per-image deadlines, cancellation and outcome collection.

INVARIANTS:
  - ``run()`` returns exactly one ``ScanOutcome`` per input candidate.
  - A per-image failure is converted to ``ScanFailure`` and NEVER propagates;
    sibling images are unaffected.
  - At most ``workers`` images are in flight at any time. A timed-out image
    keeps its worker slot until its thread returns, so the deadline of the
    next image never includes time spent waiting for a thread.
  - The engine and detector are shared read-only by all workers.
  - Outcomes are collected on the event loop thread only (no shared mutable
    state is touched from worker threads).
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional, Sequence

from evileye.constants import DEFAULT_IMAGE_TIMEOUT_S, DEFAULT_SLOW_IMAGE_MS
from evileye.models.outcome import ScanFailure, ScanOutcome, ScanStage, ScanSuccess
from evileye.ocr.decode import decode_image
from evileye.ocr.engine import OcrEngine
from evileye.scanner.detector import SecretDetector, SecretMatch
from evileye.scanner.extractor import Decoder, ExtractionError, StopCheck, extract_text
from evileye.utils.logger import PerformanceLogger, get_logger
from evileye.utils.stats import LatencyTracker

logger = get_logger(__name__)

OutcomeCallback = Callable[[ScanOutcome], None]


def default_worker_count() -> int:
    """Hardware parallelism, at least 1."""
    return os.cpu_count() or 1


def _process_image(
    path: Path,
    engine: OcrEngine,
    detector: SecretDetector,
    decoder: Decoder,
    should_stop: StopCheck,
) -> tuple[str, Optional[SecretMatch]]:
    """Worker-thread body: extract, then check for secrets."""
    extracted = extract_text(path, engine, decoder=decoder, should_stop=should_stop)
    text = extracted.text
    return text, detector.find(text)


class ScanPipeline:
    """Bounded worker pool that turns candidate paths into outcomes.

    Args:
        engine:          Shared OCR engine, built once before the run.
        detector:        Shared secret detector (defaults to the fixed pattern set).
        workers:         Maximum images processed concurrently.
        image_timeout_s: Per-image deadline; None disables it.
        slow_image_ms:   Images slower than this are logged at WARNING.
        decoder:         Image decode capability (injectable for tests).
        cancel_event:    When set, no further images are dispatched.
    """

    def __init__(
        self,
        engine: OcrEngine,
        detector: Optional[SecretDetector] = None,
        workers: Optional[int] = None,
        image_timeout_s: Optional[float] = DEFAULT_IMAGE_TIMEOUT_S,
        slow_image_ms: float = DEFAULT_SLOW_IMAGE_MS,
        decoder: Decoder = decode_image,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        if workers is not None and workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self._engine = engine
        self._detector = detector or SecretDetector()
        self._workers = workers or default_worker_count()
        self._image_timeout_s = image_timeout_s
        self._slow_image_ms = slow_image_ms
        self._decoder = decoder
        self._cancel = cancel_event or threading.Event()
        self.latency = LatencyTracker()

    @property
    def workers(self) -> int:
        return self._workers

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    def cancel(self) -> None:
        """Stop dispatching new images; in-flight images stop at their next stage."""
        if not self._cancel.is_set():
            logger.warning("Scan cancellation requested")
        self._cancel.set()

    async def run(
        self,
        candidates: Sequence[Path],
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> list[ScanOutcome]:
        """Scan every candidate and return one outcome per candidate.

        Outcomes are appended (and passed to ``on_outcome``) in completion
        order, not input order.
        """
        outcomes: list[ScanOutcome] = []
        if not candidates:
            return outcomes

        queue: asyncio.Queue[Path] = asyncio.Queue()
        for candidate in candidates:
            queue.put_nowait(candidate)

        slots = min(self._workers, len(candidates))
        logger.info("Scan started", images=len(candidates), workers=slots)

        executor = ThreadPoolExecutor(max_workers=slots, thread_name_prefix="evileye-ocr")
        try:
            async def worker() -> None:
                while True:
                    try:
                        path = queue.get_nowait()
                    except asyncio.QueueEmpty:
                        return
                    outcome, abandoned = await self._scan_one(path, executor)
                    outcomes.append(outcome)
                    if on_outcome is not None:
                        on_outcome(outcome)
                    if abandoned is not None:
                        # The slot's thread is still busy; hold the slot until it returns.
                        await self._release(abandoned, path)

            await asyncio.gather(*(worker() for _ in range(slots)))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            "Scan finished",
            images=len(outcomes),
            failed=sum(1 for o in outcomes if not o.ok),
            avg_ms=round(self.latency.avg_ms, 1),
        )
        return outcomes

    async def _scan_one(
        self, path: Path, executor: ThreadPoolExecutor
    ) -> tuple[ScanOutcome, Optional[asyncio.Future]]:
        """Scan a single image. NEVER raises.

        Returns the outcome plus, when the image timed out, the future of the
        call that is still running in the slot's thread.
        """
        if self._cancel.is_set():
            return ScanFailure(path=path, stage=ScanStage.CANCELLED, message="scan cancelled before start"), None

        log = logger.bind(path=str(path))
        abort = threading.Event()

        def should_stop() -> bool:
            return abort.is_set() or self._cancel.is_set()

        # Run in a copy of the current context so the run_id reaches worker-thread logs.
        call = functools.partial(
            contextvars.copy_context().run,
            _process_image,
            path,
            self._engine,
            self._detector,
            self._decoder,
            should_stop,
        )
        # Each worker submits only once its previous call has returned, so the
        # call starts immediately and the deadline covers run time only.
        future = asyncio.get_running_loop().run_in_executor(executor, call)
        abandoned: Optional[asyncio.Future] = None
        result: Optional[tuple[str, Optional[SecretMatch]]] = None
        failure: Optional[ScanFailure] = None

        with PerformanceLogger("image scan", logger=log, slow_ms=self._slow_image_ms) as perf:
            try:
                result = await asyncio.wait_for(asyncio.shield(future), timeout=self._image_timeout_s)
            except ExtractionError as exc:
                failure = ScanFailure(path=path, stage=exc.stage, message=exc.message)
            except asyncio.TimeoutError:
                abort.set()
                abandoned = future
                failure = ScanFailure(
                    path=path,
                    stage=ScanStage.TIMEOUT,
                    message=f"image not processed within {self._image_timeout_s}s",
                )
            except Exception as exc:  # noqa: BLE001
                log.critical(
                    "Unhandled error while scanning image",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=True,
                )
                failure = ScanFailure(
                    path=path,
                    stage=ScanStage.INTERNAL,
                    message=f"{type(exc).__name__}: {exc}",
                )

        if failure is not None:
            log.warning("Image scan failed", stage=failure.stage.value, error=failure.message)
            return failure, abandoned

        assert result is not None
        text, match = result
        self.latency.record(perf.duration_ms)
        return ScanSuccess(
            path=path,
            text=text,
            has_secret=match is not None,
            rule=match.slug if match is not None else None,
            duration_ms=perf.duration_ms,
        ), None

    async def _release(self, abandoned: asyncio.Future, path: Path) -> None:
        """Wait for a timed-out call to leave its thread.

        The call was told to stop and exits at its next stage check; a call
        stuck inside the OCR engine is bounded by the engine's own call timeout.
        """
        logger.debug("Waiting for timed-out image to release its worker", path=str(path))
        try:
            await abandoned
        except Exception as exc:  # noqa: BLE001
            logger.debug(
                "Timed-out image finished",
                path=str(path),
                error_type=type(exc).__name__,
            )
