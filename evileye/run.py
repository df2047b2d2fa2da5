"""Command-line entry point for evileye.

Usage:
    evileye <root_path>
    python -m evileye.run <root_path>

Startup sequence:
  1. Parse arguments (``root_path`` only; anything else is a usage error).
  2. Load config and configure logging.
  3. Load both OCR models: failure is fatal before any scanning.
  4. Discover images, print the count, scan them, stream the report.

Exit codes: 0 on a completed run (secrets or per-image failures do not change
it), 1 on fatal startup errors, 2 on argument errors, 130 when interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
import threading
from pathlib import Path
from typing import Optional, Sequence

from evileye.config import Config, load_config
from evileye.ocr.engine import EngineLoadError, OcrEngine, load_engine
from evileye.report import ReportPrinter
from evileye.scanner.detector import SecretDetector
from evileye.scanner.locator import find_images
from evileye.scanner.pipeline import ScanPipeline
from evileye.utils.logger import clear_run_id, configure_logging, get_logger, set_run_id
from evileye.utils.ulid import generate_ulid

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evileye",
        description="Scan a directory tree for images whose text looks like a leaked credential.",
    )
    parser.add_argument("root_path", help="Directory to scan recursively.")
    return parser


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not Path(args.root_path).is_dir():
        parser.error(f"root_path is not a directory: {args.root_path}")
    return args


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, cancel: threading.Event) -> None:
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, cancel.set)
        except (NotImplementedError, RuntimeError) as exc:
            # Signal handlers need the main thread on a Unix event loop.
            logger.debug(
                "Signal cancellation unavailable",
                signal=signum.name,
                error_type=type(exc).__name__,
            )


async def scan(
    root: Path,
    config: Config,
    engine: OcrEngine,
    report: ReportPrinter,
    cancel: Optional[threading.Event] = None,
) -> int:
    """Discover, scan and report. Returns the process exit code."""
    cancel = cancel or threading.Event()
    _install_signal_handlers(asyncio.get_running_loop(), cancel)

    candidates = await asyncio.to_thread(find_images, root, config.scanner.discovery_workers)
    report.found(len(candidates))
    if not candidates:
        return EXIT_OK

    detector = SecretDetector(
        threshold=config.detector.similarity_threshold,
        exemplars=config.detector.exemplars,
    )
    pipeline = ScanPipeline(
        engine,
        detector=detector,
        workers=config.scanner.workers,
        image_timeout_s=config.scanner.image_timeout_s,
        slow_image_ms=config.scanner.slow_image_ms,
        cancel_event=cancel,
    )
    outcomes = await pipeline.run(candidates, on_outcome=report)
    report.summary(outcomes, pipeline.latency)
    return EXIT_INTERRUPTED if cancel.is_set() else EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Run evileye and exit with its status code.

    Raises:
        SystemExit: Always: carries the exit code.
    """
    args = parse_arguments(argv)
    config = load_config()
    configure_logging(config.logging.level, config.logging.json_output)

    run_id = generate_ulid()
    set_run_id(run_id)
    root = Path(args.root_path)
    report = ReportPrinter()
    report.start(root)

    try:
        engine = load_engine(
            config.models.base_dir,
            config.models.detection,
            config.models.recognition,
            call_timeout_s=config.scanner.ocr_call_timeout_s,
        )
    except EngineLoadError as exc:
        logger.error("OCR engine failed to load", error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_FATAL)

    try:
        code = asyncio.run(scan(root, config, engine, report))
    except KeyboardInterrupt:
        code = EXIT_INTERRUPTED
    finally:
        clear_run_id()
    raise SystemExit(code)


if __name__ == "__main__":
    main()
