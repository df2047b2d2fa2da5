"""Root test configuration for evileye.

Isolates every test from the developer's own config files and EVILEYE_*
environment, and provides fakes for the OCR capability so the suite never
needs a real Tesseract install.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence, Union

import pytest
import structlog
from PIL import Image

from evileye.ocr.decode import DecodedImage, DecodeError
from evileye.ocr.engine import (
    LineBox,
    PreparedInput,
    WordBox,
    group_words_into_lines,
    prepare_rgb_input,
)
from evileye.utils.logger import clear_run_id

Recognized = Union[Sequence[Optional[str]], Callable[[PreparedInput], Sequence[Optional[str]]]]


class FakeEngine:
    """In-process stand-in for the OCR engine.

    ``recognized`` is either a fixed list of per-line results or a callable
    deriving them from the prepared input (e.g. keyed on image width).
    ``fail_at`` names a stage ("prepare", "detect", "group", "recognize")
    that raises. ``delay_s`` sleeps inside detection, either a fixed number of
    seconds or a callable deriving it from the prepared input. The sleep does
    not poll for cancellation. Tracks the peak number of concurrent detection
    calls and how many are running right now.
    """

    def __init__(
        self,
        recognized: Recognized = ("Hello world",),
        fail_at: Optional[str] = None,
        delay_s: Union[float, Callable[[PreparedInput], float]] = 0.0,
    ) -> None:
        self.recognized = recognized
        self.fail_at = fail_at
        self.delay_s = delay_s
        self.calls = 0
        self.peak_concurrency = 0
        self._active = 0
        self._lock = threading.Lock()

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    def _lines_for(self, prepared: PreparedInput) -> list[Optional[str]]:
        if callable(self.recognized):
            return list(self.recognized(prepared))
        return list(self.recognized)

    def prepare_input(self, pixels: bytes, dimensions: tuple[int, int]) -> PreparedInput:
        if self.fail_at == "prepare":
            raise ValueError("bad pixel buffer")
        return prepare_rgb_input(pixels, dimensions)

    def detect_words(self, prepared: PreparedInput) -> list[WordBox]:
        with self._lock:
            self.calls += 1
            self._active += 1
            self.peak_concurrency = max(self.peak_concurrency, self._active)
        try:
            delay = self.delay_s(prepared) if callable(self.delay_s) else self.delay_s
            if delay:
                time.sleep(delay)
            if self.fail_at == "detect":
                raise RuntimeError("detection model exploded")
            return [
                WordBox(left=0, top=i * 10, width=5, height=8, block=1, paragraph=1, line=i + 1)
                for i, _ in enumerate(self._lines_for(prepared))
            ]
        finally:
            with self._lock:
                self._active -= 1

    def find_text_lines(self, prepared: PreparedInput, words: Sequence[WordBox]) -> list[LineBox]:
        if self.fail_at == "group":
            raise RuntimeError("line grouping failed")
        return group_words_into_lines(words)

    def recognize_text(self, prepared: PreparedInput, lines: Sequence[LineBox]) -> list[Optional[str]]:
        if self.fail_at == "recognize":
            raise RuntimeError("recognition failed")
        return self._lines_for(prepared)


def _fake_decoder(fail_for: Iterable[Union[str, Path]] = (), width: Callable[[Path], int] = lambda p: 2):
    failing = {Path(p) for p in fail_for}

    def decode(path: Union[str, Path]) -> DecodedImage:
        path = Path(path)
        if path in failing:
            raise DecodeError(f"cannot identify image file {path}")
        w = width(path)
        return DecodedImage(width=w, height=2, pixels=bytes(w * 2 * 3))

    return decode


@pytest.fixture(autouse=True)
def isolate_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ignore any real ~/.evileye or ./.evileye config and EVILEYE_* env vars."""
    monkeypatch.setattr("evileye.config.DEFAULT_CONFIG_PATHS", [])
    for name in ("EVILEYE_CONFIG", "EVILEYE_WORKERS", "EVILEYE_MODEL_DIR", "EVILEYE_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo logging setup done by the code under test.

    ``run.main`` points structlog at the sys.stderr of the running test, which
    pytest closes once that test ends.
    """
    saved = structlog.get_config()
    yield
    structlog.configure(**saved)
    clear_run_id()


@pytest.fixture
def make_engine() -> type[FakeEngine]:
    return FakeEngine


@pytest.fixture
def make_decoder():
    """Factory: ``make_decoder(fail_for=[paths], width=fn)`` → decoder callable."""
    return _fake_decoder


@pytest.fixture
def write_image() -> Callable[..., Path]:
    """Write a small real image file and return its path."""

    def _write(path: Path, size: tuple[int, int] = (8, 8), fmt: Optional[str] = None, mode: str = "RGB") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new(mode, size, color=0).save(path, format=fmt)
        return path

    return _write
