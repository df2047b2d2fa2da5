"""Text Extractor: one candidate image to one cleaned text blob.

Stages run strictly in order: decode → prepare → detect words → group lines
→ recognize lines. Each stage's failure is raised as ``ExtractionError``
tagged with the stage; the pipeline turns it into a ``ScanFailure``.

An image without usable text is NOT an error: it yields an empty blob.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from evileye.constants import LINE_SEPARATOR, MAX_NOISE_LINE_LENGTH
from evileye.models.outcome import ScanStage
from evileye.ocr.decode import DecodedImage, DecodeError, decode_image
from evileye.ocr.engine import OcrEngine

Decoder = Callable[[Union[str, Path]], DecodedImage]
StopCheck = Callable[[], bool]


class ExtractionError(Exception):
    """An extraction stage failed for one image."""

    def __init__(self, stage: ScanStage, message: str) -> None:
        super().__init__(message)
        self.stage = stage
        self.message = message


@dataclass(frozen=True)
class ExtractedText:
    """Recognized lines for one image, noise already removed."""

    lines: tuple[str, ...] = ()

    @property
    def text(self) -> str:
        return LINE_SEPARATOR.join(self.lines)


def clean_lines(recognized: Iterable[Optional[str]]) -> list[str]:
    """Drop unrecognized lines and single-character noise, keeping order."""
    return [line for line in recognized if line and len(line) > MAX_NOISE_LINE_LENGTH]


def _check_stop(should_stop: Optional[StopCheck]) -> None:
    if should_stop is not None and should_stop():
        raise ExtractionError(ScanStage.CANCELLED, "scan stopped before completion")


def extract_text(
    path: Union[str, Path],
    engine: OcrEngine,
    decoder: Decoder = decode_image,
    should_stop: Optional[StopCheck] = None,
) -> ExtractedText:
    """Run OCR over one image.

    Args:
        path:        Candidate image path.
        engine:      Shared OCR engine (read-only).
        decoder:     Image decode capability.
        should_stop: Polled between stages; when it returns True the image is
                     abandoned with ``ScanStage.CANCELLED``.

    Raises:
        ExtractionError: Tagged DECODE, PREPARE, OCR or CANCELLED.
    """
    _check_stop(should_stop)
    try:
        decoded = decoder(path)
    except DecodeError as exc:
        raise ExtractionError(ScanStage.DECODE, str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        raise ExtractionError(ScanStage.DECODE, f"{type(exc).__name__}: {exc}") from exc

    _check_stop(should_stop)
    try:
        prepared = engine.prepare_input(decoded.pixels, decoded.dimensions)
    except Exception as exc:  # noqa: BLE001
        raise ExtractionError(ScanStage.PREPARE, f"{type(exc).__name__}: {exc}") from exc

    try:
        _check_stop(should_stop)
        words = engine.detect_words(prepared)
        _check_stop(should_stop)
        lines = engine.find_text_lines(prepared, words)
        _check_stop(should_stop)
        recognized = engine.recognize_text(prepared, lines)
    except ExtractionError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise ExtractionError(ScanStage.OCR, f"{type(exc).__name__}: {exc}") from exc

    return ExtractedText(lines=tuple(clean_lines(recognized)))
