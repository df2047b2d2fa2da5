"""OCR engine contract and the Tesseract-backed implementation.

The scanner talks to OCR through four steps, always in this order:

  prepare_input(pixels, dimensions) -> PreparedInput
  detect_words(prepared)            -> list[WordBox]
  find_text_lines(prepared, words)  -> list[LineBox]
  recognize_text(prepared, lines)   -> list[Optional[str]]   (one per line box)

``TesseractEngine`` is built once by ``load_engine()`` and shared by every
worker. It is a frozen dataclass and holds no per-call state, so concurrent
calls from several threads need no locking.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence

import pytesseract
from PIL import Image
from pytesseract import Output

from evileye.constants import (
    DEFAULT_OCR_CALL_TIMEOUT_S,
    LINE_CROP_PADDING,
    MODEL_SUFFIX,
)
from evileye.utils.logger import get_logger

logger = get_logger(__name__)

# Tesseract page segmentation modes
_DETECTION_PSM: int = 1    # automatic segmentation with orientation/script detection
_RECOGNITION_PSM: int = 7  # treat the image as a single text line

# image_to_data() row level for individual words
_WORD_LEVEL: int = 5

# Name Tesseract expects for the orientation/script detection model
_DETECTION_MODEL_STEM: str = "osd"


class EngineLoadError(Exception):
    """A model file or the OCR runtime is unavailable. Fatal at startup."""


# ─── Engine data types ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class PreparedInput:
    """Grayscale image ready for detection and recognition."""

    image: Image.Image
    width: int
    height: int


@dataclass(frozen=True)
class WordBox:
    left: int
    top: int
    width: int
    height: int
    block: int
    paragraph: int
    line: int
    confidence: float = -1.0


@dataclass(frozen=True)
class LineBox:
    left: int
    top: int
    width: int
    height: int
    word_count: int = 1

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height


class OcrEngine(Protocol):
    """Capability the Text Extractor needs from an OCR backend."""

    def prepare_input(self, pixels: bytes, dimensions: tuple[int, int]) -> PreparedInput:
        ...

    def detect_words(self, prepared: PreparedInput) -> list[WordBox]:
        ...

    def find_text_lines(self, prepared: PreparedInput, words: Sequence[WordBox]) -> list[LineBox]:
        ...

    def recognize_text(self, prepared: PreparedInput, lines: Sequence[LineBox]) -> list[Optional[str]]:
        ...


# ─── Shared helpers ──────────────────────────────────────────────────────────


def prepare_rgb_input(pixels: bytes, dimensions: tuple[int, int]) -> PreparedInput:
    """Rebuild a grayscale image from an RGB8 buffer.

    Raises:
        ValueError: Non-positive dimensions or a buffer whose size does not
            match ``width * height * 3``.
    """
    width, height = dimensions
    if width <= 0 or height <= 0:
        raise ValueError(f"invalid image dimensions {width}x{height}")
    expected = width * height * 3
    if len(pixels) != expected:
        raise ValueError(
            f"pixel buffer has {len(pixels)} bytes, expected {expected} for {width}x{height} RGB"
        )
    image = Image.frombytes("RGB", (width, height), pixels).convert("L")
    return PreparedInput(image=image, width=width, height=height)


def group_words_into_lines(words: Sequence[WordBox]) -> list[LineBox]:
    """Group word boxes sharing (block, paragraph, line) into line boxes.

    Lines keep the reading order in which their first word was detected.
    Each line box is the union of its word boxes.
    """
    grouped: dict[tuple[int, int, int], list[WordBox]] = {}
    for word in words:
        grouped.setdefault((word.block, word.paragraph, word.line), []).append(word)

    lines: list[LineBox] = []
    for members in grouped.values():
        left = min(w.left for w in members)
        top = min(w.top for w in members)
        right = max(w.left + w.width for w in members)
        bottom = max(w.top + w.height for w in members)
        lines.append(
            LineBox(left=left, top=top, width=right - left, height=bottom - top, word_count=len(members))
        )
    return lines


# ─── Tesseract engine ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TesseractEngine:
    """Tesseract via pytesseract, with models read from ``tessdata_dir``.

    Fields:
        tessdata_dir:   Directory holding both model files.
        language:       Recognition model name (``eng`` for ``eng.traineddata``).
        call_timeout_s: Per-call budget; Tesseract is killed when exceeded.
                        ``0`` disables the limit.
    """

    tessdata_dir: Path
    language: str
    call_timeout_s: float = DEFAULT_OCR_CALL_TIMEOUT_S

    def _config(self, psm: int) -> str:
        return f'--tessdata-dir "{self.tessdata_dir}" --psm {psm}'

    def prepare_input(self, pixels: bytes, dimensions: tuple[int, int]) -> PreparedInput:
        return prepare_rgb_input(pixels, dimensions)

    def detect_words(self, prepared: PreparedInput) -> list[WordBox]:
        data = pytesseract.image_to_data(
            prepared.image,
            lang=self.language,
            config=self._config(_DETECTION_PSM),
            output_type=Output.DICT,
            timeout=self.call_timeout_s,
        )
        words: list[WordBox] = []
        for i, level in enumerate(data["level"]):
            if int(level) != _WORD_LEVEL or not str(data["text"][i]).strip():
                continue
            words.append(
                WordBox(
                    left=int(data["left"][i]),
                    top=int(data["top"][i]),
                    width=int(data["width"][i]),
                    height=int(data["height"][i]),
                    block=int(data["block_num"][i]),
                    paragraph=int(data["par_num"][i]),
                    line=int(data["line_num"][i]),
                    confidence=float(data["conf"][i]),
                )
            )
        return words

    def find_text_lines(self, prepared: PreparedInput, words: Sequence[WordBox]) -> list[LineBox]:
        return group_words_into_lines(words)

    def recognize_text(self, prepared: PreparedInput, lines: Sequence[LineBox]) -> list[Optional[str]]:
        texts: list[Optional[str]] = []
        for line in lines:
            box = (
                max(0, line.left - LINE_CROP_PADDING),
                max(0, line.top - LINE_CROP_PADDING),
                min(prepared.width, line.right + LINE_CROP_PADDING),
                min(prepared.height, line.bottom + LINE_CROP_PADDING),
            )
            if box[2] <= box[0] or box[3] <= box[1]:
                texts.append(None)
                continue
            text = pytesseract.image_to_string(
                prepared.image.crop(box),
                lang=self.language,
                config=self._config(_RECOGNITION_PSM),
                timeout=self.call_timeout_s,
            ).strip()
            texts.append(text or None)
        return texts


# ─── Startup ─────────────────────────────────────────────────────────────────


def _load_model_file(path: Path) -> None:
    """Check that a model file exists, is readable and is not empty."""
    if path.suffix != MODEL_SUFFIX:
        raise EngineLoadError(f"model file {path} must have the {MODEL_SUFFIX} suffix")
    try:
        with open(path, "rb") as fh:
            header = fh.read(64)
    except OSError as exc:
        raise EngineLoadError(f"cannot load model {path}: {exc}") from exc
    if not header:
        raise EngineLoadError(f"model file {path} is empty")


def load_engine(
    base_dir: str,
    detection_model: str,
    recognition_model: str,
    call_timeout_s: float = DEFAULT_OCR_CALL_TIMEOUT_S,
) -> TesseractEngine:
    """Load both models and build the shared engine.

    Called once at startup, before any scanning. Both model files are
    resolved against ``base_dir``, which is also handed to Tesseract as its
    tessdata directory.

    Args:
        base_dir:          Directory containing the model files (``~`` expanded).
        detection_model:   Detection model file name (``osd.traineddata``).
        recognition_model: Recognition model file name (e.g. ``eng.traineddata``).
        call_timeout_s:    Per-call OCR timeout passed to the engine.

    Returns:
        Ready-to-share TesseractEngine.

    Raises:
        EngineLoadError: Missing, unreadable or misnamed model file, or the
            Tesseract runtime cannot be found.
    """
    tessdata_dir = Path(base_dir).expanduser()
    detection_path = tessdata_dir / detection_model
    recognition_path = tessdata_dir / recognition_model

    _load_model_file(detection_path)
    if detection_path.stem != _DETECTION_MODEL_STEM:
        raise EngineLoadError(
            f"detection model must be named {_DETECTION_MODEL_STEM}{MODEL_SUFFIX}, got {detection_path.name}"
        )
    _load_model_file(recognition_path)

    try:
        version = pytesseract.get_tesseract_version()
    except (pytesseract.TesseractNotFoundError, OSError) as exc:
        raise EngineLoadError(f"Tesseract runtime unavailable: {exc}") from exc

    engine = TesseractEngine(
        tessdata_dir=tessdata_dir,
        language=recognition_path.stem,
        call_timeout_s=call_timeout_s,
    )
    logger.info(
        "OCR engine loaded",
        tesseract_version=str(version),
        tessdata_dir=str(tessdata_dir),
        detection_model=detection_path.name,
        recognition_model=recognition_path.name,
    )
    return engine
