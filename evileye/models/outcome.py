"""Per-image scan outcomes.

Every candidate image that enters the pipeline produces exactly one outcome:
either ``ScanSuccess`` (text extracted, secret verdict attached) or
``ScanFailure`` (the stage that failed and a message). Failures are data,
never exceptions, so one bad image cannot cancel its siblings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union


class ScanStage(str, Enum):
    """Stage at which an image failed."""

    DECODE = "decode"
    PREPARE = "prepare"
    OCR = "ocr"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ScanSuccess:
    """Text was extracted and checked for secrets.

    Fields:
        path:        Candidate image path as discovered.
        text:        Cleaned text blob (may be empty; absence of text is not an error).
        has_secret:  Secret Detector verdict.
        rule:        Slug of the pattern that fired, None when has_secret is False.
        duration_ms: Wall time spent on this image.
    """

    path: Path
    text: str
    has_secret: bool
    rule: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ScanFailure:
    """The image could not be processed."""

    path: Path
    stage: ScanStage
    message: str

    @property
    def ok(self) -> bool:
        return False


ScanOutcome = Union[ScanSuccess, ScanFailure]
