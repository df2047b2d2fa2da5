"""Secret pattern set for the detector.

All patterns are pre-compiled at module load time using google-re2.
NO pattern compilation happens per-image, per-call, or lazily.
``SECRET_PATTERNS`` is a tuple of frozen entries: it is read-only and
shared by every worker without locking.

IMPORT RULES:
  - ``import re2`` ONLY: ``import re`` is PROHIBITED in this file and any evileye/scanner/ file.
"""

from __future__ import annotations

import re2  # google-re2: NOT stdlib re

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PatternEntry:
    """A single compiled secret pattern with metadata.

    Fields:
        pattern: Pre-compiled re2 pattern object. Compiled at module load time.
        slug:    Kebab-case name reported when this pattern fires.
    """
    pattern: Any           # re2._Regexp: pre-compiled at module load
    slug: str


# ===========================================================================
# SECRET PATTERNS
# COMPILED AT MODULE LOAD: evaluated in this order, first positive wins
# ===========================================================================

SECRET_PATTERNS: tuple[PatternEntry, ...] = (
    # ─── AWS access key id ───────────────────────────────────────────────
    PatternEntry(
        pattern=re2.compile(r'AKIA[0-9A-Z]{16}'),
        slug="aws-access-key-id",
    ),
    # ─── Generic assignments ─────────────────────────────────────────────
    PatternEntry(
        pattern=re2.compile(r'(?i)token\s*[:=]\s*\S+'),
        slug="token-assignment",
    ),
    PatternEntry(
        pattern=re2.compile(r'(?i)password\s*[:=]\s*\S+'),
        slug="password-assignment",
    ),
    # ─── npm ─────────────────────────────────────────────────────────────
    PatternEntry(
        pattern=re2.compile(r'npm_[a-zA-Z0-9@]+'),
        slug="npm-token",
    ),
)
