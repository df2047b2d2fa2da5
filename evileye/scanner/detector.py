"""Secret Detector: flags text that looks like it contains a credential.

For each pattern in order, every non-overlapping match is scored with a fuzzy
similarity function (rapidfuzz, 0-100 scale). The first match whose score
exceeds the threshold flags the text and scanning stops.

Without exemplars, a match is scored against itself. That comparison always
yields 100, so in the default configuration ANY pattern match is a positive
verdict and the threshold never filters anything. Configure ``exemplars`` to
score matches against known-bad samples instead; only then can a match fail
the similarity check.

IMPORT RULES:
  - ``import re2`` ONLY: ``import re`` is PROHIBITED in evileye/scanner/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from rapidfuzz import fuzz

from evileye.constants import SIMILARITY_THRESHOLD
from evileye.scanner.definitions import SECRET_PATTERNS, PatternEntry


@dataclass(frozen=True)
class SecretMatch:
    """The match that flagged a text blob.

    ``start``/``end`` are character offsets into the scanned text. The matched
    value itself is deliberately not stored.
    """

    slug: str
    start: int
    end: int
    score: float


class SecretDetector:
    """Pure, stateless secret heuristic. Safe to share across threads.

    Args:
        patterns:  Ordered pattern set (defaults to ``SECRET_PATTERNS``).
        threshold: A match must score strictly above this to flag the text.
        exemplars: Known-bad samples to compare matches against. Empty means
                   self-comparison (every match flags).
    """

    def __init__(
        self,
        patterns: Sequence[PatternEntry] = SECRET_PATTERNS,
        threshold: float = SIMILARITY_THRESHOLD,
        exemplars: Iterable[str] = (),
    ) -> None:
        self._patterns = tuple(patterns)
        self._threshold = float(threshold)
        self._exemplars = tuple(exemplars)

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def exemplars(self) -> tuple[str, ...]:
        return self._exemplars

    def _score(self, matched: str) -> float:
        if not self._exemplars:
            return fuzz.ratio(matched, matched)
        return max(fuzz.ratio(matched, exemplar) for exemplar in self._exemplars)

    def find(self, text: str) -> Optional[SecretMatch]:
        """Return the first match that passes the similarity check, or None."""
        for entry in self._patterns:
            for m in entry.pattern.finditer(text):
                score = self._score(m.group(0))
                if score > self._threshold:
                    return SecretMatch(slug=entry.slug, start=m.start(), end=m.end(), score=score)
        return None

    def has_secret(self, text: str) -> bool:
        return self.find(text) is not None


_DEFAULT_DETECTOR = SecretDetector()


def detect_secrets(text: str) -> bool:
    """Verdict for ``text`` using the default pattern set and threshold."""
    return _DEFAULT_DETECTOR.has_secret(text)
