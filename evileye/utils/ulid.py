"""Run identifier generation for evileye.

Every scan run gets a ULID that is bound into the log context, so all records
from one run (including those emitted from worker threads) can be correlated.

Uses the `python-ulid` library: do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: A 26-character ULID string, Crockford Base32 charset ``[0-9A-HJKMNP-TV-Z]``.
    """
    return str(ULID())
