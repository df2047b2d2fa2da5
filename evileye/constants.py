"""Shared constants for evileye.

Fixed values used across the locator, extractor, detector and config layers.
No magic numbers in other modules: import from here.
"""

# ─── Image discovery ─────────────────────────────────────────────────────────

# Lower-cased file extensions (without the dot) treated as candidate images.
IMAGE_EXTENSIONS: frozenset[str] = frozenset({"jpg", "jpeg", "png", "gif", "bmp", "tiff"})

# Default number of directory-listing threads used during discovery.
DEFAULT_DISCOVERY_WORKERS: int = 4

# ─── Text extraction ─────────────────────────────────────────────────────────

# Recognized lines of this length or shorter are OCR noise and are dropped.
MAX_NOISE_LINE_LENGTH: int = 1

# Separator used to join cleaned lines into one text blob.
LINE_SEPARATOR: str = "\n"

# Padding (pixels) added around each line box before it is recognized.
LINE_CROP_PADDING: int = 4

# ─── Secret detection ────────────────────────────────────────────────────────

# Similarity score (0-100 scale) a match must exceed to flag the text.
SIMILARITY_THRESHOLD: float = 70.0

# ─── Models ──────────────────────────────────────────────────────────────────

DEFAULT_MODEL_DIR: str = "~/.evileye/models"
DEFAULT_DETECTION_MODEL: str = "osd.traineddata"
DEFAULT_RECOGNITION_MODEL: str = "eng.traineddata"
MODEL_SUFFIX: str = ".traineddata"

# ─── Pipeline timing ─────────────────────────────────────────────────────────

# Wall-clock budget for one image (decode through secret check).
DEFAULT_IMAGE_TIMEOUT_S: float = 120.0

# Budget for a single OCR engine call (kills the OCR subprocess when exceeded).
# A timed-out image holds its worker slot, and delays the end of the run, until
# its current call returns, so this also bounds that wait. Decode and line
# grouping have no such bound.
DEFAULT_OCR_CALL_TIMEOUT_S: float = 60.0

# Images slower than this are logged at WARNING instead of DEBUG.
DEFAULT_SLOW_IMAGE_MS: float = 5_000.0
