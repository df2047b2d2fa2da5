"""Config loading for evileye.

Reads `.evileye/config.yaml` (or `~/.evileye/config.yaml`).
Raises SystemExit on parse errors, missing `version` field or invalid values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided, for testing or explicit override)
  2. EVILEYE_CONFIG environment variable (if set)
  3. `.evileye/config.yaml` (working directory)
  4. `~/.evileye/config.yaml` (home directory)

Environment variable overrides:
  EVILEYE_WORKERS:   overrides scanner.workers
  EVILEYE_MODEL_DIR: overrides models.base_dir
  EVILEYE_LOG_LEVEL: overrides logging.level
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional

import yaml

from evileye.constants import (
    DEFAULT_DETECTION_MODEL,
    DEFAULT_DISCOVERY_WORKERS,
    DEFAULT_IMAGE_TIMEOUT_S,
    DEFAULT_MODEL_DIR,
    DEFAULT_OCR_CALL_TIMEOUT_S,
    DEFAULT_RECOGNITION_MODEL,
    DEFAULT_SLOW_IMAGE_MS,
    SIMILARITY_THRESHOLD,
)
from evileye.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Default config search paths (EVILEYE_CONFIG env var prepended at runtime)
DEFAULT_CONFIG_PATHS = [
    ".evileye/config.yaml",
    os.path.expanduser("~/.evileye/config.yaml"),
]


def _fail(message: str) -> NoReturn:
    print(f"CONFIG ERROR: {message}", file=sys.stderr)
    raise SystemExit(1)


def _default_workers() -> int:
    return os.cpu_count() or 1


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ModelsConfig:
    """OCR model files, both resolved against ``base_dir``."""

    base_dir: str = DEFAULT_MODEL_DIR
    detection: str = DEFAULT_DETECTION_MODEL
    recognition: str = DEFAULT_RECOGNITION_MODEL


@dataclass
class ScannerConfig:
    """Worker pool and timing configuration."""

    workers: int = field(default_factory=_default_workers)
    discovery_workers: int = DEFAULT_DISCOVERY_WORKERS
    image_timeout_s: Optional[float] = DEFAULT_IMAGE_TIMEOUT_S   # None disables the deadline
    ocr_call_timeout_s: float = DEFAULT_OCR_CALL_TIMEOUT_S
    slow_image_ms: float = DEFAULT_SLOW_IMAGE_MS


@dataclass
class DetectorConfig:
    """Secret detector tuning. Empty ``exemplars`` = every pattern match flags."""

    similarity_threshold: float = SIMILARITY_THRESHOLD
    exemplars: list[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    level: str = "INFO"
    json_output: bool = False


@dataclass
class Config:
    """Root configuration object populated from .evileye/config.yaml.

    All fields have safe defaults: evileye can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    models: ModelsConfig = field(default_factory=ModelsConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On any out-of-range or mistyped value.
        """
        # ── Models ────────────────────────────────────────────────────────────
        models_raw = _section(raw, "models")
        models = ModelsConfig(
            base_dir=str(models_raw.get("base_dir", DEFAULT_MODEL_DIR)),
            detection=str(models_raw.get("detection", DEFAULT_DETECTION_MODEL)),
            recognition=str(models_raw.get("recognition", DEFAULT_RECOGNITION_MODEL)),
        )

        # ── Scanner ───────────────────────────────────────────────────────────
        scanner_raw = _section(raw, "scanner")
        image_timeout = scanner_raw.get("image_timeout_s", DEFAULT_IMAGE_TIMEOUT_S)
        scanner = ScannerConfig(
            workers=_positive_int(scanner_raw.get("workers", _default_workers()), "scanner.workers"),
            discovery_workers=_positive_int(
                scanner_raw.get("discovery_workers", DEFAULT_DISCOVERY_WORKERS),
                "scanner.discovery_workers",
            ),
            image_timeout_s=(
                None if image_timeout is None
                else _positive_float(image_timeout, "scanner.image_timeout_s")
            ),
            ocr_call_timeout_s=_non_negative_float(
                scanner_raw.get("ocr_call_timeout_s", DEFAULT_OCR_CALL_TIMEOUT_S),
                "scanner.ocr_call_timeout_s",
            ),
            slow_image_ms=_non_negative_float(
                scanner_raw.get("slow_image_ms", DEFAULT_SLOW_IMAGE_MS),
                "scanner.slow_image_ms",
            ),
        )

        # ── Detector ──────────────────────────────────────────────────────────
        detector_raw = _section(raw, "detector")
        threshold = _non_negative_float(
            detector_raw.get("similarity_threshold", SIMILARITY_THRESHOLD),
            "detector.similarity_threshold",
        )
        if threshold > 100:
            _fail(f"detector.similarity_threshold must be between 0 and 100, got {threshold}")
        exemplars = detector_raw.get("exemplars") or []
        if not isinstance(exemplars, list) or not all(isinstance(e, str) for e in exemplars):
            _fail("detector.exemplars must be a list of strings")
        detector = DetectorConfig(similarity_threshold=threshold, exemplars=list(exemplars))

        # ── Logging ───────────────────────────────────────────────────────────
        logging_raw = _section(raw, "logging")
        logging_config = LoggingConfig(
            level=_log_level(logging_raw.get("level", "INFO"), "logging.level"),
            json_output=bool(logging_raw.get("json_output", False)),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            models=models,
            scanner=scanner,
            detector=detector,
            logging=logging_config,
            path=path,
        )


# ─── Value validation ────────────────────────────────────────────────────────


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        _fail(f"'{name}' must be a mapping")
    return value


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        _fail(f"{name} must be an integer >= 1, got {value!r}")
    return value


def _positive_float(value: Any, name: str) -> float:
    number = _non_negative_float(value, name)
    if number == 0:
        _fail(f"{name} must be greater than 0")
    return number


def _non_negative_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        _fail(f"{name} must be a non-negative number, got {value!r}")
    return float(value)


def _log_level(value: Any, name: str) -> str:
    level = str(value).upper()
    if level not in VALID_LOG_LEVELS:
        _fail(f"Invalid {name}: '{value}'. Supported values: {sorted(VALID_LOG_LEVELS)}.")
    return level


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate evileye configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing or unsupported ``version``,
                       invalid values, or invalid environment overrides.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("EVILEYE_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    # ── No config file found ─────────────────────────────────────────────────
    if found_path is None:
        logger.debug("No config file found: using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.debug("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(f"Failed to parse {found_path}: {exc}\nCheck the YAML syntax and try again.")
    except OSError as exc:
        _fail(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _fail(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _fail(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        _fail(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.detector.exemplars:
        logger.info(
            "Secret detector compares matches against configured exemplars",
            exemplars=len(config.detector.exemplars),
        )

    logger.debug(
        "Config loaded",
        path=found_path,
        version=config.version,
        workers=config.scanner.workers,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If EVILEYE_WORKERS is not an integer >= 1 or
                       EVILEYE_LOG_LEVEL is not a known level.
    """
    env_workers = os.environ.get("EVILEYE_WORKERS")
    if env_workers is not None:
        try:
            workers = int(env_workers)
        except ValueError:
            workers = 0
        if workers < 1:
            _fail(
                "EVILEYE_WORKERS environment variable is not a valid "
                f"integer >= 1: '{env_workers}'"
            )
        config.scanner.workers = workers

    env_model_dir = os.environ.get("EVILEYE_MODEL_DIR")
    if env_model_dir:
        config.models.base_dir = env_model_dir

    env_log_level = os.environ.get("EVILEYE_LOG_LEVEL")
    if env_log_level:
        config.logging.level = _log_level(env_log_level, "EVILEYE_LOG_LEVEL")
