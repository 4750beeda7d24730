"""
Configuration management for the image pixelizer.

Provides a layered configuration system with the following precedence
(highest to lowest):

    CLI arguments > Environment variables > YAML config file > Defaults

Design constraints:
    - The system MUST run with zero configuration (safe defaults only).
    - Missing or invalid values fail early and loudly.
    - No redaction logic, I/O, or backend access belongs here.

Non-goals:
    - No dynamic reloading.
    - No credentials for cloud backends (boto3 resolves those itself).
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from pixelizer.policy import CarProcessing, FaceProcessing

logger = logging.getLogger(__name__)

# Fallback for relative config paths that do not exist under the working
# directory: pixelizer/config.py → checkout root (holds configs/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PolicyConfig:
    """Which regions to redact and how coarsely.

    Attributes:
        face_processing: Redaction policy for people.
        car_processing: Redaction policy for vehicles.
        merge_factor: Text merge distance as a fraction of the image width.
        pixel_size_divisor: Block size is the longer patch side divided by this.
    """

    face_processing: FaceProcessing = FaceProcessing.PIXELATE_FACES
    car_processing: CarProcessing = CarProcessing.PIXELATE_PLATES_AND_TEXT_ON_CARS
    merge_factor: float = 0.025
    pixel_size_divisor: int = 16


@dataclass(frozen=True)
class OutputConfig:
    """Encoded output settings.

    Attributes:
        format: Output raster format: 'jpeg', 'png' or 'webp'.
        quality: Encoder quality in [0, 100] (ignored for png).
        save_path: Default output file or directory.
    """

    format: str = "jpeg"
    quality: int = 100
    save_path: str = "output/"


@dataclass(frozen=True)
class OutlineConfig:
    """Optional border stroked around every redacted region.

    Attributes:
        enabled: Whether to draw the outline.
        color: BGR color tuple.
        thickness: Line thickness in pixels.
    """

    enabled: bool = False
    color: Tuple[int, int, int] = (0, 0, 255)
    thickness: int = 2


@dataclass(frozen=True)
class BatchConfig:
    """Directory processing settings.

    Attributes:
        recursive: Descend into sub-directories.
        max_workers: Maximum number of images processed concurrently.
    """

    recursive: bool = False
    max_workers: int = 4


@dataclass(frozen=True)
class BackendConfig:
    """Detection backend selection.

    Attributes:
        name: 'rekognition' (live service) or 'rekognition-cache' (saved
              JSON responses next to each image).
        region: AWS region for the live service. None uses boto3's default.
    """

    name: str = "rekognition"
    region: Optional[str] = None


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration.

    Aggregates all sub-configurations into a single, frozen object.
    """

    policy: PolicyConfig = field(default_factory=PolicyConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    outline: OutlineConfig = field(default_factory=OutlineConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

_VALID_FORMATS = {"jpeg", "png", "webp"}
_VALID_BACKENDS = ("rekognition", "rekognition-cache")


def _validate(config: AppConfig) -> None:
    """Validate configuration values. Raises ValueError on invalid state."""

    if not isinstance(config.policy.face_processing, FaceProcessing):
        raise ValueError(
            f"Invalid policy.face_processing: '{config.policy.face_processing}'. "
            f"Must be one of {[p.value for p in FaceProcessing]}."
        )

    if not isinstance(config.policy.car_processing, CarProcessing):
        raise ValueError(
            f"Invalid policy.car_processing: '{config.policy.car_processing}'. "
            f"Must be one of {[p.value for p in CarProcessing]}."
        )

    if config.policy.merge_factor < 0:
        raise ValueError(
            f"policy.merge_factor must be non-negative, "
            f"got {config.policy.merge_factor}."
        )

    if config.policy.pixel_size_divisor <= 0:
        raise ValueError(
            f"policy.pixel_size_divisor must be positive, "
            f"got {config.policy.pixel_size_divisor}."
        )

    if config.output.format not in _VALID_FORMATS:
        raise ValueError(
            f"Invalid output.format: '{config.output.format}'. "
            f"Must be one of {_VALID_FORMATS}."
        )

    if not (0 <= config.output.quality <= 100):
        raise ValueError(
            f"output.quality must be in [0, 100], got {config.output.quality}."
        )

    if len(config.outline.color) != 3:
        raise ValueError(
            f"outline.color must be a (b, g, r) tuple, got {config.outline.color}."
        )

    if config.outline.thickness <= 0:
        raise ValueError(
            f"outline.thickness must be positive, got {config.outline.thickness}."
        )

    if config.batch.max_workers <= 0:
        raise ValueError(
            f"batch.max_workers must be positive, got {config.batch.max_workers}."
        )

    if config.backend.name not in _VALID_BACKENDS:
        raise ValueError(
            f"Invalid backend.name: '{config.backend.name}'. "
            f"Must be one of {list(_VALID_BACKENDS)}."
        )


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

def _parse_tuple(value, expected_len: int, cast_type=float):
    """Convert a list from YAML into a tuple of the expected type and length."""
    if isinstance(value, (list, tuple)):
        if len(value) != expected_len:
            raise ValueError(
                f"Expected {expected_len} values, got {len(value)}: {value}"
            )
        return tuple(cast_type(v) for v in value)
    return value


def _parse_bool(value) -> bool:
    """Accept YAML booleans as well as env-style strings."""
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _parse_enum(enum_cls, value, key: str):
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise ValueError(
            f"Invalid {key}: '{value}'. "
            f"Must be one of {[p.value for p in enum_cls]}."
        ) from None


def _build_policy_config(raw: dict) -> PolicyConfig:
    """Build PolicyConfig from a raw YAML dict."""
    kwargs = {}
    if "face_processing" in raw:
        kwargs["face_processing"] = _parse_enum(
            FaceProcessing, raw["face_processing"], "policy.face_processing"
        )
    if "car_processing" in raw:
        kwargs["car_processing"] = _parse_enum(
            CarProcessing, raw["car_processing"], "policy.car_processing"
        )
    if "merge_factor" in raw:
        kwargs["merge_factor"] = float(raw["merge_factor"])
    if "pixel_size_divisor" in raw:
        kwargs["pixel_size_divisor"] = int(raw["pixel_size_divisor"])
    return PolicyConfig(**kwargs)


def _build_output_config(raw: dict) -> OutputConfig:
    """Build OutputConfig from a raw YAML dict."""
    kwargs = {}
    if "format" in raw:
        fmt = str(raw["format"]).lower()
        kwargs["format"] = "jpeg" if fmt == "jpg" else fmt
    if "quality" in raw:
        kwargs["quality"] = int(raw["quality"])
    if "save_path" in raw:
        kwargs["save_path"] = str(raw["save_path"])
    return OutputConfig(**kwargs)


def _build_outline_config(raw: dict) -> OutlineConfig:
    """Build OutlineConfig from a raw YAML dict."""
    kwargs = {}
    if "enabled" in raw:
        kwargs["enabled"] = _parse_bool(raw["enabled"])
    if "color" in raw:
        kwargs["color"] = _parse_tuple(raw["color"], 3, int)
    if "thickness" in raw:
        kwargs["thickness"] = int(raw["thickness"])
    return OutlineConfig(**kwargs)


def _build_batch_config(raw: dict) -> BatchConfig:
    """Build BatchConfig from a raw YAML dict."""
    kwargs = {}
    if "recursive" in raw:
        kwargs["recursive"] = _parse_bool(raw["recursive"])
    if "max_workers" in raw:
        kwargs["max_workers"] = int(raw["max_workers"])
    return BatchConfig(**kwargs)


def _build_backend_config(raw: dict) -> BackendConfig:
    """Build BackendConfig from a raw YAML dict."""
    kwargs = {}
    if "name" in raw:
        kwargs["name"] = str(raw["name"]).lower()
    if raw.get("region"):
        kwargs["region"] = str(raw["region"])
    return BackendConfig(**kwargs)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "PIXELIZER_"


def _apply_env_overrides(raw: dict) -> dict:
    """Apply environment variable overrides to the raw config dict.

    Environment variables follow the pattern:
        PIXELIZER_POLICY_FACE_PROCESSING=pixelate_persons
        PIXELIZER_OUTPUT_QUALITY=85
    """
    env_map = {
        f"{_ENV_PREFIX}POLICY_FACE_PROCESSING": ("policy", "face_processing"),
        f"{_ENV_PREFIX}POLICY_CAR_PROCESSING": ("policy", "car_processing"),
        f"{_ENV_PREFIX}POLICY_MERGE_FACTOR": ("policy", "merge_factor"),
        f"{_ENV_PREFIX}POLICY_PIXEL_SIZE_DIVISOR": ("policy", "pixel_size_divisor"),
        f"{_ENV_PREFIX}OUTPUT_FORMAT": ("output", "format"),
        f"{_ENV_PREFIX}OUTPUT_QUALITY": ("output", "quality"),
        f"{_ENV_PREFIX}OUTPUT_SAVE_PATH": ("output", "save_path"),
        f"{_ENV_PREFIX}OUTLINE_ENABLED": ("outline", "enabled"),
        f"{_ENV_PREFIX}BATCH_RECURSIVE": ("batch", "recursive"),
        f"{_ENV_PREFIX}BATCH_MAX_WORKERS": ("batch", "max_workers"),
        f"{_ENV_PREFIX}BACKEND_NAME": ("backend", "name"),
        f"{_ENV_PREFIX}BACKEND_REGION": ("backend", "region"),
    }

    for env_var, (section, key) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            raw.setdefault(section, {})[key] = value
            logger.debug("Config override from env: %s=%s", env_var, value)

    return raw


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

def _resolve_config_path(config_path: str) -> Path:
    """Resolve a relative path against the working directory, then the checkout."""
    path = Path(config_path)
    if path.is_absolute() or path.exists():
        return path
    fallback = _PROJECT_ROOT / path
    return fallback if fallback.is_file() else path


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration.

    Precedence (highest → lowest):
        Environment variables > YAML file > Hard-coded defaults

    Args:
        config_path: Path to a YAML configuration file. If None,
                     the system runs entirely on defaults.

    Returns:
        A validated, frozen AppConfig instance.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ValueError: If any configuration value is invalid.
        yaml.YAMLError: If the YAML file is malformed.
    """
    raw: dict = {}

    # --- Layer 1: YAML file ---
    if config_path is not None:
        resolved = _resolve_config_path(config_path)

        if not resolved.is_file():
            raise FileNotFoundError(
                f"Configuration file not found: {resolved}. "
                f"Provide a valid path or omit to use defaults."
            )

        logger.info("Loading config from: %s", resolved)
        with open(resolved, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    # --- Layer 2: Environment variable overrides ---
    raw = _apply_env_overrides(raw)

    # --- Build typed configs ---
    config = AppConfig(
        policy=_build_policy_config(raw.get("policy", {})),
        output=_build_output_config(raw.get("output", {})),
        outline=_build_outline_config(raw.get("outline", {})),
        batch=_build_batch_config(raw.get("batch", {})),
        backend=_build_backend_config(raw.get("backend", {})),
    )

    # --- Validate ---
    _validate(config)

    logger.debug("Configuration loaded: %s", config)
    return config


def apply_overrides(config: AppConfig, overrides: Dict[str, Dict[str, Any]]) -> AppConfig:
    """Return a copy of config with section values replaced, then re-validate.

    Args:
        config: Base configuration.
        overrides: Mapping of section name → {field: value}. None values
                   are ignored so argparse defaults can be passed as is.

    Raises:
        ValueError: If a section is unknown or the result is invalid.
    """
    sections = {}
    for section, values in overrides.items():
        if not hasattr(config, section):
            raise ValueError(f"Unknown config section: '{section}'.")
        changes = {k: v for k, v in values.items() if v is not None}
        if changes:
            sections[section] = dataclasses.replace(getattr(config, section), **changes)

    updated = dataclasses.replace(config, **sections)
    _validate(updated)
    return updated
