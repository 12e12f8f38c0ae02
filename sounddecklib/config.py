from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

log = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class ConfigFieldError:
    """One invalid config value: *key*, the offending *value* and a
    user-facing *message*."""
    key: str
    value: Any
    message: str


@dataclass(frozen=True)
class ParamSpec:
    """Declarative description of one numeric configuration parameter.

    Processors and the shared engine and segmentation sections list their
    parameters this way; defaults and validation are derived from them.
    """
    key: str
    type: type | tuple              # expected Python type(s)
    default: Any
    label: str                       # short UI label
    description: str = ""            # longer help text
    min: float | int | None = None
    max: float | int | None = None   # always inclusive
    min_exclusive: bool = False


# ---------------------------------------------------------------------------
# Shared parameter sections
# ---------------------------------------------------------------------------

ENGINE_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="max_concurrent", type=int, default=8, min=1,
        label="Max simultaneous sounds",
        description="Polyphony ceiling. Further play requests are ignored "
                    "until a voice finishes or is stopped.",
    ),
    ParamSpec(
        key="default_volume", type=(int, float), default=0.8,
        min=0.0, max=1.0,
        label="Default volume",
        description="Gain used when a sound is played without an explicit volume.",
    ),
    ParamSpec(
        key="max_file_size", type=int, default=25 * 1024 * 1024, min=1,
        label="Max upload size (bytes)",
        description="Files larger than this are rejected before decoding.",
    ),
    ParamSpec(
        key="record_samplerate", type=int, default=44100, min=8000,
        label="Recording sample rate (Hz)",
    ),
]

SEGMENT_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="silence_threshold", type=(int, float), default=0.03,
        min=0.0, max=1.0, min_exclusive=True,
        label="Auto-split threshold",
        description="Samples at or below this absolute amplitude count as silence.",
    ),
    ParamSpec(
        key="min_silence_sec", type=(int, float), default=0.15, min=0.0,
        label="Minimum gap (s)",
        description="A silence must last this long to split two segments.",
    ),
    ParamSpec(
        key="min_segment_sec", type=(int, float), default=0.05, min=0.0,
        label="Minimum segment (s)",
        description="Shorter segments are discarded.",
    ),
]


def _all_param_specs() -> list[ParamSpec]:
    """Shared sections followed by every ingestion processor's params."""
    from .processors import default_processors

    specs = list(ENGINE_PARAMS) + list(SEGMENT_PARAMS)
    for proc in default_processors():
        specs.extend(proc.config_params())
    return specs


def default_config() -> dict[str, Any]:
    """Returns the built-in default configuration."""
    return {spec.key: spec.default for spec in _all_param_specs()}


def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
    """Merge multiple config dicts left-to-right.  Later values override earlier ones."""
    result: dict[str, Any] = {}
    for cfg in configs:
        result.update(cfg)
    return result


def load_preset(path: str) -> dict[str, Any]:
    """Read a JSON preset and return the partial config it overrides.

    Keys starting with ``_`` are comments.  Keys no parameter declares are
    dropped with a warning.

    Raises:
        ConfigError: the file is missing, unreadable or not a JSON object.
    """
    if not os.path.isfile(path):
        raise ConfigError(f"Preset file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in preset file {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read preset file {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Preset file must contain a JSON object, got {type(data).__name__}")

    known = {spec.key for spec in _all_param_specs()}
    preset = {}
    for key, value in data.items():
        if key.startswith("_"):
            continue
        if key not in known:
            log.warning("Ignoring unknown preset key %r in %s", key, path)
            continue
        preset[key] = value
    return preset


# ---------------------------------------------------------------------------
# Validation  (ParamSpec-driven)
# ---------------------------------------------------------------------------

def _check_value(spec: ParamSpec, value: Any) -> str | None:
    """Return why *value* is invalid for *spec*, or None when it is fine."""
    # reject bool, which subclasses int
    if isinstance(value, bool) or not isinstance(value, spec.type):
        kinds = spec.type if isinstance(spec.type, tuple) else (spec.type,)
        got = "nothing" if value is None else type(value).__name__
        return f"{spec.label} must be {' or '.join(k.__name__ for k in kinds)}, got {got}."
    if spec.min is not None:
        if spec.min_exclusive and value <= spec.min:
            return f"{spec.label} must be greater than {spec.min}."
        if value < spec.min:
            return f"{spec.label} must be at least {spec.min}."
    if spec.max is not None and value > spec.max:
        return f"{spec.label} must be at most {spec.max}."
    return None


def validate_param_values(
    params: list[ParamSpec],
    values: dict[str, Any],
) -> list[ConfigFieldError]:
    """Check the keys of *values* that *params* declare.

    Missing keys are not errors; they fall back to their defaults.
    """
    errors = []
    for spec in params:
        if spec.key not in values:
            continue
        message = _check_value(spec, values[spec.key])
        if message is not None:
            errors.append(ConfigFieldError(spec.key, values[spec.key], message))
    return errors


def validate_config_fields(config: dict[str, Any]) -> list[ConfigFieldError]:
    """Validate a flat config dict against every known parameter.  Never raises."""
    return validate_param_values(_all_param_specs(), config)


def validate_config(config: dict[str, Any]) -> None:
    """Validate a flat config dict.

    Raises :class:`ConfigError` listing every invalid field.
    """
    errors = validate_config_fields(config)
    if errors:
        raise ConfigError(
            "Configuration has invalid values:\n  - "
            + "\n  - ".join(e.message for e in errors)
        )
