"""
Configuration loading and validation for the Watch Progress tracker.

Centralises config parsing so it happens once at startup rather than
redundantly in every component constructor.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List

from .constants import (
    ADJACENCY_TOLERANCE_SECONDS,
    DEFAULT_CONFIG_PATH,
    JUMP_THRESHOLD_SECONDS,
    MIDPOINT_FRACTION,
    REPLAY_PAUSE_DELAY_SECONDS,
    STORAGE_BACKENDS,
    UPDATE_INTERVAL_MS,
)

# Required top-level keys and the sub-keys that must exist within them.
_REQUIRED_SCHEMA: Dict[str, List[str]] = {
    "tracking": [
        "adjacency_tolerance_seconds",
        "jump_threshold_seconds",
        "update_interval_ms",
    ],
    "commands": ["midpoint_fraction", "replay_pause_delay_seconds"],
    "storage": ["backend"],
    "web_server": ["port", "host"],
}

# Numeric settings that must be non-negative when present.
_NON_NEGATIVE: List[tuple] = [
    ("tracking", "adjacency_tolerance_seconds"),
    ("tracking", "jump_threshold_seconds"),
    ("tracking", "update_interval_ms"),
    ("commands", "replay_pause_delay_seconds"),
    ("storage", "quota_bytes"),
]


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration from a JSON file and resolve ``${ENV_VAR:-default}``
    placeholders in all string values.

    Args:
        config_path: Path to the config file (relative to project root,
            or absolute)

    Returns:
        Fully-resolved configuration dictionary.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    base_dir = Path(__file__).parent.parent
    full_path = base_dir / config_path

    if not full_path.exists():
        raise ConfigError(f"Configuration file not found: {full_path}")

    try:
        with open(full_path, "r") as f:
            config = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {full_path}: {exc}") from exc

    if not isinstance(config, dict):
        raise ConfigError(f"Top-level JSON value in {full_path} must be an object")

    return _resolve(config)


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate a config dict against the required schema.

    Returns:
        A list of human-readable error strings.  Empty means valid.
    """
    errors: List[str] = []

    for section, sub_keys in _REQUIRED_SCHEMA.items():
        if section not in config:
            errors.append(f"Missing required config section: '{section}'")
            continue
        for sub in sub_keys:
            if sub not in config[section]:
                errors.append(f"Missing required key '{sub}' in config section '{section}'")

    for section, key in _NON_NEGATIVE:
        value = config.get(section, {}).get(key)
        if value is None:
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            errors.append(f"{section}.{key} must be a number, got {value!r}")
            continue
        if number < 0:
            errors.append(f"{section}.{key} must not be negative, got {value!r}")

    fraction = config.get("commands", {}).get("midpoint_fraction")
    if fraction is not None:
        try:
            if not 0.0 <= float(fraction) <= 1.0:
                errors.append(f"commands.midpoint_fraction must be within [0, 1], got {fraction!r}")
        except (TypeError, ValueError):
            errors.append(f"commands.midpoint_fraction must be a number, got {fraction!r}")

    backend = config.get("storage", {}).get("backend")
    if backend is not None and backend not in STORAGE_BACKENDS:
        errors.append(
            f"storage.backend must be one of {sorted(STORAGE_BACKENDS)}, got {backend!r}"
        )

    # Validate db_path is not an unresolved placeholder
    db_path = str(config.get("storage", {}).get("db_path", ""))
    if db_path.startswith("${"):
        errors.append(
            f"storage.db_path is an unresolved placeholder: '{db_path}'. "
            "Set the WATCHPROGRESS_DB environment variable."
        )

    return errors


def tracking_settings(config: Dict[str, Any]) -> Dict[str, float]:
    """Return the ``tracking`` section with defaults filled in, as floats."""
    section = config.get("tracking", {})
    return {
        "adjacency_tolerance_seconds": float(
            section.get("adjacency_tolerance_seconds", ADJACENCY_TOLERANCE_SECONDS)
        ),
        "jump_threshold_seconds": float(
            section.get("jump_threshold_seconds", JUMP_THRESHOLD_SECONDS)
        ),
        "update_interval_ms": float(section.get("update_interval_ms", UPDATE_INTERVAL_MS)),
    }


def command_settings(config: Dict[str, Any]) -> Dict[str, float]:
    """Return the ``commands`` section with defaults filled in, as floats."""
    section = config.get("commands", {})
    return {
        "midpoint_fraction": float(section.get("midpoint_fraction", MIDPOINT_FRACTION)),
        "replay_pause_delay_seconds": float(
            section.get("replay_pause_delay_seconds", REPLAY_PAUSE_DELAY_SECONDS)
        ),
    }


# ── Private helpers ──────────────────────────────────────────────

_PLACEHOLDER_RE = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _resolve(obj: Any) -> Any:
    """Recursively resolve ``${ENV_VAR:-default}`` in string values."""
    if isinstance(obj, str):
        return _PLACEHOLDER_RE.sub(_replace_match, obj)
    elif isinstance(obj, dict):
        return {k: _resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_resolve(v) for v in obj]
    return obj


def _replace_match(m: re.Match) -> str:
    var = m.group(1)
    default = m.group(2) if m.group(2) is not None else ""
    return os.environ.get(var, default)
