"""
Configuration loading and validation for obsfacade.

A single JSON document selects the metrics backend and, optionally, the
tracing collector.  String values may reference the environment with
``${ENV_VAR:-default}`` placeholders; a ``.env`` file next to the process
is loaded first so local development does not need exported variables.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List

from dotenv import load_dotenv

from .constants import DEFAULT_CONFIG_PATH, METRICS_BACKENDS

# Sub-keys that must exist for each backend / feature.
_REQUIRED_METRICS_KEYS: Dict[str, List[str]] = {
    "null": [],
    "prometheus": [],
    "statsd": ["service_name", "environment", "uri"],
}

_REQUIRED_TRACING_KEYS: List[str] = ["collector_uri", "service_name", "service_uri"]


class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration from a JSON file and resolve ``${ENV_VAR:-default}``
    placeholders in all string values.

    Args:
        config_path: Path to the config file (relative to the working directory)

    Returns:
        Fully-resolved configuration dictionary.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    full_path = Path(config_path).expanduser().resolve()

    if not full_path.exists():
        raise ConfigError(f"Configuration file not found: {full_path}")

    load_dotenv()

    try:
        with open(full_path, "r") as f:
            config = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {full_path}: {exc}") from exc

    if not isinstance(config, dict):
        raise ConfigError(f"Top-level value in {full_path} must be an object")

    return _resolve(config)


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate a config dict against the required schema.

    Returns:
        A list of human-readable error strings.  Empty means valid.
    """
    errors: List[str] = []

    metrics = config.get("metrics")
    if metrics is not None:
        if not isinstance(metrics, dict):
            errors.append("Config section 'metrics' must be an object")
        else:
            backend = metrics.get("backend", "null")
            if backend not in METRICS_BACKENDS:
                errors.append(
                    f"Unknown metrics backend '{backend}'; "
                    f"expected one of {sorted(METRICS_BACKENDS)}"
                )
            else:
                for sub in _REQUIRED_METRICS_KEYS[backend]:
                    if not metrics.get(sub):
                        errors.append(
                            f"Missing required key '{sub}' in config section 'metrics' "
                            f"for backend '{backend}'"
                        )
            buckets = metrics.get("buckets", {})
            if not isinstance(buckets, dict):
                errors.append("metrics.buckets must map metric names to bucket lists")

    tracing = config.get("tracing")
    if tracing is not None:
        if not isinstance(tracing, dict):
            errors.append("Config section 'tracing' must be an object")
        elif tracing.get("enabled", True):
            for sub in _REQUIRED_TRACING_KEYS:
                if not tracing.get(sub):
                    errors.append(f"Missing required key '{sub}' in config section 'tracing'")

    # Unresolved placeholders mean an environment variable was expected but absent
    for path, value in _walk_strings(config):
        if value.startswith("${"):
            errors.append(f"{path} is an unresolved placeholder: '{value}'")

    return errors


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


def _walk_strings(obj: Any, prefix: str = ""):
    if isinstance(obj, str):
        yield prefix, obj
    elif isinstance(obj, dict):
        for k, v in obj.items():
            yield from _walk_strings(v, f"{prefix}.{k}" if prefix else k)
    elif isinstance(obj, list):
        for i, v in enumerate(obj):
            yield from _walk_strings(v, f"{prefix}[{i}]")
