"""
Configuration Loading with File/Env/CLI Precedence

Implements three-level config composition:
1. **File level** (YAML/JSON): base configuration
2. **Environment level**: PAPERSKIT_* prefixed variables override file
3. **CLI level**: programmatic overrides win

Environment variables use double-underscore notation:
  PAPERSKIT_HTTP__USER_AGENT="Custom UA"  →  http.user_agent="Custom UA"
  PAPERSKIT_POLLING__RETRIES=10  →  polling.retries=10

The conventional credential variables (ZOTERO_API_KEY, OPENALEX_API_KEY, ...)
are read as well and sit between the file and the prefixed variables.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .models import PapersSettings

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "PAPERSKIT_"
CONFIG_PATH_ENV = "PAPERSKIT_CONFIG"

CONVENTIONAL_ENV = {
    "ZOTERO_USER_ID": "zotero.user_id",
    "ZOTERO_API_KEY": "zotero.api_key",
    "ZOTERO_DATA_DIR": "zotero.data_dir",
    "OPENALEX_API_KEY": "openalex.api_key",
    "OPENALEX_MAILTO": "openalex.mailto",
    "DATALAB_API_KEY": "datalab.api_key",
    "PAPERS_EXTRACT_CACHE_DIR": "cache_root",
}

# ============================================================================
# Helpers
# ============================================================================


def _read_file(path: str | Path) -> dict[str, Any]:
    """
    Read YAML or JSON config file.

    Args:
        path: File path (suffix determines format: .yaml/.yml or .json)

    Returns:
        Parsed config dictionary

    Raises:
        ValueError: If file cannot be read or parsed
    """
    p = Path(path)
    if not p.exists():
        raise ValueError(f"Config file not found: {path}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ValueError(f"Cannot read config file {path}: {e}") from e

    suffix = p.suffix.lower()

    if suffix in (".yaml", ".yml"):
        try:
            loaded = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
    elif suffix == ".json":
        try:
            loaded = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e
    else:
        raise ValueError(f"Unsupported file format: {suffix}. Use .yaml or .json")

    if not isinstance(loaded, dict):
        raise ValueError(f"Config file {path} must contain a mapping at top level")
    return loaded


def _assign_nested(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    """
    Assign value to nested dict using dot notation.

    Example:
        _assign_nested(data, "http.user_agent", "MyUA")
        → data["http"]["user_agent"] = "MyUA"
    """
    keys = dotted_key.split(".")
    current = data

    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value


def _coerce_env_value(value: str) -> Any:
    """
    Attempt to coerce environment variable string to appropriate type.

    Tries JSON parsing first (handles lists, dicts, bools, numbers).
    Falls back to string if JSON fails.
    """
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        pass

    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    return value


def _merge_conventional_env(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay the unprefixed credential variables; values stay strings."""
    for env_key, dotted_key in CONVENTIONAL_ENV.items():
        env_value = os.environ.get(env_key)
        if not env_value:
            continue
        _assign_nested(data, dotted_key, env_value)
        _LOGGER.debug(f"Environment credential: {env_key} → {dotted_key}")
    return data


def _merge_env_overrides(data: dict[str, Any], env_prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """
    Overlay environment variables onto config dict.

    Looks for PAPERSKIT_* prefixed variables and maps double-underscore
    notation to nested dicts.
    """
    for env_key, env_value in os.environ.items():
        if not env_key.startswith(env_prefix) or env_key == CONFIG_PATH_ENV:
            continue

        relative_key = env_key[len(env_prefix) :].lower()
        dotted_key = relative_key.replace("__", ".")
        coerced_value = _coerce_env_value(env_value)

        _assign_nested(data, dotted_key, coerced_value)
        _LOGGER.debug(f"Environment override: {env_key} → {dotted_key}")

    return data


def _merge_cli_overrides(
    data: dict[str, Any], cli_overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """
    Recursively merge CLI overrides into base config dict.

    Later values win (standard dict.update() semantics).
    """
    if not cli_overrides:
        return data

    for key, value in cli_overrides.items():
        if isinstance(value, Mapping) and isinstance(data.get(key), dict):
            data[key] = _merge_cli_overrides(data[key], value)
        else:
            data[key] = dict(value) if isinstance(value, Mapping) else value
        _LOGGER.debug(f"CLI override: {key}")

    return data


# ============================================================================
# Public API
# ============================================================================


def load_config(
    path: str | Path | None = None,
    env_prefix: str = ENV_PREFIX,
    cli_overrides: Mapping[str, Any] | None = None,
) -> PapersSettings:
    """
    Load PapersSettings from file, environment, and CLI with proper precedence.

    **Precedence:** file < conventional env < prefixed env < CLI

    Args:
        path: Path to YAML/JSON config file (optional, default $PAPERSKIT_CONFIG)
        env_prefix: Environment variable prefix (default: PAPERSKIT_)
        cli_overrides: CLI overrides dict (optional)

    Returns:
        Validated PapersSettings instance

    Raises:
        ValueError: If config is invalid or file cannot be read
    """
    data: dict[str, Any] = {}

    path = path or os.environ.get(CONFIG_PATH_ENV)
    if path:
        try:
            data = _read_file(path)
            _LOGGER.info(f"Loaded config from {path}")
        except ValueError as e:
            _LOGGER.error(f"Failed to load config: {e}")
            raise

    data = _merge_conventional_env(data)
    data = _merge_env_overrides(data, env_prefix)
    data = _merge_cli_overrides(data, cli_overrides)

    try:
        config = PapersSettings.model_validate(data)
    except ValueError as e:
        _LOGGER.error(f"Configuration validation failed: {e}")
        raise
    _LOGGER.debug(f"Configuration validated. Config hash: {config.config_hash()[:8]}...")
    return config
