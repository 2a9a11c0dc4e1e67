"""
Settings Loader (``ledger_config.loader``).

Responsibility
--------------
Builds a ``LedgerSettings`` from an optional YAML file and ``LEDGER_*``
environment variables.  Environment wins over the file; the file wins over
dataclass defaults.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys in the YAML file  -> ``ValueError``.
* Unparsable environment values  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from ledger_config.schema import LedgerSettings
from ledger_kernel.logging_config import get_logger

logger = get_logger("config.loader")

ENV_PREFIX = "LEDGER_"
CONFIG_PATH_ENV = "LEDGER_CONFIG_FILE"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    # Allow the settings to be nested under a "ledger:" key
    if set(data) == {"ledger"} and isinstance(data["ledger"], dict):
        data = data["ledger"]
    return data


def _coerce(name: str, raw: str, target: Any) -> Any:
    if target is bool or target == "bool":
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"{ENV_PREFIX}{name.upper()}: expected a boolean, got {raw!r}")
    if target is int or target == "int":
        return int(raw)
    if target is float or target == "float":
        return float(raw)
    return raw


def env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    """Extract ``LEDGER_<FIELD>`` overrides, typed per the settings schema."""
    overrides: dict[str, Any] = {}
    for f in fields(LedgerSettings):
        key = f"{ENV_PREFIX}{f.name.upper()}"
        if key in env:
            overrides[f.name] = _coerce(f.name, env[key], f.type)
    return overrides


def load_settings(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Build settings from defaults, an optional YAML file, and the environment.

    If ``path`` is None, ``LEDGER_CONFIG_FILE`` is consulted.
    """
    env = os.environ if env is None else env
    values: dict[str, Any] = {}

    if path is None and env.get(CONFIG_PATH_ENV):
        path = env[CONFIG_PATH_ENV]
    if path is not None:
        file_values = load_yaml_file(Path(path))
        known = {f.name for f in fields(LedgerSettings)}
        unknown = set(file_values) - known
        if unknown:
            raise ValueError(f"Unknown ledger settings in {path}: {sorted(unknown)}")
        values.update(file_values)

    values.update(env_overrides(env))
    settings = LedgerSettings(**values)

    logger.info(
        "settings_loaded",
        extra={
            "source": str(path) if path is not None else "defaults",
            "dialect": settings.database_url.split(":", 1)[0],
            "currency": settings.currency,
            "max_conflict_retries": settings.max_conflict_retries,
        },
    )
    return settings
