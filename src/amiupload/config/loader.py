# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/amiupload/config/loader.py

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from amiupload.errors import ConfigurationError
from .models import PublishConfig

log = logging.getLogger("amiupload")

OVERRIDES_ENV = "AMIUPLOAD_OVERRIDES_FILE"
OVERRIDES_NAME = "publish.local.yaml"


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_overrides_file(config_path: Path | None) -> Path | None:
    """
    Locate the overrides file using this priority:

    1. AMIUPLOAD_OVERRIDES_FILE environment variable (explicit override)
    2. publish.local.yaml in the same directory as the config
    """
    env = os.environ.get(OVERRIDES_ENV)
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("%s=%s does not exist, skipping", OVERRIDES_ENV, env)
        return None

    if config_path is None:
        return None

    p = config_path.parent / OVERRIDES_NAME
    if p.is_file():
        return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    data = yaml.safe_load(expanded) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping at the top level")
    return data


def load_config(path: str | Path | None = None) -> PublishConfig:
    """
    Load and validate the publish configuration.

    With no path, defaults are used (still merged with an overrides file
    named by ``AMIUPLOAD_OVERRIDES_FILE``). ``${ENV_VAR}`` placeholders are
    resolved at load time in both files.
    """
    data: dict = {}
    config_path = None
    if path is not None:
        config_path = Path(path)
        if not config_path.is_file():
            raise ConfigurationError(f"config file not found: {config_path}")
        data = _load_yaml(config_path)

    overrides_path = _find_overrides_file(config_path)
    if overrides_path:
        log.debug("Merging overrides from %s", overrides_path)
        _deep_merge(data, _load_yaml(overrides_path))

    try:
        return PublishConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc
