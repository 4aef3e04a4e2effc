# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/crdhost/config/loader.py

import logging
import os
from pathlib import Path

import yaml

from .models import SetupConfig

log = logging.getLogger("crdhost")

CONFIG_ENV_VAR = "CRDHOST_CONFIG"


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


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def _find_config_file(path: str | Path | None) -> Path | None:
    if path:
        return Path(path)

    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("%s=%s does not exist, using defaults", CONFIG_ENV_VAR, env)
    return None


def load_config(path: str | Path | None = None) -> SetupConfig:
    """
    Build the setup configuration.

    Defaults reproduce a stock Debian/Ubuntu host. An optional YAML file
    (``--config`` or ``$CRDHOST_CONFIG``) is deep-merged over them before
    Pydantic validation; ``${ENV_VAR}`` placeholders are expanded at load time.
    """
    data = SetupConfig().model_dump(mode="json")

    config_path = _find_config_file(path)
    if config_path is not None:
        if not config_path.is_file():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        log.debug("Merging config from %s", config_path)
        _deep_merge(data, _load_yaml(config_path))

    return SetupConfig.model_validate(data)
