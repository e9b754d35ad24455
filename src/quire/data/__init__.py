"""Bundled quire data: default settings and the config schema.

Files live next to this module (``config/defaults.yaml``,
``schemas/config.schema.yaml``) and are read through importlib.resources so
they resolve the same from a checkout and from an installed wheel.
"""

from __future__ import annotations

import copy
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml


def get_data_path(subpackage: str, filename: str = "") -> Path:
    """Absolute path of a bundled data directory, or of a file inside it."""
    base = Path(str(resources.files("quire.data") / subpackage))
    return base / filename if filename else base


@lru_cache(maxsize=8)
def read_yaml(subpackage: str, filename: str) -> dict[str, Any]:
    """Parse a bundled YAML file once per process; an empty file reads as {}."""
    text = get_data_path(subpackage, filename).read_text(encoding="utf-8")
    return yaml.safe_load(text) or {}


def default_settings() -> dict[str, Any]:
    """A private copy of the built-in settings, safe to update."""
    return copy.deepcopy(read_yaml("config", "defaults.yaml"))


def config_schema() -> dict[str, Any]:
    return read_yaml("schemas", "config.schema.yaml")


__all__ = ["get_data_path", "read_yaml", "default_settings", "config_schema"]
