"""
quire configuration (YAML + environment, validated with JSON Schema).

Sources, lowest to highest priority:
1. Bundled defaults: quire/data/config/defaults.yaml
2. A YAML file: the ``path`` argument, else ``$QUIRE_CONFIG``
3. Environment variables: QUIRE_<KEY> (e.g. QUIRE_VIEWS_PATH, QUIRE_DEBUG=1)
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import jsonschema
import yaml

from quire.data import config_schema, default_settings
from quire.exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "QUIRE_"
CONFIG_FILE_ENV = "QUIRE_CONFIG"

_BOOL_KEYS = frozenset({"debug"})
_INT_KEYS = frozenset({"max_depth"})
_LIST_KEYS = frozenset({"include_fallback_extensions"})
_NULLABLE_KEYS = frozenset({"cache_path", "resources_path", "assets_path", "log_path"})

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class QuireConfig:
    """Resolved engine settings."""

    views_path: Path
    cache_path: Optional[Path] = None
    extension: str = ".tpl.html"
    resources_path: Optional[Path] = None
    assets_path: Optional[Path] = None
    assets_url: str = "/assets"
    include_fallback_extensions: Tuple[str, ...] = (".tpl", ".html")
    debug: bool = False
    log_path: Optional[Path] = None
    log_level: str = "WARNING"
    max_depth: int = 10

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "QuireConfig":
        """Build a config from an already validated mapping."""

        def as_path(value: Any) -> Optional[Path]:
            if value is None or value is False:
                return None
            return Path(value)

        return cls(
            views_path=Path(data["views_path"]),
            cache_path=as_path(data.get("cache_path")),
            extension=data.get("extension", ".tpl.html"),
            resources_path=as_path(data.get("resources_path")),
            assets_path=as_path(data.get("assets_path")),
            assets_url=data.get("assets_url", "/assets"),
            include_fallback_extensions=tuple(data.get("include_fallback_extensions", (".tpl", ".html"))),
            debug=bool(data.get("debug", False)),
            log_path=as_path(data.get("log_path")),
            log_level=data.get("log_level", "WARNING"),
            max_depth=int(data.get("max_depth", 10)),
        )


def _coerce_env_value(key: str, raw: str) -> Any:
    value = raw.strip()
    lowered = value.lower()
    if key in _BOOL_KEYS:
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ConfigError(f"{ENV_PREFIX}{key.upper()} must be a boolean, got '{raw}'", context={"key": key})
    if key in _INT_KEYS:
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigError(
                f"{ENV_PREFIX}{key.upper()} must be an integer, got '{raw}'", context={"key": key}
            ) from exc
    if key in _LIST_KEYS:
        return [part.strip() for part in value.split(",") if part.strip()]
    if key in _NULLABLE_KEYS and lowered in ("", "null", "none"):
        return None
    if key == "cache_path" and lowered in _FALSE:
        return False
    return value


def env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    """Collect QUIRE_* overrides as lowercase config keys."""
    overrides: Dict[str, Any] = {}
    for name in sorted(env):
        if not name.startswith(ENV_PREFIX) or name == CONFIG_FILE_ENV:
            continue
        key = name[len(ENV_PREFIX) :].lower()
        if not key:
            continue
        overrides[key] = _coerce_env_value(key, env[name])
    return overrides


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}", context={"path": str(path)}) from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}", context={"path": str(path)}) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping", context={"path": str(path)})
    return data


def validate_config(data: Mapping[str, Any]) -> None:
    """Validate a merged config mapping against the bundled schema.

    Raises:
        ConfigError: Listing every violation
    """
    schema = config_schema()
    validator = jsonschema.Draft202012Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(dict(data)), key=lambda e: str(e.path)):
        if error.path:
            errors.append(f"{'.'.join(str(p) for p in error.path)}: {error.message}")
        else:
            errors.append(error.message)
    if errors:
        raise ConfigError(
            "Invalid configuration:\n  - " + "\n  - ".join(errors),
            context={"errors": errors},
        )


def load_config(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> QuireConfig:
    """Load defaults, then the YAML file, then QUIRE_* variables, then ``overrides``.

    Keyword overrides set to None are ignored, so CLI flags can be passed
    straight through.
    """
    env = os.environ if env is None else env
    merged: Dict[str, Any] = default_settings()

    config_file = path or env.get(CONFIG_FILE_ENV)
    if config_file:
        logger.debug("Loading config file %s", config_file)
        merged.update(_load_yaml_file(Path(config_file)))

    merged.update(env_overrides(env))
    merged.update({key: value for key, value in overrides.items() if value is not None})

    for key, value in list(merged.items()):
        if isinstance(value, Path):
            merged[key] = str(value)
        elif isinstance(value, tuple):
            merged[key] = list(value)

    validate_config(merged)
    return QuireConfig.from_mapping(merged)


__all__ = [
    "QuireConfig",
    "load_config",
    "validate_config",
    "env_overrides",
    "ENV_PREFIX",
]
