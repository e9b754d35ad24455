from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from quire.utils.io import ensure_directory

LOGGER_NAME = "quire"
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_CONFIGURED_LOG_PATH: Optional[str] = None
_QUIRE_FILE_HANDLER: Optional[logging.Handler] = None


def _level_from_name(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_diagnostic_log(log_path: Path, level: str = "WARNING") -> None:
    """Append timestamped diagnostic lines from the ``quire`` logger to ``log_path``.

    Idempotent per-process: if already configured for the same file, no-op.
    Only the package logger is touched; the root logger is left to the host
    application.
    """
    global _CONFIGURED_LOG_PATH, _QUIRE_FILE_HANDLER

    resolved = str(Path(log_path).resolve())
    if _CONFIGURED_LOG_PATH == resolved and _QUIRE_FILE_HANDLER is not None:
        return

    ensure_directory(Path(resolved).parent)
    logger = logging.getLogger(LOGGER_NAME)

    # Replace the handler we installed earlier when switching paths.
    if _QUIRE_FILE_HANDLER is not None:
        logger.removeHandler(_QUIRE_FILE_HANDLER)
        _QUIRE_FILE_HANDLER.close()
        _QUIRE_FILE_HANDLER = None

    fh = logging.FileHandler(resolved, mode="a", encoding="utf-8")
    fh.setLevel(_level_from_name(level))
    fh.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(fh)
    if logger.level == logging.NOTSET or logger.level > fh.level:
        logger.setLevel(fh.level)

    _QUIRE_FILE_HANDLER = fh
    _CONFIGURED_LOG_PATH = resolved


def reset_diagnostic_log_for_tests() -> None:
    """Test-only: remove the installed file handler."""
    global _CONFIGURED_LOG_PATH, _QUIRE_FILE_HANDLER
    logger = logging.getLogger(LOGGER_NAME)
    if _QUIRE_FILE_HANDLER is not None:
        logger.removeHandler(_QUIRE_FILE_HANDLER)
        _QUIRE_FILE_HANDLER.close()
    logger.setLevel(logging.NOTSET)
    _CONFIGURED_LOG_PATH = None
    _QUIRE_FILE_HANDLER = None


__all__ = ["configure_diagnostic_log", "reset_diagnostic_log_for_tests", "LOGGER_NAME"]
