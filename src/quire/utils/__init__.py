"""Shared utilities (file I/O, logging)."""
from __future__ import annotations

from .io import (
    atomic_write,
    ensure_directory,
    get_mtime,
    is_within,
    read_text,
    write_text,
)
from .stdlib_logging import configure_diagnostic_log

__all__ = [
    "atomic_write",
    "ensure_directory",
    "get_mtime",
    "is_within",
    "read_text",
    "write_text",
    "configure_diagnostic_log",
]
