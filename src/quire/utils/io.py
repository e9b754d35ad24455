"""File access for templates and compiled artifacts.

Compiled artifacts are published with :func:`write_text`, which never leaves
a half-written file at the target path: readers see either the previous
artifact or the new one. Template sources are read with :func:`read_text`,
and freshness checks go through :func:`get_mtime`.
"""
from __future__ import annotations

import fcntl
import os
import tempfile
from contextlib import nullcontext
from pathlib import Path
from typing import Any, Callable, ContextManager, Optional, TextIO, Union

PathLike = Union[str, Path]


def ensure_directory(path: PathLike, create: bool = True) -> Path:
    """Return ``path`` as a directory, creating it (and parents) when allowed.

    Raises:
        FileNotFoundError: If it is missing and ``create`` is False
        NotADirectoryError: If something other than a directory is there
    """
    directory = Path(path)
    if directory.is_dir():
        return directory
    if directory.exists():
        raise NotADirectoryError(f"Path exists but is not a directory: {directory}")
    if not create:
        raise FileNotFoundError(f"Directory does not exist: {directory}")
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def atomic_write(
    path: PathLike,
    write_fn: Callable[[TextIO], None],
    *,
    lock_cm: Optional[ContextManager[Any]] = None,
    encoding: str = "utf-8",
) -> None:
    """Let ``write_fn`` fill a sibling temp file, then rename it over ``path``.

    The temp file is flock'ed while written and fsync'd before the rename.
    On failure it is removed and the target is left untouched.
    """
    target = Path(path)
    ensure_directory(target.parent)

    tmp_name: Optional[str] = None
    try:
        with lock_cm or nullcontext():
            handle = tempfile.NamedTemporaryFile(
                "w",
                encoding=encoding,
                dir=target.parent,
                prefix=f".{target.name}.",
                suffix=".tmp",
                delete=False,
            )
            tmp_name = handle.name
            with handle:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                write_fn(handle)
                handle.flush()
                os.fsync(handle.fileno())
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            os.replace(tmp_name, target)
            tmp_name = None
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass


def write_text(path: PathLike, content: str) -> None:
    """Publish ``content`` at ``path`` atomically (UTF-8)."""
    atomic_write(path, lambda handle: handle.write(content))


def read_text(path: PathLike) -> str:
    """Read a UTF-8 file; a missing file raises FileNotFoundError naming it."""
    source = Path(path)
    try:
        return source.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Text file not found: {source}") from exc


def get_mtime(path: PathLike) -> Optional[float]:
    """Modification time of ``path``, or None when it does not exist."""
    try:
        return os.stat(path).st_mtime
    except FileNotFoundError:
        return None


def is_within(path: PathLike, root: PathLike) -> bool:
    """True if ``path`` resolves (following symlinks) to ``root`` or below it."""
    resolved = Path(path).resolve()
    base = Path(root).resolve()
    return resolved == base or base in resolved.parents


__all__ = [
    "PathLike",
    "ensure_directory",
    "atomic_write",
    "write_text",
    "read_text",
    "get_mtime",
    "is_within",
]
