from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from pathlib import Path

import pytest

from quire.utils.io import (
    atomic_write,
    ensure_directory,
    get_mtime,
    is_within,
    read_text,
    write_text,
)


def test_write_text_roundtrip(tmp_path: Path) -> None:
    out = tmp_path / "nested" / "artifact.py"
    write_text(out, "pass\n")
    assert read_text(out) == "pass\n"

    # Overwrite
    write_text(out, "x = 1\n")
    assert read_text(out) == "x = 1\n"


def test_read_text_missing_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        read_text(tmp_path / "nope.tpl.html")


def test_concurrent_atomic_writes_leave_complete_file(tmp_path: Path) -> None:
    out = tmp_path / "race.py"

    def writer(value: int) -> None:
        for _ in range(50):
            write_text(out, f"value = {value}\n" * 100)

    t1 = threading.Thread(target=writer, args=(1,))
    t2 = threading.Thread(target=writer, args=(2,))
    t1.start(); t2.start()
    t1.join(); t2.join()

    content = out.read_text(encoding="utf-8")
    assert content in ("value = 1\n" * 100, "value = 2\n" * 100)
    assert list(tmp_path.glob("*.tmp")) == []


def test_atomic_write_cleans_up_on_failure(tmp_path: Path) -> None:
    target = tmp_path / "broken.py"

    def explode(f) -> None:
        f.write("partial")
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        atomic_write(target, explode)

    assert not target.exists()
    assert list(tmp_path.iterdir()) == []


def test_atomic_write_enters_lock_context(tmp_path: Path) -> None:
    events = []

    @contextmanager
    def lock():
        events.append("acquire")
        yield
        events.append("release")

    atomic_write(tmp_path / "locked.py", lambda f: f.write("ok"), lock_cm=lock())
    assert events == ["acquire", "release"]


def test_ensure_directory(tmp_path: Path) -> None:
    created = ensure_directory(tmp_path / "a" / "b")
    assert created.is_dir()

    with pytest.raises(FileNotFoundError):
        ensure_directory(tmp_path / "missing", create=False)

    file_path = tmp_path / "file"
    file_path.write_text("x", encoding="utf-8")
    with pytest.raises(NotADirectoryError):
        ensure_directory(file_path)


def test_get_mtime(tmp_path: Path) -> None:
    path = tmp_path / "f"
    path.write_text("x", encoding="utf-8")
    os.utime(path, (1_000, 1_000))
    assert get_mtime(path) == 1_000
    assert get_mtime(tmp_path / "missing") is None


def test_is_within(tmp_path: Path) -> None:
    root = tmp_path / "root"
    (root / "sub").mkdir(parents=True)
    assert is_within(root / "sub" / "x", root)
    assert is_within(root, root)
    assert not is_within(root / ".." / "elsewhere", root)

    (root / "link").symlink_to(tmp_path)
    assert not is_within(root / "link" / "x", root)
