from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest

# Keep the repository free of Python bytecode and __pycache__ artifacts during tests.
sys.dont_write_bytecode = True

from quire.loader import TemplateLoader
from quire.renderer import Renderer
from quire.transformers.base import CompileContext
from quire.utils.stdlib_logging import reset_diagnostic_log_for_tests

WriteView = Callable[..., Path]


@pytest.fixture(autouse=True)
def _reset_diagnostic_log():
    yield
    reset_diagnostic_log_for_tests()


@pytest.fixture
def views(tmp_path: Path) -> Path:
    """An empty views root at <tmp>/resources/views."""
    path = tmp_path / "resources" / "views"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def resources(views: Path) -> Path:
    return views.parent


@pytest.fixture
def write_view(views: Path) -> WriteView:
    """Write a template by dotted name: write_view("layouts.app", "...")."""

    def _write(name: str, content: str, *, ext: str = ".tpl.html", root: Path | None = None) -> Path:
        *dirs, leaf = name.split(".")
        path = (root or views).joinpath(*dirs, leaf + ext)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def loader(views: Path) -> TemplateLoader:
    return TemplateLoader(views)


@pytest.fixture
def context(loader: TemplateLoader) -> CompileContext:
    """A compile context for a template named "test"."""
    return CompileContext(template="test", loader=loader)


@pytest.fixture
def engine(views: Path) -> Renderer:
    """A renderer without cache."""
    return Renderer(views)


@pytest.fixture
def cached_engine(views: Path, tmp_path: Path) -> Renderer:
    return Renderer(views, cache_path=tmp_path / "cache")
