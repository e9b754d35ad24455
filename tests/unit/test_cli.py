"""Tests for the quire command line interface."""
from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from quire.cli import build_parser, main


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("QUIRE_"):
            monkeypatch.delenv(name)


@pytest.fixture
def home(write_view) -> Path:
    return write_view("home", "Hello {{ name }}!")


class TestParser:
    def test_commands_registered(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["--views", "v", "render", "home", "--data", "d.yaml"])
        assert args.command == "render"
        assert args.name == "home"
        assert args.data == "d.yaml"

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestRender:
    def test_render_with_yaml_data(self, views: Path, home: Path, tmp_path: Path, capsys) -> None:
        data = tmp_path / "data.yaml"
        data.write_text("name: World\n", encoding="utf-8")

        code = main(["--views", str(views), "--no-cache", "render", "home", "--data", str(data)])

        assert code == 0
        assert capsys.readouterr().out == "Hello World!"

    def test_render_with_json_data(self, views: Path, home: Path, tmp_path: Path, capsys) -> None:
        data = tmp_path / "data.json"
        data.write_text(json.dumps({"name": "<b>"}), encoding="utf-8")

        assert main(["--views", str(views), "--no-cache", "render", "home", "--data", str(data)]) == 0
        assert capsys.readouterr().out == "Hello &lt;b&gt;!"

    def test_missing_template(self, views: Path, capsys) -> None:
        code = main(["--views", str(views), "--no-cache", "render", "missing"])
        assert code == 1
        assert capsys.readouterr().err.startswith("quire: View not found: missing")

    def test_json_errors(self, views: Path, capsys) -> None:
        code = main(["--views", str(views), "--no-cache", "--json", "render", "missing"])
        assert code == 1
        payload = json.loads(capsys.readouterr().err)
        assert payload["code"] == "TemplateNotFoundError"
        assert payload["context"]["name"] == "missing"

    def test_bad_data_file(self, views: Path, home: Path, tmp_path: Path, capsys) -> None:
        data = tmp_path / "data.yaml"
        data.write_text("- not\n- a mapping\n", encoding="utf-8")

        assert main(["--views", str(views), "--no-cache", "render", "home", "--data", str(data)]) == 1
        assert "must contain a mapping" in capsys.readouterr().err


class TestCompileAndCache:
    def test_compile_prints_source(self, views: Path, home: Path, capsys) -> None:
        assert main(["--views", str(views), "--no-cache", "compile", "home"]) == 0
        out = capsys.readouterr().out
        assert "__quire.extend(['Hello ', __quire.escape(lambda: (name)), '!'])" in out

    def test_clear_cache(self, views: Path, home: Path, tmp_path: Path, capsys) -> None:
        cache = tmp_path / "cache"
        assert main(["--views", str(views), "--cache", str(cache), "compile", "home"]) == 0
        capsys.readouterr()

        assert main(["--views", str(views), "--cache", str(cache), "clear-cache"]) == 0
        assert capsys.readouterr().out == "Removed 1 compiled template(s)\n"
