"""
quire command line interface.

    quire [--config FILE] [--views DIR] [--cache DIR] [--debug] render NAME [--data FILE]
    quire ... compile NAME
    quire ... clear-cache

Exit status is 0 on success and 1 on any failure.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from quire.config import load_config
from quire.exceptions import ConfigError, QuireError
from quire.renderer import Renderer


def _load_data(path: Optional[str]) -> Dict[str, Any]:
    """Read template variables from a YAML or JSON file."""
    if not path:
        return {}
    file = Path(path)
    try:
        text = file.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"Data file not found: {file}", context={"path": str(file)}) from exc
    try:
        data = json.loads(text) if file.suffix == ".json" else yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot parse data file {file}: {exc}", context={"path": str(file)}) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Data file {file} must contain a mapping", context={"path": str(file)})
    return data


def _renderer(args: argparse.Namespace) -> Renderer:
    cache = args.cache
    if args.no_cache:
        cache = False
    config = load_config(
        args.config,
        views_path=args.views,
        cache_path=cache,
        debug=True if args.debug else None,
    )
    return Renderer.from_config(config)


# Commands ------------------------------------------------------------------


def register_render(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("name", help="Template name, e.g. pages.home")
    parser.add_argument("--data", help="YAML or JSON file with template variables")


def main_render(args: argparse.Namespace) -> int:
    engine = _renderer(args)
    output = engine.render_to_string(args.name, _load_data(args.data))
    sys.stdout.write(output)
    return 0


def register_compile(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("name", help="Template name, e.g. pages.home")


def main_compile(args: argparse.Namespace) -> int:
    compiled = _renderer(args).compile(args.name)
    sys.stdout.write(compiled.source)
    return 0


def register_clear_cache(parser: argparse.ArgumentParser) -> None:
    return None


def main_clear_cache(args: argparse.Namespace) -> int:
    removed = _renderer(args).clear_cache()
    print(f"Removed {removed} compiled template(s)")
    return 0


COMMANDS: Dict[str, Dict[str, Any]] = {
    "render": {
        "summary": "Render a template to stdout",
        "register_args": register_render,
        "main": main_render,
    },
    "compile": {
        "summary": "Print the generated Python for a template",
        "register_args": register_compile,
        "main": main_compile,
    },
    "clear-cache": {
        "summary": "Remove all compiled templates from the cache",
        "register_args": register_clear_cache,
        "main": main_clear_cache,
    },
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="quire", description="Compile and render quire templates")
    parser.add_argument("--config", help="YAML config file (default: $QUIRE_CONFIG)")
    parser.add_argument("--views", help="Views directory")
    parser.add_argument("--cache", help="Cache directory")
    parser.add_argument("--no-cache", action="store_true", help="Disable the compiled template cache")
    parser.add_argument("--debug", action="store_true", help="Debug mode")
    parser.add_argument("--json", action="store_true", help="Report errors as JSON on stderr")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True
    for name, command in COMMANDS.items():
        sub = subparsers.add_parser(name, help=command["summary"], description=command["summary"])
        register: Callable[[argparse.ArgumentParser], None] = command["register_args"]
        register(sub)
        sub.set_defaults(_handler=command["main"])
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args._handler(args)
    except QuireError as exc:
        if args.json:
            print(json.dumps(exc.to_json_error(), default=str), file=sys.stderr)
        else:
            print(f"quire: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
