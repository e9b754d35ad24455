"""Per-render helper object bound to ``__quire`` in compiled templates.

A fresh Runtime is created for every execution. It owns the output buffer,
so nothing is visible to the caller until the whole template has run.

``{{ }}`` and ``{!! !!}`` are lenient about lookups: a NameError, LookupError
or AttributeError raised directly by the expression (an unknown name, a
missing key or attribute) renders as empty text. The same errors raised
inside a function the expression calls, a property getter or a
``__getattr__`` hook propagate and fail the render.
"""
from __future__ import annotations

import html
import json as _json
import logging
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from quire.markup import RUNTIME_NAME
from quire.session import CSRF_TOKEN_KEY, InMemoryTokenStore, TokenStore, generate_token
from quire.utils.io import get_mtime

logger = logging.getLogger(__name__)

IncludeFunction = Callable[[str, Dict[str, Any]], str]

# Lookup failures raised by the expression itself render as empty output.
# Raised from inside a function the expression calls, they fail the render.
MISSING_VALUE_ERRORS = (NameError, LookupError, AttributeError)


def _raised_in(thunk: Callable[[], Any], exc: BaseException) -> bool:
    """True if the innermost Python frame of ``exc`` is the thunk itself."""
    tb = exc.__traceback__
    if tb is None:
        return False
    while tb.tb_next is not None:
        tb = tb.tb_next
    return tb.tb_frame.f_code is getattr(thunk, "__code__", None)


def escape(value: Any) -> str:
    """HTML-escape ``str(value)``; None becomes empty text."""
    if value is None:
        return ""
    return html.escape(str(value), quote=True)


class Runtime:
    """Output buffer plus the helpers generated code calls."""

    def __init__(
        self,
        *,
        template: str = "<string>",
        tokens: Optional[TokenStore] = None,
        assets_url: str = "/assets",
        assets_path: Optional[Path] = None,
        include_fn: Optional[IncludeFunction] = None,
    ) -> None:
        self.template = template
        self.tokens = tokens if tokens is not None else InMemoryTokenStore()
        self.assets_url = assets_url.rstrip("/")
        self.assets_path = Path(assets_path) if assets_path else None
        self.include_fn = include_fn
        self.scope: Dict[str, Any] = {}
        self._buffer: List[str] = []

    # Output

    def write(self, text: str) -> None:
        self._buffer.append(text)

    def extend(self, parts: Iterable[str]) -> None:
        self._buffer.extend(parts)

    def getvalue(self) -> str:
        return "".join(self._buffer)

    # Expression values

    def _evaluate(self, thunk: Callable[[], Any]) -> Any:
        try:
            return thunk()
        except MISSING_VALUE_ERRORS as exc:
            if not _raised_in(thunk, exc):
                raise
            logger.debug("%s: missing value rendered empty (%s)", self.template, exc)
            return None

    def escape(self, thunk: Callable[[], Any]) -> str:
        return escape(self._evaluate(thunk))

    def raw(self, thunk: Callable[[], Any]) -> str:
        value = self._evaluate(thunk)
        return "" if value is None else str(value)

    def json(self, value: Any) -> str:
        return _json.dumps(value, ensure_ascii=False, default=str)

    def pairs(self, value: Any) -> Iterator[Tuple[Any, Any]]:
        """Key/value iteration for ``@foreach(items as key => value)``."""
        if value is None:
            return iter(())
        if isinstance(value, Mapping):
            return iter(value.items())
        return enumerate(value)

    # Built-in directives

    def csrf_token(self) -> str:
        return self.tokens.get_or_create(CSRF_TOKEN_KEY, generate_token)

    def asset_version(self, path: str) -> int:
        mtime = get_mtime(self.assets_path / path) if self.assets_path else None
        return int(mtime) if mtime is not None else int(time.time())

    def asset_tag(self, kind: str, path: str) -> str:
        href = html.escape(f"{self.assets_url}/{path}?v={self.asset_version(path)}", quote=True)
        if kind == "css":
            return f'<link rel="stylesheet" href="{href}">'
        return f'<script src="{href}"></script>'

    # Deferred includes

    def variables(self) -> Dict[str, Any]:
        """The current template variables, without interpreter and runtime names."""
        return {
            key: value
            for key, value in self.scope.items()
            if key != "__builtins__" and not key.startswith(RUNTIME_NAME)
        }

    def include(self, name: str) -> str:
        if self.include_fn is None:
            raise RuntimeError(f"Cannot include '{name}': no include handler configured")
        return self.include_fn(name, self.variables())


__all__ = ["Runtime", "escape", "IncludeFunction", "MISSING_VALUE_ERRORS"]
