"""Expression interpolation.

- {!! expr !!}  - emit str(expr) verbatim
- {{ expr }}    - emit str(expr) HTML-escaped

Unescaped markers are expanded first so ``{!! !!}`` is never mistaken for an
escaped marker. A None or undefined value renders as empty text.
"""
from __future__ import annotations

import re

from quire.markup import emit_escaped, emit_raw

from .base import ContentTransformer, CompileContext


class UnescapedInterpolator(ContentTransformer):
    """Rewrite ``{!! expr !!}`` into a raw emit tag."""

    PATTERN = re.compile(r"\{!!\s*(.+?)\s*!!\}")

    def transform(self, content: str, context: CompileContext) -> str:
        return self.PATTERN.sub(lambda m: emit_raw(m.group(1)), content)


class EscapedInterpolator(ContentTransformer):
    """Rewrite ``{{ expr }}`` into an escaped emit tag."""

    PATTERN = re.compile(r"\{\{\s*(.+?)\s*\}\}")

    def transform(self, content: str, context: CompileContext) -> str:
        return self.PATTERN.sub(lambda m: emit_escaped(m.group(1)), content)


class ExpressionInterpolator(ContentTransformer):
    """Both interpolation forms, unescaped first."""

    def __init__(self) -> None:
        self.unescaped = UnescapedInterpolator()
        self.escaped = EscapedInterpolator()

    def transform(self, content: str, context: CompileContext) -> str:
        content = self.unescaped.transform(content, context)
        return self.escaped.transform(content, context)


__all__ = ["ExpressionInterpolator", "UnescapedInterpolator", "EscapedInterpolator"]
