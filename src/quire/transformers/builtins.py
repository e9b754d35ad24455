"""Built-in directives, expanded before any user directive.

Handles:
- @csrf               - Session anti-forgery token (resolved per render)
- @css('app.css')     - <link> to an asset with a cache-busting ?v=mtime
- @js('app.js')       - <script> to an asset with a cache-busting ?v=mtime
- @cdn('u1', 'u2')    - <link>/<script> per URL, classified by URL shape
- @json(expr)         - JSON encoding of a value, Unicode and slashes kept
"""
from __future__ import annotations

import html
import re
from typing import List

from quire.exceptions import MalformedDirectiveError
from quire.markup import emit_raw, runtime_call

from .base import ContentTransformer, CompileContext
from .scanner import DirectiveMatch, directive_pattern, line_col, replace_directives, split_arguments, unquote

STYLESHEET = "stylesheet"
SCRIPT = "script"

BUILTIN_DIRECTIVES = frozenset({"csrf", "css", "js", "cdn", "json"})

_CSS_EXTENSION = re.compile(r"\.css(\?|$)", re.IGNORECASE)
_JS_EXTENSION = re.compile(r"\.js(\?|$)", re.IGNORECASE)
_STYLESHEET_HINTS = ("fonts.googleapis.com", "fontawesome", "css2?")
_SCRIPT_HINTS = ("jsdelivr", "unpkg")


def classify_cdn_url(url: str) -> str:
    """Classify a CDN URL as stylesheet or script.

    Stylesheet: a .css path, Google Fonts, Font Awesome, or a css2? query.
    Script: a .js path, jsDelivr or unpkg, and anything unrecognised.
    """
    if _CSS_EXTENSION.search(url) or any(hint in url for hint in _STYLESHEET_HINTS):
        return STYLESHEET
    if _JS_EXTENSION.search(url) or any(hint in url for hint in _SCRIPT_HINTS):
        return SCRIPT
    return SCRIPT


def cdn_tag(url: str) -> str:
    """Render the HTML tag for one CDN URL."""
    href = html.escape(url, quote=True)
    if classify_cdn_url(url) == STYLESHEET:
        return f'<link rel="stylesheet" href="{href}">'
    return f'<script src="{href}"></script>'


class BuiltinDirectiveTransformer(ContentTransformer):
    """Expand asset, token and json directives in a fixed order."""

    CSRF_PATTERN = re.compile(r"(?<![\w@])@csrf\b")
    ASSET_PATTERN = directive_pattern(["css", "js", "cdn"])
    JSON_PATTERN = directive_pattern(["json"])

    def transform(self, content: str, context: CompileContext) -> str:
        template = context.template

        def replace_csrf(match: re.Match[str]) -> str:
            context.record_directive("csrf")
            return emit_raw(runtime_call("csrf_token"))

        content = self.CSRF_PATTERN.sub(replace_csrf, content)

        def replace_asset(found: DirectiveMatch) -> str:
            context.record_directive(found.name)
            if found.name == "cdn":
                return "\n".join(cdn_tag(url) for url in self._cdn_urls(found.args or ""))
            path = unquote(found.args or "")
            if not path:
                line, col = line_col(content, found.start)
                raise MalformedDirectiveError(
                    f"@{found.name} expects a quoted asset path",
                    template=template,
                    line=line,
                    column=col,
                    directive=found.name,
                )
            return emit_raw(runtime_call("asset_tag", repr(found.name), repr(path)))

        content = replace_directives(
            content,
            self.ASSET_PATTERN,
            replace_asset,
            with_args=lambda _name: True,
            allow_space=False,
            template=template,
        )

        def replace_json(found: DirectiveMatch) -> str:
            context.record_directive("json")
            return emit_raw(runtime_call("json", (found.args or "").strip() or "None"))

        return replace_directives(
            content,
            self.JSON_PATTERN,
            replace_json,
            with_args=lambda _name: True,
            allow_space=False,
            template=template,
        )

    def _cdn_urls(self, args: str) -> List[str]:
        urls: List[str] = []
        for part in split_arguments(args):
            url = part.replace('"', "").replace("'", "").strip()
            if url:
                urls.append(url)
        return urls


__all__ = [
    "BuiltinDirectiveTransformer",
    "BUILTIN_DIRECTIVES",
    "classify_cdn_url",
    "cdn_tag",
    "STYLESHEET",
    "SCRIPT",
]
