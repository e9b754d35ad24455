"""Output minification hooks.

A minifier is any object with ``minify(text) -> str``. The renderer applies it
once to the complete output of a successful top-level render, so elements
such as ``<pre>`` or ``<script>`` are always seen whole, whatever directives
produced their content.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

import minify_html


@runtime_checkable
class Minifier(Protocol):
    def minify(self, text: str) -> str:
        ...


class HtmlMinifier:
    """HTML minification backed by minify-html.

    Whitespace is collapsed or removed according to the surrounding element.
    Content of ``<pre>`` and ``<textarea>`` is kept as is. Inline JavaScript
    and CSS are copied unchanged unless ``minify_js`` / ``minify_css`` are set.
    Closing tags and ``<html>``/``<head>`` are always kept.
    """

    def __init__(
        self,
        *,
        minify_js: bool = False,
        minify_css: bool = False,
        keep_comments: bool = False,
    ) -> None:
        self.minify_js = minify_js
        self.minify_css = minify_css
        self.keep_comments = keep_comments

    def minify(self, text: str) -> str:
        return minify_html.minify(
            text,
            minify_js=self.minify_js,
            minify_css=self.minify_css,
            keep_comments=self.keep_comments,
            keep_closing_tags=True,
            keep_html_and_head_opening_tags=True,
        )


__all__ = ["Minifier", "HtmlMinifier"]
