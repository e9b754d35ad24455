"""Layout inheritance transformers.

Handles:
- @extends('layout')                   - Make a layout the compilation subject
- @section('name') ... @endsection     - Block section content
- @section('name', 'value')            - Inline section content
- @yield('name') / @yield('name', 'd') - Placeholder for section content

Layouts may themselves extend another layout. Sections declared by a more
derived template win over same-named sections declared by its ancestors.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from quire.exceptions import MalformedDirectiveError, TemplateRecursionError

from .base import ContentTransformer, CompileContext
from .comments import CommentStripper
from .scanner import line_col

logger = logging.getLogger(__name__)

EXTENDS_PATTERN = re.compile(r"""@extends\(\s*(['"])([^'"]+?)\1\s*\)""")
SECTION_INLINE_PATTERN = re.compile(
    r"""@section\(\s*(['"])([^'"]+?)\1\s*,\s*(['"])(.*?)\3\s*\)""",
    re.DOTALL,
)
SECTION_BLOCK_PATTERN = re.compile(
    r"""@section\(\s*(['"])([^'"]+?)\1\s*\)(.*?)@endsection\b""",
    re.DOTALL,
)
YIELD_PATTERN = re.compile(r"""@yield\(\s*(['"])([^'"]+?)\1\s*(?:,\s*(['"])(.*?)\3\s*)?\)""")
STRAY_SECTION_PATTERN = re.compile(r"@(section|endsection)\b")


def extract_sections(content: str, template: Optional[str] = None) -> Tuple[str, Dict[str, str]]:
    """Remove section blocks from ``content``.

    Returns:
        Tuple of (remaining content, mapping of section name to trimmed body).
        Within one template a repeated section name keeps the last body.

    Raises:
        MalformedDirectiveError: If a @section is never closed or an
            @endsection has no opener
    """
    sections: Dict[str, str] = {}

    def take_inline(match: re.Match[str]) -> str:
        sections[match.group(2)] = match.group(4)
        return ""

    def take_block(match: re.Match[str]) -> str:
        sections[match.group(2)] = match.group(3).strip()
        return ""

    remaining = SECTION_INLINE_PATTERN.sub(take_inline, content)
    remaining = SECTION_BLOCK_PATTERN.sub(take_block, remaining)

    stray = STRAY_SECTION_PATTERN.search(remaining)
    if stray is not None:
        line, col = line_col(remaining, stray.start())
        problem = "Unclosed @section" if stray.group(1) == "section" else "@endsection without @section"
        raise MalformedDirectiveError(
            problem, template=template, line=line, column=col, directive=stray.group(1)
        )
    return remaining, sections


class InheritanceResolver(ContentTransformer):
    """Resolve @extends chains into the outermost layout's text.

    Each level's sections go into the context's section table, the level's
    other content is discarded, and its parent layout becomes the subject.
    """

    def __init__(self) -> None:
        self.comment_stripper = CommentStripper()

    def transform(self, content: str, context: CompileContext) -> str:
        current = content
        current_name = context.template
        seen: List[Path] = [context.source_path] if context.source_path else []

        while True:
            matches = list(EXTENDS_PATTERN.finditer(current))
            if not matches:
                return current
            if len(matches) > 1:
                line, col = line_col(current, matches[1].start())
                raise MalformedDirectiveError(
                    "A template may declare only one @extends",
                    template=current_name,
                    line=line,
                    column=col,
                    directive="extends",
                )

            match = matches[0]
            layout_name = match.group(2).strip()
            if len(context.layout_chain) >= context.max_depth:
                raise TemplateRecursionError(
                    f"Layout chain deeper than {context.max_depth} at '{layout_name}'",
                    context={"chain": list(context.layout_chain)},
                )

            body = current[: match.start()] + current[match.end() :]
            _, sections = extract_sections(body, current_name)
            for name, section in sections.items():
                context.sections.setdefault(name, section)

            layout_path = context.loader.layout_path(layout_name)
            if layout_path in seen:
                raise TemplateRecursionError(
                    f"Layout cycle detected at '{layout_name}'",
                    context={"chain": list(context.layout_chain) + [layout_name]},
                )
            seen.append(layout_path)
            context.record_layout(layout_name, layout_path)
            logger.debug("%s: extends %s", current_name, layout_name)

            raw = context.loader.read(layout_path)
            current = self.comment_stripper.transform(raw, context)
            current_name = layout_name


class SectionExtractor(ContentTransformer):
    """Move any remaining section blocks into the section table.

    Sections already in the table came from a more derived template and are
    kept.
    """

    def transform(self, content: str, context: CompileContext) -> str:
        remaining, sections = extract_sections(content, context.template)
        for name, section in sections.items():
            context.sections.setdefault(name, section)
        return remaining


class YieldSubstituter(ContentTransformer):
    """Replace @yield placeholders with raw section content.

    Substituted content flows through every later pipeline step, so it is
    evaluated against the render-time data. A yield naming an undeclared
    section produces its default, or empty text.
    """

    def transform(self, content: str, context: CompileContext) -> str:
        def replace_yield(match: re.Match[str]) -> str:
            name = match.group(2)
            default = match.group(4) or ""
            return context.sections.get(name, default)

        result = content
        for _ in range(context.max_depth + 1):
            if not YIELD_PATTERN.search(result):
                return result
            result = YIELD_PATTERN.sub(replace_yield, result)

        raise TemplateRecursionError(
            f"Sections in '{context.template}' yield each other more than {context.max_depth} levels deep",
            context={"template": context.template},
        )


__all__ = [
    "InheritanceResolver",
    "SectionExtractor",
    "YieldSubstituter",
    "extract_sections",
]
