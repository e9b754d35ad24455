"""Locate ``@name(args)`` directives in template text.

Arguments are scanned with balanced parentheses and quote awareness so that
``@if(len(items) > 0)`` or ``@json({"a": f(1)})`` are captured whole.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from quire.exceptions import MalformedDirectiveError

_QUOTES = ("'", '"')


@dataclass(frozen=True)
class DirectiveMatch:
    """A single directive occurrence."""

    name: str
    args: Optional[str]
    start: int
    end: int


def line_col(text: str, pos: int) -> Tuple[int, int]:
    """Return the 1-based (line, column) of ``pos`` in ``text``."""
    line = text.count("\n", 0, pos) + 1
    last_nl = text.rfind("\n", 0, pos)
    return line, pos - last_nl


def directive_pattern(names: Iterable[str]) -> re.Pattern[str]:
    """Compile a pattern matching ``@name`` for any of ``names``.

    Longer names are tried first, and a trailing word boundary keeps ``@for``
    from matching inside ``@foreach``. An ``@`` preceded by a word character
    (an e-mail address) is not a directive.
    """
    ordered = sorted(set(names), key=len, reverse=True)
    alternation = "|".join(re.escape(n) for n in ordered)
    return re.compile(rf"(?<![\w@])@({alternation})\b")


def scan_arguments(text: str, open_pos: int, template: Optional[str] = None) -> Tuple[str, int]:
    """Scan a parenthesised argument list starting at ``text[open_pos] == "("``.

    Returns:
        Tuple of (inner argument text, index just past the closing paren)

    Raises:
        MalformedDirectiveError: If the parentheses never balance
    """
    depth = 0
    quote: Optional[str] = None
    i = open_pos
    n = len(text)
    while i < n:
        ch = text[i]
        if quote is not None:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in _QUOTES:
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return text[open_pos + 1 : i], i + 1
        i += 1

    line, col = line_col(text, open_pos)
    raise MalformedDirectiveError(
        "Unbalanced parentheses in directive arguments",
        template=template,
        line=line,
        column=col,
    )


def iter_directives(
    text: str,
    pattern: re.Pattern[str],
    *,
    with_args: Callable[[str], bool],
    allow_space: bool = True,
    template: Optional[str] = None,
) -> Iterator[DirectiveMatch]:
    """Yield directives matched by ``pattern`` in document order.

    Args:
        text: Template text
        pattern: Pattern built by :func:`directive_pattern`
        with_args: Predicate telling whether a directive name takes arguments
        allow_space: Allow whitespace between the name and ``(``
        template: Template name for error locations
    """
    pos = 0
    while True:
        match = pattern.search(text, pos)
        if match is None:
            return
        name = match.group(1)
        end = match.end()
        args: Optional[str] = None
        if with_args(name):
            cursor = end
            if allow_space:
                while cursor < len(text) and text[cursor] in " \t":
                    cursor += 1
            if cursor < len(text) and text[cursor] == "(":
                args, end = scan_arguments(text, cursor, template)
            else:
                # A bare word such as "@if" without arguments is left as text.
                pos = match.end()
                continue
        yield DirectiveMatch(name=name, args=args, start=match.start(), end=end)
        pos = end


def replace_directives(
    text: str,
    pattern: re.Pattern[str],
    replacer: Callable[[DirectiveMatch], str],
    *,
    with_args: Callable[[str], bool],
    allow_space: bool = True,
    template: Optional[str] = None,
) -> str:
    """Replace every directive found by :func:`iter_directives`."""
    parts: List[str] = []
    last = 0
    for found in iter_directives(
        text, pattern, with_args=with_args, allow_space=allow_space, template=template
    ):
        parts.append(text[last : found.start])
        parts.append(replacer(found))
        last = found.end
    parts.append(text[last:])
    return "".join(parts)


def split_arguments(args: str) -> List[str]:
    """Split a comma-separated argument string at top level.

    Commas inside nested parentheses, brackets, braces or quotes are kept.
    """
    parts: List[str] = []
    current: List[str] = []
    depth = 0
    quote: Optional[str] = None
    i = 0
    while i < len(args):
        ch = args[i]
        if quote is not None:
            current.append(ch)
            if ch == "\\" and i + 1 < len(args):
                current.append(args[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in _QUOTES:
            quote = ch
            current.append(ch)
        elif ch in "([{":
            depth += 1
            current.append(ch)
        elif ch in ")]}":
            depth -= 1
            current.append(ch)
        elif ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    tail = "".join(current).strip()
    if tail or parts:
        parts.append(tail)
    return parts


def unquote(value: str) -> Optional[str]:
    """Return the content of a single- or double-quoted literal, else None."""
    value = value.strip()
    if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
        return value[1:-1]
    return None


__all__ = [
    "DirectiveMatch",
    "line_col",
    "directive_pattern",
    "scan_arguments",
    "iter_directives",
    "replace_directives",
    "split_arguments",
    "unquote",
]
