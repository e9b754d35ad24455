"""Control structure translation.

Rewrites control-flow directives into intermediate control tags:

    @if(expr) / @elseif(expr) / @else / @endif
    @foreach(item in items) / @foreach(items as item) / @foreach(items as k => v) / @endforeach
    @for(i in range(3)) / @endfor
    @while(expr) / @endwhile
    @switch(expr) / @case(expr) / @default / @break / @endswitch
    @python ... @endpython

Nesting is validated with a balanced-token scan before anything is emitted;
a mismatch raises MalformedDirectiveError pointing at the offending directive.
"""
from __future__ import annotations

import re
import textwrap
from dataclasses import dataclass
from typing import List, Optional

from quire.exceptions import MalformedDirectiveError
from quire.markup import code_block, runtime_call, statement

from .base import ContentTransformer, CompileContext
from .scanner import directive_pattern, line_col, scan_arguments

OPENERS = {"if": "endif", "foreach": "endforeach", "for": "endfor", "while": "endwhile", "switch": "endswitch"}
CLOSERS = {closer: opener for opener, closer in OPENERS.items()}
# Intermediate keyword closing each opener; both loop kinds become Python for-loops.
END_KEYWORDS = {"if": "endif", "foreach": "endfor", "for": "endfor", "while": "endwhile", "switch": "endswitch"}
LOOPS = frozenset({"foreach", "for", "while"})
WITH_ARGS = frozenset({"if", "elseif", "foreach", "for", "while", "switch", "case"})

DIRECTIVES = [
    "if", "elseif", "else", "endif",
    "foreach", "endforeach", "for", "endfor",
    "while", "endwhile",
    "switch", "case", "default", "break", "endswitch",
    "python", "endpython",
]

FOREACH_PAIR_PATTERN = re.compile(r"^(?P<iter>.+?)\s+as\s+(?P<key>.+?)\s*=>\s*(?P<value>.+)$", re.DOTALL)
FOREACH_AS_PATTERN = re.compile(r"^(?P<iter>.+?)\s+as\s+(?P<value>.+)$", re.DOTALL)
FOR_IN_PATTERN = re.compile(r"^.+?\s+in\s+.+$", re.DOTALL)
ENDPYTHON_PATTERN = re.compile(r"(?<![\w@])@endpython\b")


@dataclass
class _Frame:
    kind: str
    line: int
    column: int
    has_else: bool = False
    has_default: bool = False
    in_case: bool = False


class ControlStructureTranslator(ContentTransformer):
    """Validate and translate control-flow directives."""

    PATTERN = directive_pattern(DIRECTIVES)

    def transform(self, content: str, context: CompileContext) -> str:
        template = context.template
        stack: List[_Frame] = []
        out: List[str] = []
        pos = 0

        def fail(message: str, at: int, directive: str) -> MalformedDirectiveError:
            line, col = line_col(content, at)
            return MalformedDirectiveError(
                message, template=template, line=line, column=col, directive=directive
            )

        while True:
            match = self.PATTERN.search(content, pos)
            if match is None:
                break
            name = match.group(1)
            start, end = match.start(), match.end()
            args: Optional[str] = None

            if name in WITH_ARGS:
                cursor = end
                while cursor < len(content) and content[cursor] in " \t":
                    cursor += 1
                if cursor >= len(content) or content[cursor] != "(":
                    # Prose such as "Thanks @for reading" stays literal.
                    out.append(content[pos:end])
                    pos = end
                    continue
                args, end = scan_arguments(content, cursor, template)
                args = args.strip()
                if not args:
                    raise fail(f"@{name} requires a non-empty argument", start, name)

            out.append(content[pos:start])
            pos = end

            if name == "python":
                closer = ENDPYTHON_PATTERN.search(content, end)
                if closer is None:
                    raise fail("Unclosed @python block", start, name)
                body = textwrap.dedent(content[end : closer.start()]).strip("\n")
                out.append(code_block(body))
                pos = closer.end()
                continue
            if name == "endpython":
                raise fail("@endpython without @python", start, name)

            if name in OPENERS:
                line, col = line_col(content, start)
                stack.append(_Frame(kind=name, line=line, column=col))
                out.append(self._open(name, args or "", start, fail))
                continue

            if name in CLOSERS:
                opener = CLOSERS[name]
                if not stack:
                    raise fail(f"@{name} without @{opener}", start, name)
                top = stack[-1]
                if top.kind != opener:
                    raise fail(
                        f"@{name} does not close @{top.kind} opened at line {top.line}",
                        start,
                        name,
                    )
                stack.pop()
                out.append(statement(END_KEYWORDS[opener]))
                continue

            top = stack[-1] if stack else None

            if name in ("elseif", "else"):
                if top is None or top.kind != "if":
                    raise fail(f"@{name} outside of @if", start, name)
                if top.has_else:
                    raise fail(f"@{name} after @else", start, name)
                if name == "else":
                    top.has_else = True
                    out.append(statement("else"))
                else:
                    out.append(statement("elif", args or ""))
                continue

            if name in ("case", "default"):
                if top is None or top.kind != "switch":
                    raise fail(f"@{name} outside of @switch", start, name)
                if top.has_default:
                    raise fail(f"@{name} after @default", start, name)
                top.in_case = True
                if name == "default":
                    top.has_default = True
                    out.append(statement("default"))
                else:
                    out.append(statement("case", args or ""))
                continue

            if name == "break":
                out.append(self._break(stack, start, fail))
                continue

        out.append(content[pos:])

        if stack:
            top = stack[-1]
            raise MalformedDirectiveError(
                f"Unclosed @{top.kind}; expected @{OPENERS[top.kind]}",
                template=template,
                line=top.line,
                column=top.column,
                directive=top.kind,
            )
        return "".join(out)

    def _open(self, name: str, args: str, start: int, fail) -> str:
        if name == "if":
            return statement("if", args)
        if name == "while":
            return statement("while", args)
        if name == "switch":
            return statement("switch", args)
        if name == "for":
            if not FOR_IN_PATTERN.match(args):
                raise fail("@for expects 'target in iterable'", start, name)
            return statement("for", args)
        return statement("for", self._foreach_header(args, start, fail))

    def _foreach_header(self, args: str, start: int, fail) -> str:
        pair = FOREACH_PAIR_PATTERN.match(args)
        if pair:
            target = f"{pair.group('key').strip()}, {pair.group('value').strip()}"
            return f"{target} in {runtime_call('pairs', pair.group('iter').strip())}"
        single = FOREACH_AS_PATTERN.match(args)
        if single:
            return f"{single.group('value').strip()} in {single.group('iter').strip()}"
        if FOR_IN_PATTERN.match(args):
            return args
        raise fail("@foreach expects 'item in items' or 'items as item'", start, "foreach")

    def _break(self, stack: List[_Frame], start: int, fail) -> str:
        for depth, frame in enumerate(reversed(stack)):
            if frame.kind in LOOPS:
                return statement("break")
            if frame.kind == "switch":
                if depth != 0:
                    raise fail("@break inside a nested block of a @case is not supported", start, "break")
                if not frame.in_case:
                    raise fail("@break outside of @case", start, "break")
                frame.in_case = False
                return statement("endcase")
        raise fail("@break outside of a loop or @switch", start, "break")


__all__ = ["ControlStructureTranslator"]
