"""Python code generation from intermediate markup.

The generated module is straight-line Python executed with the render scope
as its globals, so loop targets and names assigned in @python blocks are
visible to every later expression. Output goes through the runtime object
bound to ``__quire`` in that scope.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from quire.exceptions import MalformedDirectiveError
from quire.markup import BLOCK_KEYWORDS, RUNTIME_NAME, TAG_PATTERN
from quire.transformers.scanner import line_col

logger = logging.getLogger(__name__)

KEYWORD_PATTERN = re.compile(r"\s*(\w+)")


class CodeBuilder:
    """Build source code conveniently."""

    INDENT_STEP = 4

    def __init__(self, indent: int = 0) -> None:
        self.code: List[str] = []
        self.indent_level = indent

    def __str__(self) -> str:
        return "".join(self.code)

    def add_line(self, line: str) -> None:
        """Add a line of source to the code.

        Indentation and newline will be added for you, don't provide them.
        """
        self.code.extend([" " * self.indent_level, line, "\n"])

    def indent(self) -> None:
        """Increase the current indent for following lines."""
        self.indent_level += self.INDENT_STEP

    def dedent(self) -> None:
        """Decrease the current indent for following lines."""
        self.indent_level -= self.INDENT_STEP


@dataclass
class _Block:
    kind: str
    line: int
    has_body: bool = False
    has_else: bool = False
    # switch bookkeeping
    subject: str = ""
    pending: List[str] = field(default_factory=list)
    pending_default: bool = False
    branch_open: bool = False
    branches: int = 0


class CodeGenerator:
    """Translate intermediate markup into Python module source.

    Blocks are validated while generating: a stray or mismatched control tag
    raises MalformedDirectiveError, which also covers tags emitted by user
    directives.
    """

    def generate(self, markup: str, template: str = "<string>") -> str:
        return _Generation(markup, template).run()


class _Generation:
    """Single use: holds the builder and block stack for one generate() call."""

    def __init__(self, markup: str, template: str) -> None:
        self.markup = markup
        self.template = template
        self.code = CodeBuilder()
        self.stack: List[_Block] = []
        self.buffered: List[str] = []
        self.switches = 0
        self.pos = 0

    # -- errors -------------------------------------------------------------

    def _error(self, message: str, keyword: Optional[str] = None) -> MalformedDirectiveError:
        line, col = line_col(self.markup, self.pos)
        return MalformedDirectiveError(
            message, template=self.template, line=line, column=col, directive=keyword
        )

    # -- output ---------------------------------------------------------------

    def _add(self, line: str) -> None:
        if self.stack:
            self.stack[-1].has_body = True
        self.code.add_line(line)

    def _flush(self) -> None:
        """Force ``buffered`` to the code builder."""
        if len(self.buffered) == 1:
            self._add(f"{RUNTIME_NAME}.write({self.buffered[0]})")
        elif len(self.buffered) > 1:
            self._add(f"{RUNTIME_NAME}.extend([{', '.join(self.buffered)}])")
        del self.buffered[:]

    def _emit(self, item: str) -> None:
        self._enter_case_body()
        self.buffered.append(item)

    # -- switch handling ------------------------------------------------------

    def _switch(self) -> Optional[_Block]:
        if self.stack and self.stack[-1].kind == "switch":
            return self.stack[-1]
        return None

    def _enter_case_body(self) -> None:
        """Open the pending case branch before the first body item."""
        block = self._switch()
        if block is None or block.branch_open:
            return
        if not block.pending and not block.pending_default:
            raise self._error("Output inside @switch before the first @case", "switch")

        if block.pending_default:
            header = "else:" if block.branches else "if True:"
        else:
            values = block.pending
            if len(values) == 1:
                test = f"{block.subject} == ({values[0]})"
            else:
                test = f"{block.subject} in ({', '.join(f'({v})' for v in values)},)"
            header = f"{'elif' if block.branches else 'if'} {test}:"
        self._add(header)
        self.code.indent()
        block.branch_open = True
        block.branches += 1
        block.pending = []
        block.pending_default = False
        # The branch header is body of the switch; the branch itself starts empty.
        block.has_body = False

    def _close_case(self, block: _Block) -> None:
        if (block.pending or block.pending_default) and not block.branch_open:
            self._enter_case_body()
        if block.branch_open:
            if not block.has_body:
                self.code.add_line("pass")
            self.code.dedent()
            block.branch_open = False

    # -- blocks ---------------------------------------------------------------

    def _open(self, kind: str, header: str) -> None:
        self._enter_case_body()
        self._flush()
        self._add(header)
        self.code.indent()
        line, _ = line_col(self.markup, self.pos)
        self.stack.append(_Block(kind=kind, line=line))

    def _expect(self, kind: str, keyword: str) -> _Block:
        if not self.stack or self.stack[-1].kind != kind:
            found = f" (inside {self.stack[-1].kind})" if self.stack else ""
            raise self._error(f"'{keyword}' without matching '{kind}'{found}", keyword)
        return self.stack[-1]

    def _ensure_body(self) -> None:
        if not self.stack[-1].has_body:
            self.code.add_line("pass")

    def _reopen(self, kind: str, keyword: str, header: str) -> None:
        block = self._expect(kind, keyword)
        if block.has_else:
            raise self._error(f"'{keyword}' after 'else'", keyword)
        self._flush()
        self._ensure_body()
        self.code.dedent()
        self.code.add_line(header)
        self.code.indent()
        block.has_body = False

    def _close(self, kind: str, keyword: str) -> None:
        self._expect(kind, keyword)
        self._flush()
        self._ensure_body()
        self.code.dedent()
        self.stack.pop()

    def _statement(self, keyword: str, args: str) -> None:
        if keyword not in BLOCK_KEYWORDS:
            raise self._error(f"Unknown control tag '{keyword}'", keyword)

        if keyword in ("if", "while", "for"):
            if not args:
                raise self._error(f"'{keyword}' requires an expression", keyword)
            self._open(keyword, f"{keyword} {args}:")
        elif keyword == "elif":
            self._reopen("if", keyword, f"elif {args}:")
        elif keyword == "else":
            self._reopen("if", keyword, "else:")
            self.stack[-1].has_else = True
        elif keyword in ("endif", "endfor", "endwhile"):
            self._close(keyword[3:], keyword)
        elif keyword == "break":
            if not any(b.kind in ("for", "while") for b in self.stack):
                raise self._error("'break' outside of a loop", keyword)
            self._enter_case_body()
            self._flush()
            self._add("break")
        elif keyword == "switch":
            self._enter_case_body()
            self._flush()
            self.switches += 1
            subject = f"{RUNTIME_NAME}_switch_{self.switches}"
            self._add(f"{subject} = ({args})")
            line, _ = line_col(self.markup, self.pos)
            self.stack.append(_Block(kind="switch", line=line, subject=subject))
        elif keyword in ("case", "default", "endcase"):
            block = self._switch()
            if block is None:
                raise self._error(f"'{keyword}' outside of 'switch'", keyword)
            self._flush()
            if keyword == "endcase":
                self._close_case(block)
            else:
                if block.branch_open:
                    # A new case after a case body ends that body (no fall-through).
                    self._close_case(block)
                if keyword == "case":
                    if block.pending_default:
                        raise self._error("'case' after 'default'", keyword)
                    block.pending.append(args)
                else:
                    block.pending = []
                    block.pending_default = True
        elif keyword == "endswitch":
            block = self._expect("switch", keyword)
            self._flush()
            self._close_case(block)
            self.stack.pop()
        elif keyword == "code":
            self._enter_case_body()
            self._flush()
            for line in args.splitlines():
                if line.strip():
                    self._add(line.rstrip())

    def _literal(self, text: str) -> None:
        if not text:
            return
        block = self._switch()
        if block is not None and not block.branch_open and not text.strip():
            # Whitespace between @switch, @case and @break is layout, not output.
            return
        self._emit(repr(text))

    def run(self) -> str:
        last = 0
        for match in TAG_PATTERN.finditer(self.markup):
            self.pos = match.start()
            self._literal(self.markup[last : match.start()])
            last = match.end()

            marker, body = match.group(1), match.group(2)
            if marker == "=":
                self._emit(f"{RUNTIME_NAME}.escape(lambda: ({body.strip()}))")
            elif marker == "!":
                self._emit(f"{RUNTIME_NAME}.raw(lambda: ({body.strip()}))")
            else:
                head = KEYWORD_PATTERN.match(body)
                if head is None:
                    raise self._error("Empty control tag")
                keyword, rest = head.group(1), body[head.end() :]
                if keyword == "code":
                    # Keep relative indentation of the statements.
                    self._statement(keyword, rest.lstrip("\n").rstrip())
                else:
                    self._statement(keyword, rest.strip())

        self.pos = len(self.markup)
        self._literal(self.markup[last:])
        self._flush()

        if self.stack:
            block = self.stack[-1]
            raise MalformedDirectiveError(
                f"Unclosed '{block.kind}' block",
                template=self.template,
                line=block.line,
                directive=block.kind,
            )
        if not self.code.code:
            self.code.add_line("pass")
        source = str(self.code)
        logger.debug("%s: generated %d lines (%d switch blocks)", self.template, source.count("\n"), self.switches)
        return source


__all__ = ["CodeBuilder", "CodeGenerator"]
