"""Intermediate markup shared by the transformers and the code generator.

Transformers rewrite directives into tags embedded in the literal text:

    <?py= EXPR ?>          emit EXPR, HTML-escaped
    <?py! EXPR ?>          emit EXPR verbatim
    <?py KEYWORD ARGS ?>   control statement (if, elif, else, endif, for,
                           endfor, while, endwhile, break, switch, case,
                           default, endcase, endswitch, code)

Everything outside a tag is literal output. User directives may emit these
tags (or interpolation markers) directly.
"""
from __future__ import annotations

import re

RUNTIME_NAME = "__quire"

TAG_PATTERN = re.compile(r"<\?py([=!]|\s)(.*?)\?>", re.DOTALL)

BLOCK_KEYWORDS = frozenset(
    {
        "if",
        "elif",
        "else",
        "endif",
        "for",
        "endfor",
        "while",
        "endwhile",
        "break",
        "switch",
        "case",
        "default",
        "endcase",
        "endswitch",
        "code",
    }
)


def emit_escaped(expr: str) -> str:
    """Tag emitting ``expr`` HTML-escaped."""
    return f"<?py= {expr.strip()} ?>"


def emit_raw(expr: str) -> str:
    """Tag emitting ``expr`` verbatim."""
    return f"<?py! {expr.strip()} ?>"


def statement(keyword: str, args: str = "") -> str:
    """Tag for a control statement."""
    args = args.strip()
    return f"<?py {keyword} {args} ?>" if args else f"<?py {keyword} ?>"


def code_block(source: str) -> str:
    """Tag carrying raw Python statements."""
    return f"<?py code\n{source}\n?>"


def runtime_call(method: str, *args: str) -> str:
    """Python expression calling a helper on the per-render runtime object."""
    return f"{RUNTIME_NAME}.{method}({', '.join(args)})"


__all__ = [
    "RUNTIME_NAME",
    "TAG_PATTERN",
    "BLOCK_KEYWORDS",
    "emit_escaped",
    "emit_raw",
    "statement",
    "code_block",
    "runtime_call",
]
