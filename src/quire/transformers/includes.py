"""Include transformers for template compilation.

Handles:
- @include('name')              - Compile the named template and splice it in
- @includeWhen(cond, 'name')    - Render the named template at run time, only
                                  when ``cond`` is truthy
"""
from __future__ import annotations

import logging
import re
from typing import Callable

from quire.exceptions import MalformedDirectiveError, TemplateRecursionError
from quire.markup import emit_raw, runtime_call, statement

from .base import ContentTransformer, CompileContext
from .scanner import directive_pattern, line_col, replace_directives, split_arguments, unquote

logger = logging.getLogger(__name__)

CompileFunction = Callable[[str, CompileContext], str]


class IncludeResolver(ContentTransformer):
    """Resolve @include directives eagerly and @includeWhen lazily.

    Eager includes run the full pipeline on the included file with a child
    context, so the include's sections and layout never touch the parent.
    Includes inside section bodies are resolved too.
    """

    INCLUDE_PATTERN = re.compile(r"""@include\(\s*(['"])([^'"]+?)\1\s*\)""")
    INCLUDE_WHEN_PATTERN = directive_pattern(["includeWhen"])

    def __init__(self, compile_fn: CompileFunction) -> None:
        """Initialize with the function that compiles included text.

        Args:
            compile_fn: Runs the full pipeline on (text, child context)
        """
        self.compile_fn = compile_fn

    def transform(self, content: str, context: CompileContext) -> str:
        content = self._resolve(content, context)
        for name, section in list(context.sections.items()):
            context.sections[name] = self._resolve(section, context)
        return content

    def _resolve(self, content: str, context: CompileContext) -> str:
        def replace_include(match: re.Match[str]) -> str:
            return self._resolve_single_include(match.group(2).strip(), context)

        content = self.INCLUDE_PATTERN.sub(replace_include, content)
        return replace_directives(
            content,
            self.INCLUDE_WHEN_PATTERN,
            lambda found: self._conditional_include(found.args or "", found.start, content, context),
            with_args=lambda _name: True,
            allow_space=False,
            template=context.template,
        )

    def _resolve_single_include(self, name: str, context: CompileContext) -> str:
        """Compile one included template.

        Raises:
            IncludeNotFoundError: If no candidate exists
            IncludeOutsideRootError: If the candidate escapes the resources root
            TemplateRecursionError: On include cycles or excessive depth
        """
        path = context.loader.include_path(name)

        if path == context.source_path or path in context.include_stack:
            raise TemplateRecursionError(
                f"Circular include detected: {name}",
                context={"name": name, "stack": [str(p) for p in context.include_stack]},
            )
        if context.depth >= context.max_depth:
            raise TemplateRecursionError(
                f"Include depth exceeds {context.max_depth} at '{name}'",
                context={"name": name},
            )

        child = context.child(name, path)
        compiled = self.compile_fn(context.loader.read(path), child)
        context.absorb(child)
        context.record_include(name)
        logger.debug("%s: included %s from %s", context.template, name, path)
        return compiled

    def _conditional_include(
        self, args: str, pos: int, content: str, context: CompileContext
    ) -> str:
        parts = split_arguments(args)
        name = unquote(parts[-1]) if len(parts) == 2 else None
        if name is None or not parts[0]:
            line, col = line_col(content, pos)
            raise MalformedDirectiveError(
                "@includeWhen expects (condition, 'template')",
                template=context.template,
                line=line,
                column=col,
                directive="includeWhen",
            )
        call = runtime_call("include", repr(name.strip()))
        return statement("if", parts[0]) + emit_raw(call) + statement("endif")


__all__ = ["IncludeResolver", "CompileFunction"]
