"""User directive registry and transformer.

A directive is a function from raw argument text to replacement text:

    registry = DirectiveRegistry()

    @registry.register("upper")
    def upper(expr: str) -> str:
        return "{{ str(%s).upper() }}" % expr

    # template:  @upper(name)

Replacement text may contain interpolation markers or intermediate tags; it
still passes through the interpolation steps that follow.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from .base import ContentTransformer, CompileContext
from .builtins import BUILTIN_DIRECTIVES
from .scanner import DirectiveMatch, directive_pattern, replace_directives

logger = logging.getLogger(__name__)

# Type for registered directive transforms
DirectiveFunction = Callable[[str], str]

# Names the compiler handles itself; user directives with these names never run.
RESERVED_DIRECTIVES = BUILTIN_DIRECTIVES | {
    "extends", "section", "endsection", "yield", "include", "includeWhen",
    "if", "elseif", "else", "endif", "foreach", "endforeach", "for", "endfor",
    "while", "endwhile", "switch", "case", "default", "break", "endswitch",
    "python", "endpython",
}


class DirectiveRegistry:
    """Registry for user directives.

    Names are unique and case-sensitive; registering a name again replaces
    the previous function. Directives are applied in registration order.
    """

    def __init__(self) -> None:
        self._directives: Dict[str, DirectiveFunction] = {}

    def register(self, name: str) -> Callable[[DirectiveFunction], DirectiveFunction]:
        """Decorator to register a directive under ``name``."""
        def decorator(func: DirectiveFunction) -> DirectiveFunction:
            self.add(name, func)
            return func
        return decorator

    def add(self, name: str, func: DirectiveFunction) -> None:
        """Register ``func`` under ``name``, overwriting any previous entry."""
        if name in RESERVED_DIRECTIVES:
            logger.warning("Directive '@%s' is handled by the compiler; the custom one will not run", name)
        self._directives[name] = func

    def get(self, name: str) -> Optional[DirectiveFunction]:
        return self._directives.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._directives

    def __len__(self) -> int:
        return len(self._directives)

    def list_directives(self) -> List[str]:
        """List registered directive names in application order."""
        return list(self._directives.keys())


class DirectiveTransformer(ContentTransformer):
    """Apply user directives ``@name(args)`` in registration order.

    Each directive gets its own pass, so text produced by one directive can
    be picked up by a directive registered after it.
    """

    def __init__(self, registry: DirectiveRegistry) -> None:
        self.registry = registry

    def transform(self, content: str, context: CompileContext) -> str:
        for name in self.registry.list_directives():
            func = self.registry.get(name)
            if func is None:
                continue

            def replace(found: DirectiveMatch, func: DirectiveFunction = func) -> str:
                context.record_directive(found.name)
                return str(func((found.args or "").strip()))

            content = replace_directives(
                content,
                directive_pattern([name]),
                replace,
                with_args=lambda _name: True,
                allow_space=False,
                template=context.template,
            )
        return content


__all__ = [
    "DirectiveRegistry",
    "DirectiveTransformer",
    "DirectiveFunction",
    "RESERVED_DIRECTIVES",
]
