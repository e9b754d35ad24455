"""Base class for content transformers in the Compiler.

The Compiler uses a pipeline of transformers to rewrite template text into
intermediate markup. Each transformer handles one category of directives.

Transformation Order (10 steps):
1. COMMENTS        - <!-- ... -->
2. INHERITANCE     - @extends('layout') + child @section blocks
3. SECTIONS        - remaining @section blocks
4. INCLUDES        - @include('name'), @includeWhen(cond, 'name')
5. YIELDS          - @yield('name')
6. CONTROL         - @if/@foreach/@for/@while/@switch/@python
7. BUILT-INS       - @csrf, @css, @js, @cdn, @json
8. DIRECTIVES      - user-registered @name(args)
9. UNESCAPED       - {!! expr !!}
10. ESCAPED        - {{ expr }}
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from quire.loader import TemplateLoader

logger = logging.getLogger(__name__)


@dataclass
class CompileContext:
    """State for one compilation, owned by exactly one render call.

    Contains:
    - The template being compiled and its resolved path
    - The section table and layout reference filled by inheritance resolution
    - Dependency paths (layouts, eager includes) for cache validation
    - Include stack for cycle detection
    """

    template: str
    loader: "TemplateLoader"
    source_path: Optional[Path] = None
    max_depth: int = 10

    # Inheritance state
    sections: Dict[str, str] = field(default_factory=dict)
    layout: Optional[str] = None
    layout_chain: List[str] = field(default_factory=list)

    # Include state
    include_stack: Tuple[Path, ...] = ()
    depth: int = 0

    # Tracking for cache validation and debugging
    dependencies: Set[Path] = field(default_factory=set)
    includes_resolved: Set[str] = field(default_factory=set)
    directives_applied: Set[str] = field(default_factory=set)

    def child(self, template: str, source_path: Path) -> "CompileContext":
        """Create a context for compiling an included template.

        The child gets its own section table and layout reference so an
        included template never leaks sections into its parent.
        """
        stack = self.include_stack
        if self.source_path is not None and not stack:
            stack = (self.source_path,)
        return CompileContext(
            template=template,
            loader=self.loader,
            source_path=source_path,
            max_depth=self.max_depth,
            include_stack=stack + (source_path,),
            depth=self.depth + 1,
        )

    def absorb(self, child: "CompileContext") -> None:
        """Merge dependency tracking from a finished child compilation."""
        if child.source_path is not None:
            self.dependencies.add(child.source_path)
        self.dependencies.update(child.dependencies)
        self.includes_resolved.update(child.includes_resolved)
        self.directives_applied.update(child.directives_applied)

    def record_layout(self, name: str, path: Path) -> None:
        """Record that a layout was loaded as the compilation subject."""
        self.layout = name
        self.layout_chain.append(name)
        self.dependencies.add(path)

    def record_include(self, name: str) -> None:
        """Record that an include was resolved."""
        self.includes_resolved.add(name)

    def record_directive(self, name: str) -> None:
        """Record that a directive was expanded."""
        self.directives_applied.add(name)


class ContentTransformer(ABC):
    """Abstract base class for content transformers.

    Each transformer handles a specific type of template directive.
    Transformers hold no per-render state and receive it through transform().
    """

    @abstractmethod
    def transform(self, content: str, context: CompileContext) -> str:
        """Transform content using this transformer's rules.

        Args:
            content: Input content to transform
            context: CompileContext for the current render

        Returns:
            Transformed content
        """
        ...

    def get_name(self) -> str:
        """Get transformer name for logging/debugging."""
        return self.__class__.__name__


class TransformerPipeline:
    """Execute a sequence of transformers on content, in order."""

    def __init__(self, transformers: List[ContentTransformer]) -> None:
        self.transformers = transformers

    def execute(self, content: str, context: CompileContext) -> str:
        """Execute all transformers in sequence.

        Args:
            content: Input content
            context: CompileContext for the pipeline

        Returns:
            Fully transformed content
        """
        result = content
        for transformer in self.transformers:
            logger.debug("%s: running %s", context.template, transformer.get_name())
            result = transformer.transform(result, context)
        return result

