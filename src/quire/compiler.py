"""Template compiler: source text → intermediate markup → Python code.

Transformation pipeline (10 steps, see ``quire.transformers.base``), then
code generation. With a cache configured, fresh artifacts are reused and
recompiled ones are persisted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import CodeType
from typing import Optional, Tuple

from quire.cache import CacheManager
from quire.codegen import CodeGenerator
from quire.exceptions import MalformedDirectiveError
from quire.loader import TemplateLoader
from quire.transformers.base import CompileContext, TransformerPipeline
from quire.transformers.builtins import BuiltinDirectiveTransformer
from quire.transformers.comments import CommentStripper
from quire.transformers.control import ControlStructureTranslator
from quire.transformers.directives import DirectiveRegistry, DirectiveTransformer
from quire.transformers.includes import IncludeResolver
from quire.transformers.inheritance import InheritanceResolver, SectionExtractor, YieldSubstituter
from quire.transformers.interpolation import ExpressionInterpolator

logger = logging.getLogger(__name__)


@dataclass
class CompiledTemplate:
    """A template ready to execute."""

    name: str
    path: Optional[Path]
    source: str
    code: CodeType
    dependencies: Tuple[Path, ...] = ()
    layout: Optional[str] = None
    from_cache: bool = False
    layout_chain: Tuple[str, ...] = field(default_factory=tuple)


class Compiler:
    """Compile named templates (optionally cached) and in-memory strings.

    Usage:
        compiler = Compiler(TemplateLoader(Path("views")))
        compiled = compiler.compile("pages.home")
    """

    def __init__(
        self,
        loader: TemplateLoader,
        *,
        registry: Optional[DirectiveRegistry] = None,
        cache: Optional[CacheManager] = None,
        max_depth: int = 10,
    ) -> None:
        self.loader = loader
        self.registry = registry if registry is not None else DirectiveRegistry()
        self.cache = cache
        self.max_depth = max_depth
        self.generator = CodeGenerator()
        self.pipeline = self._build_pipeline()

    def _build_pipeline(self) -> TransformerPipeline:
        """Build the 10-step transformation pipeline."""
        return TransformerPipeline([
            # Step 1: Comments
            CommentStripper(),
            # Step 2-3: Layout inheritance and sections
            InheritanceResolver(),
            SectionExtractor(),
            # Step 4: Includes (recursive, child context)
            IncludeResolver(self.compile_text),
            # Step 5: Yields
            YieldSubstituter(),
            # Step 6: Control structures
            ControlStructureTranslator(),
            # Step 7-8: Built-in then user directives
            BuiltinDirectiveTransformer(),
            DirectiveTransformer(self.registry),
            # Step 9-10: Interpolation, unescaped then escaped
            ExpressionInterpolator(),
        ])

    def new_context(self, template: str, source_path: Optional[Path] = None) -> CompileContext:
        return CompileContext(
            template=template,
            loader=self.loader,
            source_path=source_path,
            max_depth=self.max_depth,
        )

    def compile_text(self, text: str, context: CompileContext) -> str:
        """Run the pipeline over ``text``, returning intermediate markup."""
        return self.pipeline.execute(text, context)

    def generate(self, markup: str, template: str, filename: str) -> Tuple[str, CodeType]:
        """Generate Python source for ``markup`` and compile it."""
        source = self.generator.generate(markup, template)
        return source, self._compile_source(source, template, filename)

    def _compile_source(self, source: str, template: str, filename: str) -> CodeType:
        try:
            return compile(source, filename, "exec")
        except SyntaxError as exc:
            # A bad expression inside a directive; report it against the template.
            raise MalformedDirectiveError(
                f"Invalid expression: {exc.msg}",
                template=template,
                context={"generated_line": exc.lineno, "text": (exc.text or "").strip()},
            ) from exc

    def compile(self, name: str) -> CompiledTemplate:
        """Compile the named template, reusing a fresh cached artifact.

        Raises:
            TemplateNotFoundError: If the template does not exist
            QuireError: Any compilation failure
        """
        return self.compile_file(name, self.loader.source_path(name))

    def compile_include(self, name: str) -> CompiledTemplate:
        """Compile an include target resolved at run time (@includeWhen)."""
        return self.compile_file(name, self.loader.include_path(name))

    def compile_file(self, name: str, path: Path) -> CompiledTemplate:
        """Compile an already resolved template file."""
        if self.cache is not None:
            artifact = self.cache.load(path)
            if artifact is not None:
                logger.debug("%s: cache hit %s", name, artifact.path.name)
                return CompiledTemplate(
                    name=name,
                    path=path,
                    source=artifact.source,
                    code=self._compile_source(artifact.source, name, str(artifact.path)),
                    dependencies=artifact.dependencies,
                    layout=artifact.layout,
                    layout_chain=artifact.layout_chain,
                    from_cache=True,
                )

        context = self.new_context(name, path)
        markup = self.compile_text(self.loader.read(path), context)
        filename = str(self.cache.artifact_path(path)) if self.cache is not None else str(path)
        source, code = self.generate(markup, name, filename)
        dependencies = tuple(sorted(context.dependencies))

        if self.cache is not None:
            self.cache.store(path, source, dependencies, context.layout_chain)

        logger.debug(
            "%s: compiled (layout=%s, includes=%s, directives=%s)",
            name,
            context.layout,
            sorted(context.includes_resolved),
            sorted(context.directives_applied),
        )
        return CompiledTemplate(
            name=name,
            path=path,
            source=source,
            code=code,
            dependencies=dependencies,
            layout=context.layout,
            layout_chain=tuple(context.layout_chain),
        )

    def compile_string(self, text: str, name: str = "<string>") -> CompiledTemplate:
        """Compile an in-memory template; never cached."""
        context = self.new_context(name)
        markup = self.compile_text(text, context)
        source, code = self.generate(markup, name, name)
        return CompiledTemplate(
            name=name,
            path=None,
            source=source,
            code=code,
            dependencies=tuple(sorted(context.dependencies)),
            layout=context.layout,
            layout_chain=tuple(context.layout_chain),
        )


__all__ = ["Compiler", "CompiledTemplate"]
