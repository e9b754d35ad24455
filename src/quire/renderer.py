"""Renderer: the public entry point of the engine.

    engine = Renderer(views_path="resources/views", cache_path="storage/cache")
    engine.set_globals({"app_name": "Demo", "now": datetime.now})

    @engine.directive("upper")
    def upper(expr):
        return "{{ str(%s).upper() }}" % expr

    result = engine.render("pages.home", {"user": user})
    result.output

Every render call gets its own compile context and runtime, so renders on
different threads never share section or output state.
"""
from __future__ import annotations

import html
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, TextIO, Union

from quire.cache import CacheManager
from quire.compiler import CompiledTemplate, Compiler
from quire.config import QuireConfig
from quire.exceptions import QuireError, RenderError, TemplateRecursionError
from quire.loader import TemplateLoader
from quire.markup import RUNTIME_NAME
from quire.minify import Minifier
from quire.runtime import Runtime
from quire.session import InMemoryTokenStore, TokenStore
from quire.transformers.directives import DirectiveFunction, DirectiveRegistry
from quire.utils.stdlib_logging import configure_diagnostic_log

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
GlobalProvider = Callable[[], Any]


@dataclass(frozen=True)
class RenderResult:
    """Outcome of one render call.

    ``output`` is the full rendered text on success. On failure ``error`` is
    set and ``output`` is the inline error block in debug mode, else empty.
    """

    template: str
    output: str
    error: Optional[BaseException] = None
    layout: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __str__(self) -> str:
        return self.output


def error_block(error: BaseException) -> str:
    """Inline HTML shown in place of a failed render when debugging."""
    return f"<pre style='color:red;'>Quire Error: {html.escape(str(error))}</pre>"


class Renderer:
    """Compile and render templates with globals, directives and caching."""

    def __init__(
        self,
        views_path: PathLike,
        *,
        cache_path: Optional[PathLike] = None,
        extension: str = ".tpl.html",
        resources_path: Optional[PathLike] = None,
        assets_path: Optional[PathLike] = None,
        assets_url: str = "/assets",
        include_fallback_extensions: Sequence[str] = (".tpl", ".html"),
        debug: bool = False,
        log_path: Optional[PathLike] = None,
        log_level: str = "WARNING",
        max_depth: int = 10,
        minifier: Optional[Minifier] = None,
        tokens: Optional[TokenStore] = None,
    ) -> None:
        self.loader = TemplateLoader(
            Path(views_path),
            extension=extension,
            resources_path=Path(resources_path) if resources_path else None,
            fallback_extensions=include_fallback_extensions,
        )
        self.cache = CacheManager(Path(cache_path)) if cache_path else None
        self.registry = DirectiveRegistry()
        self.compiler = Compiler(
            self.loader,
            registry=self.registry,
            cache=self.cache,
            max_depth=max_depth,
        )
        self.assets_path = Path(assets_path) if assets_path else self.loader.resources_path / "assets"
        self.assets_url = assets_url
        self.debug = debug
        self.minifier = minifier
        self.max_depth = max_depth
        self.tokens = tokens if tokens is not None else InMemoryTokenStore()
        self._globals: Dict[str, GlobalProvider] = {}

        if log_path is None and cache_path:
            log_path = Path(cache_path) / "quire.log"
        self.log_path = Path(log_path) if log_path else None
        if self.log_path is not None:
            configure_diagnostic_log(self.log_path, level=log_level)

    @classmethod
    def from_config(cls, config: QuireConfig, **kwargs: Any) -> "Renderer":
        """Build a renderer from a loaded QuireConfig.

        Extra keyword arguments (minifier, tokens) are passed through.
        Paths left unset default the same way as for the constructor.
        """
        return cls(
            config.views_path,
            cache_path=config.cache_path,
            extension=config.extension,
            resources_path=config.resources_path,
            assets_path=config.assets_path,
            assets_url=config.assets_url,
            include_fallback_extensions=config.include_fallback_extensions,
            debug=config.debug,
            log_path=config.log_path,
            log_level=config.log_level,
            max_depth=config.max_depth,
            **kwargs,
        )

    # Globals

    @staticmethod
    def _provider(value: Any) -> GlobalProvider:
        if callable(value):
            return value
        return lambda: value

    def set_globals(self, data: Mapping[str, Any]) -> None:
        """Bind globals; callables are providers invoked on every render."""
        for key, value in data.items():
            self._globals[key] = self._provider(value)

    def update_global(self, key: str, value: Any) -> None:
        self._globals[key] = self._provider(value)

    def globals(self) -> Dict[str, Any]:
        """Evaluate every global provider now."""
        return {key: provider() for key, provider in self._globals.items()}

    # Directives

    def directive(self, name: str, func: Optional[DirectiveFunction] = None) -> Any:
        """Register a user directive.

        ``engine.directive("upper", fn)`` registers directly; without ``func``
        this returns a decorator.
        """
        if func is None:
            return self.registry.register(name)
        self.registry.add(name, func)
        return func

    # Compilation and execution

    def compile(self, name: str) -> CompiledTemplate:
        return self.compiler.compile(name)

    def clear_cache(self) -> int:
        """Remove every compiled artifact; returns how many were removed."""
        if self.cache is None:
            return 0
        return self.cache.clear()

    def execute(
        self,
        compiled: CompiledTemplate,
        variables: Mapping[str, Any],
        depth: int = 0,
        *,
        tokens: Optional[TokenStore] = None,
    ) -> str:
        """Run compiled code against ``variables`` and return the buffered output.

        ``tokens`` overrides the engine-wide token store for this call and for
        every conditional include it triggers.

        Raises:
            QuireError: Failures from the engine (e.g. a deferred include)
            RenderError: Any other exception raised by template code
        """
        store = tokens if tokens is not None else self.tokens
        runtime = Runtime(
            template=compiled.name,
            tokens=store,
            assets_url=self.assets_url,
            assets_path=self.assets_path,
            include_fn=lambda name, scope: self._include(name, scope, depth + 1, store),
        )
        scope: Dict[str, Any] = dict(variables)
        scope[RUNTIME_NAME] = runtime
        runtime.scope = scope
        try:
            exec(compiled.code, scope)
        except QuireError:
            raise
        except Exception as exc:
            raise RenderError(
                f"{type(exc).__name__}: {exc}",
                template=compiled.name,
                context={"layout": compiled.layout},
            ) from exc
        return runtime.getvalue()

    def _include(self, name: str, variables: Dict[str, Any], depth: int, tokens: TokenStore) -> str:
        if depth > self.max_depth:
            raise TemplateRecursionError(
                f"Conditional include depth exceeds {self.max_depth} at '{name}'",
                context={"name": name},
            )
        return self.execute(self.compiler.compile_include(name), variables, depth, tokens=tokens)

    def _variables(self, data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return {**self.globals(), **(data or {})}

    def _finish(self, output: str) -> str:
        return self.minifier.minify(output) if self.minifier is not None else output

    def render_to_string(
        self,
        name: str,
        data: Optional[Mapping[str, Any]] = None,
        *,
        tokens: Optional[TokenStore] = None,
    ) -> str:
        """Render ``name`` and return its output; raises on any failure."""
        variables = self._variables(data)
        return self._finish(self.execute(self.compiler.compile(name), variables, tokens=tokens))

    def render_string(
        self,
        text: str,
        data: Optional[Mapping[str, Any]] = None,
        name: str = "<string>",
        *,
        tokens: Optional[TokenStore] = None,
    ) -> str:
        """Render in-memory template text; raises on any failure."""
        variables = self._variables(data)
        return self._finish(self.execute(self.compiler.compile_string(text, name), variables, tokens=tokens))

    def render(
        self,
        name: str,
        data: Optional[Mapping[str, Any]] = None,
        *,
        echo: bool = False,
        stream: Optional[TextIO] = None,
        tokens: Optional[TokenStore] = None,
    ) -> RenderResult:
        """Render ``name`` without raising for template failures.

        Failures are logged to the ``quire`` logger. With ``echo`` the output
        (or the debug error block) is also written to ``stream`` (stdout by
        default). Pass ``tokens`` (e.g. ``SessionTokenStore(request.session)``)
        to scope ``@csrf`` to one session.
        """
        try:
            variables = self._variables(data)
            compiled = self.compiler.compile(name)
            result = RenderResult(
                template=name,
                output=self._finish(self.execute(compiled, variables, tokens=tokens)),
                layout=compiled.layout,
            )
        except Exception as exc:
            logger.error("Render error in '%s': %s", name, exc)
            result = RenderResult(
                template=name,
                output=error_block(exc) if self.debug else "",
                error=exc,
            )

        if echo and result.output:
            (stream or sys.stdout).write(result.output)
        return result


__all__ = ["Renderer", "RenderResult", "error_block"]
