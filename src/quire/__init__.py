"""
quire - directive-driven template compiler

Compiles Blade-style templates (@extends/@section/@yield, @include,
@if/@foreach/@switch, {{ }} interpolation, user directives) into Python
code, with an optional on-disk cache of compiled templates.
"""

from quire.compiler import CompiledTemplate, Compiler
from quire.config import QuireConfig, load_config
from quire.exceptions import (
    ConfigError,
    IncludeNotFoundError,
    IncludeOutsideRootError,
    LayoutNotFoundError,
    MalformedDirectiveError,
    QuireError,
    RenderError,
    TemplateNotFoundError,
    TemplateRecursionError,
)
from quire.minify import HtmlMinifier, Minifier
from quire.renderer import RenderResult, Renderer
from quire.session import InMemoryTokenStore, SessionTokenStore, TokenStore

__version__ = "0.1.0"
__all__ = [
    "__version__",
    "Renderer",
    "RenderResult",
    "Compiler",
    "CompiledTemplate",
    "QuireConfig",
    "load_config",
    "Minifier",
    "HtmlMinifier",
    "TokenStore",
    "InMemoryTokenStore",
    "SessionTokenStore",
    "QuireError",
    "ConfigError",
    "TemplateNotFoundError",
    "LayoutNotFoundError",
    "IncludeNotFoundError",
    "IncludeOutsideRootError",
    "MalformedDirectiveError",
    "TemplateRecursionError",
    "RenderError",
]
