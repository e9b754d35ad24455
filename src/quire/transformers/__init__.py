"""Template transformers for the quire compiler.

Each transformer handles one category of directives:

- base: CompileContext and pipeline infrastructure
- comments: <!-- --> removal
- inheritance: @extends, @section, @yield
- includes: @include and @includeWhen
- control: @if, @foreach, @for, @while, @switch, @python
- builtins: @csrf, @css, @js, @cdn, @json
- directives: user directive registry
- interpolation: {{ }} and {!! !!}
"""
from __future__ import annotations

from .base import CompileContext, ContentTransformer, TransformerPipeline
from .builtins import BuiltinDirectiveTransformer, cdn_tag, classify_cdn_url
from .comments import CommentStripper
from .control import ControlStructureTranslator
from .directives import DirectiveRegistry, DirectiveTransformer
from .includes import IncludeResolver
from .inheritance import InheritanceResolver, SectionExtractor, YieldSubstituter
from .interpolation import EscapedInterpolator, ExpressionInterpolator, UnescapedInterpolator

__all__ = [
    # Base classes
    "CompileContext",
    "ContentTransformer",
    "TransformerPipeline",
    # Stages
    "CommentStripper",
    "InheritanceResolver",
    "SectionExtractor",
    "IncludeResolver",
    "YieldSubstituter",
    "ControlStructureTranslator",
    "BuiltinDirectiveTransformer",
    "DirectiveTransformer",
    "UnescapedInterpolator",
    "EscapedInterpolator",
    "ExpressionInterpolator",
    # Helpers
    "DirectiveRegistry",
    "cdn_tag",
    "classify_cdn_url",
]
