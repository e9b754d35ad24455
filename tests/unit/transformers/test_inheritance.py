"""Tests for @extends / @section / @yield handling."""
from __future__ import annotations

import pytest

from quire.exceptions import LayoutNotFoundError, MalformedDirectiveError, TemplateRecursionError
from quire.transformers.base import CompileContext
from quire.transformers.inheritance import (
    InheritanceResolver,
    SectionExtractor,
    YieldSubstituter,
    extract_sections,
)


class TestExtractSections:
    def test_block_and_inline_sections(self) -> None:
        remaining, sections = extract_sections(
            "x@section('a') A @endsection y@section('b', 'B')"
        )
        assert remaining == "x y"
        assert sections == {"a": "A", "b": "B"}

    def test_unclosed_section(self) -> None:
        with pytest.raises(MalformedDirectiveError, match="Unclosed @section"):
            extract_sections("@section('a') never closed", "page")

    def test_stray_endsection(self) -> None:
        with pytest.raises(MalformedDirectiveError, match="@endsection without @section"):
            extract_sections("text @endsection")


class TestInheritanceResolver:
    def test_layout_becomes_subject(self, write_view, context: CompileContext) -> None:
        write_view("layouts.app", "<h1>@yield('title')</h1><main>@yield('content')</main>")
        child = (
            "@extends('layouts.app')\n"
            "@section('title')Home@endsection\n"
            "@section('content')<p>hi</p>@endsection\n"
            "discarded"
        )

        result = InheritanceResolver().transform(child, context)

        assert result == "<h1>@yield('title')</h1><main>@yield('content')</main>"
        assert context.sections == {"title": "Home", "content": "<p>hi</p>"}
        assert context.layout == "layouts.app"
        assert len(context.dependencies) == 1

    def test_no_extends_is_passthrough(self, context: CompileContext) -> None:
        assert InheritanceResolver().transform("plain", context) == "plain"
        assert context.layout is None

    def test_two_extends_rejected(self, write_view, context: CompileContext) -> None:
        write_view("a", "A")
        with pytest.raises(MalformedDirectiveError) as exc:
            InheritanceResolver().transform("@extends('a')\n@extends('a')", context)
        assert exc.value.line == 2

    def test_missing_layout(self, context: CompileContext) -> None:
        with pytest.raises(LayoutNotFoundError):
            InheritanceResolver().transform("@extends('missing')", context)

    def test_multi_level_derived_sections_win(self, write_view, context: CompileContext) -> None:
        write_view("base", "<html>@yield('title')|@yield('body')</html>")
        write_view(
            "app",
            "@extends('base')"
            "@section('title')App@endsection"
            "@section('body')<nav/>@yield('content')@endsection",
        )
        child = "@extends('app')@section('title')Child@endsection@section('content')C@endsection"

        subject = InheritanceResolver().transform(child, context)
        result = YieldSubstituter().transform(subject, context)

        assert result == "<html>Child|<nav/>C</html>"
        assert context.layout == "base"
        assert context.layout_chain == ["app", "base"]

    def test_layout_cycle(self, write_view, context: CompileContext) -> None:
        write_view("a", "@extends('b')")
        write_view("b", "@extends('a')")
        with pytest.raises(TemplateRecursionError):
            InheritanceResolver().transform("@extends('a')", context)


class TestSectionsAndYields:
    def test_section_extractor_keeps_derived(self, context: CompileContext) -> None:
        context.sections["title"] = "derived"
        remaining = SectionExtractor().transform("@section('title')base@endsection rest", context)
        assert remaining == " rest"
        assert context.sections["title"] == "derived"

    def test_missing_section_yields_empty_or_default(self, context: CompileContext) -> None:
        result = YieldSubstituter().transform("[@yield('nope')][@yield('nope', 'fallback')]", context)
        assert result == "[][fallback]"

    def test_self_referencing_section(self, context: CompileContext) -> None:
        context.sections["a"] = "@yield('a')"
        with pytest.raises(TemplateRecursionError):
            YieldSubstituter().transform("@yield('a')", context)
