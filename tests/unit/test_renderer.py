"""End-to-end tests for Renderer: compile, cache and execute."""
from __future__ import annotations

import io
import itertools
import os
import re
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from quire.exceptions import (
    LayoutNotFoundError,
    RenderError,
    TemplateNotFoundError,
    TemplateRecursionError,
)
from quire.renderer import Renderer, RenderResult, error_block
from quire.session import CSRF_TOKEN_KEY, SessionTokenStore


def _future(path: Path, seconds: int = 10) -> None:
    stamp = time.time() + seconds
    os.utime(path, (stamp, stamp))


class TestInterpolation:
    def test_hello(self, engine: Renderer) -> None:
        assert engine.render_string("Hello {{ name }}!", {"name": "World"}) == "Hello World!"

    def test_escaped_versus_raw(self, engine: Renderer) -> None:
        out = engine.render_string("{{ v }}|{!! v !!}", {"v": "a&b<c"})
        assert out == "a&amp;b&lt;c|a&b<c"

    def test_text_without_directives_is_unchanged(self, engine: Renderer) -> None:
        text = "100% plain {text} with 'quotes', \"doubles\", back\\slash and mail@example.com\n"
        assert engine.render_string(text) == text

    def test_none_and_missing_render_empty(self, engine: Renderer) -> None:
        assert engine.render_string("[{{ value }}][{{ missing }}][{!! user.name !!}]", {"value": None}) == "[][][]"

    def test_comments_removed(self, engine: Renderer) -> None:
        assert engine.render_string("a<!-- {{ secret }} -->b", {"secret": "s"}) == "ab"

    def test_prose_with_directive_names(self, engine: Renderer) -> None:
        text = "Thanks @for reading. Ask @while you can, @if unsure.\n"
        assert engine.render_string(text) == text

    def test_lookup_error_inside_called_function_fails(self, engine: Renderer) -> None:
        def total() -> int:
            return {}["amount"]

        with pytest.raises(RenderError, match="KeyError"):
            engine.render_string("{{ total() }}", {"total": total})


class TestControlFlow:
    def test_if_elseif_else(self, engine: Renderer) -> None:
        text = "@if(n > 1)[many] @elseif(n == 1)[one] @else[none] @endif"
        assert engine.render_string(text, {"n": 5}) == "[many] "
        assert engine.render_string(text, {"n": 1}) == "[one] "
        assert engine.render_string(text, {"n": 0}) == "[none] "

    def test_foreach_forms(self, engine: Renderer) -> None:
        assert engine.render_string("@foreach(items as item){{ item }},@endforeach", {"items": [1, 2]}) == "1,2,"
        assert (
            engine.render_string("@foreach(prices as name => price){{ name }}={{ price }};@endforeach", {"prices": {"a": 1}})
            == "a=1;"
        )

    def test_switch(self, engine: Renderer) -> None:
        text = "@switch(role) @case('admin') A @break @case('user') U @break @default D @endswitch"
        assert engine.render_string(text, {"role": "user"}) == " U "
        assert engine.render_string(text, {"role": "guest"}) == " D "

    def test_python_block(self, engine: Renderer) -> None:
        text = "@python\n    total = sum(values)\n@endpython{{ total }}"
        assert engine.render_string(text, {"values": [1, 2, 3]}) == "6"

    def test_undefined_name_in_condition_fails(self, engine: Renderer) -> None:
        with pytest.raises(RenderError, match="NameError"):
            engine.render_string("@if(undefined_flag) x @endif")


class TestBuiltins:
    def test_json(self, engine: Renderer) -> None:
        out = engine.render_string("<script>var d = @json(data);</script>", {"data": {"a": [1, 2]}})
        assert out == '<script>var d = {"a": [1, 2]};</script>'

    def test_csrf_token_is_stable(self, engine: Renderer) -> None:
        first = engine.render_string('<input value="@csrf">')
        second = engine.render_string('<input value="@csrf">')
        assert re.fullmatch(r'<input value="[0-9a-f]{64}">', first)
        assert first == second

    def test_csrf_token_per_session(self, engine: Renderer, write_view) -> None:
        write_view("form", "@csrf")
        alice: dict = {}
        bob: dict = {}

        first = engine.render_to_string("form", tokens=SessionTokenStore(alice))
        again = engine.render("form", tokens=SessionTokenStore(alice)).output
        other = engine.render_string("@csrf", tokens=SessionTokenStore(bob))

        assert first == again == alice[CSRF_TOKEN_KEY]
        assert other == bob[CSRF_TOKEN_KEY]
        assert first != other
        assert engine.render_string("@csrf") not in (first, other)

    def test_conditional_include_uses_same_session(self, engine: Renderer, write_view) -> None:
        write_view("partials.token", "@csrf")
        write_view("page", "@csrf|@includeWhen(True, 'partials.token')")
        session: dict = {}

        out = engine.render_to_string("page", tokens=SessionTokenStore(session))

        assert out == f"{session[CSRF_TOKEN_KEY]}|{session[CSRF_TOKEN_KEY]}"

    def test_css_version(self, engine: Renderer, resources: Path) -> None:
        css = resources / "assets" / "app.css"
        css.parent.mkdir()
        css.write_text("body{}", encoding="utf-8")
        os.utime(css, (1_234_567_890, 1_234_567_890))

        out = engine.render_string("@css('app.css')")
        assert out == '<link rel="stylesheet" href="/assets/app.css?v=1234567890">'


class TestLayouts:
    def test_sections_and_yields(self, engine: Renderer, write_view) -> None:
        write_view("layouts.app", "<title>@yield('title', 'Default')</title><main>@yield('content')</main>")
        write_view(
            "pages.home",
            "@extends('layouts.app')\n@section('title', 'Home')\n@section('content')\n<p>Hi {{ name }}</p>\n@endsection\n",
        )

        result = engine.render("pages.home", {"name": "Ann"})

        assert result.ok
        assert result.output == "<title>Home</title><main><p>Hi Ann</p></main>"
        assert result.layout == "layouts.app"

    def test_yield_default(self, engine: Renderer, write_view) -> None:
        write_view("layouts.app", "<title>@yield('title', 'Default')</title>")
        write_view("pages.bare", "@extends('layouts.app')")
        assert engine.render_to_string("pages.bare") == "<title>Default</title>"

    def test_multi_level(self, engine: Renderer, write_view) -> None:
        write_view("layouts.base", "[@yield('body')]")
        write_view("layouts.app", "@extends('layouts.base') @section('body')<main>@yield('content')</main>@endsection")
        write_view("pages.deep", "@extends('layouts.app') @section('content')X @endsection")

        compiled = engine.compile("pages.deep")

        assert engine.render_to_string("pages.deep") == "[<main>X</main>]"
        assert compiled.layout_chain == ("layouts.app", "layouts.base")

    def test_layout_chain_survives_cache(self, cached_engine: Renderer, write_view) -> None:
        write_view("layouts.base", "[@yield('body')]")
        write_view("layouts.app", "@extends('layouts.base') @section('body')@yield('content')@endsection")
        write_view("pages.deep", "@extends('layouts.app') @section('content')X@endsection")

        fresh = cached_engine.compile("pages.deep")
        cached = cached_engine.compile("pages.deep")

        assert cached.from_cache
        assert cached.layout_chain == fresh.layout_chain == ("layouts.app", "layouts.base")
        assert cached.layout == fresh.layout == "layouts.base"

    def test_missing_layout(self, engine: Renderer, write_view) -> None:
        write_view("orphan", "@extends('layouts.none')")
        with pytest.raises(LayoutNotFoundError):
            engine.render_to_string("orphan")


class TestIncludes:
    def test_eager_include(self, engine: Renderer, write_view) -> None:
        write_view("partials.nav", "<nav>{{ title }}</nav>")
        write_view("page", "@include('partials.nav')<p>body</p>")
        assert engine.render_to_string("page", {"title": "T"}) == "<nav>T</nav><p>body</p>"

    def test_include_when(self, engine: Renderer, write_view) -> None:
        write_view("partials.admin", "ADMIN {{ user }}")
        write_view("page", "A @includeWhen(is_admin, 'partials.admin') B")

        assert engine.render_to_string("page", {"is_admin": True, "user": "x"}) == "A ADMIN x B"
        assert engine.render_to_string("page", {"is_admin": False, "user": "x"}) == "A  B"

    def test_include_when_false_never_resolves(self, engine: Renderer, write_view) -> None:
        write_view("page", "@includeWhen(False, 'does.not.exist')ok")
        assert engine.render_to_string("page") == "ok"

    def test_include_when_recursion_is_bounded(self, views: Path, write_view) -> None:
        write_view("loop", "x @includeWhen(True, 'loop')")
        with pytest.raises(TemplateRecursionError):
            Renderer(views, max_depth=3).render_to_string("loop")


class TestDirectivesAndGlobals:
    def test_custom_directive(self, engine: Renderer) -> None:
        engine.directive("upper", lambda expr: "{{ str(%s).upper() }}" % expr)
        assert engine.render_string("Hi @upper(name)", {"name": "ann"}) == "Hi ANN"

    def test_directive_decorator(self, engine: Renderer) -> None:
        @engine.directive("money")
        def money(expr: str) -> str:
            return "{{ '%%.2f' %% (%s) }}" % expr

        assert engine.render_string("$@money(price)", {"price": 3}) == "$3.00"

    def test_globals_are_evaluated_per_render(self, engine: Renderer) -> None:
        counter = itertools.count(1)
        engine.set_globals({"app": "Demo", "n": lambda: next(counter)})

        assert engine.render_string("{{ app }} {{ n }}") == "Demo 1"
        assert engine.render_string("{{ app }} {{ n }}") == "Demo 2"

    def test_data_overrides_globals(self, engine: Renderer) -> None:
        engine.update_global("app", "Demo")
        assert engine.render_string("{{ app }}", {"app": "Local"}) == "Local"
        assert engine.globals() == {"app": "Demo"}


class TestRenderResult:
    def test_failure_returns_result(self, engine: Renderer, write_view) -> None:
        write_view("broken", "before {{ 1 / 0 }} after")

        result = engine.render("broken")

        assert not result.ok
        assert isinstance(result.error, RenderError)
        assert result.output == ""

    def test_debug_error_block(self, views: Path, write_view) -> None:
        write_view("broken", "{{ 1 / 0 }}")
        result = Renderer(views, debug=True).render("broken")
        assert result.output.startswith("<pre style='color:red;'>Quire Error: ZeroDivisionError")

    def test_missing_template(self, engine: Renderer) -> None:
        result = engine.render("nope")
        assert isinstance(result.error, TemplateNotFoundError)

    def test_echo(self, engine: Renderer, write_view) -> None:
        write_view("home", "Hello {{ name }}!")
        stream = io.StringIO()

        result = engine.render("home", {"name": "World"}, echo=True, stream=stream)

        assert stream.getvalue() == "Hello World!"
        assert str(result) == "Hello World!"

    def test_render_to_string_raises(self, engine: Renderer, write_view) -> None:
        write_view("broken", "{{ 1 / 0 }}")
        with pytest.raises(RenderError) as exc:
            engine.render_to_string("broken")
        assert exc.value.template == "broken"

    def test_error_block_escapes(self) -> None:
        assert error_block(ValueError("<x>")) == "<pre style='color:red;'>Quire Error: &lt;x&gt;</pre>"

    def test_result_str(self) -> None:
        assert str(RenderResult(template="t", output="o")) == "o"


class TestCaching:
    def test_second_compile_hits_cache(self, cached_engine: Renderer, write_view) -> None:
        write_view("home", "Hi {{ name }}")

        assert not cached_engine.compile("home").from_cache
        assert cached_engine.compile("home").from_cache
        assert cached_engine.render_to_string("home", {"name": "A"}) == "Hi A"

    def test_source_change_recompiles(self, cached_engine: Renderer, write_view) -> None:
        path = write_view("home", "v1")
        assert cached_engine.render_to_string("home") == "v1"

        path.write_text("v2", encoding="utf-8")
        _future(path)

        compiled = cached_engine.compile("home")
        assert not compiled.from_cache
        assert cached_engine.render_to_string("home") == "v2"

    def test_layout_change_recompiles(self, cached_engine: Renderer, write_view) -> None:
        layout = write_view("layouts.app", "<a>@yield('c')</a>")
        write_view("page", "@extends('layouts.app') @section('c')x @endsection")
        assert cached_engine.render_to_string("page") == "<a>x</a>"

        layout.write_text("<b>@yield('c')</b>", encoding="utf-8")
        _future(layout)

        assert cached_engine.render_to_string("page") == "<b>x</b>"

    def test_layout_survives_cache_hit(self, cached_engine: Renderer, write_view) -> None:
        write_view("layouts.app", "@yield('c')")
        write_view("page", "@extends('layouts.app')")
        cached_engine.compile("page")

        compiled = cached_engine.compile("page")
        assert compiled.from_cache
        assert compiled.layout == "layouts.app"

    def test_clear_cache(self, cached_engine: Renderer, engine: Renderer, write_view) -> None:
        write_view("home", "x")
        cached_engine.compile("home")
        assert cached_engine.clear_cache() == 1
        assert engine.clear_cache() == 0

    def test_log_file_in_cache_dir(self, views: Path, tmp_path: Path) -> None:
        engine = Renderer(views, cache_path=tmp_path / "cache")
        engine.render("missing.view")
        log = (tmp_path / "cache" / "quire.log").read_text(encoding="utf-8")
        assert "Render error in 'missing.view'" in log


class TestConcurrency:
    def test_parallel_renders_keep_separate_state(self, cached_engine: Renderer, write_view) -> None:
        write_view("layouts.a", "A[@yield('c')]")
        write_view("layouts.b", "B[@yield('c')]")
        write_view("page_a", "@extends('layouts.a') @section('c'){{ n }}@endsection")
        write_view("page_b", "@extends('layouts.b') @section('c'){{ n }}@endsection")

        def render(i: int) -> tuple:
            name = "page_a" if i % 2 else "page_b"
            return i, cached_engine.render_to_string(name, {"n": i})

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(render, range(40)))

        for i, output in results:
            assert output == (f"A[{i}]" if i % 2 else f"B[{i}]")
