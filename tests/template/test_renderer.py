"""
Tests for template evaluation: lookup, output, loops, conditionals,
set, macros and function calls.
"""

import pytest

from tests.infrastructure import make_engine, render_source
from twiglet.errors import (
    ErrorCode, FunctionCallError, MaxDepthExceededError, RenderError, TemplateRuntimeError,
)
from twiglet.functions import FunctionRegistry
from twiglet.nodes import IncludeNode, TextNode
from twiglet.parser import parse_template
from twiglet.renderer import Renderer, render_nodes


def render_error(source, context=None, **templates):
    with pytest.raises(TemplateRuntimeError) as exc:
        render_source(source, context, **templates)
    return exc.value


class TestOutput:

    @pytest.mark.parametrize("text", ["", "plain", "  spaced\n\ttext  ", "a { b } c", "50% off"])
    def test_text_passthrough(self, text):
        assert render_source(text, {"unused": 1}) == text

    def test_variable(self):
        assert render_source("Hello {{ name }}!", {"name": "World"}) == "Hello World!"

    @pytest.mark.parametrize("value,expected", [
        (None, ""),
        (True, "true"),
        (False, "false"),
        (42, "42"),
        (2.5, "2.5"),
        ("text", "text"),
        (["a", 1], '["a",1]'),
        ({"k": None}, '{"k":null}'),
    ])
    def test_value_to_string(self, value, expected):
        assert render_source("{{ v }}", {"v": value}) == expected

    def test_literals(self):
        assert render_source('{{ "a" }}{{ 1 }}{{ -2 }}{{ true }}{{ null }}') == "a1-2true"

    def test_comment_is_not_rendered(self):
        assert render_source("a{# hidden #}b") == "ab"


class TestLookup:

    def test_nested_path(self):
        context = {"user": {"address": {"city": "Oslo"}}}

        assert render_source("{{ user.address.city }}", context) == "Oslo"

    def test_array_index(self):
        assert render_source("{{ items.1 }}", {"items": ["a", "b"]}) == "b"

    def test_missing_variable(self):
        err = render_error("{{ missing_var }}")

        assert isinstance(err, RenderError)
        assert err.code == ErrorCode.VARIABLE_NOT_FOUND

    def test_missing_nested_segment(self):
        err = render_error("{{ user.email }}", {"user": {"name": "x"}})

        assert err.code == ErrorCode.VARIABLE_NOT_FOUND

    def test_index_out_of_range(self):
        assert render_error("{{ items.5 }}", {"items": [1]}).code == ErrorCode.VARIABLE_NOT_FOUND

    def test_path_through_scalar(self):
        assert render_error("{{ name.first }}", {"name": "Ann"}).code == ErrorCode.INVALID_PATH

    def test_non_object_context(self):
        renderer = Renderer()

        with pytest.raises(RenderError) as exc:
            renderer.render(parse_template("{{ x }}"), ["not", "an", "object"])

        assert exc.value.code == ErrorCode.INVALID_PATH

    def test_error_names_template(self):
        err = render_error("{{ nope }}")

        assert err.template_name == "<string>"
        assert "template '<string>'" in str(err)


class TestConditionals:

    def test_if_true_and_false(self):
        source = "{% if show %}Visible{% endif %}"

        assert render_source(source, {"show": True}) == "Visible"
        assert render_source(source, {"show": False}) == ""

    @pytest.mark.parametrize("value,truthy", [
        (True, True),
        (False, False),
        ("", False),
        ("0", True),
        (0, False),
        (3, True),
        (0.0, False),
        (-0.5, True),
        ([], False),
        ([0], True),
        ({}, False),
        ({"a": 1}, True),
        (None, False),
    ])
    def test_truthiness(self, value, truthy):
        result = render_source("{% if v %}yes{% else %}no{% endif %}", {"v": value})

        assert result == ("yes" if truthy else "no")

    def test_elif_chain(self):
        source = "{% if n == 1 %}one{% elif n == 2 %}two{% elif n > 2 %}many{% else %}none{% endif %}"

        assert [render_source(source, {"n": n}) for n in (1, 2, 7, 0)] == ["one", "two", "many", "none"]

    def test_string_equality(self):
        source = "{% if user.status == 'active' %}on{% else %}off{% endif %}"

        assert render_source(source, {"user": {"status": "active"}}) == "on"
        assert render_source(source, {"user": {"status": "banned"}}) == "off"

    def test_not_equal(self):
        assert render_source('{% if name != "test" %}x{% endif %}', {"name": "other"}) == "x"

    def test_bool_equality(self):
        assert render_source("{% if flag == true %}x{% endif %}", {"flag": True}) == "x"

    @pytest.mark.parametrize("value", ["5", 5.0, True, None])
    def test_cross_type_equality_is_false(self, value):
        assert render_source("{% if v == 5 %}eq{% else %}ne{% endif %}", {"v": value}) == "ne"

    def test_null_literal_never_equal(self):
        assert render_source("{% if v == null %}eq{% else %}ne{% endif %}", {"v": None}) == "ne"

    @pytest.mark.parametrize("op,value,expected", [
        (">", 5, "yes"),
        (">", 3, "no"),
        ("<", 2.5, "yes"),
        ("<=", 3, "yes"),
        (">=", 2.99, "no"),
    ])
    def test_ordering(self, op, value, expected):
        source = "{% if v " + op + " 3 %}yes{% else %}no{% endif %}"

        assert render_source(source, {"v": value}) == expected

    def test_ordering_treats_non_numbers_as_zero(self):
        assert render_source("{% if v < 1 %}yes{% endif %}", {"v": "10"}) == "yes"

    def test_condition_on_missing_variable(self):
        assert render_error("{% if ghost %}x{% endif %}").code == ErrorCode.VARIABLE_NOT_FOUND


class TestLoops:

    def test_simple_loop(self):
        source = "{% for x in items %}{{x}}{% endfor %}"

        assert render_source(source, {"items": ["a", "b"]}) == "ab"

    def test_empty_array(self):
        assert render_source("{% for x in items %}{{ x }}{% endfor %}", {"items": []}) == ""

    def test_loop_object(self):
        source = (
            "{% for x in items %}"
            "{{ loop.index }}/{{ loop.index0 }}/{{ loop.revindex }}/{{ loop.revindex0 }}"
            "{% if loop.last %}.{% else %},{% endif %}"
            "{% endfor %}"
        )

        assert render_source(source, {"items": ["a", "b", "c"]}) == "1/0/3/2,2/1/2/1,3/2/1/0."

    @pytest.mark.parametrize("n", [1, 2, 5])
    def test_loop_flags(self, n):
        source = (
            "{% for x in items %}"
            "{% if loop.first %}F{% endif %}{% if loop.last %}L{% endif %}"
            "{% if loop.length == " + str(n) + " %}n{% endif %};"
            "{% endfor %}"
        )
        parts = render_source(source, {"items": list(range(n))}).split(";")[:-1]

        assert len(parts) == n
        assert all("n" in p for p in parts)
        assert [("F" in p) for p in parts] == [i == 0 for i in range(n)]
        assert [("L" in p) for p in parts] == [i == n - 1 for i in range(n)]

    def test_even_odd(self):
        source = "{% for x in items %}{% if loop.even %}E{% else %}O{% endif %}{% endfor %}"

        assert render_source(source, {"items": [1, 2, 3, 4]}) == "EOEO"

    def test_iterable_filter(self):
        source = "{% for x in items | reverse %}{{ x }}{% endfor %}"

        assert render_source(source, {"items": ["a", "b", "c"]}) == "cba"

    def test_split_iterable(self):
        source = '{% for part in text|split:"," %}{{ part }}{% endfor %}'

        assert render_source(source, {"text": "a,b,c"}) == "abc"

    def test_range_iterable(self):
        assert render_source("{% for i in range(1, 5) %}{{ i }}{% endfor %}") == "12345"

    def test_nested_loops(self):
        source = (
            "{% for c in cats %}{{ c.name }}:"
            "{% for i in c.items %}{{ i }}{% endfor %};"
            "{% endfor %}"
        )
        context = {"cats": [{"name": "a", "items": [1, 2]}, {"name": "b", "items": []}]}

        assert render_source(source, context) == "a:12;b:;"

    def test_inner_loop_object_shadows_outer(self):
        source = "{% for a in xs %}{% for b in ys %}{{ loop.index }}{% endfor %}{% endfor %}"

        assert render_source(source, {"xs": [1, 2], "ys": [1, 2, 3]}) == "123123"

    def test_context_visible_in_body(self):
        source = "{% for x in items %}{{ sep }}{{ x }}{% endfor %}"

        assert render_source(source, {"items": [1, 2], "sep": "-"}) == "-1-2"

    def test_item_variable_does_not_outlive_loop(self):
        err = render_error("{% for x in items %}{% endfor %}{{ x }}", {"items": [1]})

        assert err.code == ErrorCode.VARIABLE_NOT_FOUND

    def test_non_array(self):
        err = render_error("{% for x in name %}{% endfor %}", {"name": "abc"})

        assert err.code == ErrorCode.ITERABLE_NOT_ARRAY

    def test_object_is_not_iterable(self):
        err = render_error("{% for x in user %}{% endfor %}", {"user": {"a": 1}})

        assert err.code == ErrorCode.ITERABLE_NOT_ARRAY


class TestSet:

    def test_set_and_use(self):
        assert render_source('{% set greeting = "Hello" %}{{ greeting }}') == "Hello"

    def test_set_with_filter(self):
        assert render_source("{% set n = items|length %}{{ n }}", {"items": [1, 2, 3]}) == "3"

    def test_set_from_function(self):
        assert render_source("{% set r = range(1, 3) %}{{ r|join:\"+\" }}") == "1+2+3"

    def test_context_takes_precedence_over_set(self):
        assert render_source("{% set x = 2 %}{{ x }}", {"x": 1}) == "1"

    def test_set_supplies_names_missing_from_context(self):
        assert render_source('{% set name = "B" %}{{ name }}-{{ other }}', {"other": "A"}) == "B-A"

    def test_locals_are_flat(self):
        err = render_error('{% set user = "ann" %}{{ user.name }}')

        assert err.code == ErrorCode.INVALID_PATH

    def test_not_visible_before_assignment(self):
        err = render_error("{{ later }}{% set later = 1 %}")

        assert err.code == ErrorCode.VARIABLE_NOT_FOUND

    def test_visible_in_nested_bodies(self):
        source = '{% set p = "-" %}{% for x in items %}{% if x %}{{ p }}{{ x }}{% endif %}{% endfor %}'

        assert render_source(source, {"items": ["a", "b"]}) == "-a-b"

    def test_set_inside_loop_does_not_leak(self):
        source = '{% set v = "out" %}{% for x in items %}{% set w = x %}{{ w }}{% endfor %}{{ v }}'

        assert render_source(source, {"items": ["a", "b"]}) == "about"

    def test_loop_local_not_visible_after_loop(self):
        err = render_error("{% for x in items %}{% set w = x %}{% endfor %}{{ w }}", {"items": ["a"]})

        assert err.code == ErrorCode.VARIABLE_NOT_FOUND

    def test_set_inside_if_is_visible_after(self):
        assert render_source("{% if show %}{% set v = 1 %}{% endif %}{{ v }}", {"show": True}) == "1"

    def test_locals_table_updated_in_place(self):
        local_vars = {}

        Renderer().render(parse_template('{% set a = 1 %}{% set b = "x" %}'), {}, locals_=local_vars)

        assert local_vars == {"a": 1, "b": "x"}


class TestFilters:

    @pytest.mark.parametrize("source,context,expected", [
        ("{{ name|upper }}", {"name": "hello"}, "HELLO"),
        ("{{ price|round:2 }}", {"price": 3.14159}, "3.14"),
        ("{{ text|capitalize }}", {"text": "hello world"}, "Hello world"),
        ("{{ text|title }}", {"text": "hello world"}, "Hello World"),
        ('{{ items|join:", " }}', {"items": ["a", "b", "c"]}, "a, b, c"),
        ("{{ items|length }}", {"items": ["a", "b", "c"]}, "3"),
        ("{{ text|nl2br }}", {"text": "Line 1\nLine 2"}, "Line 1<br>Line 2"),
        ("{{ value|json_encode }}", {"value": "test"}, '"test"'),
        ("{{ n|abs }}", {"n": -5}, "5"),
        ("{{ html|striptags }}", {"html": "<p>Hello <b>World</b></p>"}, "Hello World"),
    ])
    def test_filters(self, source, context, expected):
        assert render_source(source, context) == expected

    def test_escape(self):
        result = render_source("{{ text|escape }}", {"text": "<script>alert('xss')</script>"})

        assert result == "&lt;script&gt;alert(&#039;xss&#039;)&lt;/script&gt;"

    def test_default_on_missing_variable(self):
        assert render_source('{{ missing|default:"anon" }}') == "anon"
        assert render_source('{{ user.nick|default:"anon" }}', {"user": {}}) == "anon"

    def test_default_on_empty_value(self):
        assert render_source('{{ name|default:"anon" }}', {"name": ""}) == "anon"

    def test_default_does_not_hide_invalid_path(self):
        err = render_error('{{ name.first|default:"x" }}', {"name": "Ann"})

        assert err.code == ErrorCode.INVALID_PATH

    def test_other_filters_do_not_hide_missing_variable(self):
        assert render_error("{{ missing|upper }}").code == ErrorCode.VARIABLE_NOT_FOUND

    def test_unknown_filter_passes_through(self):
        assert render_source("{{ name|sparkle }}", {"name": "x"}) == "x"

    def test_type_mismatch_passes_through(self):
        assert render_source("{{ n|upper }}", {"n": 5}) == "5"

    def test_out_of_range_timestamp_renders_as_is(self):
        assert render_source("{{ ts|date }}", {"ts": 1700000000000}) == "1700000000000"

    def test_engine_filter_registration(self):
        engine = make_engine()
        engine.register_filter("shout", lambda value, arg: f"{value}{arg or '!'}")

        assert engine.render_string("{{ a|shout }}{{ a|shout:'?' }}", {"a": "hi"}) == "hi!hi?"

    def test_registered_filters_are_per_engine(self):
        first, second = make_engine(), make_engine()
        first.register_filter("upper", lambda value, arg: "custom")

        assert first.render_string("{{ 'a'|upper }}") == "custom"
        assert second.render_string("{{ 'a'|upper }}") == "A"


class TestFunctions:

    @pytest.mark.parametrize("source,expected", [
        ("{{ max(values) }}", "5"),
        ("{{ min(values) }}", "1"),
        ('{{ cycle(names, 3) }}', "even"),
        ("{{ range(1, 3)|join }}", "123"),
        ('{{ date("Y", 0) }}', "1970"),
    ])
    def test_builtins(self, source, expected):
        context = {"values": [3, 1, 5, 2], "names": ["odd", "even"]}

        assert render_source(source, context) == expected

    def test_unknown_function(self):
        err = render_error("{{ nope() }}")

        assert isinstance(err, RenderError)
        assert err.code == ErrorCode.UNKNOWN_FUNCTION

    def test_too_many_arguments(self):
        err = render_error("{{ max(a, b) }}", {"a": [1], "b": [2]})

        assert isinstance(err, FunctionCallError)
        assert err.code == ErrorCode.TOO_MANY_ARGUMENTS

    def test_too_few_arguments(self):
        assert render_error("{{ range(1) }}").code == ErrorCode.TOO_FEW_ARGUMENTS

    def test_out_of_range_date_timestamp(self):
        err = render_error('{{ date("Y", ts) }}', {"ts": 1700000000000})

        assert isinstance(err, FunctionCallError)
        assert err.code == ErrorCode.INVALID_ARGUMENTS
        assert err.template_name == "<string>"

    def test_registered_function(self):
        engine = make_engine()
        engine.register_function("greet", 1, 1, lambda args: f"Hello, {args[0]}!")

        assert engine.render_string("{{ greet(name) }}", {"name": "Ann"}) == "Hello, Ann!"

    def test_renderer_without_registry(self):
        with pytest.raises(RenderError) as exc:
            Renderer().render(parse_template("{{ range(1, 2) }}"), {})

        assert exc.value.code == ErrorCode.UNKNOWN_FUNCTION

    def test_render_nodes_uses_builtins(self):
        assert render_nodes(parse_template("{{ range(1, 3)|join:',' }}"), {}) == "1,2,3"


class TestMacros:

    def test_definition_renders_nothing(self):
        assert render_source("{% macro m(a) %}body{% endmacro %}") == ""

    def test_call(self):
        source = "{% macro greet(name) %}Hello, {{ name }}!{% endmacro %}{{ greet(\"Ann\") }}"

        assert render_source(source) == "Hello, Ann!"

    def test_call_before_definition(self):
        source = "{{ hr() }}{% macro hr() %}<hr>{% endmacro %}"

        assert render_source(source) == "<hr>"

    def test_arguments_from_context(self):
        source = "{% macro pair(a, b) %}{{ a }}={{ b }}{% endmacro %}{{ pair(key, value|upper) }}"

        assert render_source(source, {"key": "k", "value": "v"}) == "k=V"

    def test_isolated_scope(self):
        source = "{% macro show() %}{{ secret }}{% endmacro %}{{ show() }}"

        assert render_error(source, {"secret": "x"}).code == ErrorCode.VARIABLE_NOT_FOUND

    def test_macro_calls_macro(self):
        source = (
            "{% macro inner(x) %}[{{ x }}]{% endmacro %}"
            "{% macro outer(y) %}{{ inner(y) }}{% endmacro %}"
            '{{ outer("a") }}'
        )

        assert render_source(source) == "[a]"

    def test_wrong_argument_count(self):
        source = "{% macro m(a) %}body{% endmacro %}before{{ m(1, 2) }}after"

        assert render_error(source).code == ErrorCode.INVALID_MACRO_ARGS

    def test_argument_count_checked_before_evaluation(self):
        source = "{% macro m(a) %}{% endmacro %}{{ m(missing, other) }}"

        assert render_error(source).code == ErrorCode.INVALID_MACRO_ARGS

    def test_macro_shadows_function(self):
        source = "{% macro range(a, b) %}mine{% endmacro %}{{ range(1, 2) }}"

        assert render_source(source) == "mine"

    def test_result_can_be_filtered(self):
        source = "{% macro m() %}abc{% endmacro %}{{ m()|upper }}"

        assert render_source(source) == "ABC"

    def test_recursion_limit(self):
        engine = make_engine(macro_depth=5)
        source = "{% macro r(x) %}{{ r(x) }}{% endmacro %}{{ r(1) }}"

        with pytest.raises(MaxDepthExceededError) as exc:
            engine.render_string(source)

        assert exc.value.code == ErrorCode.MAX_DEPTH_EXCEEDED

    def test_bounded_recursion_within_limit(self):
        engine = make_engine(macro_depth=3)
        source = (
            "{% macro a() %}a{{ b() }}{% endmacro %}"
            "{% macro b() %}b{{ c() }}{% endmacro %}"
            "{% macro c() %}c{% endmacro %}"
            "{{ a() }}"
        )

        assert engine.render_string(source) == "abc"


class TestRendererApi:

    def test_include_must_be_resolved(self):
        with pytest.raises(RenderError) as exc:
            Renderer().render((TextNode("x"), IncludeNode("nav.html")), {})

        assert exc.value.code == ErrorCode.UNSUPPORTED_OP

    def test_unknown_node_type(self):
        with pytest.raises(TypeError):
            Renderer().render(("not a node",), {})

    def test_custom_registry(self):
        registry = FunctionRegistry(builtins=False)
        registry.register("one", 0, 0, lambda args: 1)
        renderer = Renderer(functions=registry)

        assert renderer.render(parse_template("{{ one() }}"), {}) == "1"
