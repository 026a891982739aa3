import pytest

from collection_macros.core.errors import ExpansionSyntaxError
from collection_macros.core.model import (
    ComprehensionList,
    ComprehensionMap,
    IdentifierMap,
    PlainList,
    PlainMap,
)
from collection_macros.core.parse.recognize import recognize


def _texts(fragments) -> list[str]:
    return [f.text for f in fragments]


def test_plain_list():
    form = recognize("list", "[1, a + b, f(x, y)]")
    assert isinstance(form, PlainList)
    assert _texts(form.elements) == ["1", "a + b", "f(x, y)"]


def test_plain_list_trailing_comma_and_bang_prefix():
    form = recognize("list", "list![1, 2,]")
    assert isinstance(form, PlainList)
    assert _texts(form.elements) == ["1", "2"]


def test_nested_delimiters_do_not_split_outer_literal():
    form = recognize("list", "[f(a, b), {k: v}, [x ; x in y], 'c, d; e']")
    assert isinstance(form, PlainList)
    assert _texts(form.elements) == ["f(a, b)", "{k: v}", "[x ; x in y]", "'c, d; e'"]


def test_any_bracket_pair_delimits():
    assert _texts(recognize("list", "(1, 2)").elements) == ["1", "2"]
    assert _texts(recognize("list", "{1, 2}").elements) == ["1", "2"]


def test_empty_fragment_is_empty_container():
    assert recognize("list", "[]") == PlainList(elements=[])
    assert recognize("map", "{}") == PlainMap(entries=[])
    assert recognize("iter", "[]") == PlainList(elements=[])


def test_list_comprehension_with_range_sugar():
    form = recognize("list", "[x*x ; x in 0..5]")
    assert isinstance(form, ComprehensionList)
    assert form.element.text == "x*x"
    assert form.pattern.text == "x"
    assert form.iterable.text == "range(0, 5)"
    assert form.guard is None


def test_inclusive_range_sugar():
    form = recognize("list", "[i ; i in 1..=n]")
    assert form.iterable.text == "range(1, (n) + 1)"


def test_range_sugar_can_be_disabled():
    form = recognize("list", "[i ; i in xs]", range_sugar=False)
    assert form.iterable.text == "xs"


def test_comma_guard():
    form = recognize("list", "[x ; x in 0..10, x % 2 == 0]")
    assert isinstance(form, ComprehensionList)
    assert form.iterable.text == "range(0, 10)"
    assert form.guard is not None
    assert form.guard.text == "x % 2 == 0"


def test_semicolon_if_guard():
    form = recognize("list", "[v * k ; v in values ; if v > 0]")
    assert form.iterable.text == "values"
    assert form.guard.text == "v > 0"


def test_comma_if_guard_drops_keyword():
    form = recognize("list", "[v ; v in values, if v]")
    assert form.guard.text == "v"


def test_tuple_pattern_and_element_are_grouped():
    form = recognize("list", "[k, v ; k, v in items]")
    assert form.element.text == "k, v"
    assert form.element.parenthesize is True
    assert form.pattern.text == "k, v"
    assert form.iterable.text == "items"


def test_map_comprehension():
    form = recognize("map", "{x => x*x ; x in 0..3}")
    assert isinstance(form, ComprehensionMap)
    assert (form.key.text, form.value.text) == ("x", "x*x")
    assert form.iterable.text == "range(0, 3)"


def test_map_comprehension_guard():
    form = recognize("map", "map!{i => i*i ; i in 0..=5 ; if i % 2 == 0}")
    assert isinstance(form, ComprehensionMap)
    assert form.guard.text == "i % 2 == 0"


def test_plain_map_with_arrows():
    form = recognize("map", '{"a" => 1, f(x) => {"n": 2},}')
    assert isinstance(form, PlainMap)
    assert [(k.text, v.text) for k, v in form.entries] == [('"a"', "1"), ("f(x)", '{"n": 2}')]


def test_plain_map_from_pairs():
    form = recognize("map", '[("a", 1), ("b", (2, 3))]')
    assert isinstance(form, PlainMap)
    assert [(k.text, v.text) for k, v in form.entries] == [('"a"', "1"), ('"b"', "(2, 3)")]


def test_identifier_map():
    form = recognize("map", "{field1: 0, field2: lambda x: x}")
    assert isinstance(form, IdentifierMap)
    assert [(name, v.text) for name, v in form.entries] == [("field1", "0"), ("field2", "lambda x: x")]


def test_identifier_map_keeps_repeats():
    form = recognize("map", "{field1: 0, field1: 1}")
    assert [name for name, _ in form.entries] == ["field1", "field1"]


def test_multiline_fragment_is_grouped():
    form = recognize("list", "[\n    x\n    + 1 ; x in xs\n]")
    assert form.element.text == "x\n    + 1"
    assert form.element.parenthesize is True


@pytest.mark.parametrize(
    "kind, fragment, code, path",
    [
        ("list", "[x ; x 0..5]", "E_EXPECTED_IN", "1:6"),
        ("list", "[x ; in y]", "E_EMPTY_CLAUSE", "1:6"),
        ("list", "[x ; x in ]", "E_EMPTY_CLAUSE", "1:11"),
        ("list", "[1, , 2]", "E_EMPTY_CLAUSE", "1:5"),
        ("list", "[,]", "E_EMPTY_CLAUSE", "1:2"),
        ("list", "[ ; x in y]", "E_EMPTY_CLAUSE", "1:3"),
        ("list", "[x ; x in y ; x > 1]", "E_EXPECTED_GUARD", "1:15"),
        ("list", "[x ; x in y, ]", None, None),
    ],
)
def test_list_syntax_errors(kind, fragment, code, path):
    if code is None:
        assert recognize(kind, fragment).guard is None
        return
    with pytest.raises(ExpansionSyntaxError) as exc:
        recognize(kind, fragment)
    assert exc.value.code == code
    assert exc.value.path == path


@pytest.mark.parametrize(
    "kind, fragment, code",
    [
        ("map", "{x ; x in y}", "E_EXPECTED_ARROW"),
        ("map", '{"a" => 1, "b"}', "E_EXPECTED_ARROW"),
        ("map", "{a => b => c}", "E_EXPECTED_ARROW"),
        ("map", "{a: 1, b => 2}", "E_EXPECTED_IDENT_COLON"),
        ("map", "{(1, 2, 3)}", "E_EXPECTED_ARROW"),
        ("map", "{k => }", "E_EMPTY_CLAUSE"),
        ("list", "[a: 1]", "E_UNSUPPORTED_FORM"),
        ("list", "[a => 1]", "E_UNSUPPORTED_FORM"),
        ("iter", "[k => v ; k in y]", "E_UNSUPPORTED_FORM"),
        ("map", "list![1]", "E_UNSUPPORTED_FORM"),
        ("list", "x + 1", "E_NOT_BRACKETED"),
        ("list", "[1] [2]", "E_NOT_BRACKETED"),
        ("list", "", "E_NOT_BRACKETED"),
        ("list", "[1, 2", "E_UNBALANCED"),
        ("list", "[x ; x in y ; if a ; b]", "E_UNEXPECTED_TOKEN"),
        ("list", "[x ; x in y, a, b]", "E_UNEXPECTED_TOKEN"),
        ("set", "[1]", "E_UNKNOWN_KIND"),
    ],
)
def test_syntax_error_codes(kind, fragment, code):
    with pytest.raises(ExpansionSyntaxError) as exc:
        recognize(kind, fragment)
    assert exc.value.code == code


def test_error_carries_file_and_renders_location():
    with pytest.raises(ExpansionSyntaxError) as exc:
        recognize("list", "[x ; x 0..5]", file="mod.pym")
    assert str(exc.value) == "mod.pym:1:6: E_EXPECTED_IN: expected 'pattern in iterable' after ';'"
