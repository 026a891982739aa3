import pytest

from collection_macros.core.errors import DuplicateKeyError
from collection_macros.core.model import Fragment, PlainMap
from collection_macros.core.parse.recognize import recognize
from collection_macros.core.validate.duplicate_keys import check_identifier_map, find_duplicate_keys


def _entries(*names: str) -> list[tuple[str, Fragment]]:
    return [(n, Fragment(text="0")) for n in names]


def test_no_duplicates():
    assert find_duplicate_keys(_entries("a", "b", "c")) == []


def test_duplicates_in_first_repeat_order():
    assert find_duplicate_keys(_entries("b", "a", "a", "b", "a")) == ["a", "b"]


def test_non_strict_reports_and_does_not_raise():
    form = recognize("map", "{key1: 0, key2: 1, key3: 4, key2: 4}")
    assert check_identifier_map(form) == ["key2"]


def test_strict_raises_naming_the_key():
    form = recognize("map", "{field1: 0, field1: 1}")
    with pytest.raises(DuplicateKeyError) as exc:
        check_identifier_map(form, strict=True, file="cfg.pym")
    assert exc.value.key == "field1"
    assert exc.value.code == "E_DUPLICATE_KEY"
    assert "field1" in str(exc.value)
    assert str(exc.value).startswith("cfg.pym:field1:")


def test_other_forms_pass_through():
    form = PlainMap(entries=[(Fragment(text="1"), Fragment(text="a")), (Fragment(text="1"), Fragment(text="b"))])
    assert check_identifier_map(form, strict=True) == []
