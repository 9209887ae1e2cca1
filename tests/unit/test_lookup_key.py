"""Lookup key parsing and navigation.

Covers the dotted-key grammar (quotes, indexes, numeric segments), the module
qualifier, the reserved ``lookup_options`` key, and navigation into found
values including the dig/undig symmetry used by ``data_dig`` functions.
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from lib_layered_lookup.application.context import Explainer, LookupContext
from lib_layered_lookup.domain.errors import InvalidKey
from lib_layered_lookup.domain.lookup_key import LOOKUP_OPTIONS_KEY, LookupKey, is_reserved
from lib_layered_lookup.domain.sentinels import NOT_FOUND


def test_plain_key_has_no_module_or_subkeys() -> None:
    key = LookupKey.parse("role")
    assert key.root_key == "role"
    assert key.module_name is None
    assert key.subkey_path == ()
    assert key.segments == ("role",)


def test_module_qualified_key() -> None:
    key = LookupKey.parse("ntp::servers.0")
    assert key.module_name == "ntp"
    assert key.root_key == "ntp::servers"
    assert key.subkey_path == (0,)


def test_leading_separator_is_not_a_module() -> None:
    assert LookupKey.parse("::role").module_name is None


def test_quoted_segment_keeps_dots() -> None:
    key = LookupKey.parse("hosts.'web01.example.com'.ip")
    assert key.subkey_path == ("web01.example.com", "ip")


def test_double_quoted_root_segment() -> None:
    key = LookupKey.parse('"a.b".c')
    assert key.root_key == "a.b"
    assert key.subkey_path == ("c",)


def test_bracket_index_yields_integer_segment() -> None:
    assert LookupKey.parse("users[2].name").subkey_path == (2, "name")


def test_numeric_root_stays_text() -> None:
    assert LookupKey.parse("42.7").segments == ("42", 7)


@pytest.mark.parametrize("raw", ["", "a..b", "a.", ".a", "'open", "a[x]", "a[", "'a'b"])
def test_invalid_keys_raise(raw: str) -> None:
    with pytest.raises(InvalidKey):
        LookupKey.parse(raw)


def test_non_string_key_raises() -> None:
    with pytest.raises(InvalidKey):
        LookupKey.parse(42)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("lookup_options", True), ("lookup_options.x", True), ("lookup_optionsx", False), ("x.lookup_options", False)],
)
def test_reserved_key(raw: str, expected: bool) -> None:
    assert is_reserved(raw) is expected


def test_lookup_options_key_is_prebuilt() -> None:
    assert LOOKUP_OPTIONS_KEY.root_key == "lookup_options"
    assert LOOKUP_OPTIONS_KEY.subkey_path == ()


def test_navigate_mappings_and_sequences() -> None:
    value = {"ports": [{"number": 80}, {"number": 443}]}
    key = LookupKey.parse("service.ports.1.number")
    assert key.navigate(LookupContext(), value) == 443


def test_navigate_integer_segment_falls_back_to_string_key() -> None:
    key = LookupKey.parse("codes.404")
    assert key.navigate(LookupContext(), {"404": "not found"}) == "not found"


def test_navigate_reports_missing_segment() -> None:
    explainer = Explainer()
    context = LookupContext(explainer=explainer)
    key = LookupKey.parse("db.settings.port")
    assert key.navigate(context, {"settings": {"host": "x"}}) is NOT_FOUND
    assert "No such key: 'db.settings.port'" in explainer.render()


def test_navigate_does_not_index_strings() -> None:
    assert LookupKey.parse("name.0").navigate(LookupContext(), "text") is NOT_FOUND


def test_navigate_passes_not_found_through() -> None:
    assert LookupKey.parse("a.b").navigate(LookupContext(), NOT_FOUND) is NOT_FOUND


def test_undig_wraps_value_by_subkeys() -> None:
    assert LookupKey.parse("a.b.c").undig([1]) == {"b": {"c": [1]}}
    assert LookupKey.parse("a").undig(5) == 5


SEGMENT = st.text(alphabet="abcdefghij_", min_size=1, max_size=6)


@given(st.lists(SEGMENT, min_size=1, max_size=5), st.integers(min_value=-5, max_value=5))
def test_undig_then_navigate_returns_value(segments: list[str], value: int) -> None:
    key = LookupKey.parse(".".join(segments))
    assert key.navigate(LookupContext(), key.undig(value)) == value


@given(st.lists(SEGMENT, min_size=1, max_size=5))
def test_dotted_text_round_trips_to_segments(segments: list[str]) -> None:
    assert LookupKey.parse(".".join(segments)).segments == tuple(segments)
