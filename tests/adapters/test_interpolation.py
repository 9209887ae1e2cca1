"""``%{...}`` expansion against scope variables and nested lookups."""

from __future__ import annotations

from typing import Any

import pytest
from hypothesis import given
from hypothesis import strategies as st

from lib_layered_lookup.adapters.interpolation.default import DefaultInterpolator
from lib_layered_lookup.application.context import LookupContext, ScopeLookupCollectingContext
from lib_layered_lookup.domain.errors import ConfigurationError, LookupFailed
from lib_layered_lookup.domain.sentinels import NOT_FOUND

INTERPOLATOR = DefaultInterpolator()


class TableAdapter:
    """Stands in for a lookup adapter; answers nested lookups from a table."""

    def __init__(self, values: dict[str, Any]) -> None:
        self.values = values
        self.requested: list[str] = []

    def lookup(self, key: str, context: LookupContext, merge: Any) -> Any:
        self.requested.append(key)
        return self.values.get(key, NOT_FOUND)


def _expand(value: Any, scope: dict[str, Any] | None = None, **values: Any) -> Any:
    context = LookupContext(scope or {}, adapter=TableAdapter(values))
    return INTERPOLATOR.interpolate(value, context)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("%{node}", "web01"),
        ("%{::node}", "web01"),
        ("%{ node }", "web01"),
        ("%{scope('node')}", "web01"),
        ('%{scope("node")}', "web01"),
        ("nodes/%{node}.yaml", "nodes/web01.yaml"),
        ("%{facts.os.family}", "Debian"),
        ("%{facts.disks.1}", "sdb"),
        ("%{facts.missing.deeper}", ""),
        ("%{undefined}", ""),
        ("%{enabled}", "true"),
        ("%{}", ""),
        ("%{::}", ""),
        ("%{literal('%')}{node}", "%{node}"),
        ("no tokens", "no tokens"),
    ],
)
def test_scope_expressions(text: str, expected: str) -> None:
    scope = {
        "node": "web01",
        "enabled": True,
        "facts": {"os": {"family": "Debian"}, "disks": ["sda", "sdb"]},
    }
    assert _expand(text, scope) == expected


def test_nested_structures_are_expanded() -> None:
    value = {"%{role}_port": ["%{port}", 1], "fixed": ("%{role}",)}
    assert _expand(value, {"role": "web", "port": 80}) == {"web_port": ["80", 1], "fixed": ("web",)}


def test_lookup_and_hiera_render_text() -> None:
    assert _expand("%{lookup('site')}-%{hiera('site')}", site="eu") == "eu-eu"
    assert _expand("[%{lookup('missing')}]") == "[]"


def test_alias_returns_value_unchanged() -> None:
    assert _expand("%{alias('servers')}", servers=["a", "b"]) == ["a", "b"]


def test_alias_must_be_the_entire_string() -> None:
    with pytest.raises(LookupFailed, match="only permitted if the expression is equal to the entire string"):
        _expand("x%{alias('servers')}", servers=["a"])


def test_unknown_method() -> None:
    with pytest.raises(LookupFailed, match="Unknown interpolation method 'upcase'"):
        _expand("%{upcase('x')}")


def test_methods_can_be_disallowed() -> None:
    context = LookupContext({"node": "web01"})
    assert INTERPOLATOR.interpolate("%{node}", context, False) == "web01"
    with pytest.raises(ConfigurationError, match="method syntax is not allowed"):
        INTERPOLATOR.interpolate("%{lookup('x')}", context, False)
    with pytest.raises(ConfigurationError):
        INTERPOLATOR.interpolate("%{alias('x')}", context, False)


def test_lookup_without_adapter() -> None:
    with pytest.raises(LookupFailed, match="requires a lookup adapter"):
        INTERPOLATOR.interpolate("%{lookup('x')}", LookupContext())


def test_scope_reads_are_remembered() -> None:
    context = ScopeLookupCollectingContext({"node": "web01", "facts": {"os": "linux"}})
    INTERPOLATOR.interpolate(["%{node}", "%{facts.os}", "%{absent}"], context, False)
    assert context.scope_interpolations == {"node": "web01", "facts": {"os": "linux"}, "absent": None}


TEXT = st.text(alphabet=st.characters(exclude_characters="%"), max_size=20)


@given(TEXT)
def test_text_without_tokens_is_unchanged(text: str) -> None:
    assert INTERPOLATOR.interpolate(text, LookupContext()) == text


@given(st.text(alphabet="abcxyz_", min_size=1, max_size=8), TEXT)
def test_scope_variable_is_substituted(name: str, value: str) -> None:
    context = LookupContext({name: value})
    assert INTERPOLATOR.interpolate(f"<%{{{name}}}>", context) == f"<{value}>"
