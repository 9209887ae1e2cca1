"""Service registry: explicit registrations and entry-point discovery."""

from __future__ import annotations

import os.path
from importlib.metadata import EntryPoint

import pytest

from lib_layered_lookup.adapters.registry import default as registry_module
from lib_layered_lookup.adapters.registry.default import DefaultRegistry
from lib_layered_lookup.core import create_registry


def _entry_points(groups: dict[str, list[EntryPoint]]):
    def entry_points(*, group: str) -> list[EntryPoint]:
        return groups.get(group, [])

    return entry_points


def test_register_and_lookup() -> None:
    registry = DefaultRegistry(discover=False)
    service = object()
    assert registry.register("module_data_provider", "table", service) is service
    assert registry.lookup(("module_data_provider", "table")) is service
    assert registry.lookup(("module_data_provider", "other")) is None


def test_register_function_as_decorator_and_directly() -> None:
    registry = DefaultRegistry(discover=False)

    @registry.register_function("decorated_data")
    def decorated(options, context):
        return {}

    registry.register_function("direct_data", len)
    assert registry.lookup(("function", "decorated_data")) is decorated
    assert registry.lookup(("function", "direct_data")) is len
    assert registry.names("function") == ["decorated_data", "direct_data"]


def test_initial_services() -> None:
    registry = DefaultRegistry({("data_binding", "static"): "binding"}, discover=False)
    assert registry.lookup(("data_binding", "static")) == "binding"


def test_entry_points_are_discovered_and_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    entry_point = EntryPoint(name="joined", value="os.path:join", group="lib_layered_lookup.functions")
    groups = {"lib_layered_lookup.functions": [entry_point]}
    calls: list[str] = []

    def entry_points(*, group: str) -> list[EntryPoint]:
        calls.append(group)
        return groups.get(group, [])

    monkeypatch.setattr(registry_module, "entry_points", entry_points)
    registry = DefaultRegistry()
    assert registry.lookup(("function", "joined")) is os.path.join
    assert registry.lookup(("function", "joined")) is os.path.join
    assert registry.lookup(("function", "absent")) is None
    assert calls == ["lib_layered_lookup.functions"]
    assert registry.names("function") == ["joined"]


def test_explicit_registration_shadows_entry_points(monkeypatch: pytest.MonkeyPatch) -> None:
    entry_point = EntryPoint(name="yaml_data", value="os.path:join", group="lib_layered_lookup.functions")
    monkeypatch.setattr(registry_module, "entry_points", _entry_points({entry_point.group: [entry_point]}))
    registry = create_registry()
    assert registry.lookup(("function", "yaml_data")).__name__ == "yaml_data"


def test_discovery_uses_kind_specific_groups(monkeypatch: pytest.MonkeyPatch) -> None:
    entry_point = EntryPoint(name="legacy", value="collections:OrderedDict", group="lib_layered_lookup.hiera_v3_backends")
    monkeypatch.setattr(registry_module, "entry_points", _entry_points({entry_point.group: [entry_point]}))
    registry = DefaultRegistry()
    assert registry.lookup(("hiera_v3_backend", "legacy")) is not None
    assert registry.lookup(("function", "legacy")) is None


def test_broken_entry_point_raises_import_error(monkeypatch: pytest.MonkeyPatch) -> None:
    entry_point = EntryPoint(name="broken", value="lib_layered_lookup_missing:thing", group="lib_layered_lookup.functions")
    monkeypatch.setattr(registry_module, "entry_points", _entry_points({entry_point.group: [entry_point]}))
    with pytest.raises(ImportError):
        DefaultRegistry().lookup(("function", "broken"))


def test_discovery_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    entry_point = EntryPoint(name="joined", value="os.path:join", group="lib_layered_lookup.functions")
    monkeypatch.setattr(registry_module, "entry_points", _entry_points({entry_point.group: [entry_point]}))
    registry = DefaultRegistry(discover=False)
    assert registry.lookup(("function", "joined")) is None
    assert registry.names("function") == []
