"""Three-tier resolution through :class:`LookupAdapter`.

Most scenarios run against the ``node_environment`` fixture: a ``production``
environment with a per-node and a common level plus an ``ntp`` module. The
remaining ones build small environments exercising the global tier, the
legacy provider settings and the data-binding terminus.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from lib_layered_lookup.application.context import Explainer, LookupContext
from lib_layered_lookup.application.hiera_config import RECREATED_MESSAGE
from lib_layered_lookup.application.lookup_adapter import LookupAdapter
from lib_layered_lookup.core import create_adapter, create_services
from lib_layered_lookup.domain.environment import Environment
from lib_layered_lookup.domain.errors import (
    ConfigurationError,
    CyclicLookup,
    DataBindingError,
    InvalidKey,
    LookupFailed,
    ProviderNotFound,
)
from lib_layered_lookup.domain.lookup_key import LookupKey
from lib_layered_lookup.domain.sentinels import NOT_FOUND
from lib_layered_lookup.domain.settings import LookupSettings
from lib_layered_lookup.observability import TRACE_ID


def _warnings(caplog: pytest.LogCaptureFixture, fragment: str) -> list[str]:
    return [record.getMessage() for record in caplog.records if fragment in record.getMessage()]


@pytest.fixture
def adapter(node_environment: Path, services) -> LookupAdapter:
    return create_adapter(node_environment, services)


# ---------------------------------------------------------------------------
# Tiers and lookup_options
# ---------------------------------------------------------------------------


def test_lookup_options_merge_spans_every_tier(adapter: LookupAdapter) -> None:
    value = adapter.lookup("ntp::servers", LookupContext({"node": "web01"}), None)
    assert value == ["10.0.0.1", "10.0.0.2", "pool.ntp.org"]


def test_explicit_merge_overrides_lookup_options(adapter: LookupAdapter) -> None:
    assert adapter.lookup("ntp::servers", LookupContext({"node": "web01"}), "first") == ["10.0.0.1"]


def test_first_found_prefers_the_most_specific_level(adapter: LookupAdapter) -> None:
    assert adapter.lookup("role", LookupContext({"node": "web01"}), None) == "web"


def test_scope_change_recreates_the_hierarchy(adapter: LookupAdapter) -> None:
    assert adapter.lookup("role", LookupContext({"node": "web01"}), None) == "web"
    explainer = Explainer()
    assert adapter.lookup("role", LookupContext({"node": "db01"}, explainer=explainer), None) == "base"
    assert RECREATED_MESSAGE in explainer.render()


def test_hash_merge_and_dotted_navigation(adapter: LookupAdapter) -> None:
    scope = {"node": "web01"}
    assert adapter.lookup("ports", LookupContext(scope), None) == {"http": 80, "https": 8443}
    assert adapter.lookup("ports.https", LookupContext(scope), None) == 8443
    assert adapter.lookup("ports.ftp", LookupContext(scope), None) is NOT_FOUND


def test_module_tier_answers_module_keys(adapter: LookupAdapter) -> None:
    assert adapter.lookup("ntp::service", LookupContext(), None) == "ntpd"


def test_module_keys_outside_namespace_are_dropped(adapter: LookupAdapter, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="lib_layered_lookup")
    adapter.lookup("ntp::service", LookupContext(), None)
    assert _warnings(caplog, "must use keys qualified with the name of the module")
    assert adapter.lookup("role", LookupContext({"node": "nobody"}), None) == "base"


def test_unknown_module_is_explained(adapter: LookupAdapter) -> None:
    explainer = Explainer()
    assert adapter.lookup("ghost::key", LookupContext(explainer=explainer), None) is NOT_FOUND
    assert 'Module "ghost" not found' in explainer.render()


def test_explanation_names_providers_and_entries(adapter: LookupAdapter) -> None:
    explainer = Explainer()
    adapter.lookup("role", LookupContext({"node": "web01"}, explainer=explainer), None)
    rendered = explainer.render()
    assert "Environment Data Provider" in rendered
    assert 'Hierarchy entry "Per node"' in rendered
    assert "Found key: 'role' value: 'web'" in rendered


def test_only_explain_options_returns_none(adapter: LookupAdapter) -> None:
    explainer = Explainer(explain_options=True)
    context = LookupContext({"node": "web01"}, explainer=explainer, only_explain_options=True)
    assert adapter.lookup("role", context, None) is None
    assert "Found key: 'lookup_options'" in explainer.render()


def test_lookup_options_are_cached_per_module(adapter: LookupAdapter) -> None:
    context = LookupContext({"node": "web01"})
    assert adapter.lookup_lookup_options(LookupKey.parse("ports"), context) == {"merge": "hash"}
    assert adapter.lookup_lookup_options(LookupKey.parse("ntp::servers"), context) == {"merge": "unique"}
    assert set(adapter._lookup_options) == {None, "ntp"}  # noqa: SLF001


@pytest.mark.parametrize(
    "key",
    ["lookup_options", "lookup_options.ports", "'lookup_options'", '"lookup_options".ports'],
)
def test_reserved_key_is_rejected(adapter: LookupAdapter, key: str) -> None:
    with pytest.raises(InvalidKey, match="is reserved"):
        adapter.lookup(key, LookupContext(), None)


def test_lookup_options_interpolating_a_lookup_is_cyclic(common_environment, services) -> None:
    env_dir = common_environment(
        """
        lookup_options:
          x:
            merge: "%{lookup('y')}"
        y: first
        """,
    )
    adapter = create_adapter(env_dir, services)
    for _ in range(2):
        with pytest.raises(CyclicLookup, match=r"Recursive lookup detected in \[lookup_options, y\]"):
            adapter.lookup("y", LookupContext(), None)
    assert None not in adapter._lookup_options  # noqa: SLF001


def test_lookup_options_may_interpolate_scope(common_environment, write, services) -> None:
    env_dir = common_environment(
        """
        lookup_options:
          servers:
            merge: "%{strategy}"
        servers: [b]
        """,
    )
    write("environments/production/data/nodes/web01.yaml", "servers: [a]\n")
    adapter = create_adapter(env_dir, services)
    assert adapter.lookup("servers", LookupContext({"node": "web01", "strategy": "unique"}), None) == ["a", "b"]


def test_module_providers_are_built_once_per_adapter(adapter: LookupAdapter, monkeypatch: pytest.MonkeyPatch) -> None:
    built: list[str] = []
    initialize = adapter._initialize_module_provider  # noqa: SLF001

    def counting_initialize(context: LookupContext, module_name: str) -> Any:
        built.append(module_name)
        return initialize(context, module_name)

    monkeypatch.setattr(adapter, "_initialize_module_provider", counting_initialize)
    for _ in range(3):
        assert adapter.lookup("ntp::service", LookupContext(), None) == "ntpd"
        assert adapter.lookup("ghost::key", LookupContext(), None) is NOT_FOUND
    assert built == ["ntp", "ghost"]
    assert adapter.module_provider(LookupContext(), "ghost") is None


def test_lookup_options_must_be_hashes(common_environment, services) -> None:
    env_dir = common_environment("lookup_options:\n  answer: unique\nanswer: 42\n")
    adapter = create_adapter(env_dir, services)
    with pytest.raises(LookupFailed, match=r"value of lookup_options\['answer'\] must be a hash"):
        adapter.lookup("answer", LookupContext(), None)


def test_trace_id_is_bound_for_the_lookup_only(write, env_dir: Path, services, registry) -> None:
    seen: list[str | None] = []

    def trace_key(key: str, options: Mapping[str, Any], context: Any) -> Any:
        seen.append(TRACE_ID.get())
        return context.not_found()

    registry.register_function("trace_key", trace_key)
    write(
        "environments/production/hiera.yaml",
        """
        version: 5
        hierarchy:
          - name: "Tracer"
            lookup_key: trace_key
        """,
    )
    create_adapter(env_dir, services).lookup("anything", LookupContext(), None)
    assert seen and all(seen)
    assert TRACE_ID.get() is None


# ---------------------------------------------------------------------------
# Interpolation and recursion
# ---------------------------------------------------------------------------


def test_nested_lookup_and_alias_interpolation(common_environment, services) -> None:
    env_dir = common_environment(
        """
        site: eu
        endpoint: "https://%{lookup('site')}.example.com"
        servers: [a, b]
        mirrors: "%{alias('servers')}"
        """,
    )
    adapter = create_adapter(env_dir, services)
    assert adapter.lookup("endpoint", LookupContext(), None) == "https://eu.example.com"
    assert adapter.lookup("mirrors", LookupContext(), None) == ["a", "b"]


def test_recursive_lookup_is_detected(common_environment, services) -> None:
    env_dir = common_environment("loop: \"%{lookup('loop')}\"\n")
    adapter = create_adapter(env_dir, services)
    with pytest.raises(CyclicLookup, match=r"Recursive lookup detected in \[loop, loop\]"):
        adapter.lookup("loop", LookupContext(), None)


# ---------------------------------------------------------------------------
# Global tier
# ---------------------------------------------------------------------------


@pytest.fixture
def global_services(write, tmp_path: Path, registry):
    config = write(
        "global/hiera.yaml",
        """
        :backends:
          - yaml
        :yaml:
          :datadir: data
        :hierarchy:
          - "%{::environment}"
          - common
        :merge_behavior: deeper
        """,
    )
    write("global/data/production.yaml", "motd: global-prod\nsettings:\n  nested:\n    x: 1\n")
    write("global/data/common.yaml", "motd: global-common\nsettings:\n  nested:\n    y: 2\n")
    settings = LookupSettings(codedir=tmp_path / "code", hiera_config=config)
    return create_services(settings, registry=registry)


def test_global_v3_sees_environment_variable(global_services) -> None:
    adapter = create_adapter(Environment("production"), global_services)
    assert adapter.lookup("motd", LookupContext(), None) == "global-prod"


def test_global_v3_deep_behavior_replaces_hash_merge(global_services) -> None:
    adapter = create_adapter(Environment("production"), global_services)
    assert adapter.lookup("settings", LookupContext(), "hash") == {"nested": {"x": 1, "y": 2}}


def test_global_v3_is_deprecated(global_services, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="lib_layered_lookup")
    adapter = create_adapter(Environment("production"), global_services)
    adapter.lookup("motd", LookupContext(), None)
    adapter.lookup("settings", LookupContext(), None)
    assert len(_warnings(caplog, "version 3 is deprecated")) == 1


def test_global_tier_rejects_version_4(write, tmp_path: Path, registry) -> None:
    config = write("global/hiera.yaml", "version: 4\n")
    services = create_services(LookupSettings(codedir=tmp_path, hiera_config=config), registry=registry)
    adapter = create_adapter(Environment("production"), services)
    with pytest.raises(ConfigurationError, match="version 4 cannot be used in the global layer"):
        adapter.lookup("anything", LookupContext(), None)


class StaticBinding:
    """Data-binding terminus answering from a fixed table."""

    def __init__(self, values: Mapping[str, Any]) -> None:
        self.values = values
        self.calls: list[dict[str, Any]] = []

    def find(self, key: str, **options: Any) -> Any:
        self.calls.append({"key": key, **options})
        if key == "broken":
            raise DataBindingError("backend unreachable")
        return self.values.get(key, NOT_FOUND)


def _terminus_adapter(tmp_path: Path, registry, terminus: str) -> LookupAdapter:
    services = create_services(
        LookupSettings(codedir=tmp_path, data_binding_terminus=terminus),
        registry=registry,
    )
    return create_adapter(Environment("production"), services)


def test_data_binding_terminus_is_consulted(tmp_path: Path, registry) -> None:
    binding = registry.register("data_binding", "static", StaticBinding({"answer": 42}))
    adapter = _terminus_adapter(tmp_path, registry, "static")
    assert adapter.lookup("answer", LookupContext({"node": "web01"}), None) == 42
    assert binding.calls[-1]["environment"] == "production"
    assert binding.calls[-1]["variables"] == {"node": "web01"}


def test_data_binding_failure_becomes_lookup_failure(tmp_path: Path, registry) -> None:
    registry.register("data_binding", "static", StaticBinding({}))
    adapter = _terminus_adapter(tmp_path, registry, "static")
    with pytest.raises(LookupFailed, match="Lookup of key 'broken' failed: backend unreachable"):
        adapter.lookup("broken", LookupContext(), None)


def test_unknown_data_binding_terminus(tmp_path: Path, registry) -> None:
    adapter = _terminus_adapter(tmp_path, registry, "ldap")
    with pytest.raises(ProviderNotFound, match="No data binding terminus named 'ldap'"):
        adapter.lookup("answer", LookupContext(), None)


def test_disabled_terminus_skips_global_tier(tmp_path: Path, registry) -> None:
    adapter = _terminus_adapter(tmp_path, registry, "none")
    assert adapter.lookup("answer", LookupContext(), None) is NOT_FOUND


# ---------------------------------------------------------------------------
# Legacy provider settings
# ---------------------------------------------------------------------------


def test_environment_without_configuration_has_no_provider(env_dir: Path, services) -> None:
    adapter = create_adapter(env_dir, services)
    assert adapter.env_provider(LookupContext()) is None


def test_environment_provider_none(write, env_dir: Path, services, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="lib_layered_lookup")
    write("environments/production/environment.conf", "environment_data_provider = none\n")
    adapter = create_adapter(env_dir, services)
    assert adapter.env_provider(LookupContext()) is None
    assert _warnings(caplog, "A 'hiera.yaml' file should be used instead")


def test_environment_provider_function(write, env_dir: Path, services, registry) -> None:
    registry.register_function("environment::data", lambda: {"answer": 42})
    write("environments/production/environment.conf", "environment_data_provider = function\n")
    adapter = create_adapter(env_dir, services)
    assert adapter.lookup("answer", LookupContext(), None) == 42


class TableProvider:
    name = "Table Data Provider"

    def __init__(self, values: Mapping[str, Any]) -> None:
        self.values = values

    def key_lookup(self, key: LookupKey, context: LookupContext, merge: Any) -> Any:
        if key.root_key not in self.values:
            return context.report_not_found(key.root_key)
        return context.report_found(key.root_key, self.values[key.root_key])


def test_environment_provider_from_registry(write, env_dir: Path, services, registry) -> None:
    registry.register("environment_data_provider", "table", TableProvider({"answer": "from table"}))
    write("environments/production/environment.conf", "environment_data_provider = table\n")
    adapter = create_adapter(env_dir, services)
    assert adapter.lookup("answer", LookupContext(), None) == "from table"


def test_unknown_environment_provider(write, env_dir: Path, services) -> None:
    write("environments/production/environment.conf", "environment_data_provider = mystery\n")
    adapter = create_adapter(env_dir, services)
    with pytest.raises(ProviderNotFound, match="cannot find environment_data_provider 'mystery'"):
        adapter.lookup("answer", LookupContext(), None)


def test_version_5_ignores_environment_conf_provider(
    node_environment: Path,
    write,
    services,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.WARNING, logger="lib_layered_lookup")
    write("environments/production/environment.conf", "environment_data_provider = function\n")
    adapter = create_adapter(node_environment, services)
    assert adapter.lookup("role", LookupContext({"node": "web01"}), None) == "web"
    assert adapter.lookup("role", LookupContext({"node": "db01"}), None) == "base"
    assert len(_warnings(caplog, "is ignored since")) == 1


def test_strict_off_silences_deprecations(write, env_dir: Path, tmp_path: Path, registry, caplog) -> None:
    caplog.set_level(logging.WARNING, logger="lib_layered_lookup")
    write("environments/production/environment.conf", "environment_data_provider = none\n")
    services = create_services(LookupSettings(codedir=tmp_path, strict="off"), registry=registry)
    create_adapter(env_dir, services).env_provider(LookupContext())
    assert not _warnings(caplog, "deprecated")


def test_module_provider_function_from_metadata(write, env_dir: Path, services, registry) -> None:
    registry.register_function("ntp::data", lambda: {"ntp::servers": ["time.example.com"], "stray": 1})
    write("environments/production/modules/ntp/metadata.json", json.dumps({"data_provider": "function"}))
    adapter = create_adapter(env_dir, services)
    assert adapter.lookup("ntp::servers", LookupContext(), None) == ["time.example.com"]


def test_module_provider_from_binding(write, env_dir: Path, services, registry) -> None:
    (env_dir / "modules" / "ntp").mkdir(parents=True)
    registry.register("per_module_data_provider", "ntp", "table")
    registry.register("module_data_provider", "table", TableProvider({"ntp::servers": ["bound.example.com"]}))
    adapter = create_adapter(env_dir, services)
    assert adapter.lookup("ntp::servers", LookupContext(), None) == ["bound.example.com"]


def test_module_without_provider_is_explained(env_dir: Path, services) -> None:
    (env_dir / "modules" / "ntp").mkdir(parents=True)
    explainer = Explainer()
    adapter = create_adapter(env_dir, services)
    assert adapter.lookup("ntp::servers", LookupContext(explainer=explainer), None) is NOT_FOUND
    assert 'Module data provider for module "ntp" not found' in explainer.render()
