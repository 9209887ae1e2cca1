"""Shared fixtures for the lookup test-suite.

Every test gets an isolated registry (entry-point discovery disabled), fresh
``warn_once`` markers and an unbound trace id. On-disk environments are built
below ``tmp_path`` with :func:`write`.
"""

from __future__ import annotations

import textwrap
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from lib_layered_lookup.adapters.registry.default import DefaultRegistry
from lib_layered_lookup.application.ports import LookupServices
from lib_layered_lookup.core import create_registry, create_services
from lib_layered_lookup.domain.settings import LookupSettings
from lib_layered_lookup.observability import bind_trace_id, reset_warnings

WriteFile = Callable[[str, str], Path]

ENV_HIERA_YAML = """
version: 5
defaults:
  datadir: data
  data_hash: yaml_data
hierarchy:
  - name: "Per node"
    path: "nodes/%{node}.yaml"
  - name: "Common"
    path: "common.yaml"
"""


@pytest.fixture(autouse=True)
def _isolated_diagnostics() -> Iterator[None]:
    """Forget deprecation markers and trace ids around each test."""

    reset_warnings()
    bind_trace_id(None)
    yield
    reset_warnings()
    bind_trace_id(None)


@pytest.fixture
def write(tmp_path: Path) -> WriteFile:
    """Return a helper writing dedented text below ``tmp_path``."""

    def _write(relative: str, content: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip(), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def registry() -> DefaultRegistry:
    return create_registry(discover=False)


@pytest.fixture
def settings(tmp_path: Path) -> LookupSettings:
    return LookupSettings(codedir=tmp_path / "code")


@pytest.fixture
def services(settings: LookupSettings, registry: DefaultRegistry) -> LookupServices:
    return create_services(settings, registry=registry)


@pytest.fixture
def env_dir(tmp_path: Path) -> Path:
    """Directory of the ``production`` environment (created empty)."""

    path = tmp_path / "environments" / "production"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def node_environment(write: WriteFile, env_dir: Path) -> Path:
    """Environment with a per-node and a common level plus an ``ntp`` module."""

    write("environments/production/hiera.yaml", ENV_HIERA_YAML)
    write(
        "environments/production/data/nodes/web01.yaml",
        """
        role: web
        ntp::servers:
          - 10.0.0.1
        ports:
          http: 80
        """,
    )
    write(
        "environments/production/data/common.yaml",
        """
        role: base
        ntp::servers:
          - 10.0.0.2
        ports:
          http: 8080
          https: 8443
        lookup_options:
          ntp::servers:
            merge: unique
          ports:
            merge: hash
        """,
    )
    write(
        "environments/production/modules/ntp/hiera.yaml",
        """
        version: 5
        hierarchy:
          - name: "Module common"
            path: "common.yaml"
        """,
    )
    write(
        "environments/production/modules/ntp/data/common.yaml",
        """
        ntp::servers:
          - pool.ntp.org
        ntp::service: ntpd
        role: ignored-outside-namespace
        """,
    )
    return env_dir


@pytest.fixture
def common_environment(write: WriteFile, env_dir: Path) -> Callable[[str], Path]:
    """Return a helper giving the ``production`` environment one ``common.yaml``."""

    def _create(common: str) -> Path:
        write("environments/production/hiera.yaml", ENV_HIERA_YAML)
        write("environments/production/data/common.yaml", common)
        return env_dir

    return _create
