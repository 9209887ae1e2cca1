"""Application-layer ports describing collaborator responsibilities.

Purpose
-------
Define the structural contracts that adapters must satisfy so the resolution
engine can orchestrate behaviour without depending on concrete
implementations.

Contents
--------
* :class:`Interpolator` – expands ``%{...}`` tokens against scope variables.
* :class:`Location` – one resolved data location (file path or URI).
* :class:`LocationResolver` – turns declarative location specs into locations.
* :class:`Registry` – service lookup for functions, backends and factories.
* :class:`ConfigReader` – parses a ``hiera.yaml`` document into a mapping.
* :class:`DataProvider` – the ``key_lookup`` contract every tier implements.
* :class:`LookupServices` – the bundle of collaborators handed to the adapter.

System Role
-----------
These protocols enforce Dependency Inversion (DIP). The composition root
(:mod:`lib_layered_lookup.core`) wires the default adapters into a
:class:`LookupServices` instance; tests substitute their own.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from ..domain.settings import LookupSettings

if TYPE_CHECKING:  # pragma: no cover
    from ..domain.lookup_key import LookupKey
    from .context import LookupContext
    from .merge import MergeStrategy


@runtime_checkable
class Interpolator(Protocol):
    """Expand ``%{...}`` references inside strings, lists and mappings."""

    def interpolate(self, value: Any, context: LookupContext, allow_methods: bool = True) -> Any:
        """Return *value* with every interpolation token expanded against ``context.scope``."""


@runtime_checkable
class Location(Protocol):
    """A concrete data location produced by a :class:`LocationResolver`."""

    original_location: str
    location: Path | str
    kind: str

    def exists(self) -> bool:
        """Return ``True`` when the location currently exists (checked lazily)."""


@runtime_checkable
class LocationResolver(Protocol):
    """Expand declarative location specs into ordered location lists."""

    def resolve_paths(
        self,
        datadir: Path,
        declared_paths: Sequence[str],
        context: LookupContext,
        is_default_config: bool,
        extension: str | None = None,
    ) -> list[Location]:
        """Interpolate *declared_paths* and anchor them in *datadir*."""

    def expand_globs(self, datadir: Path, declared_globs: Sequence[str], context: LookupContext) -> list[Location]:
        """Interpolate and expand glob patterns below *datadir*."""

    def expand_uris(self, declared_uris: Sequence[str], context: LookupContext) -> list[Location]:
        """Interpolate URIs."""


@runtime_checkable
class Registry(Protocol):
    """Service registry used for plugins and legacy bindings.

    Service keys are ``(kind, name)`` tuples, e.g. ``("function", "yaml_data")``.
    """

    def lookup(self, service_key: tuple[str, str]) -> Any | None:
        """Return the registered service or ``None``."""


@runtime_checkable
class ConfigReader(Protocol):
    """Parse a hierarchy configuration file."""

    def read(self, path: Path) -> Mapping[str, Any]:
        """Return the document stored at *path* (an empty file yields ``{}``)."""


@runtime_checkable
class DataProvider(Protocol):
    """Contract shared by the global, environment and module tiers."""

    name: str

    def key_lookup(self, key: LookupKey, context: LookupContext, merge: MergeStrategy) -> Any:
        """Return the value for *key* or ``NOT_FOUND``."""


@dataclass(frozen=True)
class LookupServices:
    """Collaborators handed to the adapter and the configuration variants."""

    settings: LookupSettings
    interpolator: Interpolator
    locations: LocationResolver
    registry: Registry
    config_reader: ConfigReader
