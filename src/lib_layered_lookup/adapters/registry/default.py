"""Service registry with entry-point plugin discovery.

Purpose
-------
Implement the :class:`~lib_layered_lookup.application.ports.Registry` port.
Services are addressed by ``(kind, name)`` tuples. Explicit registrations win;
otherwise the registry consults the ``lib_layered_lookup.<kind>s`` entry-point
group, e.g. ``lib_layered_lookup.functions`` or
``lib_layered_lookup.hiera_v3_backends``.

Service kinds
-------------
``function``                   backend functions (``data_hash``, ``lookup_key``, ``data_dig``, ``v4_data_hash``)
``hiera_v3_backend``           legacy backend classes, instantiated with the v3 document
``v4_data_provider_factory``   factories for custom version 4 backends
``environment_data_provider``  providers named by ``environment.conf``
``module_data_provider``       providers named by ``metadata.json`` or a binding
``per_module_data_provider``   binding ``module name -> provider name``
``data_binding``               legacy data-binding termini (``find(key, **kw)``)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from importlib.metadata import EntryPoint, entry_points
from typing import Any, TypeVar

from ...observability import log_debug

ENTRY_POINT_PREFIX = "lib_layered_lookup."

FunctionT = TypeVar("FunctionT", bound=Callable[..., Any])


class DefaultRegistry:
    """In-memory registry backed by installed entry points.

    Examples
    --------
    >>> registry = DefaultRegistry(discover=False)
    >>> @registry.register_function("answer_data")
    ... def answer(options, context):
    ...     return {"answer": 42}
    >>> registry.lookup(("function", "answer_data")) is answer
    True
    >>> registry.lookup(("function", "missing")) is None
    True
    """

    def __init__(self, services: Mapping[tuple[str, str], Any] | None = None, *, discover: bool = True) -> None:
        self._services: dict[tuple[str, str], Any] = dict(services or {})
        self._discover = discover
        self._entry_points: dict[str, dict[str, EntryPoint]] = {}

    def register(self, kind: str, name: str, service: Any) -> Any:
        self._services[(kind, name)] = service
        log_debug("service_registered", kind=kind, name=name)
        return service

    def register_function(self, name: str, function: FunctionT | None = None) -> Any:
        """Register a backend function; usable directly or as a decorator."""

        if function is not None:
            return self.register("function", name, function)

        def decorator(func: FunctionT) -> FunctionT:
            self.register("function", name, func)
            return func

        return decorator

    def lookup(self, service_key: tuple[str, str]) -> Any | None:
        """Return the service for *service_key* or ``None``.

        Raises
        ------
        ImportError
            When a matching entry point cannot be loaded.
        """

        if service_key in self._services:
            return self._services[service_key]
        if not self._discover:
            return None
        kind, name = service_key
        entry_point = self._group(kind).get(name)
        if entry_point is None:
            return None
        service = entry_point.load()
        self._services[service_key] = service
        log_debug("service_discovered", kind=kind, name=name, value=entry_point.value)
        return service

    def names(self, kind: str) -> list[str]:
        """Return the registered and discoverable names for *kind*."""

        registered = {name for service_kind, name in self._services if service_kind == kind}
        if self._discover:
            registered.update(self._group(kind))
        return sorted(registered)

    def _group(self, kind: str) -> dict[str, EntryPoint]:
        if kind not in self._entry_points:
            group = f"{ENTRY_POINT_PREFIX}{kind}s"
            self._entry_points[kind] = {entry_point.name: entry_point for entry_point in entry_points(group=group)}
        return self._entry_points[kind]
