"""Function providers: the hierarchy entries that call backend functions.

Purpose
-------
Every hierarchy entry of a resolved configuration becomes one function
provider. The provider iterates the entry's locations through the active merge
strategy and calls the backend function following its calling convention.

Contents
--------
* :class:`FunctionKind` – calling conventions recognised in ``hiera.yaml``.
* :class:`ProviderSpec` – immutable description produced by the configuration.
* :class:`FunctionCache` – per (provider, location) state and memo tables.
* :class:`BackendContext` – handle passed to backend functions.
* :class:`DataHashFunctionProvider` – hash-returning functions.
* :class:`LookupKeyFunctionProvider` / :class:`DataDigFunctionProvider` –
  key-driven (dig-capable) functions.
* :class:`V3BackendFunctionProvider` – adapter for legacy v3 backend objects.
* :class:`V4DataHashFunctionProvider` – deprecated zero-argument data functions.
* :func:`convert_merge` – merge strategy to legacy ``resolution_type``.
* :func:`create_function_provider` – dispatch on :class:`FunctionKind`.

System Role
-----------
Built by :mod:`lib_layered_lookup.application.hiera_config`, driven by the
configured data providers of each tier. Not-found is always the
``NOT_FOUND`` value; backend load failures are reported and mapped to it.
"""

from __future__ import annotations

import inspect
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, ClassVar

from ..domain.errors import BackendFailure, LookupFailed, ProviderNotFound, UnrecognizedMerge
from ..domain.lookup_key import LookupKey
from ..domain.sentinels import NOT_FOUND
from ..observability import log_debug
from .merge import MergeStrategy

if TYPE_CHECKING:  # pragma: no cover
    from .context import LookupContext
    from .data_providers import ConfiguredDataProvider
    from .ports import Location, LookupServices


class FunctionKind(str, Enum):
    """Calling convention of a backend function (the ``hiera.yaml`` key naming it)."""

    DATA_HASH = "data_hash"
    LOOKUP_KEY = "lookup_key"
    DATA_DIG = "data_dig"
    V3_BACKEND = "v3_backend"
    V4_DATA_HASH = "v4_data_hash"


FUNCTION_KEYS: tuple[str, ...] = (FunctionKind.DATA_HASH.value, FunctionKind.LOOKUP_KEY.value, FunctionKind.DATA_DIG.value)
ALL_FUNCTION_KEYS: tuple[str, ...] = (*FUNCTION_KEYS, FunctionKind.V4_DATA_HASH.value)


@dataclass(frozen=True)
class ProviderSpec:
    """One resolved hierarchy entry.

    ``locations`` is ``None`` for entries that call their function without a
    location (inline lookups).
    """

    name: str
    function_kind: FunctionKind
    function_name: str
    options: Mapping[str, Any] = field(default_factory=dict)
    locations: tuple[Location, ...] | None = None


@dataclass
class FunctionCache:
    """State kept per provider and location for one adapter lifetime."""

    function: Callable[..., Any]
    module_name: str | None
    location: Location | None
    data_hash: Mapping[str, Any] | None = None
    memo: dict[Any, Any] = field(default_factory=dict)
    cache: dict[Any, Any] = field(default_factory=dict)


class BackendContext:
    """Handle passed to backend functions as their last argument.

    Gives functions a private cache that survives the whole session, access to
    interpolation, explanation and nested lookups.
    """

    def __init__(self, state: FunctionCache, context: LookupContext, provider: FunctionProvider) -> None:
        self._state = state
        self._context = context
        self._provider = provider

    @property
    def module_name(self) -> str | None:
        return self._state.module_name

    @property
    def environment_name(self) -> str:
        return self._provider.services.settings.environment

    @property
    def location(self) -> Location | None:
        return self._state.location

    def cache(self, key: Any, value: Any) -> Any:
        self._state.cache[key] = value
        return value

    def cache_all(self, values: Mapping[Any, Any]) -> None:
        self._state.cache.update(values)

    def cache_has_key(self, key: Any) -> bool:
        return key in self._state.cache

    def cached_value(self, key: Any) -> Any:
        return self._state.cache.get(key, NOT_FOUND)

    def cached_entries(self) -> Iterator[tuple[Any, Any]]:
        return iter(list(self._state.cache.items()))

    def explain(self, message: str | Callable[[], str]) -> None:
        self._context.report_text(message)

    def interpolate(self, value: Any) -> Any:
        return self._provider.services.interpolator.interpolate(value, self._context, True)

    def not_found(self) -> Any:
        return NOT_FOUND

    def lookup(self, key: str, merge: MergeStrategy | str | Mapping[str, Any] | None = None) -> Any:
        """Perform a nested lookup through the adapter that owns this session."""

        adapter = self._context.adapter
        if adapter is None:
            raise LookupFailed(f"Nested lookup of '{key}' requires a lookup adapter on the context")
        return adapter.lookup(key, self._context, merge)


class FunctionProvider:
    """Base class for providers built from a :class:`ProviderSpec`."""

    kind: ClassVar[FunctionKind]

    def __init__(
        self,
        spec: ProviderSpec,
        parent: ConfiguredDataProvider | None,
        services: LookupServices,
    ) -> None:
        self.spec = spec
        self.parent = parent
        self.services = services
        self._function: Callable[..., Any] | None = None
        self._states: dict[object, FunctionCache] = {}

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def label(self) -> str:
        return f'Hierarchy entry "{self.name}"'

    @property
    def locations(self) -> list[Location | None]:
        return [None] if self.spec.locations is None else list(self.spec.locations)

    def unchecked_key_lookup(self, key: LookupKey, context: LookupContext, merge: Any) -> Any:
        strategy = MergeStrategy.strategy(merge)
        with context.explaining("hierarchy_entry", self.name):
            return strategy.lookup(
                self.locations,
                context,
                lambda location: self._invoke_with_location(context, location, key, strategy),
            )

    def options(self, location: Location | None) -> dict[str, Any]:
        """Return entry options, plus ``path`` or ``uri`` for the given location."""

        options = dict(self.spec.options)
        if location is not None:
            options["uri" if location.kind == "uri" else "path"] = str(location.location)
        return options

    def function_cache(self, context: LookupContext, location: Location | None) -> FunctionCache:
        slot = None if location is None else str(location.location)
        state = self._states.get(slot)
        if state is None:
            module_name = self.parent.module_name if self.parent is not None else None
            state = FunctionCache(function=self._resolve_function(), module_name=module_name, location=location)
            self._states[slot] = state
        return state

    def _invoke_with_location(
        self,
        context: LookupContext,
        location: Location | None,
        key: LookupKey,
        merge: MergeStrategy,
    ) -> Any:
        if location is None:
            return self._lookup_in_location(context, None, key, merge)
        with context.explaining("location", location.location):
            if not location.exists():
                return context.report_location_not_found(location.location)
            return self._lookup_in_location(context, location, key, merge)

    def _lookup_in_location(
        self,
        context: LookupContext,
        location: Location | None,
        key: LookupKey,
        merge: MergeStrategy,
    ) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement _lookup_in_location()")

    def _resolve_function(self) -> Callable[..., Any]:
        if self._function is None:
            function = self.services.registry.lookup(("function", self.spec.function_name))
            if function is None:
                raise ProviderNotFound(
                    f"Unable to find '{self.kind.value}' function named '{self.spec.function_name}'"
                )
            self._function = function
        return self._function

    def _post_process(self, value: Any, context: LookupContext) -> Any:
        return self.services.interpolator.interpolate(value, context, True)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, function={self.spec.function_name!r})"


class DataHashFunctionProvider(FunctionProvider):
    """Provider whose function returns the whole mapping for a location."""

    kind = FunctionKind.DATA_HASH

    def _lookup_in_location(
        self,
        context: LookupContext,
        location: Location | None,
        key: LookupKey,
        merge: MergeStrategy,
    ) -> Any:
        data = self.data_hash(context, location)
        root_key = key.root_key
        if root_key not in data:
            return context.report_not_found(root_key)
        return context.report_found(root_key, self._post_process(data[root_key], context))

    def data_hash(self, context: LookupContext, location: Location | None) -> Mapping[str, Any]:
        """Return the (cached) mapping produced for *location*."""

        state = self.function_cache(context, location)
        if state.data_hash is None:
            raw = self._call_function(state, context, location)
            if raw is None or raw is NOT_FOUND:
                raw = {}
            if not isinstance(raw, Mapping):
                raise LookupFailed(
                    f"Value returned from {self.kind.value} function '{self.spec.function_name}'"
                    f" when using location '{_describe(location)}' has wrong type: expected a hash,"
                    f" got {type(raw).__name__}"
                )
            data = dict(raw)
            if self.parent is not None:
                data = self.parent.validate_data_hash(self, data)
            state.data_hash = data
            log_debug("data_hash_loaded", provider=self.name, location=_describe(location), keys=len(data))
        return state.data_hash

    def _call_function(self, state: FunctionCache, context: LookupContext, location: Location | None) -> Any:
        return state.function(self.options(location), BackendContext(state, context, self))


class V4DataHashFunctionProvider(DataHashFunctionProvider):
    """Deprecated data function taking no arguments (``<module>::data``)."""

    kind = FunctionKind.V4_DATA_HASH

    def _call_function(self, state: FunctionCache, context: LookupContext, location: Location | None) -> Any:
        return state.function()


class LookupKeyFunctionProvider(FunctionProvider):
    """Provider whose function receives the root key and may answer not-found.

    Results are memoised per location and root key, including ``NOT_FOUND``.
    """

    kind = FunctionKind.LOOKUP_KEY

    def _lookup_in_location(
        self,
        context: LookupContext,
        location: Location | None,
        key: LookupKey,
        merge: MergeStrategy,
    ) -> Any:
        root_key = key.root_key
        value = self._memoised(context, location, root_key, lambda state, ctx: state.function(
            root_key, self.options(location), ctx
        ))
        if value is NOT_FOUND:
            return context.report_not_found(root_key)
        return context.report_found(root_key, self._post_process(value, context))

    def _memoised(
        self,
        context: LookupContext,
        location: Location | None,
        memo_key: Any,
        call: Callable[[FunctionCache, BackendContext], Any],
    ) -> Any:
        state = self.function_cache(context, location)
        if memo_key not in state.memo:
            state.memo[memo_key] = call(state, BackendContext(state, context, self))
        return state.memo[memo_key]


class DataDigFunctionProvider(LookupKeyFunctionProvider):
    """Provider whose function digs the full key path itself.

    The value is wrapped back (:meth:`LookupKey.undig`) so the adapter's subkey
    navigation applies uniformly across tiers.
    """

    kind = FunctionKind.DATA_DIG

    def _lookup_in_location(
        self,
        context: LookupContext,
        location: Location | None,
        key: LookupKey,
        merge: MergeStrategy,
    ) -> Any:
        segments = key.segments
        value = self._memoised(context, location, segments, lambda state, ctx: state.function(
            list(segments), self.options(location), ctx
        ))
        if value is NOT_FOUND:
            return context.report_not_found(key.raw)
        return key.undig(context.report_found(key.raw, self._post_process(value, context)))


class Backend1xWrapper:
    """Adapts a backend whose ``lookup`` takes four arguments and answers ``None`` for missing keys."""

    def __init__(self, backend: Any) -> None:
        self.backend = backend

    def lookup(self, key: str, scope: Any, order_override: Any, resolution_type: Any, context: Any) -> Any:
        if isinstance(resolution_type, Mapping):
            resolution_type = "hash"
        value = self.backend.lookup(key, scope, order_override, resolution_type)
        return NOT_FOUND if value is None else value


class V3BackendFunctionProvider(LookupKeyFunctionProvider):
    """Delegates to a legacy v3 backend object.

    The backend is loaded by name from the registry (``("hiera_v3_backend",
    name)``) and instantiated with the v3 configuration document. It walks its
    own hierarchy, so it is called once per lookup rather than per location.
    Load or construction failures are reported as explanation text and the
    source is treated as not found.
    """

    kind = FunctionKind.V3_BACKEND

    def __init__(self, spec: ProviderSpec, parent: ConfiguredDataProvider | None, services: LookupServices) -> None:
        super().__init__(spec, parent, services)
        self._backend: Any = None

    def unchecked_key_lookup(self, key: LookupKey, context: LookupContext, merge: Any) -> Any:
        with context.explaining("hierarchy_entry", self.name):
            if self._backend is None:
                try:
                    self._backend = self._instantiate_backend()
                except BackendFailure as exc:
                    context.report_text(str(exc))
                    log_debug("v3_backend_failed", backend=self.name, error=str(exc))
                    return NOT_FOUND
            resolution_type = convert_merge(MergeStrategy.strategy(merge))
            value = self._backend.lookup(key.root_key, context.scope, None, resolution_type, {"recurse_guard": None})
            if value is NOT_FOUND:
                return context.report_not_found(key.root_key)
            return context.report_found(key.root_key, value)

    def _instantiate_backend(self) -> Any:
        try:
            factory = self.services.registry.lookup(("hiera_v3_backend", self.name))
        except ImportError as exc:
            raise BackendFailure(f"Unable to load backend '{self.name}': {exc}") from exc
        if factory is None:
            raise BackendFailure(f"Unable to load backend '{self.name}': no such backend is registered")
        try:
            backend = factory(self.spec.options.get("hiera_config", {}))
            arity = len(inspect.signature(backend.lookup).parameters)
        except (TypeError, AttributeError, ValueError) as exc:
            raise BackendFailure(f"Unable to instantiate backend '{self.name}': {exc}") from exc
        return Backend1xWrapper(backend) if arity == 4 else backend


_LEGACY_RESOLUTION: dict[str, Any] = {
    "first": None,
    "unique": "array",
    "hash": {"behavior": "native"},
    "deep": {"behavior": "deeper"},
    "reverse_deep": {"behavior": "deep"},
}


def convert_merge(merge: MergeStrategy | str | Mapping[str, Any] | None) -> Any:
    """Translate a merge strategy into the legacy ``resolution_type`` vocabulary.

    ``deep`` maps to the legacy ``deeper`` behaviour and ``reverse_deep`` to
    ``deep``; the legacy names are inverted relative to ours.

    Examples
    --------
    >>> convert_merge("unique"), convert_merge("deep"), convert_merge("reverse_deep")
    ('array', {'behavior': 'deeper'}, {'behavior': 'deep'})
    >>> convert_merge({"strategy": "deep", "knockout_prefix": "--"})
    {'behavior': 'deeper', 'knockout_prefix': '--'}
    """

    if merge is None:
        return None
    if isinstance(merge, MergeStrategy):
        return convert_merge(merge.configuration)
    if isinstance(merge, str) and merge in _LEGACY_RESOLUTION:
        value = _LEGACY_RESOLUTION[merge]
        return dict(value) if isinstance(value, dict) else value
    if isinstance(merge, Mapping):
        strategy = merge.get("strategy")
        if strategy in ("deep", "reverse_deep"):
            result = dict(_LEGACY_RESOLUTION[strategy])
            result.update({key: value for key, value in merge.items() if key != "strategy"})
            return result
        return convert_merge(strategy)
    raise UnrecognizedMerge(f"Unrecognized value for request 'merge' parameter: '{merge}'")


_PROVIDER_CLASSES: dict[FunctionKind, type[FunctionProvider]] = {
    FunctionKind.DATA_HASH: DataHashFunctionProvider,
    FunctionKind.LOOKUP_KEY: LookupKeyFunctionProvider,
    FunctionKind.DATA_DIG: DataDigFunctionProvider,
    FunctionKind.V3_BACKEND: V3BackendFunctionProvider,
    FunctionKind.V4_DATA_HASH: V4DataHashFunctionProvider,
}


def create_function_provider(
    spec: ProviderSpec,
    parent: ConfiguredDataProvider | None,
    services: LookupServices,
) -> FunctionProvider:
    return _PROVIDER_CLASSES[spec.function_kind](spec, parent, services)


def _describe(location: Location | None) -> str:
    return "<none>" if location is None else str(location.location)
