"""Per-session lookup orchestrator.

Purpose
-------
Answer ``lookup(key, context, merge)`` by driving the fixed three-tier stack
(global, environment, module) through one merge strategy, resolving per-key
``lookup_options`` when the caller passes no explicit merge.

Contents
--------
* :class:`LookupAdapter` – owns the tier providers and the lookup-options cache.
* :data:`PROVIDER_STACK` – tier order.

System Role
-----------
One adapter per compilation/session. Providers and lookup options are
memoised for the adapter's lifetime; the module provider cache distinguishes
"not resolved yet" (``UNRESOLVED``) from "resolved to no provider" (``None``).
Everything runs synchronously on the caller's thread.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, Final
from uuid import uuid4

from ..domain.environment import Environment
from ..domain.errors import CyclicLookup, DataBindingError, InvalidKey, LookupFailed, ProviderNotFound
from ..domain.lookup_key import LOOKUP_OPTIONS, LOOKUP_OPTIONS_KEY, LookupKey, is_reserved
from ..domain.sentinels import NOT_FOUND, UNRESOLVED, _Sentinel
from ..observability import TRACE_ID, bind_trace_id, log_debug, make_event, warn_once
from .context import LookupContext
from .data_providers import EnvironmentDataProvider, GlobalDataProvider, ModuleDataProvider
from .hiera_config import HieraConfig
from .merge import MergeStrategy
from .ports import LookupServices

PROVIDER_STACK: Final[tuple[str, ...]] = ("lookup_global", "lookup_in_environment", "lookup_in_module")
GLOBAL_ENV_MERGE: Final[str] = "Global and Environment"
HASH: Final[str] = "hash"
MERGE: Final[str] = "merge"
_IN_PROGRESS: Final = _Sentinel("IN_PROGRESS")


class LookupAdapter:
    """Resolve keys against the global, environment and module tiers.

    Why
    ----
    Providers are expensive to build (configuration parsing, location
    expansion) and cheap to reuse; the adapter builds each at most once per
    session and caches the ``lookup_options`` merge per module.

    Parameters
    ----------
    environment:
        The environment whose ``hiera.yaml`` and modules are consulted.
    services:
        Settings and collaborators (interpolation, locations, registry,
        configuration reader).

    Examples
    --------
    >>> from lib_layered_lookup.core import create_services
    >>> from lib_layered_lookup.domain.environment import Environment
    >>> adapter = LookupAdapter(Environment("production"), create_services())
    >>> adapter.lookup("missing", LookupContext(), None) is NOT_FOUND
    True
    """

    def __init__(self, environment: Environment, services: LookupServices) -> None:
        self.environment = environment
        self.services = services
        self._lookup_options: dict[str | None, Any] = {}
        self._env_lookup_options: Any = UNRESOLVED
        self._global_provider: Any = UNRESOLVED
        self._env_provider: Any = UNRESOLVED
        self._module_providers: dict[str, Any] = {}

    def lookup(self, key: str, context: LookupContext, merge: MergeStrategy | str | Mapping[str, Any] | None) -> Any:
        """Return the value for *key* or ``NOT_FOUND``.

        Raises
        ------
        InvalidKey
            For ``lookup_options`` (and its dotted children) or malformed keys.
        CyclicLookup
            When *key* is already being looked up further up the chain.
        """

        if context.adapter is None:
            context.adapter = self
        bound = TRACE_ID.get() is None
        if bound:
            bind_trace_id(uuid4().hex)
        try:
            return self._lookup(key, context, merge)
        finally:
            if bound:
                bind_trace_id(None)

    def _lookup(self, key: str, context: LookupContext, merge: Any) -> Any:
        parsed = None if is_reserved(key) else LookupKey.parse(key)
        # a quoted 'lookup_options' only shows up as reserved once parsed
        if parsed is None or parsed.root_key == LOOKUP_OPTIONS:
            context.report_invalid_key(LOOKUP_OPTIONS)
            raise InvalidKey(f"The key '{key}' is reserved and cannot be looked up as data")
        with context.track(parsed.raw, parsed.module_name):
            if context.only_explain_options():
                self._do_lookup(LOOKUP_OPTIONS_KEY, context, HASH)
                return None
            if merge is None:
                merge = self.lookup_merge_options(parsed, context)
                if merge is not None:
                    context.report_merge_source(LOOKUP_OPTIONS)
            with context.explaining("data", parsed.raw):
                return self._do_lookup(parsed, context, merge)

    def _do_lookup(self, key: LookupKey, context: LookupContext, merge: Any) -> Any:
        strategy = MergeStrategy.strategy(merge)
        value = strategy.lookup(
            PROVIDER_STACK,
            context,
            lambda tier: getattr(self, tier)(key, context, strategy),
        )
        return key.navigate(context, value)

    def lookup_global(self, key: LookupKey, context: LookupContext, merge: MergeStrategy) -> Any:
        settings = self.services.settings
        if settings.global_lookup_disabled:
            return context.report_not_found(key.root_key)
        terminus = str(settings.data_binding_terminus)
        try:
            if terminus == "hiera":
                provider = self.global_provider(context)
                if provider is None:
                    return NOT_FOUND
                return provider.key_lookup(key, context, merge)
            with context.explaining("global", terminus):
                binding = self.services.registry.lookup(("data_binding", terminus))
                if binding is None:
                    raise ProviderNotFound(f"No data binding terminus named '{terminus}' is registered")
                value = binding.find(
                    key.root_key,
                    environment=self.environment.name,
                    variables=context.scope,
                    merge=merge,
                )
                if value is NOT_FOUND:
                    return context.report_not_found(key.root_key)
                return context.report_found(key.root_key, value)
        except DataBindingError as exc:
            raise LookupFailed(f"Lookup of key '{context.top_key}' failed: {exc}") from exc

    def lookup_in_environment(self, key: LookupKey, context: LookupContext, merge: MergeStrategy) -> Any:
        provider = self.env_provider(context)
        if provider is None:
            return NOT_FOUND
        return provider.key_lookup(key, context, merge)

    def lookup_in_module(self, key: LookupKey, context: LookupContext, merge: MergeStrategy) -> Any:
        module_name = context.module_name
        if module_name is None:
            return NOT_FOUND
        provider = self.module_provider(context, module_name)
        if provider is None:
            if self.environment.module(module_name) is None:
                return context.report_module_not_found(module_name)
            return context.report_module_provider_not_found(module_name)
        return provider.key_lookup(key, context, merge)

    def lookup_merge_options(self, key: LookupKey, context: LookupContext) -> Any:
        """Return the ``merge`` entry of the lookup options for *key*, if any."""

        options = self.lookup_lookup_options(key, context)
        return None if options is None else options.get(MERGE)

    def lookup_lookup_options(self, key: LookupKey, context: LookupContext) -> Mapping[str, Any] | None:
        """Return the lookup options for *key*; cached per module name (``None`` = top level).

        Raises
        ------
        LookupFailed
            When ``lookup_options`` or the entry for *key* is not a hash.
        CyclicLookup
            When resolving ``lookup_options`` needs the lookup options it is
            resolving, e.g. through a ``%{lookup(...)}`` in one of its values.
        """

        module_name = key.module_name
        if self._lookup_options.get(module_name) is _IN_PROGRESS:
            raise CyclicLookup(
                f"Recursive lookup detected in [{LOOKUP_OPTIONS}, {key.raw}]: "
                f"the {LOOKUP_OPTIONS} hash depends on a lookup that needs it"
            )
        if module_name not in self._lookup_options:
            self._lookup_options[module_name] = _IN_PROGRESS
            try:
                options = self._retrieve_lookup_options(module_name, context, MergeStrategy.strategy(HASH))
            except Exception:
                del self._lookup_options[module_name]
                raise
            if options is not None and not isinstance(options, Mapping):
                del self._lookup_options[module_name]
                raise LookupFailed(f"value of {LOOKUP_OPTIONS} must be a hash")
            self._lookup_options[module_name] = options
            log_debug("lookup_options_cached", module=module_name, keys=sorted(options or {}))
        options = self._lookup_options[module_name]
        if options is None:
            return None
        entry = options.get(key.root_key)
        if entry is not None and not isinstance(entry, Mapping):
            raise LookupFailed(f"value of {LOOKUP_OPTIONS}['{key.root_key}'] must be a hash")
        return entry

    def _retrieve_lookup_options(
        self,
        module_name: str | None,
        context: LookupContext,
        merge: MergeStrategy,
    ) -> Any:
        meta = context.meta_context()
        with meta.track(LOOKUP_OPTIONS, module_name), meta.explaining("meta", LOOKUP_OPTIONS):
            options = self._global_and_env_lookup_options(meta, merge)
            module_options = self.lookup_in_module(LOOKUP_OPTIONS_KEY, meta, merge)
            if module_options is NOT_FOUND:
                return None if options is NOT_FOUND else options
            if options is NOT_FOUND:
                return module_options

            def attempt(source: str) -> Any:
                with meta.explaining("scope", source):
                    return meta.report_found(LOOKUP_OPTIONS, options if source == GLOBAL_ENV_MERGE else module_options)

            return merge.lookup([GLOBAL_ENV_MERGE, f"Module {module_name}"], meta, attempt)

    def _global_and_env_lookup_options(self, context: LookupContext, merge: MergeStrategy) -> Any:
        if self._env_lookup_options is UNRESOLVED:
            global_options = self.lookup_global(LOOKUP_OPTIONS_KEY, context, merge)
            env_options = self.lookup_in_environment(LOOKUP_OPTIONS_KEY, context, merge)
            if global_options is NOT_FOUND:
                self._env_lookup_options = env_options
            elif env_options is NOT_FOUND:
                self._env_lookup_options = global_options
            else:
                self._env_lookup_options = merge.merge(global_options, env_options)
        return self._env_lookup_options

    def global_provider(self, context: LookupContext) -> GlobalDataProvider | None:
        if self._global_provider is UNRESOLVED:
            configured = self.services.settings.hiera_config
            self._global_provider = None if configured is None else GlobalDataProvider(self.services)
            log_debug("provider_resolved", **make_event("global", _text(configured), {"present": configured is not None}))
        return self._global_provider

    def env_provider(self, context: LookupContext) -> Any:
        if self._env_provider is UNRESOLVED:
            self._env_provider = self._initialize_env_provider(context)
            log_debug(
                "provider_resolved",
                **make_event("environment", _text(self.environment.path), {"provider": repr(self._env_provider)}),
            )
        return self._env_provider

    def module_provider(self, context: LookupContext, module_name: str) -> Any:
        if module_name not in self._module_providers:
            provider = self._initialize_module_provider(context, module_name)
            self._module_providers[module_name] = provider
            log_debug("provider_resolved", **make_event("module", module_name, {"provider": repr(provider)}))
        return self._module_providers[module_name]

    def _initialize_env_provider(self, context: LookupContext) -> Any:
        environment = self.environment
        if environment.path is None:
            return None
        provider_name = environment.data_provider
        config_path = environment.path / "hiera.yaml"
        conf_file = str(environment.conf_file or environment.path / "environment.conf")
        deprecations = self.services.settings.deprecations_enabled

        provider = None
        if config_path.exists():
            provider = EnvironmentDataProvider(environment, self.services)
            if provider.config(context).version >= 5:
                if provider_name is not None and deprecations:
                    warn_once(
                        "deprecation",
                        "environment.conf#data_provider",
                        f"Defining environment_data_provider='{provider_name}' in environment.conf is deprecated",
                        file=conf_file,
                    )
                    if provider_name != "hiera":
                        warn_once(
                            "deprecation",
                            "environment.conf#data_provider_overridden",
                            f"The environment_data_provider='{provider_name}' setting is ignored since"
                            f" '{config_path}' version >= 5",
                            file=conf_file,
                        )
                provider_name = None

        if provider_name is None:
            return provider
        if deprecations:
            message = f"Defining environment_data_provider='{provider_name}' in environment.conf is deprecated"
            if provider is None:
                message += ". A 'hiera.yaml' file should be used instead"
            warn_once("deprecation", "environment.conf#data_provider", message, file=conf_file)

        if provider_name == "none":
            return None
        if provider_name == "hiera":
            return provider or EnvironmentDataProvider(environment, self.services)
        if provider_name == "function":
            config = HieraConfig.v4_function_config(environment.path, "environment::data", self.services)
            return EnvironmentDataProvider(environment, self.services, config)
        registered = self.services.registry.lookup(("environment_data_provider", provider_name))
        if registered is None:
            raise ProviderNotFound(
                f"Environment '{environment.name}', cannot find environment_data_provider '{provider_name}'"
            )
        return registered

    def _initialize_module_provider(self, context: LookupContext, module_name: str) -> Any:
        module = self.environment.module(module_name)
        if module is None:
            return None
        provider_name = module.data_provider
        binding = False
        if provider_name is None:
            provider_name = self.services.registry.lookup(("per_module_data_provider", module_name))
            binding = provider_name is not None
        deprecations = self.services.settings.deprecations_enabled
        metadata_file = str(module.metadata_file or module.path / "metadata.json")

        provider = None
        if module.has_hiera_conf:
            provider = ModuleDataProvider(module, self.services)
            if provider.config(context).version >= 5:
                if provider_name is not None and deprecations:
                    if binding:
                        warn_once(
                            "deprecation",
                            f"ModuleBinding#data_provider-{module_name}",
                            f"Defining data_provider '{provider_name}' as a binding is deprecated. The binding is"
                            " ignored since a 'hiera.yaml' with version >= 5 is present",
                        )
                    else:
                        warn_once(
                            "deprecation",
                            f"metadata.json#data_provider-{module_name}",
                            f'Defining "data_provider": "{provider_name}" in metadata.json is deprecated. It is'
                            " ignored since a 'hiera.yaml' with version >= 5 is present",
                            file=metadata_file,
                        )
                provider_name = None

        if provider_name is None:
            return provider
        if deprecations:
            if binding:
                message = f"Defining data_provider '{provider_name}' as a binding is deprecated"
                marker = f"ModuleBinding#data_provider-{module_name}"
            else:
                message = f'Defining "data_provider": "{provider_name}" in metadata.json is deprecated'
                marker = f"metadata.json#data_provider-{module_name}"
            if provider is None:
                message += ". A 'hiera.yaml' file should be used instead"
            warn_once("deprecation", marker, message, file=metadata_file)

        if provider_name == "none":
            return None
        if provider_name == "hiera":
            return provider or ModuleDataProvider(module, self.services)
        if provider_name == "function":
            config = HieraConfig.v4_function_config(module.path, f"{module_name}::data", self.services)
            return ModuleDataProvider(module, self.services, config)
        registered = self.services.registry.lookup(("module_data_provider", provider_name))
        if registered is None:
            raise ProviderNotFound(
                f"Environment '{self.environment.name}', cannot find module_data_provider '{provider_name}'"
            )
        # cached per adapter, so each session gets its own copy
        return copy.copy(registered)

    def __repr__(self) -> str:
        return f"LookupAdapter(environment={self.environment.name!r})"


def _text(value: object) -> str | None:
    return None if value is None else str(value)
