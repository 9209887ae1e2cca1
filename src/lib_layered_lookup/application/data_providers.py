"""Configured data providers for the global, environment and module tiers.

Purpose
-------
Each tier owns one :class:`~lib_layered_lookup.application.hiera_config.HieraConfig`
and drives its function providers through the active merge strategy.

Contents
--------
* :class:`ConfiguredDataProvider` – shared ``key_lookup`` loop and config caching.
* :class:`GlobalDataProvider` – global ``hiera.yaml`` (versions 3 and 5).
* :class:`EnvironmentDataProvider` – ``<environment>/hiera.yaml`` (versions 4 and 5).
* :class:`ModuleDataProvider` – ``<module>/hiera.yaml`` (versions 4 and 5);
  drops data keys outside the module namespace.

System Role
-----------
Instantiated lazily by :class:`~lib_layered_lookup.application.lookup_adapter.LookupAdapter`.
The configuration is created once per provider; its function providers are
rebuilt only when scope variables read during interpolation change.
"""

from __future__ import annotations

from collections import ChainMap
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

from ..domain.environment import CONFIG_FILE_NAME, Environment, Module
from ..domain.errors import ConfigurationError
from ..domain.lookup_key import LOOKUP_OPTIONS, LookupKey
from ..observability import log_warning
from .hiera_config import HieraConfig, HieraConfigV3
from .merge import HashMergeStrategy, MergeStrategy

if TYPE_CHECKING:  # pragma: no cover
    from .context import LookupContext
    from .ports import LookupServices


class ConfiguredDataProvider:
    """Base class for providers whose hierarchy comes from a ``hiera.yaml``.

    Parameters
    ----------
    services:
        Collaborators handed down to the configuration and function providers.
    config:
        A pre-built configuration (used by the ``function`` provider setting);
        otherwise the configuration is read from :meth:`configuration_path`.
    """

    place: ClassVar[str] = ""
    rejected_versions: ClassVar[tuple[int, ...]] = ()

    def __init__(self, services: LookupServices, config: HieraConfig | None = None) -> None:
        self.services = services
        self._config = None if config is None else self._assert_config_version(config)

    @property
    def name(self) -> str:
        return f"{self.place} Data Provider"

    @property
    def module_name(self) -> str | None:
        return None

    def config(self, context: LookupContext) -> HieraConfig:
        """Return the (cached) configuration of this tier."""

        if self._config is None:
            config = HieraConfig.create(self.configuration_path(context), self.services)
            self._config = self._assert_config_version(config)
        return self._config

    def configuration_path(self, context: LookupContext) -> Path:
        raise NotImplementedError(f"{type(self).__name__} must implement configuration_path()")

    def data_providers(self, context: LookupContext) -> list[Any]:
        return self.config(context).configured_data_providers(context, self)

    def key_lookup(self, key: LookupKey, context: LookupContext, merge: MergeStrategy | Any) -> Any:
        """Look *key* up in every hierarchy entry, combined through *merge*."""

        return self.unchecked_key_lookup(key, context, merge)

    def unchecked_key_lookup(self, key: LookupKey, context: LookupContext, merge: MergeStrategy | Any) -> Any:
        with context.explaining("data_provider", self.name):
            strategy = MergeStrategy.strategy(merge)
            providers = self.data_providers(context)
            if not providers:
                return context.report_not_found(key.root_key)
            return strategy.lookup(
                providers,
                context,
                lambda provider: provider.unchecked_key_lookup(key, context, strategy),
            )

    def validate_data_hash(self, provider: Any, data: dict[str, Any]) -> dict[str, Any]:
        """Hook for tiers that restrict which keys a data hash may contain."""

        return data

    def _assert_config_version(self, config: HieraConfig) -> HieraConfig:
        if config.version in self.rejected_versions:
            raise ConfigurationError(
                f"{config.label}: {CONFIG_FILE_NAME} version {config.version} cannot be used in {self._tier_phrase}"
            )
        return config

    @property
    def _tier_phrase(self) -> str:
        return f"the {self.place.lower()} layer"

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class GlobalDataProvider(ConfiguredDataProvider):
    """Provider for the global ``hiera.yaml`` named by the settings.

    Version 3 documents see the scope extended with ``environment`` and, when
    their ``merge_behavior`` is ``deep``/``deeper``, replace a requested
    ``hash`` merge with that deep strategy.
    """

    place = "Global"
    rejected_versions = (4,)

    def configuration_path(self, context: LookupContext) -> Path:
        configured = self.services.settings.hiera_config
        if configured is None:
            raise ConfigurationError("No global hiera.yaml is configured (settings.hiera_config is unset)")
        return configured

    def unchecked_key_lookup(self, key: LookupKey, context: LookupContext, merge: MergeStrategy | Any) -> Any:
        config = self.config(context)
        if not isinstance(config, HieraConfigV3):
            return super().unchecked_key_lookup(key, context, merge)
        legacy_context = context.with_scope(ChainMap(dict(context.scope), {"environment": self.services.settings.environment}))
        strategy = MergeStrategy.strategy(merge)
        if config.has_deep_merge_behavior and isinstance(strategy, HashMergeStrategy):
            strategy = config.merge_strategy
        return super().unchecked_key_lookup(key, legacy_context, strategy)


class EnvironmentDataProvider(ConfiguredDataProvider):
    """Provider for ``<environment>/hiera.yaml``."""

    place = "Environment"
    rejected_versions = (3,)

    def __init__(self, environment: Environment, services: LookupServices, config: HieraConfig | None = None) -> None:
        self.environment = environment
        super().__init__(services, config)

    @property
    def _tier_phrase(self) -> str:
        return f"environment '{self.environment.name}'"

    def configuration_path(self, context: LookupContext) -> Path:
        path = self.environment.config_path
        if path is None:
            raise ConfigurationError(f"Environment '{self.environment.name}' has no directory")
        return path


class ModuleDataProvider(ConfiguredDataProvider):
    """Provider for ``<module>/hiera.yaml``; only serves keys in its namespace."""

    place = "Module"
    rejected_versions = (3,)

    def __init__(self, module: Module, services: LookupServices, config: HieraConfig | None = None) -> None:
        self.module = module
        super().__init__(services, config)

    @property
    def name(self) -> str:
        return f'Module "{self.module.name}" Data Provider'

    @property
    def module_name(self) -> str:
        return self.module.name

    @property
    def _tier_phrase(self) -> str:
        return f"module '{self.module.name}'"

    def configuration_path(self, context: LookupContext) -> Path:
        return self.module.path / CONFIG_FILE_NAME

    def validate_data_hash(self, provider: Any, data: dict[str, Any]) -> dict[str, Any]:
        """Drop keys that are neither module qualified nor ``lookup_options``."""

        prefix = f"{self.module.name}::"
        kept: dict[str, Any] = {}
        for key, value in data.items():
            if key == LOOKUP_OPTIONS:
                kept[key] = self._validate_lookup_options(provider, value)
            elif isinstance(key, str) and key.startswith(prefix):
                kept[key] = value
            else:
                log_warning(
                    f"Module '{self.module.name}': {provider.name} must use keys qualified with the name of the module",
                    key=str(key),
                    module=self.module.name,
                )
        return kept

    def _validate_lookup_options(self, provider: Any, options: Any) -> Any:
        if not isinstance(options, Mapping):
            return options
        prefix = f"{self.module.name}::"
        kept = {key: value for key, value in options.items() if isinstance(key, str) and key.startswith(prefix)}
        for key in options.keys() - kept.keys():
            log_warning(
                f"Module '{self.module.name}': {provider.name} must use keys qualified with the name of the module"
                f" in {LOOKUP_OPTIONS}",
                key=str(key),
                module=self.module.name,
            )
        return kept

    def __repr__(self) -> str:
        return f"ModuleDataProvider(module={self.module.name!r})"


