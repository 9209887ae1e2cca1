"""Hierarchy configuration (``hiera.yaml``) resolution.

Purpose
-------
Turn one of the three incompatible ``hiera.yaml`` generations into the same
product: an ordered list of function providers. The variant is selected once
from the ``version`` field through :data:`VARIANTS`.

Contents
--------
* :class:`HieraConfig` – base class; :meth:`HieraConfig.create` dispatch,
  provider caching keyed on the scope variables read during interpolation.
* :class:`HieraConfigV3` – backend oriented legacy layout.
* :class:`HieraConfigV4` – named entries resolved through backend factories.
* :class:`HieraConfigV5` – named entries with explicit function and location kinds.

System Role
-----------
Owned by the configured data providers in
:mod:`lib_layered_lookup.application.data_providers`. All configuration
problems are fatal :class:`~lib_layered_lookup.domain.errors.ConfigurationError`
subclasses.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar, Final

from ..domain.environment import CONFIG_FILE_NAME
from ..domain.errors import DuplicateName, ProviderNotFound, UnsupportedVersion, ValidationError
from ..domain.schema import HieraV3Document, HieraV4Document, HieraV5Document, assert_instance_of
from ..observability import log_debug, log_warning, warn_once
from .context import LookupContext, ScopeLookupCollectingContext
from .function_providers import (
    ALL_FUNCTION_KEYS,
    FUNCTION_KEYS,
    FunctionKind,
    FunctionProvider,
    ProviderSpec,
    create_function_provider,
)
from .merge import MergeStrategy

if TYPE_CHECKING:  # pragma: no cover
    from .data_providers import ConfiguredDataProvider
    from .ports import LookupServices

LOCATION_KEYS: Final[tuple[str, ...]] = ("path", "paths", "glob", "globs", "uri", "uris")
BUILTIN_BACKENDS: Final[tuple[str, ...]] = ("json", "yaml")
RECREATED_MESSAGE: Final[str] = (
    "Hiera configuration recreated due to change of scope variables used in interpolation expressions"
)
_DEEP_MERGE_OPTIONS: Final[tuple[str, ...]] = ("knockout_prefix", "merge_debug", "merge_hash_arrays", "sort_merge_arrays")

DEFAULT_V5_DOCUMENT: Final[Mapping[str, Any]] = MappingProxyType(
    {
        "version": 5,
        "defaults": {"datadir": "data", "data_hash": "yaml_data"},
        "hierarchy": [{"name": "Common", "path": "common.yaml"}],
    }
)


class HieraConfig:
    """Base class for the three configuration generations.

    Parameters
    ----------
    config_root:
        Directory relative paths (``datadir``) are anchored in.
    config_path:
        The file the document was read from; ``None`` for synthesised documents.
    loaded:
        The raw document.
    services:
        Collaborators (interpolation, location expansion, registry, settings).
    """

    version: ClassVar[int]

    def __init__(
        self,
        config_root: Path,
        config_path: Path | None,
        loaded: Mapping[str, Any],
        services: LookupServices,
    ) -> None:
        self.config_root = config_root
        self.config_path = config_path
        self.services = services
        self._loaded = loaded
        self.config: dict[str, Any] = self.validate_config({**_stringify_keys(loaded), "version": self.version})
        self._data_providers: list[Any] | None = None
        self._scope_interpolations: dict[str, Any] = {}

    @classmethod
    def create(
        cls,
        source: Path | str | Mapping[str, Any],
        services: LookupServices,
        *,
        root: Path | None = None,
    ) -> HieraConfig:
        """Read or accept a document and build the matching variant.

        A path to a missing file yields the default version 5 document anchored
        in the file's directory. A mapping is used as-is and anchored in
        *root* (default: the current directory).

        Raises
        ------
        UnsupportedVersion
            When ``version`` is present and not 3, 4 or 5.

        Examples
        --------
        >>> from lib_layered_lookup.core import create_services
        >>> HieraConfig.create({"version": 5}, create_services()).version
        5
        """

        if isinstance(source, Mapping):
            config_root = root if root is not None else Path.cwd()
            config_path: Path | None = None
            loaded: Mapping[str, Any] = source
        else:
            path = Path(source)
            config_root = path.parent
            if path.exists():
                config_path = path
                loaded = services.config_reader.read(path)
            else:
                config_path = None
                loaded = DEFAULT_V5_DOCUMENT
        version = _version_of(loaded)
        variant = VARIANTS.get(version)
        if variant is None:
            raise UnsupportedVersion(
                f"{_where(config_path)}: This runtime does not support {CONFIG_FILE_NAME} version '{version}'"
            )
        log_debug("hiera_config_created", version=version, config_path=str(config_path), root=str(config_root))
        return variant(config_root, config_path, loaded, services)

    @classmethod
    def v4_function_config(cls, config_root: Path, function_name: str, services: LookupServices) -> HieraConfigV5:
        """Synthesise the one-entry document used by the ``function`` data provider setting."""

        if services.settings.deprecations_enabled:
            warn_once(
                "deprecation",
                "legacy_provider_function",
                f"Using of legacy data provider function '{function_name}'. Please convert to a 'data_hash' function",
            )
        document = {
            "version": 5,
            "hierarchy": [{"name": f"Legacy function '{function_name}'", "v4_data_hash": function_name}],
        }
        return HieraConfigV5(config_root, None, document, services)

    @property
    def name(self) -> str:
        return f"hiera configuration version {self.version}"

    @property
    def label(self) -> str:
        return f"The Lookup Configuration at '{_where(self.config_path)}'"

    @property
    def is_default_config(self) -> bool:
        """Return ``True`` for the document synthesised when no ``hiera.yaml`` exists."""

        return self._loaded is DEFAULT_V5_DOCUMENT

    def configured_data_providers(
        self,
        context: LookupContext,
        parent: ConfiguredDataProvider | None,
    ) -> list[Any]:
        """Return the providers, rebuilding them when a captured scope variable changed."""

        scope = context.scope
        if self._data_providers is None or not self._scope_interpolations_stable(scope):
            if self._data_providers is not None:
                context.report_text(RECREATED_MESSAGE)
                log_debug("hiera_config_recreated", config_path=str(self.config_path))
            collecting = ScopeLookupCollectingContext(scope, adapter=context.adapter, parent=context)
            self._data_providers = self.create_configured_data_providers(collecting, parent)
            self._scope_interpolations = collecting.scope_interpolations
            log_debug(
                "data_providers_created",
                config_path=str(self.config_path),
                providers=[provider.name for provider in self._data_providers],
                scope_variables=sorted(self._scope_interpolations),
            )
        return self._data_providers

    def create_configured_data_providers(
        self,
        context: LookupContext,
        parent: ConfiguredDataProvider | None,
    ) -> list[Any]:
        raise NotImplementedError(f"{type(self).__name__} must implement create_configured_data_providers()")

    def validate_config(self, config: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError(f"{type(self).__name__} must implement validate_config()")

    def _scope_interpolations_stable(self, scope: Mapping[str, Any]) -> bool:
        return all(scope.get(name) == value for name, value in self._scope_interpolations.items())

    def _interpolate(self, value: Any, context: LookupContext) -> Any:
        return self.services.interpolator.interpolate(value, context, False)

    def _create_data_provider(self, spec: ProviderSpec, parent: ConfiguredDataProvider | None) -> FunctionProvider:
        return create_function_provider(spec, parent, self.services)

    def _check_unique(self, providers: Mapping[str, Any], name: str, what: str = "Name") -> None:
        if name in providers:
            raise DuplicateName(f"{_where(self.config_path)}: {what} '{name}' defined more than once")

    def _warn_deprecated(self) -> None:
        if self.services.settings.deprecations_enabled:
            warn_once(
                "deprecation",
                CONFIG_FILE_NAME,
                f"{_where(self.config_path)}: Use of '{CONFIG_FILE_NAME}' version {self.version} is deprecated."
                " It should be converted to version 5",
                config_path=str(self.config_path),
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(config_path={self.config_path!r})"


class HieraConfigV3(HieraConfig):
    """Legacy layout: one provider per backend sharing a single path hierarchy."""

    version = 3

    def validate_config(self, config: dict[str, Any]) -> dict[str, Any]:
        self._warn_deprecated()
        config.setdefault("version", 3)
        config.setdefault("backends", "yaml")
        config.setdefault("hierarchy", ["nodes/%{::trusted.certname}", "common"])
        config.setdefault("logger", "console")
        config.setdefault("merge_behavior", "native")
        config.setdefault("deep_merge_options", {})
        assert_instance_of(HieraV3Document, config, self.label)
        return config

    @property
    def backends(self) -> list[str]:
        return _as_list(self.config["backends"])

    @property
    def merge_strategy(self) -> MergeStrategy:
        """Return the strategy derived from ``merge_behavior``.

        ``deep`` maps to ``reverse_deep`` and ``deeper`` to ``deep``; the legacy
        names are inverted relative to ours and existing documents rely on it.
        """

        behavior = self.config.get("merge_behavior")
        if behavior in (None, "native"):
            return MergeStrategy.strategy("first")
        if behavior == "array":
            return MergeStrategy.strategy("unique")
        merge: dict[str, Any] = {"strategy": "reverse_deep" if behavior == "deep" else "deep"}
        for option, value in (self.config.get("deep_merge_options") or {}).items():
            if option in _DEEP_MERGE_OPTIONS:
                merge[option] = value
            else:
                log_warning(
                    f"{_where(self.config_path)}: merge_option '{option}' is not recognized. Option is ignored",
                    option=option,
                )
        return MergeStrategy.strategy(merge)

    @property
    def has_deep_merge_behavior(self) -> bool:
        return self.config.get("merge_behavior") in ("deep", "deeper")

    def create_configured_data_providers(
        self,
        context: LookupContext,
        parent: ConfiguredDataProvider | None,
    ) -> list[Any]:
        settings = self.services.settings
        default_datadir = str(settings.codedir / "environments" / "%{::environment}" / "hieradata")
        hierarchy = _as_list(self.config["hierarchy"])
        providers: dict[str, FunctionProvider] = {}
        for backend in self.backends:
            self._check_unique(providers, backend, "Backend")
            section = self.config.get(backend) or {}
            datadir = self.config_root / self._interpolate(section.get("datadir", default_datadir), context)
            paths = self.services.locations.resolve_paths(
                datadir, hierarchy, context, self.is_default_config, f".{backend}"
            )
            if backend in BUILTIN_BACKENDS:
                spec = ProviderSpec(backend, FunctionKind.DATA_HASH, f"{backend}_data", {}, tuple(paths))
            else:
                spec = ProviderSpec(
                    backend,
                    FunctionKind.V3_BACKEND,
                    "hiera_v3_data",
                    {"hiera_config": dict(self._loaded)},
                    tuple(paths) or None,
                )
            providers[backend] = self._create_data_provider(spec, parent)
        return list(providers.values())


class HieraConfigV4(HieraConfig):
    """Named entries; custom backends come from registered provider factories.

    A factory registered under ``("v4_data_provider_factory", backend)`` must
    offer ``resolve_paths(datadir, original_paths, interpolated_paths, context)``
    and ``create(name, paths[, parent])``. Factories without a ``version``
    attribute (or with ``version == 1``) do not receive the parent provider.
    """

    version = 4

    def validate_config(self, config: dict[str, Any]) -> dict[str, Any]:
        self._warn_deprecated()
        config.setdefault("datadir", "data")
        config.setdefault("hierarchy", [{"name": "common", "backend": "yaml"}])
        assert_instance_of(HieraV4Document, config, self.label)
        return config

    def create_configured_data_providers(
        self,
        context: LookupContext,
        parent: ConfiguredDataProvider | None,
    ) -> list[Any]:
        default_datadir = self.config["datadir"]
        providers: dict[str, Any] = {}
        for entry in self.config["hierarchy"]:
            name = entry["name"]
            self._check_unique(providers, name)
            original_paths = entry.get("paths") or [entry.get("path") or name]
            datadir = self.config_root / (entry.get("datadir") or default_datadir)
            backend = entry["backend"]
            if backend in BUILTIN_BACKENDS:
                paths = self.services.locations.resolve_paths(
                    datadir, original_paths, context, self.is_default_config, f".{backend}"
                )
                spec = ProviderSpec(name, FunctionKind.DATA_HASH, f"{backend}_data", {}, tuple(paths))
                providers[name] = self._create_data_provider(spec, parent)
            else:
                providers[name] = self._factory_create_data_provider(
                    context, name, parent, backend, datadir, original_paths
                )
        return list(providers.values())

    def _factory_create_data_provider(
        self,
        context: LookupContext,
        name: str,
        parent: ConfiguredDataProvider | None,
        backend: str,
        datadir: Path,
        original_paths: Sequence[str],
    ) -> Any:
        factory = self.services.registry.lookup(("v4_data_provider_factory", backend))
        if factory is None:
            raise ProviderNotFound(f"{_where(self.config_path)}: No data provider is registered for backend '{backend}'")
        paths = [self._interpolate(path, context) for path in original_paths]
        paths = factory.resolve_paths(datadir, original_paths, paths, context)
        if getattr(factory, "version", 1) == 1:
            return factory.create(name, paths)
        return factory.create(name, paths, parent)


class HieraConfigV5(HieraConfig):
    """Named entries, each with one function kind and at most one location kind."""

    version = 5

    def validate_config(self, config: dict[str, Any]) -> dict[str, Any]:
        config.setdefault("defaults", dict(DEFAULT_V5_DOCUMENT["defaults"]))
        config.setdefault("hierarchy", [dict(entry) for entry in DEFAULT_V5_DOCUMENT["hierarchy"]])
        assert_instance_of(HieraV5Document, config, self.label)
        defaults = config["defaults"]
        if defaults is not None and sum(key in defaults for key in FUNCTION_KEYS) > 1:
            raise ValidationError(
                f"{_where(self.config_path)}: Only one of {_combine(FUNCTION_KEYS)} can be defined in defaults"
            )
        for entry in config["hierarchy"] or []:
            name = entry["name"]
            declared = sum(key in entry for key in ALL_FUNCTION_KEYS)
            if declared == 0 and (defaults is None or not any(key in defaults for key in FUNCTION_KEYS)):
                raise ValidationError(
                    f"{_where(self.config_path)}: One of {_combine(FUNCTION_KEYS)} must be defined in hierarchy '{name}'"
                )
            if declared > 1:
                raise ValidationError(
                    f"{_where(self.config_path)}: Only one of {_combine(FUNCTION_KEYS)} can be defined in hierarchy '{name}'"
                )
            if sum(key in entry for key in LOCATION_KEYS) > 1:
                raise ValidationError(
                    f"{_where(self.config_path)}: Only one of {_combine(LOCATION_KEYS)} can be defined in hierarchy '{name}'"
                )
        return config

    def create_configured_data_providers(
        self,
        context: LookupContext,
        parent: ConfiguredDataProvider | None,
    ) -> list[Any]:
        defaults = self.config.get("defaults") or {}
        datadir = defaults.get("datadir") or "data"
        locations = self.services.locations
        providers: dict[str, FunctionProvider] = {}
        for entry in self.config.get("hierarchy") or []:
            name = entry["name"]
            self._check_unique(providers, name)
            function_kind = next((key for key in ALL_FUNCTION_KEYS if key in entry), None)
            if function_kind is None:
                function_kind = next(key for key in FUNCTION_KEYS if key in defaults)
                function_name = defaults[function_kind]
            else:
                function_name = entry[function_kind]

            entry_datadir = self.config_root / (entry.get("datadir") or datadir)
            location_key = next((key for key in LOCATION_KEYS if key in entry), None)
            resolved: list[Any] | None
            if location_key in ("path", "paths"):
                resolved = locations.resolve_paths(
                    entry_datadir, _as_list(entry[location_key]), context, self.is_default_config
                )
            elif location_key in ("glob", "globs"):
                resolved = locations.expand_globs(entry_datadir, _as_list(entry[location_key]), context)
            elif location_key in ("uri", "uris"):
                resolved = locations.expand_uris(_as_list(entry[location_key]), context)
            else:
                resolved = None
            if self.is_default_config and resolved is not None and not resolved:
                log_debug("hierarchy_entry_skipped", name=name)
                continue

            options = entry.get("options")
            options = {} if options is None else self._interpolate(options, context)
            spec = ProviderSpec(
                name,
                FunctionKind(function_kind),
                function_name,
                options,
                None if resolved is None else tuple(resolved),
            )
            providers[name] = self._create_data_provider(spec, parent)
        return list(providers.values())


VARIANTS: dict[int, type[HieraConfig]] = {3: HieraConfigV3, 4: HieraConfigV4, 5: HieraConfigV5}


def _version_of(document: Mapping[str, Any]) -> int | str:
    """Return the declared version, ``3`` when absent and the raw text when not an integer."""

    value = document.get("version")
    if value is None:
        return 3
    if isinstance(value, bool):
        return str(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return str(value)


def _stringify_keys(value: Any) -> Any:
    """Return *value* with string keys; legacy ``:symbol`` keys lose their colon.

    Examples
    --------
    >>> _stringify_keys({":backends": ["yaml"], ":yaml": {":datadir": "/data"}, 5: "x"})
    {'backends': ['yaml'], 'yaml': {'datadir': '/data'}, '5': 'x'}
    """

    if isinstance(value, Mapping):
        return {_symbol_name(str(key)): _stringify_keys(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(item) for item in value]
    return value


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _combine(keys: Sequence[str]) -> str:
    quoted = [f"'{key}'" for key in keys]
    return ", ".join(quoted[:-1]) + f", or {quoted[-1]}"


def _where(config_path: Path | None) -> str:
    return "<default configuration>" if config_path is None else str(config_path)


def _symbol_name(key: str) -> str:
    return key[1:] if key.startswith(":") and not key.startswith("::") else key
