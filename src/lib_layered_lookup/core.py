"""Composition root for ``lib_layered_lookup``.

Purpose
-------
Wire the default adapters (interpolation, location expansion, registry,
``hiera.yaml`` reader, environment discovery, settings from the process
environment) into a :class:`LookupAdapter` and expose the consumer-facing
:func:`lookup` call.

Contents
--------
* :func:`load_settings` – :class:`LookupSettings` from ``LIB_LAYERED_LOOKUP_*`` variables.
* :func:`create_registry` – registry pre-loaded with the built-in data functions.
* :func:`create_services` – the :class:`LookupServices` bundle.
* :func:`create_adapter` – one adapter per session.
* :func:`lookup` – overrides, tiers, defaults; raises :class:`NotFound`.

System Role
-----------
The only module that knows every concrete adapter. Replace collaborators by
passing them to :func:`create_services`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from .adapters.env.default import DEFAULT_PREFIX, DefaultEnvLoader
from .adapters.environment.default import DirectoryEnvironmentLoader, load_environment
from .adapters.file_loaders.structured import BUILTIN_DATA_FUNCTIONS, HieraYamlReader
from .adapters.interpolation.default import DefaultInterpolator
from .adapters.locations.default import DefaultLocationResolver
from .adapters.registry.default import DefaultRegistry
from .application.context import Explainer, LookupContext
from .application.lookup_adapter import LookupAdapter
from .application.merge import MergeStrategy
from .application.ports import ConfigReader, Interpolator, LocationResolver, LookupServices, Registry
from .domain.environment import Environment
from .domain.errors import NotFound
from .domain.sentinels import NOT_FOUND, _Sentinel
from .domain.settings import LookupSettings
from .observability import log_debug, log_info, make_event

_MISSING: Final = _Sentinel("MISSING")
_NULLABLE_SETTINGS: Final[frozenset[str]] = frozenset({"data_binding_terminus", "hiera_config", "environmentpath"})


def load_settings(
    prefix: str = DEFAULT_PREFIX,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> LookupSettings:
    """Return settings read from ``<prefix>_<FIELD>`` variables, then *overrides*.

    Empty or ``none`` values reset nullable fields (``hiera_config``,
    ``environmentpath``, ``data_binding_terminus``) and are ignored for the rest.

    Examples
    --------
    >>> settings = load_settings(environ={"LIB_LAYERED_LOOKUP_STRICT": "off"}, environment="dev")
    >>> settings.strict, settings.environment
    ('off', 'dev')
    """

    loaded = DefaultEnvLoader(environ=environ).load(prefix)
    values = {key: value for key, value in loaded.items() if value is not None or key in _NULLABLE_SETTINGS}
    values.update(overrides)
    settings = LookupSettings.from_mapping(values)
    log_debug("settings_loaded", **make_event("settings", None, {"keys": sorted(values)}))
    return settings


def create_registry(
    functions: Mapping[str, Callable[..., Any]] | None = None,
    *,
    discover: bool = True,
) -> DefaultRegistry:
    """Return a registry holding ``yaml_data``/``json_data``/``toml_data`` plus *functions*."""

    registry = DefaultRegistry(discover=discover)
    for name, function in {**BUILTIN_DATA_FUNCTIONS, **(functions or {})}.items():
        registry.register_function(name, function)
    return registry


def create_services(
    settings: LookupSettings | None = None,
    *,
    registry: Registry | None = None,
    interpolator: Interpolator | None = None,
    locations: LocationResolver | None = None,
    config_reader: ConfigReader | None = None,
) -> LookupServices:
    """Bundle the collaborators, filling gaps with the default adapters."""

    interpolator = interpolator or DefaultInterpolator()
    return LookupServices(
        settings=settings if settings is not None else load_settings(),
        interpolator=interpolator,
        locations=locations or DefaultLocationResolver(interpolator),
        registry=registry if registry is not None else create_registry(),
        config_reader=config_reader or HieraYamlReader(),
    )


def create_adapter(
    environment: Environment | Path | str | None = None,
    services: LookupServices | None = None,
) -> LookupAdapter:
    """Return a fresh adapter (one per compilation/session).

    Parameters
    ----------
    environment:
        An :class:`Environment`, a path to an environment directory, or
        ``None`` to resolve ``settings.environment`` below
        ``settings.environmentpath`` (a directory-less environment when no
        ``environmentpath`` is configured).
    services:
        Collaborators; defaults to :func:`create_services`.
    """

    services = services or create_services()
    settings = services.settings
    if isinstance(environment, Environment):
        resolved = environment
    elif environment is not None:
        resolved = load_environment(Path(environment))
    elif settings.environmentpath is not None:
        resolved = DirectoryEnvironmentLoader(settings.environmentpath).load(settings.environment)
    else:
        resolved = Environment(settings.environment)
    location = None if resolved.path is None else str(resolved.path)
    log_debug("adapter_created", **make_event("environment", location, {"name": resolved.name}))
    return LookupAdapter(resolved, services)


def lookup(
    key: str,
    *,
    adapter: LookupAdapter,
    scope: Mapping[str, Any] | None = None,
    merge: MergeStrategy | str | Mapping[str, Any] | None = None,
    default: Any = _MISSING,
    override_values: Mapping[str, Any] | None = None,
    default_values: Mapping[str, Any] | None = None,
    explain: bool | Explainer = False,
) -> Any:
    """Return the value bound to *key*.

    Order: ``override_values[key]``, the tiers of *adapter*,
    ``default_values[key]``, then *default*.

    Parameters
    ----------
    explain:
        An :class:`Explainer` collecting the diagnostic tree, or ``True`` to
        log the rendered explanation at info level.

    Raises
    ------
    NotFound
        When nothing produced a value.

    Examples
    --------
    >>> adapter = create_adapter(Environment("production"), create_services(LookupSettings()))
    >>> lookup("ntp::servers", adapter=adapter, default_values={"ntp::servers": ["pool.ntp.org"]})
    ['pool.ntp.org']
    >>> lookup("ntp::servers", adapter=adapter, override_values={"ntp::servers": []})
    []
    """

    explainer = Explainer() if explain is True else (explain or None)
    context = LookupContext(
        scope,
        override_values=override_values,
        default_values=default_values,
        explainer=explainer,
        adapter=adapter,
    )
    if key in context.override_values:
        value = context.override_values[key]
        context.report_text(f"Found key: '{key}' in provided override values")
    else:
        value = adapter.lookup(key, context, merge)
        if value is NOT_FOUND and key in context.default_values:
            value = context.default_values[key]
            context.report_text(f"Found key: '{key}' in provided default values")
        if value is NOT_FOUND and default is not _MISSING:
            value = default
    if explain is True and explainer is not None:
        log_info("lookup_explained", key=key, explanation=explainer.render())
    if value is NOT_FOUND:
        raise NotFound(f"Function lookup() did not find a value for the name '{key}'")
    return value


__all__ = [
    "create_adapter",
    "create_registry",
    "create_services",
    "load_settings",
    "lookup",
]
