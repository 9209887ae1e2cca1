"""Public package surface for the hierarchical lookup engine.

Consumers build one adapter per session with :func:`create_adapter` and ask
for values with :func:`lookup`. The remaining exports are the value objects,
the error taxonomy and the logging hooks needed to extend or observe the
engine.
"""

from __future__ import annotations

from .application.context import Explainer, LookupContext
from .application.hiera_config import HieraConfig
from .application.lookup_adapter import LookupAdapter
from .application.merge import MergeStrategy
from .core import create_adapter, create_registry, create_services, load_settings, lookup
from .domain.environment import Environment, Module
from .domain.errors import (
    BackendFailure,
    ConfigurationError,
    CyclicLookup,
    DataBindingError,
    DuplicateName,
    InvalidFormat,
    InvalidKey,
    LookupFailed,
    NotFound,
    ProviderNotFound,
    ResolutionError,
    UnrecognizedMerge,
    UnsupportedVersion,
    ValidationError,
)
from .domain.lookup_key import LookupKey
from .domain.sentinels import NOT_FOUND
from .domain.settings import LookupSettings
from .observability import bind_trace_id, get_logger

__all__ = [
    "BackendFailure",
    "ConfigurationError",
    "CyclicLookup",
    "DataBindingError",
    "DuplicateName",
    "Environment",
    "Explainer",
    "HieraConfig",
    "InvalidFormat",
    "InvalidKey",
    "LookupAdapter",
    "LookupContext",
    "LookupFailed",
    "LookupKey",
    "LookupSettings",
    "MergeStrategy",
    "Module",
    "NOT_FOUND",
    "NotFound",
    "ProviderNotFound",
    "ResolutionError",
    "UnrecognizedMerge",
    "UnsupportedVersion",
    "ValidationError",
    "bind_trace_id",
    "create_adapter",
    "create_registry",
    "create_services",
    "get_logger",
    "load_settings",
    "lookup",
]
