"""Domain-level exception hierarchy.

Purpose
-------
Expose the stable error taxonomy shared by the resolution engine, the adapters
and consuming applications. The hierarchy lives in the domain layer so every
outer layer can raise and catch the same types.

Contents
--------
* :class:`ResolutionError` – umbrella base class for every library failure.
* :class:`InvalidKey` – misuse of the reserved ``lookup_options`` key or a
  malformed key string.
* :class:`CyclicLookup` – a key that (indirectly) looks up itself.
* :class:`UnrecognizedMerge` – unknown merge strategy tag or option.
* :class:`ConfigurationError` and subclasses – fatal hierarchy configuration
  problems.
* :class:`LookupFailed` – fatal lookup failure with the original cause chained.
* :class:`DataBindingError` – raised by legacy data-binding termini.
* :class:`BackendFailure` – legacy backend could not be loaded or constructed.
* :class:`InvalidFormat` – missing or unparseable data artifacts.
* :class:`NotFound` – raised by :func:`lib_layered_lookup.core.lookup` only.

System Role
-----------
Inside the engine a missing key is never an exception: providers and merge
strategies return :data:`lib_layered_lookup.domain.sentinels.NOT_FOUND`.
:class:`NotFound` exists for the outermost API boundary where callers expect a
raised error. :class:`BackendFailure` is translated into ``NOT_FOUND`` at the
one boundary where legacy backends are invoked.
"""

from __future__ import annotations


class ResolutionError(Exception):
    """Base type for all exceptions emitted by ``lib_layered_lookup``.

    Why
    ----
    Provide a single catch-all type for consumers that do not need fine-grained
    handling.
    """


class InvalidKey(ResolutionError):
    """Raised when a key is reserved (``lookup_options``) or syntactically invalid."""


class CyclicLookup(ResolutionError):
    """Raised when a key re-enters its own lookup chain.

    The message lists the chain of in-progress keys so the loop can be traced
    back to the hierarchy data that caused it.
    """


class UnrecognizedMerge(ResolutionError):
    """Raised for an unknown merge strategy tag or an option it does not accept."""


class ConfigurationError(ResolutionError):
    """Fatal problem in a hierarchy configuration document.

    Why
    ----
    Configuration mistakes must abort the whole session instead of silently
    degrading into missing data.
    """


class UnsupportedVersion(ConfigurationError):
    """Raised when ``hiera.yaml`` declares a schema version other than 3, 4 or 5."""


class DuplicateName(ConfigurationError):
    """Raised when two hierarchy entries (or v3 backends) share the same name."""


class ProviderNotFound(ConfigurationError):
    """Raised when a backend, factory, function or named data provider is not registered."""


class ValidationError(ConfigurationError):
    """Signifies that a configuration document failed schema or semantic checks.

    Typical Sources
    ---------------
    :func:`lib_layered_lookup.domain.schema.assert_instance_of` and the
    function/location kind checks performed for version 5 documents.
    """


class LookupFailed(ResolutionError):
    """Fatal lookup failure.

    Wraps errors raised by a legacy data-binding terminus (original exception
    kept as ``__cause__``) and data shape violations such as merging a scalar
    with a ``hash`` strategy.
    """


class DataBindingError(ResolutionError):
    """Error type legacy data-binding termini raise to signal a failed lookup."""


class BackendFailure(ResolutionError):
    """A legacy v3 backend could not be loaded or instantiated.

    Never escapes the engine: the v3 provider reports the message as explanation
    text and treats the source as not found.
    """


class InvalidFormat(ResolutionError):
    """Raised when an input artifact is missing or cannot be parsed into structured data.

    Typical Sources
    ---------------
    Structured file loaders (:mod:`json`, :mod:`yaml`, :mod:`tomllib`) and the
    ``environment.conf`` parser.
    """


class NotFound(ResolutionError):
    """Raised by the composition root when no tier, override or default produced a value.

    Why
    ----
    Library consumers calling :func:`lib_layered_lookup.core.lookup` expect a
    conventional exception; the engine itself only ever returns ``NOT_FOUND``.
    """
