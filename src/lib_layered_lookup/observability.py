"""Structured logging helpers distilled into tiny orchestration phrases.

Purpose
    Keep every emission of logging data predictable, contextual, and ready for
    downstream aggregation pipelines without forcing applications to adopt a
    specific logging backend.

Contents
    - ``TRACE_ID``: context variable storing the active trace identifier.
    - ``get_logger``: returns the shared package logger (quiet by default).
    - ``bind_trace_id``: binds or clears the active trace identifier.
    - ``log_debug`` / ``log_info`` / ``log_warning`` / ``log_error``: emit
      structured entries via a single private emitter.
    - ``make_event``: convenience builder for structured event payloads.
    - ``warn_once`` / ``reset_warnings``: deprecation diagnostics emitted at
      most once per process for each identifying key.

System Integration
    Used by the lookup adapter, the configuration variants, the providers and
    the adapters so that all diagnostics carry the same trace metadata. The
    domain layer stays free from logging concerns.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any, Final, Mapping

TRACE_ID: ContextVar[str | None] = ContextVar("lib_layered_lookup_trace_id", default=None)
"""Current trace identifier propagated through logging helpers.

Why
    Lookups issued by one compilation share a trace so their diagnostics can be
    correlated without threading identifiers manually.
"""

_LOGGER: Final[logging.Logger] = logging.getLogger("lib_layered_lookup")
_LOGGER.addHandler(logging.NullHandler())

_WARNED: set[tuple[str, str]] = set()


def get_logger() -> logging.Logger:
    """Expose the package logger so applications may attach handlers.

    Why
        Leaves the library silent by default while giving host applications full
        control over handler and formatter configuration.
    """

    return _LOGGER


def bind_trace_id(trace_id: str | None) -> None:
    """Bind or clear the active trace identifier.

    Examples
    --------
    >>> bind_trace_id('abc123')
    >>> TRACE_ID.get()
    'abc123'
    >>> bind_trace_id(None)
    >>> TRACE_ID.get() is None
    True
    """

    TRACE_ID.set(trace_id)


def log_debug(message: str, **fields: Any) -> None:
    """Emit a structured debug log entry that includes the trace context."""

    _emit(logging.DEBUG, message, fields)


def log_info(message: str, **fields: Any) -> None:
    """Emit a structured info log entry that includes the trace context."""

    _emit(logging.INFO, message, fields)


def log_warning(message: str, **fields: Any) -> None:
    """Emit a structured warning log entry that includes the trace context."""

    _emit(logging.WARNING, message, fields)


def log_error(message: str, **fields: Any) -> None:
    """Emit a structured error log entry that includes the trace context."""

    _emit(logging.ERROR, message, fields)


def warn_once(kind: str, key: str, message: str, **fields: Any) -> bool:
    """Emit a warning the first time ``(kind, key)`` is seen in this process.

    Why
        Deprecated configuration is usually hit on every lookup; repeating the
        notice would drown every other diagnostic.
    What
        Logs ``message`` at warning level with ``kind``/``key`` attached and
        remembers the pair. Returns ``True`` when the warning was emitted.

    Examples
    --------
    >>> reset_warnings()
    >>> warn_once('deprecation', 'hiera.yaml', 'v3 is deprecated')
    True
    >>> warn_once('deprecation', 'hiera.yaml', 'v3 is deprecated')
    False
    """

    marker = (kind, key)
    if marker in _WARNED:
        return False
    _WARNED.add(marker)
    log_warning(message, kind=kind, key=key, **fields)
    return True


def reset_warnings() -> None:
    """Forget every ``warn_once`` marker (test isolation helper)."""

    _WARNED.clear()


def make_event(
    tier: str,
    location: str | None,
    payload: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a structured logging payload for lookup lifecycle events.

    Why
        Keeps event construction consistent so downstream log processors can rely
        on stable keys.
    Inputs
        tier: Name of the tier or provider being observed.
        location: Data location associated with the event, if available.
        payload: Optional mapping with extra diagnostic detail.

    Examples
    --------
    >>> make_event('environment', None, {'providers': 3})
    {'tier': 'environment', 'location': None, 'providers': 3}
    """

    event = _base_event(tier, location)
    return _merge_payload(event, payload)


def _emit(level: int, message: str, fields: Mapping[str, Any]) -> None:
    """Send a log entry through the shared logger with contextual metadata."""

    _LOGGER.log(level, message, extra={"context": _with_trace(fields)})


def _with_trace(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Attach the current trace identifier to the provided structured fields."""

    context = {"trace_id": TRACE_ID.get()}
    context.update(fields)
    return context


def _base_event(tier: str, location: str | None) -> dict[str, Any]:
    """Create the minimal event payload containing tier and location information."""

    return {"tier": tier, "location": location}


def _merge_payload(event: dict[str, Any], payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge optional diagnostic data into the event payload when provided."""

    if payload:
        event |= dict(payload)
    return event
