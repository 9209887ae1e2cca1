"""Environment variable adapter for lookup settings.

Purpose
-------
Translate ``<PREFIX>_<FIELD>`` process environment variables into the mapping
consumed by :meth:`lib_layered_lookup.domain.settings.LookupSettings.from_mapping`.

Key behaviours
--------------
* Enforces a configurable prefix (``DEFAULT_PREFIX`` by default) so only
  relevant keys are captured.
* Lower-cases the remainder of the variable name (``..._STRICT`` → ``strict``).
* Performs light type coercion for ``null``/``none`` and empty values; every
  other value stays text because all settings are strings or paths.
* Emits structured logging via :mod:`lib_layered_lookup.observability`.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from ...observability import log_debug

DEFAULT_PREFIX = "LIB_LAYERED_LOOKUP"


class DefaultEnvLoader:
    """Load environment variables that belong to the settings namespace."""

    def __init__(self, *, environ: Mapping[str, str] | None = None) -> None:
        """Initialise the loader with a specific ``environ`` mapping for testability."""

        self._environ = os.environ if environ is None else environ

    def load(self, prefix: str = DEFAULT_PREFIX) -> dict[str, object]:
        """Return ``field -> value`` for every variable carrying *prefix*.

        Parameters
        ----------
        prefix:
            Prefix filter (upper-case). The loader appends ``_`` if missing.

        Side Effects
        ------------
        Emits ``env_variables_loaded`` debug events with the captured keys.

        Examples
        --------
        >>> env = {
        ...     'DEMO_STRICT': 'off',
        ...     'DEMO_HIERA_CONFIG': '/etc/hiera.yaml',
        ...     'DEMO_DATA_BINDING_TERMINUS': 'none',
        ...     'OTHER_STRICT': 'error',
        ... }
        >>> payload = DefaultEnvLoader(environ=env).load('DEMO')
        >>> payload['strict'], payload['hiera_config'], payload['data_binding_terminus']
        ('off', '/etc/hiera.yaml', None)
        >>> sorted(payload)
        ['data_binding_terminus', 'hiera_config', 'strict']
        """

        prefix = f"{prefix}_" if prefix and not prefix.endswith("_") else prefix
        collected: dict[str, object] = {}
        for key, value in self._environ.items():
            if prefix and not key.startswith(prefix):
                continue
            stripped = key[len(prefix) :] if prefix else key
            if not stripped:
                continue
            collected[stripped.lower()] = _coerce(value)
        log_debug("env_variables_loaded", layer="env", prefix=prefix, keys=sorted(collected))
        return collected


def _coerce(value: str) -> object:
    """Map ``null``/``none``/empty text to ``None``; keep everything else as text.

    Examples
    --------
    >>> _coerce('none'), _coerce(''), _coerce('warning'), _coerce('10')
    (None, None, 'warning', '10')
    """

    stripped = value.strip()
    if not stripped or stripped.lower() in {"null", "none"}:
        return None
    return stripped
