"""Runtime settings for one lookup session.

Purpose
-------
Replace process-wide runtime settings with an explicit, immutable value object
handed to the adapter at construction time.

Contents
--------
* :class:`LookupSettings` – frozen dataclass with the knobs the engine reads.
* :data:`STRICT_MODES` – accepted values for :attr:`LookupSettings.strict`.

System Role
-----------
Built by :func:`lib_layered_lookup.core.load_settings` (environment variables
plus keyword overrides) and consumed by the lookup adapter, the hierarchy
configuration variants and the deprecation helpers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Final

from .errors import ConfigurationError

STRICT_MODES: Final[tuple[str, ...]] = ("off", "warning", "error")
DEFAULT_CODEDIR: Final[Path] = Path("/etc/lib_layered_lookup/code")


@dataclass(frozen=True, slots=True)
class LookupSettings:
    """Settings consulted during a lookup session.

    Attributes
    ----------
    data_binding_terminus:
        ``"hiera"`` routes the global tier through the global ``hiera.yaml``;
        ``None``/``""``/``"none"`` disables the global tier; any other value
        names a legacy terminus registered under ``("data_binding", name)``.
    strict:
        ``"off"`` silences deprecation diagnostics.
    hiera_config:
        Path to the global ``hiera.yaml``; ``None`` means no global provider.
    codedir:
        Root used to derive the version 3 default ``datadir``.
    environment:
        Name of the active environment, exposed to backend functions.
    environmentpath:
        Directory holding environment directories (used by the CLI).
    """

    data_binding_terminus: str | None = "hiera"
    strict: str = "warning"
    hiera_config: Path | None = None
    codedir: Path = DEFAULT_CODEDIR
    environment: str = "production"
    environmentpath: Path | None = None

    def __post_init__(self) -> None:
        if self.strict not in STRICT_MODES:
            raise ConfigurationError(f"strict must be one of {', '.join(STRICT_MODES)}, got '{self.strict}'")
        for name in ("hiera_config", "codedir", "environmentpath"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Path):
                object.__setattr__(self, name, Path(str(value)))

    @property
    def global_lookup_disabled(self) -> bool:
        """Return ``True`` when the global tier must report not-found immediately."""

        terminus = self.data_binding_terminus
        return terminus is None or str(terminus) in ("", "none")

    @property
    def deprecations_enabled(self) -> bool:
        return self.strict != "off"

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> LookupSettings:
        """Build settings from a (possibly nested or partial) mapping, ignoring unknown keys.

        Examples
        --------
        >>> LookupSettings.from_mapping({"strict": "off", "unknown": 1}).strict
        'off'
        """

        known = {field.name for field in fields(cls)}
        return cls(**{key: value for key, value in values.items() if key in known})

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation (paths rendered as strings)."""

        return {key: str(value) if isinstance(value, Path) else value for key, value in asdict(self).items()}
