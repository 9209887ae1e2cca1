"""Host metadata records for environments and modules.

The lookup engine only needs a thin view of the host's metadata store: where
an environment lives on disk, which ``environment_data_provider`` its
``environment.conf`` names, and per module the directory plus the parsed
``metadata.json``. These frozen records carry exactly that.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Final

CONFIG_FILE_NAME: Final[str] = "hiera.yaml"


@dataclass(frozen=True)
class Module:
    """A module known to the environment."""

    name: str
    path: Path
    metadata: Mapping[str, Any] | None = None
    metadata_file: Path | None = None

    @property
    def has_hiera_conf(self) -> bool:
        return (self.path / CONFIG_FILE_NAME).is_file()

    @property
    def data_provider(self) -> str | None:
        """Return the deprecated ``data_provider`` declared in ``metadata.json``."""

        if not self.metadata:
            return None
        value = self.metadata.get("data_provider")
        return None if value is None else str(value)


@dataclass(frozen=True)
class Environment:
    """An environment: its directory, modules and ``environment.conf`` setting.

    ``path`` may be ``None`` for environments without an on-disk root; such
    environments never get an environment-tier provider.
    """

    name: str
    path: Path | None = None
    modules: Mapping[str, Module] = field(default_factory=dict)
    data_provider: str | None = None
    conf_file: Path | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "modules", MappingProxyType(dict(self.modules)))

    def module(self, name: str) -> Module | None:
        return self.modules.get(name)

    @property
    def config_path(self) -> Path | None:
        return None if self.path is None else self.path / CONFIG_FILE_NAME
