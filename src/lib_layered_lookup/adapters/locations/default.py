"""Location expansion for hierarchy entries.

Purpose
-------
Implement the :class:`~lib_layered_lookup.application.ports.LocationResolver`
port: interpolate declared ``path``/``glob``/``uri`` specs, anchor them in the
entry's ``datadir`` and return ordered :class:`ResolvedLocation` lists.

System Role
-----------
Interpolation runs against the configuration's scope-collecting context so the
variables used in paths take part in cache invalidation. Path existence is
checked when a provider reads the location, except for synthesised default
configurations which only keep paths that exist.
"""

from __future__ import annotations

import glob
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ...application.context import LookupContext
from ...application.ports import Interpolator
from ...observability import log_debug


@dataclass(frozen=True)
class ResolvedLocation:
    """One concrete location.

    Attributes
    ----------
    original_location:
        The declared (uninterpolated) spec, kept for diagnostics.
    location:
        The concrete :class:`~pathlib.Path`, or the URI text.
    kind:
        ``"path"`` or ``"uri"``.
    """

    original_location: str
    location: Path | str
    kind: str = "path"

    def exists(self) -> bool:
        if self.kind == "uri":
            return True
        return Path(self.location).exists()

    def __str__(self) -> str:
        return str(self.location)


class DefaultLocationResolver:
    """Resolve declared locations using an :class:`Interpolator`."""

    def __init__(self, interpolator: Interpolator) -> None:
        self._interpolator = interpolator

    def resolve_paths(
        self,
        datadir: Path,
        declared_paths: Sequence[str],
        context: LookupContext,
        is_default_config: bool,
        extension: str | None = None,
    ) -> list[ResolvedLocation]:
        """Return one location per declared path, in order.

        *extension* is appended when the interpolated path lacks it (legacy
        layouts name files without their extension).

        Examples
        --------
        >>> from lib_layered_lookup.adapters.interpolation.default import DefaultInterpolator
        >>> resolver = DefaultLocationResolver(DefaultInterpolator())
        >>> context = LookupContext({"node": "web01"})
        >>> [str(loc) for loc in resolver.resolve_paths(Path("/data"), ["nodes/%{node}", "common"], context, False, ".yaml")]
        ['/data/nodes/web01.yaml', '/data/common.yaml']
        """

        resolved = []
        for declared in declared_paths:
            path = self._interpolator.interpolate(declared, context, False)
            if extension is not None and not path.endswith(extension):
                path += extension
            resolved.append(ResolvedLocation(declared, datadir / path))
        if is_default_config:
            resolved = [location for location in resolved if location.exists()]
        log_debug("paths_resolved", datadir=str(datadir), locations=[str(location) for location in resolved])
        return resolved

    def expand_globs(
        self,
        datadir: Path,
        declared_globs: Sequence[str],
        context: LookupContext,
    ) -> list[ResolvedLocation]:
        """Return every non-directory match of each glob, sorted per glob."""

        resolved = []
        for declared in declared_globs:
            pattern = str(datadir / self._interpolator.interpolate(declared, context, False))
            for match in sorted(glob.glob(pattern)):
                path = Path(match)
                if not path.is_dir():
                    resolved.append(ResolvedLocation(pattern, path))
        log_debug("globs_expanded", datadir=str(datadir), locations=[str(location) for location in resolved])
        return resolved

    def expand_uris(self, declared_uris: Sequence[str], context: LookupContext) -> list[ResolvedLocation]:
        return [
            ResolvedLocation(declared, self._interpolator.interpolate(declared, context, False), kind="uri")
            for declared in declared_uris
        ]
