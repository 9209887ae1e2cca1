"""Environment directory adapter.

Purpose
-------
Build :class:`~lib_layered_lookup.domain.environment.Environment` records from
an on-disk environment directory::

    <environment>/
        environment.conf          # optional, ``environment_data_provider = ...``
        hiera.yaml                # optional environment hierarchy
        modules/<name>/           # one directory per module
            metadata.json         # optional, may declare ``data_provider``
            hiera.yaml            # optional module hierarchy

Contents
--------
* :class:`DirectoryEnvironmentLoader` – resolves environment names below an
  ``environmentpath``.
* :func:`load_environment` – reads one environment directory.
* :func:`parse_environment_conf` – strict ``key = value`` parser.

System Role
-----------
Used by the composition root and the CLI; the lookup engine only consumes the
resulting frozen records.
"""

from __future__ import annotations

from pathlib import Path

from ...domain.environment import Environment, Module
from ...domain.errors import ConfigurationError, InvalidFormat
from ...observability import log_debug, log_error
from ..file_loaders.structured import JSONFileLoader

ENVIRONMENT_CONF = "environment.conf"
METADATA_JSON = "metadata.json"


class DirectoryEnvironmentLoader:
    """Resolve environments by name below an ``environmentpath`` directory."""

    def __init__(self, environmentpath: Path | str) -> None:
        self.environmentpath = Path(environmentpath)

    def load(self, name: str) -> Environment:
        """Return the environment stored at ``<environmentpath>/<name>``.

        Raises
        ------
        ConfigurationError
            When the directory does not exist.
        """

        path = self.environmentpath / name
        if not path.is_dir():
            raise ConfigurationError(f"Environment '{name}' not found in {self.environmentpath}")
        return load_environment(path, name)


def load_environment(path: Path | str, name: str | None = None) -> Environment:
    """Read the environment directory at *path*.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> root = Path(tmp.name)
    >>> _ = (root / 'environment.conf').write_text('environment_data_provider = hiera', encoding='utf-8')
    >>> (root / 'modules' / 'ntp').mkdir(parents=True)
    >>> env = load_environment(root, 'production')
    >>> env.data_provider, sorted(env.modules)
    ('hiera', ['ntp'])
    >>> tmp.cleanup()
    """

    root = Path(path)
    conf_file = root / ENVIRONMENT_CONF
    settings = parse_environment_conf(conf_file) if conf_file.is_file() else {}
    modules = {module.name: module for module in _iter_modules(root / "modules")}
    environment = Environment(
        name=name or root.name,
        path=root,
        modules=modules,
        data_provider=settings.get("environment_data_provider"),
        conf_file=conf_file if conf_file.is_file() else None,
    )
    log_debug("environment_loaded", path=str(root), name=environment.name, modules=sorted(modules))
    return environment


def parse_environment_conf(path: Path) -> dict[str, str]:
    """Parse ``key = value`` lines, ignoring comments and ``[section]`` headers.

    Raises
    ------
    InvalidFormat
        For a non-empty line without ``=``.

    Examples
    --------
    >>> tmp = Path('environment.conf.example')
    >>> _ = tmp.write_text('# comment\\n[main]\\nenvironment_data_provider = "function"\\n', encoding='utf-8')
    >>> parse_environment_conf(tmp)
    {'environment_data_provider': 'function'}
    >>> tmp.unlink()
    """

    result: dict[str, str] = {}
    with path.open("r", encoding="utf-8") as handle:
        for line_number, raw_line in enumerate(handle, start=1):
            line = raw_line.strip()
            if not line or line.startswith(("#", ";")):
                continue
            if line.startswith("[") and line.endswith("]"):
                continue
            if "=" not in line:
                log_error("environment_conf_invalid_line", path=str(path), line=line_number)
                raise InvalidFormat(f"Malformed line {line_number} in {path}")
            key, value = line.split("=", 1)
            result[key.strip()] = _strip_quotes(value.strip())
    return result


def _iter_modules(modules_dir: Path) -> list[Module]:
    if not modules_dir.is_dir():
        return []
    modules = []
    for entry in sorted(modules_dir.iterdir()):
        if not entry.is_dir():
            continue
        metadata_file = entry / METADATA_JSON
        metadata = JSONFileLoader().load(str(metadata_file)) if metadata_file.is_file() else None
        modules.append(
            Module(
                name=entry.name,
                path=entry,
                metadata=metadata,
                metadata_file=metadata_file if metadata is not None else None,
            )
        )
    return modules


def _strip_quotes(value: str) -> str:
    """Trim surrounding quotes and inline comments from ``value``.

    Examples
    --------
    >>> _strip_quotes('"hiera"')
    'hiera'
    >>> _strip_quotes("none # disabled")
    'none'
    """

    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    if value.startswith("#"):
        return ""
    if " #" in value:
        return value.split(" #", 1)[0].strip()
    return value
