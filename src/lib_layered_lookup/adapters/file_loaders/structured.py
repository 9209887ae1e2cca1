"""Structured data file loaders and the built-in data functions.

Purpose
-------
Convert on-disk artifacts into Python mappings. Adapters are small wrappers
around ``tomllib``/``json``/``yaml.safe_load`` so error handling and
observability live in one place.

Contents
--------
* :class:`BaseFileLoader` – shared helpers for reading files and validating
  mapping outputs.
* :class:`TOMLFileLoader` / :class:`JSONFileLoader` / :class:`YAMLFileLoader`.
* :class:`HieraYamlReader` – reads ``hiera.yaml`` documents.
* :func:`yaml_data` / :func:`json_data` / :func:`toml_data` – built-in
  ``data_hash`` functions registered under those names.

System Role
-----------
The reader is wired into :class:`~lib_layered_lookup.application.ports.LookupServices`
by :mod:`lib_layered_lookup.core`; the data functions are registered in the
default registry and called by the hash-returning function providers.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[no-redef]

import yaml

from ...domain.errors import InvalidFormat
from ...observability import log_debug, log_error


class BaseFileLoader:
    """Common utilities shared by the structured file loaders."""

    format_name = ""

    def _read(self, path: str) -> bytes:
        """Read *path* as bytes, raising :class:`InvalidFormat` when the file is missing.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile(delete=False)
        >>> _ = tmp.write(b"key: value")
        >>> tmp.close()
        >>> BaseFileLoader()._read(tmp.name)[:3]
        b'key'
        >>> Path(tmp.name).unlink()
        """

        file_path = Path(path)
        if not file_path.is_file():
            raise InvalidFormat(f"Data file not found: {path}")
        payload = file_path.read_bytes()
        log_debug("data_file_read", path=path, size=len(payload))
        return payload

    @staticmethod
    def _ensure_mapping(data: object, *, path: str) -> Mapping[str, Any]:
        """Ensure *data* behaves like a mapping, otherwise raise ``InvalidFormat``.

        Examples
        --------
        >>> BaseFileLoader._ensure_mapping({"key": 1}, path="demo")
        {'key': 1}
        >>> BaseFileLoader._ensure_mapping(42, path="demo")
        Traceback (most recent call last):
        ...
        lib_layered_lookup.domain.errors.InvalidFormat: File demo did not produce a hash
        """

        if not isinstance(data, Mapping):
            raise InvalidFormat(f"File {path} did not produce a hash")
        return data

    def _invalid(self, path: str, exc: Exception) -> InvalidFormat:
        log_error("data_file_invalid", path=path, format=self.format_name, error=str(exc))
        return InvalidFormat(f"Invalid {self.format_name.upper()} in {path}: {exc}")


class TOMLFileLoader(BaseFileLoader):
    """Load TOML documents using the standard library parser."""

    format_name = "toml"

    def load(self, path: str) -> Mapping[str, Any]:
        """Return mapping extracted from the TOML file at *path*.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile('w', delete=False, encoding='utf-8')
        >>> _ = tmp.write('key = "value"')
        >>> tmp.close()
        >>> TOMLFileLoader().load(tmp.name)["key"]
        'value'
        >>> Path(tmp.name).unlink()
        """

        try:
            data = tomllib.loads(self._read(path).decode("utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
            raise self._invalid(path, exc) from exc
        result = self._ensure_mapping(data, path=path)
        log_debug("data_file_loaded", path=path, format=self.format_name)
        return result


class JSONFileLoader(BaseFileLoader):
    """Load JSON documents."""

    format_name = "json"

    def load(self, path: str) -> Mapping[str, Any]:
        """Return mapping extracted from the JSON file at *path*.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile('w', delete=False, encoding='utf-8')
        >>> _ = tmp.write('{"enabled": true}')
        >>> tmp.close()
        >>> JSONFileLoader().load(tmp.name)["enabled"]
        True
        >>> Path(tmp.name).unlink()
        """

        try:
            data = json.loads(self._read(path))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise self._invalid(path, exc) from exc
        result = self._ensure_mapping(data, path=path)
        log_debug("data_file_loaded", path=path, format=self.format_name)
        return result


class YAMLFileLoader(BaseFileLoader):
    """Load YAML documents; an empty document yields an empty mapping."""

    format_name = "yaml"

    def load(self, path: str) -> Mapping[str, Any]:
        """Return mapping extracted from the YAML file at *path*.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile('w', delete=False, encoding='utf-8')
        >>> _ = tmp.write('key: 1')
        >>> tmp.close()
        >>> YAMLFileLoader().load(tmp.name)["key"]
        1
        >>> Path(tmp.name).unlink()
        """

        try:
            data = yaml.safe_load(self._read(path))
        except yaml.YAMLError as exc:
            raise self._invalid(path, exc) from exc
        if data is None:
            data = {}
        result = self._ensure_mapping(data, path=path)
        log_debug("data_file_loaded", path=path, format=self.format_name)
        return result


class HieraYamlReader:
    """Read ``hiera.yaml`` documents for :class:`~lib_layered_lookup.application.hiera_config.HieraConfig`."""

    def __init__(self, loader: YAMLFileLoader | None = None) -> None:
        self._loader = loader or YAMLFileLoader()

    def read(self, path: Path) -> Mapping[str, Any]:
        return self._loader.load(str(path))


def _data_function(loader: BaseFileLoader) -> Callable[[Mapping[str, Any], Any], Mapping[str, Any]]:
    def data_hash(options: Mapping[str, Any], context: Any) -> Mapping[str, Any]:
        path = options.get("path")
        if path is None:
            raise InvalidFormat(f"'{loader.format_name}_data' requires a 'path' location")
        return loader.load(str(path))

    data_hash.__name__ = f"{loader.format_name}_data"
    data_hash.__doc__ = f"Return the {loader.format_name.upper()} document at ``options['path']``."
    return data_hash


yaml_data = _data_function(YAMLFileLoader())
json_data = _data_function(JSONFileLoader())
toml_data = _data_function(TOMLFileLoader())

BUILTIN_DATA_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "yaml_data": yaml_data,
    "json_data": json_data,
    "toml_data": toml_data,
}
