"""CLI adapter for ``lib_layered_lookup`` built on ``lib_cli_exit_tools``.

Purpose
-------
Let operators resolve keys, inspect hierarchy configurations and check the
effective settings without writing Python code.

Contents
--------
* :data:`CLICK_CONTEXT_SETTINGS` – shared Click settings ensuring ``-h`` works.
* :func:`cli` – root command that wires global traceback handling into
  ``lib_cli_exit_tools``.
* :func:`cli_info` – prints distribution metadata for quick diagnostics.
* :func:`cli_lookup` – resolves a key and prints the value as JSON.
* :func:`cli_providers` – lists the providers a ``hiera.yaml`` resolves to.
* :func:`cli_settings` – prints the settings read from the environment.
* :func:`main` – entry point used by ``console_scripts`` registration.

System Role
-----------
The CLI lives in the outermost layer. It only talks to the composition root
(:mod:`lib_layered_lookup.core`) and to :class:`HieraConfig` for the
``providers`` report. ``lib_cli_exit_tools`` centralises the exit code
strategy so all commands behave consistently across shells and CI.
"""

from __future__ import annotations

import json
import sys
from importlib import metadata
from pathlib import Path
from typing import Any, Final, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click
import yaml

from .application.context import Explainer, LookupContext
from .application.hiera_config import HieraConfig
from .core import create_adapter, create_services, load_settings, lookup

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000
_DISTRIBUTION: Final[str] = "lib_layered_lookup"


def _resolve_version() -> str:
    """Return the installed package version with sensible fallbacks.

    Why
        ``click.version_option`` requires a string at decoration time. Fetching
        metadata lazily avoids hard-coding the version and keeps editable installs
        working without additional wiring.
    """

    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "0.0.0"


@click.group(
    help="Hierarchical key/value lookup over hiera.yaml hierarchies",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name=_DISTRIBUTION,
    message="lib_layered_lookup version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.pass_context
def cli(ctx: click.Context, traceback: bool) -> None:
    """Root command configuring traceback handling for all subcommands.

    Side Effects
        Mutates ``lib_cli_exit_tools.config.traceback`` and
        ``lib_cli_exit_tools.config.traceback_force_color``.
    """

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        click.echo(f"{_DISTRIBUTION} (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', _DISTRIBUTION)}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")
    for entry in meta.get_all("Project-URL") or []:
        click.echo(f"  {entry}")


@cli.command("lookup", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("key")
@click.option(
    "--environment-dir",
    type=click.Path(path_type=Path, exists=True, file_okay=False, dir_okay=True, readable=True),
    default=None,
    help="Environment directory (hiera.yaml, environment.conf, modules/)",
)
@click.option(
    "--global-config",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Global hiera.yaml (overrides LIB_LAYERED_LOOKUP_HIERA_CONFIG)",
)
@click.option("--var", "variables", multiple=True, help="Scope variable as NAME=VALUE (repeatable)")
@click.option("--merge", default=None, help="Merge strategy tag or a JSON merge options object")
@click.option("--default", "default", default=None, help="Value printed when the key is not found")
@click.option("--explain/--no-explain", default=False, help="Print the lookup explanation to stderr")
@click.option(
    "--indent",
    type=int,
    default=None,
    help="Pretty-print JSON output with the provided indent size",
)
def cli_lookup(
    key: str,
    environment_dir: Optional[Path],
    global_config: Optional[Path],
    variables: Sequence[str],
    merge: Optional[str],
    default: Optional[str],
    explain: bool,
    indent: Optional[int],
) -> None:
    """Resolve KEY through the global, environment and module tiers.

    ``--var`` and ``--default`` values are parsed as YAML scalars, so
    ``--var port=8080`` binds an integer.

    Examples
    --------
    >>> from click.testing import CliRunner
    >>> result = CliRunner().invoke(cli, ["lookup", "missing", "--default", "42"])
    >>> result.output.strip()
    '42'
    """

    overrides: dict[str, Any] = {}
    if global_config is not None:
        overrides["hiera_config"] = global_config
    services = create_services(load_settings(**overrides))
    adapter = create_adapter(environment_dir, services)
    explainer = Explainer() if explain else None
    kwargs: dict[str, Any] = {}
    if default is not None:
        kwargs["default"] = _parse_value(default)
    try:
        value = lookup(
            key,
            adapter=adapter,
            scope=_parse_variables(variables),
            merge=_parse_merge(merge),
            explain=explainer or False,
            **kwargs,
        )
    finally:
        if explainer is not None:
            click.echo(explainer.render(), err=True)
    click.echo(json.dumps(value, indent=indent, default=str))


@cli.command("providers", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("config", type=click.Path(path_type=Path, dir_okay=False))
@click.option("--var", "variables", multiple=True, help="Scope variable as NAME=VALUE (repeatable)")
@click.option("--indent", type=int, default=2, show_default=True, help="JSON indent size")
def cli_providers(config: Path, variables: Sequence[str], indent: int) -> None:
    """Print the hierarchy entries CONFIG resolves to for the given scope.

    A missing CONFIG resolves to the default version 5 hierarchy.
    """

    services = create_services()
    hiera_config = HieraConfig.create(config, services)
    context = LookupContext(_parse_variables(variables))
    providers = hiera_config.configured_data_providers(context, None)
    payload = {
        "config": str(config),
        "version": hiera_config.version,
        "providers": [_describe_provider(provider) for provider in providers],
    }
    click.echo(json.dumps(payload, indent=indent))


@cli.command("settings", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option("--indent", type=int, default=2, show_default=True, help="JSON indent size")
def cli_settings(indent: int) -> None:
    """Print the effective settings read from ``LIB_LAYERED_LOOKUP_*`` variables."""

    click.echo(json.dumps(load_settings().as_dict(), indent=indent))


def _parse_value(text: str) -> Any:
    """Parse *text* as a YAML scalar or flow collection.

    Examples
    --------
    >>> _parse_value("8080"), _parse_value("web01"), _parse_value("[a, b]")
    (8080, 'web01', ['a', 'b'])
    """

    return yaml.safe_load(text)


def _parse_variables(values: Sequence[str]) -> dict[str, Any]:
    """Turn ``NAME=VALUE`` pairs into a scope mapping.

    Examples
    --------
    >>> _parse_variables(["environment=production", "port=80"])
    {'environment': 'production', 'port': 80}
    """

    scope: dict[str, Any] = {}
    for item in values:
        name, separator, value = item.partition("=")
        if not separator or not name.strip():
            raise click.BadParameter(f"Expected NAME=VALUE, got '{item}'", param_hint="--var")
        scope[name.strip()] = _parse_value(value)
    return scope


def _parse_merge(value: Optional[str]) -> Any:
    """Return the merge tag, or the decoded JSON object for ``{...}`` input."""

    if value is None:
        return None
    if value.lstrip().startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError as exc:
            raise click.BadParameter(f"Invalid JSON merge options: {exc}", param_hint="--merge") from exc
    return value


def _describe_provider(provider: Any) -> dict[str, Any]:
    spec = getattr(provider, "spec", None)
    if spec is None:
        return {"name": getattr(provider, "name", repr(provider))}
    return {
        "name": spec.name,
        "function_kind": spec.function_kind.value,
        "function": spec.function_name,
        "locations": None if spec.locations is None else [str(location) for location in spec.locations],
    }


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name=_DISTRIBUTION,
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))
