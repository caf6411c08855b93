"""CLI adapter for ``lib_tag_config`` built on ``lib_cli_exit_tools``.

Purpose
-------
Let operators inspect what a tag resolves to, walk its ancestry, and produce
override documents from an edited state without writing Python.

Contents
--------
* :data:`CLICK_CONTEXT_SETTINGS` – shared Click settings ensuring ``-h`` works.
* :func:`cli` – root command wiring global traceback handling into
  ``lib_cli_exit_tools``.
* :func:`cli_info` – prints distribution metadata.
* :func:`cli_resolve` – prints the composed bundle for the active tag.
* :func:`cli_chain` – prints a tag's ancestry chain.
* :func:`cli_diff` – prints the diff index for a desired state file.
* :func:`cli_emit_overrides` – prints or writes the override document.
* :func:`main` – entry point used by ``console_scripts`` registration.

System Role
-----------
Outermost layer: builds :class:`~lib_tag_config.adapters.settings.Settings`
from options, the environment, and an optional TOML file, then drives a
:class:`~lib_tag_config.core.TagConfigResolver` inside ``asyncio.run``.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Mapping
from importlib import metadata
from pathlib import Path
from typing import Any, Awaitable, Callable, Final, Optional, Sequence, TypeVar

import lib_cli_exit_tools
import rich_click as click

from .adapters.export import write_override_document
from .adapters.settings import load_settings
from .core import TagConfigResolver
from .domain.errors import InvalidFormat

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000

T = TypeVar("T")


def _resolve_version() -> str:
    """Return the installed package version, or ``"0.0.0"`` for source checkouts."""

    try:
        return metadata.version("lib_tag_config")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def _source_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the options every resolving command shares."""

    options = [
        click.option("--base-url", default=None, help="Base URL serving default.json and one folder per tag"),
        click.option(
            "--root",
            "root_dir",
            type=click.Path(path_type=Path, exists=True, file_okay=False, dir_okay=True, readable=True),
            default=None,
            help="Local directory holding default.json and one folder per tag",
        ),
        click.option(
            "--settings",
            "settings_file",
            type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
            default=None,
            help="TOML settings file ([lib_tag_config] table or top-level keys)",
        ),
        click.option("--hostname", default=None, help="Hostname matched against the root domains mapping"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group(
    help="Inherited tag configuration resolver",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name="lib_tag_config",
    message="lib_tag_config version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.pass_context
def cli(ctx: click.Context, traceback: bool) -> None:
    """Root command storing the traceback preference for ``lib_cli_exit_tools``."""

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata("lib_tag_config")
    except metadata.PackageNotFoundError:
        click.echo("lib_tag_config (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', 'lib_tag_config')}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")


@cli.command("resolve", context_settings=CLICK_CONTEXT_SETTINGS)
@_source_options
@click.option("--tag", default=None, help="Explicit tag override (beats hostname and default tag)")
@click.option("--force/--no-force", default=False, help="Bypass caches and refetch everything")
@click.option("--indent", type=int, default=None, help="Pretty-print JSON output with the provided indent size")
def cli_resolve(
    base_url: Optional[str],
    root_dir: Optional[Path],
    settings_file: Optional[Path],
    hostname: Optional[str],
    tag: Optional[str],
    force: bool,
    indent: Optional[int],
) -> None:
    """Resolve the active tag and print its composed bundle as JSON."""

    resolver = _build_resolver(base_url, root_dir, settings_file, hostname, tag)
    bundle = _run(resolver, lambda: resolver.resolve_effective_config(force))
    click.echo(json.dumps(bundle.as_dict(), indent=indent, ensure_ascii=False))


@cli.command("chain", context_settings=CLICK_CONTEXT_SETTINGS)
@_source_options
@click.argument("tag")
def cli_chain(
    base_url: Optional[str],
    root_dir: Optional[Path],
    settings_file: Optional[Path],
    hostname: Optional[str],
    tag: str,
) -> None:
    """Print the ancestry chain of TAG, root ancestor first, as a JSON array."""

    resolver = _build_resolver(base_url, root_dir, settings_file, hostname, None)
    chain = _run(resolver, lambda: resolver.chain(tag))
    click.echo(json.dumps(list(chain)))


@cli.command("diff", context_settings=CLICK_CONTEXT_SETTINGS)
@_source_options
@click.option(
    "--desired",
    type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
    required=True,
    help='JSON file shaped {"events": [...], "tips": [...]}',
)
@click.option("--tag", default=None, help="Tag the desired state belongs to (defaults to the resolved tag)")
@click.option("--indent", type=int, default=None, help="Pretty-print JSON output with the provided indent size")
def cli_diff(
    base_url: Optional[str],
    root_dir: Optional[Path],
    settings_file: Optional[Path],
    hostname: Optional[str],
    desired: Path,
    tag: Optional[str],
    indent: Optional[int],
) -> None:
    """Print which entities of the desired state are inherited and which fields they override."""

    events, tips = _read_desired(desired)
    resolver = _build_resolver(base_url, root_dir, settings_file, hostname, None)
    index = _run(resolver, lambda: resolver.compute_diff_index(events, tips, tag))
    click.echo(json.dumps(index.as_dict(), indent=indent, ensure_ascii=False))


@cli.command("emit-overrides", context_settings=CLICK_CONTEXT_SETTINGS)
@_source_options
@click.option(
    "--desired",
    type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
    required=True,
    help='JSON file shaped {"events": [...], "tips": [...]}',
)
@click.option("--tag", default=None, help="Tag the desired state belongs to (defaults to the resolved tag)")
@click.option(
    "--destination",
    type=click.Path(path_type=Path, file_okay=False, dir_okay=True, resolve_path=True),
    default=None,
    help="Write conf/events/events_archive/tips JSON under DESTINATION/<tag>/ instead of printing",
)
@click.option(
    "--force/--no-force",
    default=False,
    help="Overwrite existing files at the destination if set",
    show_default=True,
)
@click.option("--indent", type=int, default=None, help="Pretty-print JSON output with the provided indent size")
def cli_emit_overrides(
    base_url: Optional[str],
    root_dir: Optional[Path],
    settings_file: Optional[Path],
    hostname: Optional[str],
    desired: Path,
    tag: Optional[str],
    destination: Optional[Path],
    force: bool,
    indent: Optional[int],
) -> None:
    """Compute the minimal override document that reproduces the desired state at the tag.

    Without ``--destination`` the document is printed as one JSON object with
    ``config``, ``events``, ``eventsArchive`` and ``tips`` sections. With it,
    the written file paths are printed as a JSON array.
    """

    events, tips = _read_desired(desired)
    resolver = _build_resolver(base_url, root_dir, settings_file, hostname, None)
    document = _run(resolver, lambda: resolver.build_override_document(events, tips, tag))
    if destination is None:
        click.echo(json.dumps(document.as_dict(), indent=indent, ensure_ascii=False))
        return
    written = write_override_document(document, destination, force=force)
    click.echo(json.dumps([str(path) for path in written], indent=2))


def _build_resolver(
    base_url: Optional[str],
    root_dir: Optional[Path],
    settings_file: Optional[Path],
    hostname: Optional[str],
    tag: Optional[str],
) -> TagConfigResolver:
    """Merge CLI options over the environment and settings file into a resolver."""

    settings = load_settings(
        settings_file=settings_file,
        overrides={
            "base_url": base_url,
            "root_dir": str(root_dir) if root_dir is not None else None,
            "hostname": hostname,
            "tag": tag,
        },
    )
    return TagConfigResolver.from_settings(settings)


def _run(resolver: TagConfigResolver, factory: Callable[[], Awaitable[T]]) -> T:
    """Run one coroutine to completion, closing the transport afterwards."""

    async def _main() -> T:
        try:
            return await factory()
        finally:
            close = getattr(resolver.transport, "aclose", None)
            if close is not None:
                await close()

    return asyncio.run(_main())


def _read_desired(path: Path) -> tuple[list[Any], list[Any]]:
    """Load a desired-state file, raising :class:`InvalidFormat` when it is not the expected shape."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidFormat(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise InvalidFormat(f"File {path} did not produce a mapping")
    events = payload.get("events", [])
    tips = payload.get("tips", [])
    if not isinstance(events, list) or not isinstance(tips, list):
        raise InvalidFormat(f"File {path} must hold 'events' and 'tips' arrays")
    return events, tips


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name="lib_tag_config",
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
