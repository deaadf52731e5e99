"""serverpilot CLI — entry point.

Commands:
    serverpilot run                     Supervise a server with plugins
    serverpilot classify <file>         Classify a saved server log
    serverpilot catalog                 List the known line types
    serverpilot plugins                 Dry-run plugin discovery
"""
from __future__ import annotations

import json
import sys
import threading
from pathlib import Path
from typing import TextIO

import click
from rich.console import Console
from rich.markup import escape

from .commands import CommandRouter
from .config import Settings, get_settings
from .directory.actors import ActorDirectory
from .dispatch import DispatchLoop
from .errors import ServerPilotError
from .logging_setup import configure_logging
from .parsers.catalog import default_registry
from .parsers.classifier import LineClassifier
from .parsers.event import ClassifiedEvent
from .plugins.host import PluginHost
from .plugins.loader import LoadReport, discover_bundles, discover_entry_points
from .process.supervisor import LaunchSpec, ServerProcess
from .visualization.tables import (
    print_catalog,
    print_events_table,
    print_load_report,
    print_type_counts,
    type_colour,
)

console = Console()
err_console = Console(stderr=True)

# ── Helpers ─────────────────────────────────────────────────────────────────


def _fail(exc: ServerPilotError) -> None:
    err_console.print(f"[red]{escape(str(exc))}[/red]", soft_wrap=True)
    sys.exit(1)


def _report_load_errors(report: LoadReport) -> None:
    for error in report.errors:
        err_console.print(f"[yellow]\"{escape(error.bundle)}\" failed to load:[/yellow] {escape(error.reason)}")


# ── CLI root ─────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version="1.0.0", prog_name="serverpilot")
def main() -> None:
    """serverpilot — supervise a game server and extend it with plugins."""


# ── run ──────────────────────────────────────────────────────────────────────


@main.command()
@click.option("--run-file", type=click.Path(path_type=Path), default=None,
              help="Launch file (first line is the command) or server bundle.")
@click.option("--bundle/--no-bundle", "is_bundle", default=None,
              help="Treat the run file as a server bundle run through the launcher.")
@click.option("--tag", default=None, help="Server identifier (default: main).")
@click.option("--plugins", "plugin_dir", type=click.Path(path_type=Path), default=None,
              help="Plugin directory (default: ./PlugIns).")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, ...).")
def run(
    run_file: Path | None,
    is_bundle: bool | None,
    tag: str | None,
    plugin_dir: Path | None,
    log_level: str | None,
) -> None:
    """Start the server, stream its output to plugins, and shut down cleanly.

    Anything typed on stdin is sent to the server; lines starting with the
    command prefix (default "!") are supervisor commands.

    \b
    Examples:
      serverpilot run --run-file /srv/mc/run.sh
      serverpilot run --run-file server.jar --bundle --plugins ./PlugIns
    """
    settings = get_settings()
    configure_logging(log_level or settings.log_level)

    run_file = run_file or settings.run_file
    if run_file is None:
        raise click.UsageError("No run file given; pass --run-file or set SERVERPILOT_RUN_FILE.")
    settings = settings.model_copy(update={
        "run_file": run_file,
        "run_file_is_bundle": settings.run_file_is_bundle if is_bundle is None else is_bundle,
        "tag": tag or settings.tag,
        "plugin_dir": plugin_dir or settings.plugin_dir,
    })

    try:
        code = supervise(settings)
    except ServerPilotError as exc:
        _fail(exc)
    else:
        console.print(f"[dim]Server exited with code {code}.[/dim]")


def supervise(settings: Settings, stdin: TextIO | None = None) -> int | None:
    """Run one full supervision lifecycle and return the server's exit code.

    Order: load plugins, ``on_load`` round, start the server, dispatch its
    output until it exits, ``on_server_stop`` round, ``on_shut_down`` round.
    """
    launch = LaunchSpec(
        settings.run_file,
        is_bundle=settings.run_file_is_bundle,
        tag=settings.tag,
        launcher=settings.launcher_argv,
    )

    directory = ActorDirectory()
    directory.load_privileges(launch.tag, launch.working_dir)

    host = PluginHost(console=err_console)
    report = host.load(settings.plugin_dir, entry_points=settings.entry_point_group or None)
    _report_load_errors(report)
    host.on_load().join()

    registry = default_registry()
    for line_set in reversed(host.contributed_line_types()):
        try:
            registry.register(line_set, first=True)
        except ValueError as exc:
            err_console.print(f"[yellow]{escape(str(exc))}; plugin line types ignored[/yellow]")
    classifier = LineClassifier(registry, directory)

    server = ServerProcess(launch, directory, on_unparsed=click.echo)
    router = CommandRouter(
        server, host, directory,
        prefix=settings.command_prefix,
        stop_timeout=settings.stop_timeout,
        console=console,
    )
    loop = DispatchLoop(server, host, classifier, directory, commands=router, echo=click.echo)

    console.print(f"Starting \"{escape(str(launch.run_file))}\".")
    try:
        server.start()
    except ServerPilotError:
        host.on_shut_down().join()
        raise

    loop.start()
    threading.Thread(
        target=_read_console,
        args=(server, router, stdin or sys.stdin),
        name="console",
        daemon=True,
    ).start()

    try:
        code = server.wait_for_server()
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted; stopping the server…[/dim]")
        server.stop(wait=True, timeout=settings.stop_timeout)
        code = server.exit_code

    server.join_reader(timeout=5)
    loop.stop()
    server.check_status()

    host.on_server_stop(launch.tag).join()
    host.on_shut_down().join()
    return code


def _read_console(server: ServerProcess, router: CommandRouter, stdin: TextIO) -> None:
    """Forward operator input: commands to the router, the rest to the server."""
    for line in stdin:
        line = line.rstrip("\r\n")
        if not server.check_status():
            break
        if router.is_command(line):
            router.handle(line)
        elif line:
            server.write_to_server(line)


# ── classify ─────────────────────────────────────────────────────────────────


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output", "-o", "output_fmt", default="stream",
    type=click.Choice(["table", "stream", "json"], case_sensitive=False),
    help="Output format.",
    show_default=True,
)
@click.option("--limit", "-n", default=0, type=int, help="Max events to display (0 = all).")
@click.option("--type", "-t", "type_names", multiple=True,
              help="Only show events of this line type (repeatable; GENERIC for unmatched lines).")
@click.option("--deaths", is_flag=True, help="Only show death messages.")
@click.option("--summary", is_flag=True, help="Print a count per line type instead of the events.")
def classify(
    file: Path,
    output_fmt: str,
    limit: int,
    type_names: tuple[str, ...],
    deaths: bool,
    summary: bool,
) -> None:
    """Classify the lines of a saved server log.

    Lines without the "[HH:MM:SS] [thread]: " envelope are skipped.

    \b
    Examples:
      serverpilot classify logs/latest.log
      serverpilot classify logs/latest.log --deaths --output table
      serverpilot classify logs/latest.log --type PLAYER_JOINED --output json
    """
    classifier = LineClassifier()
    wanted = {name.upper() for name in type_names}
    unknown = {n for n in wanted if n != "GENERIC" and classifier.registry.find(n) is None}
    if unknown:
        err_console.print(f"[red]Unknown line type(s): {', '.join(sorted(unknown))}[/red]")
        sys.exit(1)

    def selected() -> list[ClassifiedEvent]:
        out: list[ClassifiedEvent] = []
        for event in classifier.classify_file(str(file)):
            if wanted and (event.type_name or "GENERIC") not in wanted:
                continue
            if deaths and (event.is_generic or not event.is_death):
                continue
            out.append(event)
            if limit and len(out) >= limit:
                break
        return out

    events = selected()

    if summary:
        print_type_counts(events, title=f"{file.name}: events by type")
        return

    if output_fmt == "json":
        for event in events:
            click.echo(json.dumps(event.to_dict(), default=str))
        err_console.print(f"[dim]Classified {len(events)} events from {file}[/dim]")
        return

    if output_fmt == "table":
        print_events_table(events, title=file.name, max_rows=limit or 100)
        return

    for event in events:
        colour = type_colour(event)
        name = event.type_name or "GENERIC"
        console.print(
            f"[dim]{event.timestamp}[/dim] [{colour}]{name:24}[/{colour}] {escape(event.content)}",
            highlight=False,
        )
    console.print(f"\n[dim]Classified {len(events)} events from {file.name}[/dim]")


# ── catalog ──────────────────────────────────────────────────────────────────


@main.command()
@click.option("--set", "set_name", default=None, help="Only list this set (COMMANDS, PLAYERS, DEATHS, SERVER).")
def catalog(set_name: str | None) -> None:
    """List the built-in line types in classification order."""
    registry = default_registry()
    if set_name is not None:
        try:
            registry.get_set(set_name.upper())
        except KeyError:
            names = ", ".join(s.name for s in registry.sets)
            err_console.print(f"[red]Unknown set {set_name!r}; known sets: {names}[/red]")
            sys.exit(1)
        set_name = set_name.upper()
    print_catalog(registry, set_name)
    console.print(f"[dim]{len(registry)} line types in {len(registry.sets)} sets[/dim]")


# ── plugins ──────────────────────────────────────────────────────────────────


@main.command()
@click.option("--plugins", "plugin_dir", type=click.Path(path_type=Path), default=None,
              help="Plugin directory (default: ./PlugIns).")
@click.option("--entry-points/--no-entry-points", default=True,
              help="Also load plugins installed as packages.")
def plugins(plugin_dir: Path | None, entry_points: bool) -> None:
    """Load every plugin once and report what loaded and what failed.

    No lifecycle method is called.
    """
    settings = get_settings()
    report = discover_bundles(plugin_dir or settings.plugin_dir)
    if entry_points and settings.entry_point_group:
        report.extend(discover_entry_points(settings.entry_point_group))
    print_load_report(report)
    if report.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
