"""Rich-powered rendering for classified events, plugin reports and faults."""
from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Iterable

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from ..errors import InvocationFault
    from ..parsers.base import LineTypeRegistry
    from ..parsers.event import ClassifiedEvent
    from ..plugins.loader import LoadReport

_console = Console()
_err_console = Console(stderr=True)


def type_colour(event: ClassifiedEvent) -> str:
    if event.is_generic:
        return "dim"
    if event.is_death:
        return "red"
    return "green"


def print_events_table(
    events: list[ClassifiedEvent],
    title: str = "Server Events",
    max_rows: int = 100,
    console: Console | None = None,
) -> None:
    """Render classified events as a Rich table.

    Args:
        events:    Classified events, in output order.
        title:     Table title shown in the header.
        max_rows:  Hard cap — large logs are truncated with a notice.
    """
    out = console or _console
    if not events:
        out.print("[yellow]No events to display.[/yellow]")
        return

    table = Table(title=title, box=box.ROUNDED, show_lines=False)
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Type", no_wrap=True)
    table.add_column("Cause")
    table.add_column("Recipient")
    table.add_column("Sub-contents", overflow="fold", max_width=40)
    table.add_column("Content", overflow="fold", max_width=60)

    for event in events[:max_rows]:
        if event.is_generic:
            cause = recipient = sub = ""
        else:
            cause = str(event.cause_user or "")
            recipient = str(event.recipient or "")
            sub = event.sub_contents or ""
        colour = type_colour(event)
        table.add_row(
            event.timestamp,
            Text(event.type_name or "GENERIC", style=colour),
            Text(cause),
            Text(recipient),
            Text(sub),
            Text(event.content),
        )

    out.print(table)
    if len(events) > max_rows:
        out.print(
            f"[dim]... and {len(events) - max_rows} more rows (use --limit to adjust)[/dim]"
        )


def print_type_counts(
    events: Iterable[ClassifiedEvent],
    title: str = "Events by type",
    console: Console | None = None,
) -> None:
    """Summarise how many lines each line type matched."""
    counts = Counter(e.type_name or "GENERIC" for e in events)
    table = Table(title=title, box=box.SIMPLE_HEAVY)
    table.add_column("#", style="dim", width=4)
    table.add_column("Type")
    table.add_column("Count", justify="right", style="cyan")

    for rank, (name, count) in enumerate(counts.most_common(), start=1):
        table.add_row(str(rank), name, str(count))

    (console or _console).print(table)


def print_catalog(
    registry: LineTypeRegistry,
    set_name: str | None = None,
    console: Console | None = None,
) -> None:
    """List registered line types in classification order."""
    sets = [registry.get_set(set_name)] if set_name else list(registry.sets)
    table = Table(title="Line types", box=box.ROUNDED)
    table.add_column("Set", style="bold")
    table.add_column("Name")
    table.add_column("Cause", justify="right")
    table.add_column("Recipient", justify="right")
    table.add_column("Sub", justify="right")
    table.add_column("Pattern", overflow="fold", style="dim")

    def idx(value: int) -> str:
        return "-" if value < 0 else str(value)

    for type_set in sets:
        for line_type in type_set:
            table.add_row(
                type_set.name,
                line_type.name,
                idx(line_type.cause_user_index),
                idx(line_type.recipient_index),
                idx(line_type.sub_contents_index),
                Text(line_type.pattern.pattern),
            )
    (console or _console).print(table)


def print_load_report(report: LoadReport, console: Console | None = None) -> None:
    """Show which plugin bundles loaded and why the others did not."""
    out = console or _console
    table = Table(title="Plugins", box=box.ROUNDED)
    table.add_column("Bundle")
    table.add_column("Status")
    table.add_column("Detail", overflow="fold")

    for bundle in report.bundles:
        table.add_row(Text(bundle.origin), "[green]loaded[/green]", bundle.name)
    for error in report.errors:
        table.add_row(Text(error.bundle), f"[red]{error.cause.name}[/red]", Text(error.reason))

    if not report.bundles and not report.errors:
        out.print("[yellow]No plugin bundles found.[/yellow]")
        return
    out.print(table)


def print_fault_banner(fault: InvocationFault, console: Console | None = None) -> None:
    """Announce on stderr that a plugin is being disabled."""
    exc = fault.fault
    body = (
        f"[bold]{escape(fault.bundle)}[/bold] is being unloaded because inside of "
        f"[cyan]{fault.method}[/cyan] it raised [red]{type(exc).__module__}.{type(exc).__qualname__}[/red]"
        f" with the message: {escape(repr(str(exc)))}.\n"
        "It is disabled for the remainder of this run."
    )
    (console or _err_console).print(
        Panel(body, title="Plugin fault", border_style="red", box=box.HEAVY, expand=False)
    )
