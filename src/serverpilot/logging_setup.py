"""Root logger configuration for the command-line entry point."""
from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str | int = "INFO", console: Console | None = None) -> None:
    """Route all log records through a Rich handler on stderr.

    Library modules only ever call ``logging.getLogger(__name__)``; this is
    invoked once by the CLI.
    """
    if isinstance(level, str):
        level = level.upper()
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
