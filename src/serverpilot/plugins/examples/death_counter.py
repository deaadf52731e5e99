"""Example plugin: tally deaths per player and write them out as CSV."""
from __future__ import annotations

import csv
import io
import threading
from collections import Counter
from pathlib import Path

from serverpilot.parsers.event import ClassifiedEvent
from serverpilot.plugins.base import BasePlugin


class DeathCounter(BasePlugin):
    """Count death messages per victim (and per killer, when there is one).

    This example plugin demonstrates how to implement the ServerPlugin
    Protocol. Drop this file into the plugin directory, or register it from
    your package's pyproject.toml::

        [project.entry-points."serverpilot.plugins"]
        death_counter = "my_package.plugins:DeathCounter"

    The tally is written to ``death_counts.csv`` whenever a server stops.
    """

    def __init__(self, output: str | Path = "death_counts.csv") -> None:
        self.output = Path(output)
        self.deaths: Counter[str] = Counter()
        self.kills: Counter[str] = Counter()
        self._lock = threading.Lock()

    def interpret_event(self, tag: str, event: ClassifiedEvent) -> None:
        if event.is_generic or not event.is_death:
            return
        victim = event.recipient
        killer = event.cause_user
        with self._lock:
            if victim is not None:
                self.deaths[victim.name] += 1
            if killer is not None:
                self.kills[killer.name] += 1

    def on_server_stop(self, tag: str) -> None:
        self.output.write_text(self.render(), encoding="utf-8")

    def render(self) -> str:
        with self._lock:
            names = sorted(set(self.deaths) | set(self.kills), key=str.lower)
            rows = [
                {"player": n, "deaths": self.deaths[n], "kills": self.kills[n]} for n in names
            ]
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=["player", "deaths", "kills"], lineterminator="\n")
        writer.writeheader()
        writer.writerows(rows)
        return buf.getvalue()
