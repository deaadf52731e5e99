"""Actor directory — cached identities plus per-server privilege state.

The directory is the housekeeping collaborator of the event pipeline:

* ``resolve(name)`` turns a captured name into a cached :class:`Actor`.
  An optional *lookup* callable stands in for the external identity
  service; it receives a name and returns the uuid string.
* ``set_opped`` / ``set_banned`` / ``set_whitelisted`` mirror privilege
  changes observed in the server output, keyed by server tag.
* Operator levels and player-limit bypass cannot be set through the
  server console, so those changes are queued and written back into the
  server's ``ops.json`` by ``sync`` once the server has stopped.

Usage::

    directory = ActorDirectory()
    directory.load_privileges("main", Path("/srv/mc"))
    steve = directory.resolve("Steve")
    directory.set_opped("main", steve, True, level=2)
    ...
    directory.sync("main", Path("/srv/mc"))   # after the server stopped
"""
from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from ..errors import ActorResolutionError

logger = logging.getLogger(__name__)

ACTOR_NAME_PATTERN = r"(\w{3,16}|@)"
UUID_PATTERN = r"([A-Za-z0-9]{8}-[A-Za-z0-9]{4}-[A-Za-z0-9]{4}-[A-Za-z0-9]{4}-[A-Za-z0-9]{12})"

# Command blocks report themselves as "@".
SELECTOR = "@"
DEFAULT_OP_LEVEL = 4

_NAME_RE = re.compile(ACTOR_NAME_PATTERN)

Lookup = Callable[[str], str | None]


@dataclass(frozen=True)
class Actor:
    """A resolved participant referenced by an event."""

    name: str
    uuid: str | None = None

    @property
    def is_selector(self) -> bool:
        return self.name == SELECTOR

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class OpGrant:
    level: int = DEFAULT_OP_LEVEL
    bypasses_player_limit: bool = False


class ActorDirectory:
    """Thread-safe identity cache and privilege mirror.

    Args:
        lookup: Optional ``name -> uuid`` resolver backed by an external
                identity service. Without it actors carry no uuid unless
                one is learned from the server output via ``remember``.
    """

    def __init__(self, lookup: Lookup | None = None) -> None:
        self._lookup = lookup
        self._lock = threading.RLock()
        self._actors: dict[str, Actor] = {}
        self._opped: dict[str, dict[str, OpGrant]] = {}
        self._banned: dict[str, dict[str, str | None]] = {}
        self._whitelisted: dict[str, set[str]] = {}
        self._pending: dict[str, dict[str, OpGrant]] = {}

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    def resolve(self, name: str) -> Actor:
        """Return the cached Actor for *name*, resolving it on first use.

        Raises:
            ActorResolutionError: invalid name, or the lookup failed.
        """
        with self._lock:
            cached = self._actors.get(name)
            if cached is not None:
                return cached

        if not _NAME_RE.fullmatch(name):
            raise ActorResolutionError(name)

        uuid: str | None = None
        if name != SELECTOR and self._lookup is not None:
            try:
                uuid = self._lookup(name)
            except Exception as exc:
                raise ActorResolutionError(name, f"identity lookup failed: {exc}") from exc
            if uuid is None:
                raise ActorResolutionError(name, "unknown to the identity service")

        with self._lock:
            # Another thread may have won the race; keep the first instance.
            return self._actors.setdefault(name, Actor(name=name, uuid=uuid))

    def remember(self, name: str, uuid: str) -> Actor:
        """Record a uuid announced by the server itself and return the Actor."""
        actor = Actor(name=name, uuid=uuid)
        with self._lock:
            current = self._actors.get(name)
            if current is not None and current.uuid == uuid:
                return current
            self._actors[name] = actor
        logger.debug("Learned uuid %s for %s", uuid, name)
        return actor

    def known(self) -> list[Actor]:
        with self._lock:
            return sorted(self._actors.values(), key=lambda a: a.name.lower())

    # ------------------------------------------------------------------
    # Privileges
    # ------------------------------------------------------------------

    def set_opped(
        self,
        tag: str,
        actor: Actor,
        value: bool,
        level: int = DEFAULT_OP_LEVEL,
        bypasses_player_limit: bool = False,
    ) -> None:
        """Mirror an op/deop; non-default grants are queued for ``sync``."""
        with self._lock:
            ops = self._opped.setdefault(tag, {})
            pending = self._pending.setdefault(tag, {})
            if value:
                grant = OpGrant(level, bypasses_player_limit)
                ops[actor.name] = grant
                if grant != OpGrant():
                    pending[actor.name] = grant
            else:
                ops.pop(actor.name, None)
                pending.pop(actor.name, None)

    def set_banned(self, tag: str, actor: Actor, value: bool, reason: str | None = None) -> None:
        with self._lock:
            bans = self._banned.setdefault(tag, {})
            if value:
                bans[actor.name] = reason
            else:
                bans.pop(actor.name, None)

    def set_whitelisted(self, tag: str, actor: Actor, value: bool) -> None:
        with self._lock:
            names = self._whitelisted.setdefault(tag, set())
            if value:
                names.add(actor.name)
            else:
                names.discard(actor.name)

    def is_opped(self, tag: str, actor: Actor) -> bool:
        with self._lock:
            return actor.name in self._opped.get(tag, {})

    def is_banned(self, tag: str, actor: Actor) -> bool:
        with self._lock:
            return actor.name in self._banned.get(tag, {})

    def ban_reason(self, tag: str, actor: Actor) -> str | None:
        with self._lock:
            return self._banned.get(tag, {}).get(actor.name)

    def is_whitelisted(self, tag: str, actor: Actor) -> bool:
        with self._lock:
            return actor.name in self._whitelisted.get(tag, set())

    def opped(self, tag: str) -> list[str]:
        with self._lock:
            return sorted(self._opped.get(tag, {}))

    def pending(self, tag: str) -> dict[str, OpGrant]:
        with self._lock:
            return dict(self._pending.get(tag, {}))

    # ------------------------------------------------------------------
    # On-disk privilege records
    # ------------------------------------------------------------------

    def load_privileges(self, tag: str, server_dir: Path) -> None:
        """Seed the mirror from the server's ops/ban/whitelist files."""
        for entry in _read_records(server_dir / "ops.json"):
            grant = OpGrant(
                int(entry.get("level", DEFAULT_OP_LEVEL)),
                bool(entry.get("bypassesPlayerLimit", False)),
            )
            with self._lock:
                self._opped.setdefault(tag, {})[entry["name"]] = grant
        for entry in _read_records(server_dir / "banned-players.json"):
            with self._lock:
                self._banned.setdefault(tag, {})[entry["name"]] = entry.get("reason")
        for entry in _read_records(server_dir / "whitelist.json"):
            with self._lock:
                self._whitelisted.setdefault(tag, set()).add(entry["name"])

    def sync(self, tag: str, server_dir: Path) -> int:
        """Write queued operator grants for *tag* into ``ops.json``.

        Must only run while the server is stopped, otherwise the server
        overwrites the file on its next save. Returns the number of
        records rewritten; unmatched grants stay queued.
        """
        with self._lock:
            pending = dict(self._pending.get(tag, {}))
        if not pending:
            return 0

        ops_file = server_dir / "ops.json"
        records = _read_records(ops_file)
        if not records:
            logger.warning("No operator records in %s; %d grant(s) left queued", ops_file, len(pending))
            return 0

        updated: list[str] = []
        for record in records:
            grant = pending.get(record.get("name", ""))
            if grant is None:
                continue
            record["level"] = grant.level
            record["bypassesPlayerLimit"] = grant.bypasses_player_limit
            updated.append(record["name"])

        ops_file.write_text(json.dumps(records, indent=2) + "\n", encoding="utf-8")
        with self._lock:
            queue = self._pending.get(tag, {})
            for name in updated:
                queue.pop(name, None)
        logger.info("Synced %d operator grant(s) into %s", len(updated), ops_file)
        return len(updated)


def _read_records(path: Path) -> list[dict[str, Any]]:
    if not path.is_file():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8") or "[]")
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return []
    return [entry for entry in data if isinstance(entry, dict) and "name" in entry]
