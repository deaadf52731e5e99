"""The dispatch loop — the single consumer of a server's output queue.

For every line, in output order:
  1. classify it,
  2. echo it (optional),
  3. run housekeeping: readiness starts an ``on_server_start`` round,
     op/ban/whitelist events update the actor directory, uuid lines are
     remembered, prefixed chat goes to the command router,
  4. hand the event to every plugin via ``interpret_event``.

Housekeeping runs before plugins see the event, so a plugin reading the
directory for an ``OPPED_*`` event already sees the new operator.
"""
from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable

from .errors import ActorResolutionError
from .parsers.catalog import COMMANDS, PLAYERS, SERVER
from .parsers.classifier import LineClassifier
from .parsers.envelope import RawLine
from .parsers.event import ClassifiedEvent

if TYPE_CHECKING:
    from .commands import CommandRouter
    from .directory.actors import ActorDirectory
    from .plugins.host import PluginHost
    from .process.supervisor import ServerProcess

logger = logging.getLogger(__name__)

_OPPED = (COMMANDS.OPPED_SERVER, COMMANDS.OPPED_PLAYER)
_DEOPPED = (COMMANDS.DEOPPED_SERVER, COMMANDS.DEOPPED_PLAYER)
_BANNED = (COMMANDS.BAN_SERVER, COMMANDS.BAN_PLAYER)
_PARDONED = (COMMANDS.PARDON_SERVER, COMMANDS.PARDON_PLAYER)
_WHITELISTED = (COMMANDS.WHITELIST_ADD_SERVER, COMMANDS.WHITELIST_ADD_PLAYER)
_UNWHITELISTED = (COMMANDS.WHITELIST_REMOVE_SERVER, COMMANDS.WHITELIST_REMOVE_PLAYER)
_CHAT = (PLAYERS.PLAYER_SPOKEN_MESSAGE, PLAYERS.PLAYER_SAY_MESSAGE)


class DispatchLoop:
    """Drain one server's output and fan it out.

    Args:
        server:     Supervised server whose queue is consumed.
        host:       Plugin host receiving lifecycle calls and events.
        classifier: Line classifier; defaults to the built-in catalog,
                    resolving actors through *directory*.
        directory:  Actor directory kept in sync with privilege events.
        commands:   Router for prefixed chat lines.
        echo:       Called with every raw line (e.g. to print it).
    """

    def __init__(
        self,
        server: ServerProcess,
        host: PluginHost,
        classifier: LineClassifier | None = None,
        directory: ActorDirectory | None = None,
        commands: CommandRouter | None = None,
        echo: Callable[[str], None] | None = None,
    ) -> None:
        self.server = server
        self.host = host
        self.directory = directory
        self.classifier = classifier or LineClassifier(directory=directory)
        self.commands = commands
        self.echo = echo
        self.handled = 0
        self._thread: threading.Thread | None = None

    @property
    def tag(self) -> str:
        return self.server.tag

    # ------------------------------------------------------------------
    # Thread control
    # ------------------------------------------------------------------

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name=f"{self.tag}-dispatch", daemon=True)
        self._thread.start()
        return self._thread

    def run(self) -> None:
        """Consume lines until :meth:`ServerProcess.cancel_wait` is called."""
        for raw in self.server.lines():
            self.handle(raw)
        logger.debug("[%s] dispatch loop finished after %d line(s)", self.tag, self.handled)

    def stop(self, timeout: float | None = None) -> bool:
        """Let the loop drain what is queued, then end it."""
        self.server.cancel_wait()
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    # ------------------------------------------------------------------
    # Per line
    # ------------------------------------------------------------------

    def handle(self, raw: RawLine) -> ClassifiedEvent:
        event = self.classifier.classify(raw)
        self.handled += 1
        if self.echo is not None:
            self.echo(raw.line)
        if not event.is_generic:
            try:
                self._housekeeping(event)
            except ActorResolutionError as exc:
                logger.warning("[%s] %s", self.tag, exc)
        self.host.interpret_event(self.tag, event)
        return event

    def _housekeeping(self, event: ClassifiedEvent) -> None:
        tag = self.tag
        if event.is_type(SERVER.DONE_LOADING):
            logger.info("[%s] server ready after %ss", tag, event.sub_contents)
            self.host.on_server_start(tag)
        elif event.is_type(*_CHAT):
            if self.commands is not None and self.commands.is_command(event.sub_contents):
                self.commands.handle(event.sub_contents, event.cause_user)
        elif event.is_type(PLAYERS.PLAYER_UUID):
            if self.directory is not None:
                # Read the groups directly: resolving the event's fields
                # first would cache an actor without the announced uuid.
                m = event.line_type.match(event.content)
                self.directory.remember(m.group(1), m.group(2))
        elif self.directory is None:
            return
        elif event.is_type(*_OPPED):
            self.directory.set_opped(tag, event.recipient, True)
        elif event.is_type(*_DEOPPED):
            self.directory.set_opped(tag, event.recipient, False)
        elif event.is_type(*_BANNED):
            self.directory.set_banned(tag, event.recipient, True, event.sub_contents)
        elif event.is_type(*_PARDONED):
            self.directory.set_banned(tag, event.recipient, False)
        elif event.is_type(*_WHITELISTED):
            self.directory.set_whitelisted(tag, event.recipient, True)
        elif event.is_type(*_UNWHITELISTED):
            self.directory.set_whitelisted(tag, event.recipient, False)
