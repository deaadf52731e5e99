"""Supervisor commands typed in chat or on the console.

A line whose text starts with the command prefix (``!`` by default) is a
supervisor command rather than something for the server:

    !help              list the available commands
    !status            is the server running, how many plugins are alive
    !plugins           names of the alive plugins
    !stop              graceful stop (the server saves the world)
    !kill              forcible stop

Console input may run any command. In-game commands run only when the
issuing actor is an operator of that server; command blocks (``@``) are
treated like the console.
"""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from rich.console import Console
from rich.text import Text

if TYPE_CHECKING:
    from .directory.actors import Actor, ActorDirectory
    from .plugins.host import PluginHost
    from .process.supervisor import ServerProcess

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "!"


class CommandStatus(str, enum.Enum):
    SUCCESS = "success"
    WARNING = "warning"
    FAILED = "failed"


_STATUS_STYLE = {
    CommandStatus.SUCCESS: "green",
    CommandStatus.WARNING: "yellow",
    CommandStatus.FAILED: "red",
}


@dataclass(frozen=True)
class CommandResult:
    status: CommandStatus
    message: str

    @classmethod
    def success(cls, message: str) -> CommandResult:
        return cls(CommandStatus.SUCCESS, message)

    @classmethod
    def warning(cls, message: str) -> CommandResult:
        return cls(CommandStatus.WARNING, message)

    @classmethod
    def failed(cls, message: str) -> CommandResult:
        return cls(CommandStatus.FAILED, message)


@dataclass(frozen=True)
class Command:
    """A parsed command line: ``!name arg1 arg2``."""

    name: str
    args: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str, prefix: str = DEFAULT_PREFIX) -> Command | None:
        """Return the command in *text*, or None if it is not one."""
        text = text.strip()
        if not text.startswith(prefix):
            return None
        words = text[len(prefix):].split()
        if not words:
            return None
        return cls(words[0].lower(), tuple(words[1:]))


@dataclass
class CommandContext:
    """What a handler may act upon."""

    server: ServerProcess
    host: PluginHost
    actor: Actor | None = None
    stop_timeout: float | None = None


Handler = Callable[[CommandContext, tuple[str, ...]], CommandResult]


@dataclass
class _Entry:
    handler: Handler
    help: str = ""
    in_game: bool = True


@dataclass
class CommandRouter:
    """Parse, authorise and run supervisor commands.

    Args:
        server:       The server commands act on and report back through.
        host:         Plugin host, for ``!status`` and ``!plugins``.
        directory:    Privilege mirror used to authorise in-game commands.
        prefix:       Command prefix.
        stop_timeout: Passed to the graceful stop.
    """

    server: ServerProcess
    host: PluginHost
    directory: ActorDirectory | None = None
    prefix: str = DEFAULT_PREFIX
    stop_timeout: float | None = None
    console: Console = field(default_factory=Console)
    _commands: dict[str, _Entry] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.register("help", _help(self), "List the available commands")
        self.register("status", _status, "Show server and plugin status")
        self.register("plugins", _plugins, "List the alive plugins")
        self.register("stop", _stop, "Stop the server gracefully")
        self.register("kill", _kill, "Kill the server process (may corrupt the world)")

    def register(self, name: str, handler: Handler, help: str = "", *, in_game: bool = True) -> None:
        self._commands[name.lower()] = _Entry(handler, help, in_game)

    def commands(self) -> dict[str, str]:
        return {name: entry.help for name, entry in sorted(self._commands.items())}

    def is_command(self, text: str | None) -> bool:
        return text is not None and text.strip().startswith(self.prefix)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def handle(self, text: str, actor: Actor | None = None) -> CommandResult | None:
        """Run the command in *text* on behalf of *actor* (None: console).

        Returns None if *text* is not a command at all. The result is also
        printed on the console and, for in-game commands, told to the actor.
        """
        command = Command.parse(text, self.prefix)
        if command is None:
            return None
        result = self._run(command, actor)
        self._report(command, result, actor)
        return result

    def _run(self, command: Command, actor: Actor | None) -> CommandResult:
        entry = self._commands.get(command.name)
        if entry is None:
            logger.warning("Unknown command %s%s", self.prefix, command.name)
            return CommandResult.warning(
                f"Unknown command {self.prefix}{command.name}; try {self.prefix}help"
            )
        if actor is not None and not actor.is_selector:
            if not entry.in_game:
                return CommandResult.failed(f"{self.prefix}{command.name} is console only")
            if self.directory is None or not self.directory.is_opped(self.server.tag, actor):
                logger.info("Refused %s%s from %s: not an operator", self.prefix, command.name, actor)
                return CommandResult.failed("You must be an operator to use supervisor commands")

        context = CommandContext(self.server, self.host, actor, self.stop_timeout)
        try:
            return entry.handler(context, command.args)
        except Exception as exc:
            logger.exception("Command %s%s raised", self.prefix, command.name)
            return CommandResult.failed(f"The command raised {type(exc).__name__}: {exc}")

    def _report(self, command: Command, result: CommandResult, actor: Actor | None) -> None:
        who = str(actor) if actor is not None else "console"
        self.console.print(
            Text(f"[{who}] {self.prefix}{command.name}: {result.message}", style=_STATUS_STYLE[result.status])
        )
        if actor is not None and not actor.is_selector:
            self.server.send_to_actor(actor, result.message)


# ── Built-ins ───────────────────────────────────────────────────────────────


def _help(router: CommandRouter) -> Handler:
    def run(ctx: CommandContext, args: tuple[str, ...]) -> CommandResult:
        listing = ", ".join(f"{router.prefix}{name}" for name in router.commands())
        return CommandResult.success(f"Commands: {listing}")

    return run


def _status(ctx: CommandContext, args: tuple[str, ...]) -> CommandResult:
    server = ctx.server
    if server.check_status():
        state = f"running (pid {server.pid})"
    else:
        state = "stopped"
    return CommandResult.success(f"{server.tag}: {state}; {len(ctx.host)} plugin(s) alive")


def _plugins(ctx: CommandContext, args: tuple[str, ...]) -> CommandResult:
    alive = ctx.host.alive()
    if not alive:
        return CommandResult.warning("No plugins loaded")
    return CommandResult.success("Plugins: " + ", ".join(alive))


def _stop(ctx: CommandContext, args: tuple[str, ...]) -> CommandResult:
    if not ctx.server.started:
        return CommandResult.warning(f"{ctx.server.tag} is not running")
    # stop() blocks until exit; the dispatch loop must keep draining output.
    threading.Thread(
        target=ctx.server.stop,
        kwargs={"wait": True, "timeout": ctx.stop_timeout},
        name=f"{ctx.server.tag}-stop",
        daemon=True,
    ).start()
    return CommandResult.success(f"Stopping {ctx.server.tag}")


def _kill(ctx: CommandContext, args: tuple[str, ...]) -> CommandResult:
    if not ctx.server.stop_forcibly():
        return CommandResult.warning(f"{ctx.server.tag} is not running")
    return CommandResult.success(f"Killed {ctx.server.tag}")
