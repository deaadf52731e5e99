"""Tests for the dispatch loop: housekeeping, command routing, plugin fan-out."""
from __future__ import annotations

import io
import threading
import time
from types import SimpleNamespace

from rich.console import Console

from serverpilot.commands import CommandRouter
from serverpilot.directory.actors import Actor, ActorDirectory
from serverpilot.dispatch import DispatchLoop
from serverpilot.parsers.envelope import parse_envelope
from serverpilot.plugins.base import BasePlugin
from serverpilot.plugins.host import PluginHost
from serverpilot.process.supervisor import LaunchSpec, ServerProcess

UUID = "069a79f4-44e9-4726-a5be-fca90e38aaf5"
TIMEOUT = 10


def _raw(content: str):
    return parse_envelope(f"[12:00:00] [Server thread/INFO]: {content}")


def _wait_for(predicate, timeout: float = TIMEOUT) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class _RecordingHost:
    """Synchronous stand-in for PluginHost that snapshots directory state."""

    def __init__(self, directory: ActorDirectory | None = None) -> None:
        self.directory = directory
        self.calls: list[tuple] = []

    def on_server_start(self, tag: str) -> None:
        self.calls.append(("on_server_start", tag))

    def interpret_event(self, tag: str, event) -> None:
        opped = self.directory.opped(tag) if self.directory is not None else None
        self.calls.append(("interpret_event", event.type_name, opped))

    def alive(self) -> list[str]:
        return []

    def __len__(self) -> int:
        return 0


def _stub_server() -> SimpleNamespace:
    told: list[tuple[Actor, str]] = []
    return SimpleNamespace(
        tag="main",
        told=told,
        send_to_actor=lambda actor, message: told.append((actor, message)) or True,
    )


def _loop(directory: ActorDirectory | None = None, with_commands: bool = False):
    server = _stub_server()
    host = _RecordingHost(directory)
    router = None
    if with_commands:
        router = CommandRouter(
            server, host, directory, console=Console(file=io.StringIO(), width=200)
        )
    return DispatchLoop(server, host, directory=directory, commands=router), host, server


# ---------------------------------------------------------------------------
# Housekeeping
# ---------------------------------------------------------------------------

class TestHousekeeping:
    def test_done_loading_starts_plugins(self) -> None:
        loop, host, _ = _loop()
        loop.handle(_raw('Done (15.559s)! For help, type "help"'))
        assert host.calls == [
            ("on_server_start", "main"),
            ("interpret_event", "DONE_LOADING", None),
        ]

    def test_op_recorded_before_plugins_see_it(self) -> None:
        directory = ActorDirectory()
        loop, host, _ = _loop(directory)
        loop.handle(_raw("Made Steve a server operator"))
        assert host.calls == [("interpret_event", "OPPED_SERVER", ["Steve"])]
        loop.handle(_raw("[Steve: Made Steve no longer a server operator]"))
        assert host.calls[-1] == ("interpret_event", "DEOPPED_PLAYER", [])

    def test_ban_reason_and_pardon(self) -> None:
        directory = ActorDirectory()
        loop, _, _ = _loop(directory)
        loop.handle(_raw("Banned Griefer: Griefing spawn"))
        assert directory.ban_reason("main", Actor("Griefer")) == "Griefing spawn"
        loop.handle(_raw("[Alex: Unbanned Griefer]"))
        assert not directory.is_banned("main", Actor("Griefer"))

    def test_whitelist(self) -> None:
        directory = ActorDirectory()
        loop, _, _ = _loop(directory)
        loop.handle(_raw("Added Steve to the whitelist"))
        assert directory.is_whitelisted("main", Actor("Steve"))
        loop.handle(_raw("Removed Steve from the whitelist"))
        assert not directory.is_whitelisted("main", Actor("Steve"))

    def test_uuid_remembered(self) -> None:
        directory = ActorDirectory()
        loop, _, _ = _loop(directory)
        loop.handle(_raw(f"UUID of player Steve is {UUID}"))
        assert directory.resolve("Steve").uuid == UUID

    def test_generic_event_still_dispatched(self) -> None:
        loop, host, _ = _loop(ActorDirectory())
        event = loop.handle(_raw('Preparing level "world"'))
        assert event.is_generic
        assert host.calls == [("interpret_event", None, [])]
        assert loop.handled == 1

    def test_unresolvable_actor_does_not_stop_dispatch(self) -> None:
        def lookup(name: str) -> None:
            return None

        directory = ActorDirectory(lookup)
        loop, host, _ = _loop(directory)
        loop.handle(_raw("Made Steve a server operator"))
        assert host.calls == [("interpret_event", "OPPED_SERVER", [])]

    def test_echo(self) -> None:
        echoed: list[str] = []
        loop, _, _ = _loop()
        loop.echo = echoed.append
        loop.handle(_raw("Steve joined the game"))
        assert echoed == ["[12:00:00] [Server thread/INFO]: Steve joined the game"]


# ---------------------------------------------------------------------------
# Chat commands
# ---------------------------------------------------------------------------

class TestChatCommands:
    def test_operator_command_runs(self) -> None:
        directory = ActorDirectory()
        directory.set_opped("main", Actor("Steve"), True)
        loop, host, server = _loop(directory, with_commands=True)
        loop.handle(_raw("<Steve> !plugins"))
        assert server.told == [(Actor("Steve"), "No plugins loaded")]
        assert host.calls[-1][1] == "PLAYER_SPOKEN_MESSAGE"

    def test_non_operator_refused(self) -> None:
        loop, _, server = _loop(ActorDirectory(), with_commands=True)
        loop.handle(_raw("[Alex] !stop"))
        [(actor, message)] = server.told
        assert actor == Actor("Alex")
        assert "operator" in message

    def test_plain_chat_is_not_a_command(self) -> None:
        loop, _, server = _loop(ActorDirectory(), with_commands=True)
        loop.handle(_raw("<Steve> hello !there"))
        assert server.told == []


# ---------------------------------------------------------------------------
# Against a live process
# ---------------------------------------------------------------------------

class _Lifecycle(BasePlugin):
    def __init__(self) -> None:
        self.started = threading.Event()
        self.events: list[str | None] = []
        self._lock = threading.Lock()

    def on_server_start(self, tag: str) -> None:
        self.started.set()

    def interpret_event(self, tag: str, event) -> None:
        with self._lock:
            self.events.append(event.type_name)


class TestLiveLoop:
    def test_drains_server_output(self, fake_server) -> None:
        banner = [
            "[12:00:00] [Server thread/INFO]: Starting minecraft server version 1.16.5",
            "not enveloped",
            '[12:00:02] [Server thread/INFO]: Done (1.250s)! For help, type "help"',
            "[12:00:03] [Server thread/INFO]: Steve joined the game",
        ]
        server = ServerProcess(LaunchSpec(fake_server(banner, exit_after_banner=True)), on_unparsed=lambda _: None)
        host = PluginHost(console=Console(file=io.StringIO()))
        plugin = host.add(_Lifecycle()).instance
        loop = DispatchLoop(server, host)

        server.start()
        loop.start()
        assert server.wait_for_server(timeout=TIMEOUT) == 0
        assert server.join_reader(timeout=TIMEOUT)
        assert loop.stop(timeout=TIMEOUT)

        assert loop.handled == 3
        assert plugin.started.wait(TIMEOUT)
        assert _wait_for(lambda: len(plugin.events) == 3)
        assert sorted(plugin.events, key=str) == sorted([None, "DONE_LOADING", "PLAYER_JOINED"], key=str)
