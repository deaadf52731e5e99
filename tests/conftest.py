"""Shared pytest fixtures for serverpilot tests."""
from __future__ import annotations

import sys
import textwrap
from pathlib import Path

import pytest

# A stand-in for the game server: prints its banner, echoes stdin lines back
# in the output envelope and exits on "stop" (or stdin EOF).
FAKE_SERVER = textwrap.dedent(
    '''
    import sys
    import time

    BANNER = {banner!r}
    EXIT_CODE = {exit_code!r}
    EXIT_AFTER_BANNER = {exit_after_banner!r}
    IGNORE_INPUT = {ignore_input!r}

    for line in BANNER:
        print(line, flush=True)
    if EXIT_AFTER_BANNER:
        sys.exit(EXIT_CODE)
    if IGNORE_INPUT:
        while True:
            time.sleep(0.1)
    for command in sys.stdin:
        command = command.strip()
        if command == "stop":
            print("[12:00:09] [Server thread/INFO]: Stopping the server", flush=True)
            break
        print("[12:00:05] [Server thread/INFO]: echo " + command, flush=True)
    sys.exit(EXIT_CODE)
    '''
)


@pytest.fixture()
def tmp_log_file(tmp_path: Path):
    """Return a factory that creates temporary log files."""

    def _make(lines: list[str], name: str = "latest.log") -> Path:
        p = tmp_path / name
        p.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return p

    return _make


@pytest.fixture()
def server_log_lines() -> list[str]:
    return [
        "[12:00:00] [Server thread/INFO]: Starting minecraft server version 1.16.5",
        "[12:00:01] [Server thread/INFO]: Preparing level \"world\"",
        '[12:00:02] [Server thread/INFO]: Done (15.559s)! For help, type "help"',
        "[12:00:03] [User Authenticator #1/INFO]: UUID of player Steve is 069a79f4-44e9-4726-a5be-fca90e38aaf5",
        "[12:00:03] [Server thread/INFO]: Steve joined the game",
        "[12:00:04] [Server thread/INFO]: <Steve> hello there",
        "[12:00:05] [Server thread/INFO]: Made Steve a server operator",
        "[12:00:06] [Server thread/INFO]: Steve was slain by Zombie",
        "java.lang.IllegalStateException: not enveloped",
        "",
        "[12:00:07] [Server thread/INFO]: Steve left the game",
    ]


@pytest.fixture()
def fake_server(tmp_path: Path):
    """Return a factory writing a fake server script plus its launch file.

    The launch file's first line is ``<python> <script>``, exactly like a
    real ``run.sh`` holding ``java -jar server.jar``.
    """

    def _make(
        banner: list[str] | None = None,
        *,
        exit_code: int = 0,
        exit_after_banner: bool = False,
        ignore_input: bool = False,
        name: str = "server",
    ) -> Path:
        server_dir = tmp_path / name
        server_dir.mkdir(exist_ok=True)
        script = server_dir / "fake_server.py"
        script.write_text(
            FAKE_SERVER.format(
                banner=list(banner or []),
                exit_code=exit_code,
                exit_after_banner=exit_after_banner,
                ignore_input=ignore_input,
            ),
            encoding="utf-8",
        )
        launch = server_dir / "run.sh"
        launch.write_text(f"{sys.executable} {script}\n", encoding="utf-8")
        return launch

    return _make


@pytest.fixture()
def plugin_dir(tmp_path: Path):
    """Return a factory that writes plugin bundle files into one directory."""
    root = tmp_path / "PlugIns"
    root.mkdir()

    def _make(files: dict[str, str]) -> Path:
        for name, source in files.items():
            target = root / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(textwrap.dedent(source), encoding="utf-8")
        return root

    return _make
