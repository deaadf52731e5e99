"""Server process supervision.

A :class:`ServerProcess` owns one child process: it spawns it from a
:class:`LaunchSpec`, feeds its stdin, and runs a reader thread that splits
every stdout line into a :class:`RawLine` and appends it to a FIFO queue.
A single consumer (the dispatch loop) takes lines off the queue with
:meth:`ServerProcess.get_next_line`, in exactly the order the child
printed them.

Lifecycle::

    spec = LaunchSpec(Path("/srv/mc/run.sh"), tag="main")
    server = ServerProcess(spec, directory=directory)
    server.start()                    # True; a second call returns False
    while (raw := server.get_next_line()) is not None:
        ...
    server.stop(wait=True)            # sends "stop", syncs privileges

A stopped supervisor can be started again, with a fresh line queue;
there is no in-place restart.
"""
from __future__ import annotations

import json
import logging
import queue
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterator, TextIO

from ..errors import LaunchSpecError, ProcessSpawnError
from ..parsers.envelope import RawLine, try_parse_envelope

if TYPE_CHECKING:
    from ..directory.actors import Actor, ActorDirectory

logger = logging.getLogger(__name__)

STOP_COMMAND = "stop"
DEFAULT_LAUNCHER = ("java", "-jar")

# Put on the line queue to release a blocked get_next_line().
_CANCEL = object()


@dataclass(frozen=True)
class LaunchSpec:
    """How to start a server, validated on construction.

    Attributes:
        run_file:  Either a launch file whose first line is the full command
                   (split on whitespace) or, with ``is_bundle``, the server
                   executable bundle itself (run through ``launcher``).
        is_bundle: See above.
        tag:       Unique identifier of this server.
        launcher:  Command prefix for bundles.
    """

    run_file: Path
    is_bundle: bool = False
    tag: str = "main"
    launcher: tuple[str, ...] = DEFAULT_LAUNCHER

    def __post_init__(self) -> None:
        if self.run_file is None or str(self.run_file) == "":
            raise LaunchSpecError("No run file given")
        path = Path(self.run_file).expanduser().resolve()
        if not path.exists():
            raise LaunchSpecError(f"Run file {path} does not exist", context={"run_file": str(path)})
        if path.is_dir():
            raise LaunchSpecError(f"Run file {path} is a directory", context={"run_file": str(path)})
        if not self.tag:
            raise LaunchSpecError("Server tag must not be empty")
        object.__setattr__(self, "run_file", path)
        object.__setattr__(self, "launcher", tuple(self.launcher))

    @property
    def working_dir(self) -> Path:
        return self.run_file.parent

    def command(self) -> list[str]:
        """Return the argument vector used to spawn the server."""
        if self.is_bundle:
            return [*self.launcher, self.run_file.name]
        try:
            with self.run_file.open(encoding="utf-8") as fh:
                first = fh.readline()
        except OSError as exc:
            raise LaunchSpecError(f"Cannot read run file {self.run_file}: {exc}") from exc
        argv = first.split()
        if not argv:
            raise LaunchSpecError(f"Run file {self.run_file} has no command on its first line")
        return argv


class ServerProcess:
    """Supervise one server child process and stream its output.

    Args:
        launch:      Validated launch description.
        directory:   Actor directory whose queued privilege changes are
                     synced into the server folder after every stop.
        on_unparsed: Called with each stdout line that has no envelope
                     (stack traces, JVM banners). Such lines are never
                     queued for classification.
    """

    def __init__(
        self,
        launch: LaunchSpec,
        directory: "ActorDirectory | None" = None,
        *,
        on_unparsed: Callable[[str], None] | None = None,
    ) -> None:
        self.launch = launch
        self.directory = directory
        self._on_unparsed = on_unparsed
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._lines: queue.Queue[object] = queue.Queue()
        self._process: subprocess.Popen[str] | None = None
        self._stdin: TextIO | None = None
        self._spawned: subprocess.Popen[str] | None = None
        self._reader: threading.Thread | None = None
        self._started = False

    @property
    def tag(self) -> str:
        return self.launch.tag

    @property
    def started(self) -> bool:
        return self._started

    @property
    def pid(self) -> int | None:
        process = self._process
        return process.pid if process is not None else None

    @property
    def exit_code(self) -> int | None:
        """Exit code of the most recently spawned process, once it exited."""
        process = self._spawned
        return process.poll() if process is not None else None

    # ------------------------------------------------------------------
    # Start / output
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Spawn the server. Returns False, doing nothing, if already started.

        Raises:
            LaunchSpecError:   the launch file cannot be read.
            ProcessSpawnError: the OS could not create the process.
        """
        with self._lock:
            if self._started:
                return False
            command = self.launch.command()
            try:
                process = subprocess.Popen(
                    command,
                    cwd=self.launch.working_dir,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    bufsize=1,
                )
            except OSError as exc:
                raise ProcessSpawnError(command, exc) from exc

            self._process = process
            self._spawned = process
            self._stdin = process.stdin
            self._started = True
            # Each run gets its own queue; lines or a cancel left from the
            # previous run never reach this one.
            lines: queue.Queue[object] = queue.Queue()
            self._lines = lines
            self._reader = threading.Thread(
                target=self._read_output,
                args=(process.stdout, lines),
                name=f"{self.tag}-stdout",
                daemon=True,
            )
            self._reader.start()

        logger.info("Started server %r (pid %s): %s", self.tag, process.pid, " ".join(command))
        return True

    def _read_output(self, stdout: TextIO, lines: queue.Queue[object]) -> None:
        """Reader thread body: runs until the child closes its stdout."""
        try:
            for line in stdout:
                raw = try_parse_envelope(line)
                if raw is not None:
                    lines.put(raw)
                    continue
                text = line.rstrip("\r\n")
                logger.debug("[%s] unparsed output: %s", self.tag, text)
                if self._on_unparsed is not None and text:
                    self._on_unparsed(text)
        except (OSError, ValueError) as exc:
            # ValueError: the pipe was closed underneath us during shutdown.
            logger.debug("[%s] stdout reader ended: %s", self.tag, exc)
        finally:
            stdout.close()
        logger.debug("[%s] stdout closed", self.tag)

    def get_next_line(self, timeout: float | None = None) -> RawLine | None:
        """Block until the next output line is available.

        Returns None when *timeout* elapses or the wait is cancelled with
        :meth:`cancel_wait`; never raises for either case.
        """
        try:
            item = self._lines.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CANCEL:
            return None
        assert isinstance(item, RawLine)
        return item

    def lines(self) -> Iterator[RawLine]:
        """Iterate output lines until the wait is cancelled."""
        while (raw := self.get_next_line()) is not None:
            yield raw

    def cancel_wait(self) -> None:
        """Release the consumer blocked in :meth:`get_next_line`."""
        self._lines.put(_CANCEL)

    def join_reader(self, timeout: float | None = None) -> bool:
        """Wait for the stdout reader to finish; True if it has."""
        reader = self._reader
        if reader is None:
            return True
        reader.join(timeout)
        return not reader.is_alive()

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def write_to_server(self, line: str) -> bool:
        """Write *line* verbatim to the server's stdin and flush.

        Returns False if the server is not started or its stdin is gone.
        """
        stdin = self._stdin
        if stdin is None:
            return False
        with self._write_lock:
            try:
                stdin.write(line + "\n")
                stdin.flush()
            except (OSError, ValueError) as exc:
                logger.debug("[%s] write failed: %s", self.tag, exc)
                return False
        return True

    def send_to_actor(self, actor: "Actor | str", message: str) -> bool:
        """Show *message* to one player via ``tellraw``."""
        return self.write_to_server(f"tellraw {actor} {json.dumps({'text': message})}")

    def send_to_ops(self, message: str) -> bool:
        """Show *message* to every operator known to the directory."""
        if self._stdin is None:
            return False
        names = self.directory.opped(self.tag) if self.directory is not None else []
        return all([self.send_to_actor(name, message) for name in names])

    # ------------------------------------------------------------------
    # Stop / status
    # ------------------------------------------------------------------

    def stop(self, wait: bool = True, timeout: float | None = None) -> bool:
        """Ask the server to shut down by sending ``stop``.

        Args:
            wait:    Block until the process exits.
            timeout: With *wait*, give up after this many seconds and kill
                     the process instead. None waits forever.

        Returns False if the server was not started.
        """
        with self._lock:
            if not self._started:
                return False
            process = self._process
        self.write_to_server(STOP_COMMAND)
        if wait and process is not None:
            try:
                process.wait(timeout)
            except subprocess.TimeoutExpired:
                logger.warning(
                    "Server %r did not stop within %ss; killing it", self.tag, timeout
                )
                process.kill()
                process.wait()
        self._clear()
        logger.info("Stopped server %r", self.tag)
        self._after_stop()
        return True

    def stop_forcibly(self) -> bool:
        """Kill the server immediately.

        The server gets no chance to save; world data may be corrupted.
        Prefer :meth:`stop`. Returns False if the server was not started.
        """
        with self._lock:
            if not self._started:
                return False
            process = self._process
        if process is not None:
            process.kill()
            process.wait()
        self._clear()
        logger.warning("Killed server %r", self.tag)
        self._after_stop()
        return True

    def check_status(self) -> bool:
        """Reconcile the started flag with the real process state.

        The server can exit on its own (an in-game ``/stop``, a crash). If
        it has, stream state is cleared and False is returned.
        """
        with self._lock:
            process = self._process
            if process is not None and process.poll() is None:
                self._started = True
                return True
            exited = self._started
            self._started = False
        self._clear()
        if exited:
            logger.info("Server %r exited on its own", self.tag)
            self._after_stop()
        return False

    def wait_for_server(self, timeout: float | None = None) -> int | None:
        """Block until the server process exits, however that happens.

        Returns the exit code, or None if the server was never started.
        """
        process = self._spawned
        if process is None:
            return None
        return process.wait(timeout)

    def _clear(self) -> None:
        with self._lock:
            stdin = self._stdin
            self._stdin = None
            self._process = None
            self._started = False
        if stdin is not None:
            with self._write_lock:
                try:
                    stdin.close()
                except OSError:
                    pass

    def _after_stop(self) -> None:
        if self.directory is None:
            return
        try:
            self.directory.sync(self.tag, self.launch.working_dir)
        except OSError as exc:
            logger.warning("Could not sync privileges for %r: %s", self.tag, exc)

    def __repr__(self) -> str:
        state = f"pid={self.pid}" if self._started else "stopped"
        return f"ServerProcess({self.tag!r}, {state})"


class ServerRegistry:
    """Tag-unique collection of supervised servers."""

    def __init__(self) -> None:
        self._servers: dict[str, ServerProcess] = {}
        self._lock = threading.Lock()

    def add(self, server: ServerProcess) -> ServerProcess:
        with self._lock:
            if server.tag in self._servers:
                raise ValueError(f"A server with tag {server.tag!r} is already registered")
            self._servers[server.tag] = server
        return server

    def get(self, tag: str) -> ServerProcess | None:
        with self._lock:
            return self._servers.get(tag)

    def tags(self) -> list[str]:
        with self._lock:
            return list(self._servers)

    def __iter__(self) -> Iterator[ServerProcess]:
        with self._lock:
            return iter(list(self._servers.values()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._servers)
