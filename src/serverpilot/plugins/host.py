"""PluginHost — the table of loaded plugins and concurrent dispatch to them.

Every :meth:`PluginHost.apply_method` call is a *dispatch round*: the alive
bundles are snapshotted under the host lock and the named method is run
on each of them in its own thread. A plugin that raises is disabled for the
rest of the run:

  1. a banner naming the plugin, method and fault is printed to stderr,
  2. its ``on_throwable`` hook is called once on a fire-and-forget thread
     (anything that raises is logged and dropped),
  3. it is removed from the table, so later rounds never see it.

Asking a plugin for a method it does not have is a host-side contract
error. It is recorded on that call's result only; the plugin stays alive.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterator

from rich.console import Console

from ..errors import InvocationFault, PluginContractError
from ..parsers.base import LineTypeSet
from ..visualization.tables import print_fault_banner
from .base import PluginBundle
from .loader import LoadReport, discover_bundles, discover_entry_points

if TYPE_CHECKING:
    from ..parsers.event import ClassifiedEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvocationResult:
    """What happened when one plugin method ran in one dispatch round."""

    bundle: str
    method: str
    fault: InvocationFault | PluginContractError | None = None

    @property
    def ok(self) -> bool:
        return self.fault is None


class DispatchRound:
    """The worker threads started for one :meth:`PluginHost.apply_method` call."""

    def __init__(self, method: str) -> None:
        self.method = method
        self._threads: list[threading.Thread] = []
        self._results: list[InvocationResult] = []
        self._lock = threading.Lock()

    def _spawn(self, bundle: PluginBundle, work: Callable[[], InvocationResult]) -> None:
        def run() -> None:
            result = work()
            with self._lock:
                self._results.append(result)

        thread = threading.Thread(target=run, name=f"{bundle.origin}:{self.method}", daemon=True)
        self._threads.append(thread)
        thread.start()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for every worker of this round.

        With a *timeout* (seconds, shared by all workers) returns False if
        some worker is still running when it runs out.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return self.done

    @property
    def done(self) -> bool:
        return not any(t.is_alive() for t in self._threads)

    @property
    def results(self) -> list[InvocationResult]:
        with self._lock:
            return list(self._results)

    @property
    def faults(self) -> list[InvocationResult]:
        return [r for r in self.results if not r.ok]

    def __len__(self) -> int:
        return len(self._threads)

    def __iter__(self) -> Iterator[InvocationResult]:
        return iter(self.results)

    def __repr__(self) -> str:
        return f"DispatchRound({self.method!r}, workers={len(self)}, done={self.done})"


class PluginHost:
    """Own the loaded plugins and dispatch lifecycle calls to them.

    Usage::

        host = PluginHost()
        report = host.load("PlugIns")
        host.on_load().join()
        host.interpret_event("main", event)   # fire and forget
        host.on_shut_down().join()
    """

    def __init__(self, console: Console | None = None) -> None:
        self._bundles: list[PluginBundle] = []
        self._faults: list[InvocationFault] = []
        self._lock = threading.Lock()
        self._loaded = False
        self._dispatching = False
        self._console = console

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, directory: str | Path, entry_points: str | None = None) -> LoadReport:
        """Scan *directory* (and optionally an entry-point group) once.

        Raises:
            RuntimeError: plugins were already loaded by this host.
        """
        with self._lock:
            if self._loaded:
                raise RuntimeError("Plugins have already been loaded")
            if self._dispatching:
                raise RuntimeError("Cannot load plugins once dispatch has started")
            self._loaded = True
        report = discover_bundles(directory)
        if entry_points:
            report.extend(discover_entry_points(entry_points))
        with self._lock:
            self._bundles.extend(report.bundles)
        logger.info(
            "%d plugin(s) loaded, %d failed to load", len(report.bundles), len(report.errors)
        )
        return report

    def add(self, plugin: Any, origin: str | None = None) -> PluginBundle:
        """Register an already constructed plugin (or bundle) during setup.

        Raises:
            RuntimeError: a dispatch round has already run.
        """
        if isinstance(plugin, PluginBundle):
            bundle = plugin
        else:
            bundle = PluginBundle(origin=origin or type(plugin).__name__, instance=plugin)
        with self._lock:
            if self._dispatching:
                raise RuntimeError("Cannot add plugins once dispatch has started")
            self._bundles.append(bundle)
        return bundle

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def apply_method(self, method: str, *args: Any) -> DispatchRound:
        """Run ``method(*args)`` on every alive plugin, one thread each.

        Returns immediately; call :meth:`DispatchRound.join` to wait.
        """
        with self._lock:
            self._dispatching = True
            snapshot = [b for b in self._bundles if b.alive]
        round_ = DispatchRound(method)
        for bundle in snapshot:
            round_._spawn(bundle, lambda b=bundle: self._invoke(b, method, args))
        logger.debug("Dispatched %s to %d plugin(s)", method, len(snapshot))
        return round_

    def _invoke(self, bundle: PluginBundle, method: str, args: tuple[Any, ...]) -> InvocationResult:
        func = getattr(bundle.instance, method, None)
        if not callable(func):
            error = PluginContractError(bundle.origin, method)
            logger.warning("%s", error)
            return InvocationResult(bundle.origin, method, error)
        try:
            func(*args)
        except BaseException as exc:
            # SystemExit and friends from a plugin end only that plugin.
            fault = InvocationFault(bundle.origin, method, exc)
            self._disable(bundle, fault)
            return InvocationResult(bundle.origin, method, fault)
        return InvocationResult(bundle.origin, method)

    def _disable(self, bundle: PluginBundle, fault: InvocationFault) -> None:
        with self._lock:
            if not bundle.alive:
                # Faulted concurrently in another round; already handled.
                logger.debug("Ignoring further fault from disabled plugin %s", fault)
                return
            bundle.alive = False
            if bundle in self._bundles:
                self._bundles.remove(bundle)
            self._faults.append(fault)

        logger.error("Disabling plugin: %s", fault, exc_info=fault.fault)
        print_fault_banner(fault, self._console)
        threading.Thread(
            target=self._notify_throwable,
            args=(bundle, fault.fault),
            name=f"{bundle.origin}:on_throwable",
            daemon=True,
        ).start()

    @staticmethod
    def _notify_throwable(bundle: PluginBundle, fault: BaseException) -> None:
        try:
            bundle.instance.on_throwable(fault)
        except BaseException as exc:
            logger.debug("%s raised in on_throwable, ignored: %r", bundle.origin, exc)

    # ── Lifecycle wrappers ──────────────────────────────────────────────────

    def on_load(self) -> DispatchRound:
        return self.apply_method("on_load")

    def on_shut_down(self) -> DispatchRound:
        return self.apply_method("on_shut_down")

    def on_server_start(self, tag: str) -> DispatchRound:
        return self.apply_method("on_server_start", tag)

    def on_server_stop(self, tag: str) -> DispatchRound:
        return self.apply_method("on_server_stop", tag)

    def interpret_event(self, tag: str, event: ClassifiedEvent) -> DispatchRound:
        return self.apply_method("interpret_event", tag, event)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def contributed_line_types(self) -> list[LineTypeSet]:
        """Line type sets exposed by alive plugins as ``line_types``, in load order."""
        found: list[LineTypeSet] = []
        for bundle in self.bundles:
            for line_set in getattr(bundle.instance, "line_types", None) or ():
                if isinstance(line_set, LineTypeSet):
                    found.append(line_set)
                else:
                    logger.warning("%s: ignoring line_types entry %r", bundle.origin, line_set)
        return found

    def alive(self) -> list[str]:
        with self._lock:
            return [b.origin for b in self._bundles if b.alive]

    @property
    def bundles(self) -> list[PluginBundle]:
        with self._lock:
            return list(self._bundles)

    @property
    def faults(self) -> list[InvocationFault]:
        with self._lock:
            return list(self._faults)

    def __len__(self) -> int:
        with self._lock:
            return len(self._bundles)
