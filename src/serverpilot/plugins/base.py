"""Plugin system Protocol definitions.

A plugin is any object exposing the six lifecycle methods of
:class:`ServerPlugin`. Plugins are usually dropped into the plugin
directory as a bundle (a ``.py`` file, a ``.zip`` archive or a package
directory), or shipped by an installed package through the entry-points
mechanism::

    [project.entry-points."serverpilot.plugins"]
    greeter = "my_package.greeter:Greeter"

Subclassing :class:`BasePlugin` is optional; it only supplies no-op
defaults so a plugin can override just the hooks it cares about.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..parsers.event import ClassifiedEvent


@runtime_checkable
class ServerPlugin(Protocol):
    """Protocol every plugin entry type satisfies."""

    def on_load(self) -> None:
        """Called once, after every bundle has been loaded."""
        ...

    def on_shut_down(self) -> None:
        """Called once when the supervisor is shutting down."""
        ...

    def on_throwable(self, fault: BaseException) -> None:
        """Called at most once, with the fault that got this plugin disabled."""
        ...

    def on_server_start(self, tag: str) -> None:
        """The server tagged *tag* reported that it finished loading."""
        ...

    def on_server_stop(self, tag: str) -> None:
        """The server tagged *tag* exited."""
        ...

    def interpret_event(self, tag: str, event: ClassifiedEvent) -> None:
        """One classified output line of the server tagged *tag*."""
        ...


class BasePlugin:
    """No-op implementation of :class:`ServerPlugin`.

    ``line_types`` may list extra :class:`~serverpilot.parsers.base.LineTypeSet`
    objects; they are consulted before the built-in catalog.
    """

    line_types: tuple = ()

    def on_load(self) -> None:
        pass

    def on_shut_down(self) -> None:
        pass

    def on_throwable(self, fault: BaseException) -> None:
        pass

    def on_server_start(self, tag: str) -> None:
        pass

    def on_server_stop(self, tag: str) -> None:
        pass

    def interpret_event(self, tag: str, event: ClassifiedEvent) -> None:
        pass


@dataclass(eq=False)
class PluginBundle:
    """A loaded plugin instance and where it came from.

    ``alive`` only ever goes from True to False: once a plugin faults it is
    never invoked again in this run.
    """

    origin: str
    instance: Any
    alive: bool = True

    @property
    def name(self) -> str:
        return type(self.instance).__name__

    def __str__(self) -> str:
        return self.origin
