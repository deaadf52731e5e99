"""Exception hierarchy for serverpilot.

Every error raised on purpose by serverpilot derives from ServerPilotError,
so the CLI can report them uniformly without catching unrelated bugs.
"""
from __future__ import annotations

import enum
from typing import Any


class ServerPilotError(Exception):
    """Base exception carrying a message and optional structured context."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)


# ── Process supervision ─────────────────────────────────────────────────────


class LaunchSpecError(ServerPilotError):
    """The launch file is missing, a directory, or unusable."""


class ProcessSpawnError(ServerPilotError):
    """The operating system refused to create the server process."""

    def __init__(self, command: list[str] | tuple[str, ...], cause: OSError) -> None:
        super().__init__(
            f"Failed to start {' '.join(command)!r}: {cause}",
            context={"command": list(command)},
        )
        self.cause = cause


# ── Line classification ─────────────────────────────────────────────────────


class EnvelopeMismatchError(ServerPilotError):
    """A raw output line does not carry the [time] [thread]: envelope."""

    def __init__(self, line: str) -> None:
        super().__init__(f"Line does not match the output envelope: {line!r}", context={"line": line})
        self.line = line


class TypeMismatchError(ServerPilotError):
    """An explicitly requested line type does not match the content."""

    def __init__(self, type_name: str, content: str) -> None:
        super().__init__(
            f"Content does not match line type {type_name}: {content!r}",
            context={"line_type": type_name, "content": content},
        )
        self.type_name = type_name
        self.content = content


class UnclassifiedAccess(ServerPilotError, RuntimeError):
    """A field was read from a generic (unclassified) event."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Generic event has no {field!r}; check event.is_generic first", context={"field": field})
        self.field = field


# ── Plugins ─────────────────────────────────────────────────────────────────


class LoadFailure(str, enum.Enum):
    """Why a plugin bundle could not be loaded."""

    CORRUPT_ARCHIVE = "corrupt archive"
    IO_FAILURE = "could not be opened"
    IMPORT_FAILURE = "raised while being imported"
    NO_ENTRY_TYPE = "does not define a plugin class"
    AMBIGUOUS_ENTRY_TYPE = "defines more than one plugin class"
    ABSTRACT_ENTRY_TYPE = "plugin class is abstract"
    CONSTRUCTOR_SIGNATURE = "plugin class has no no-argument constructor"
    CONSTRUCTOR_FAULT = "plugin constructor raised"


class BundleLoadError(ServerPilotError):
    """A single bundle failed to load; collected, never fatal to the batch."""

    def __init__(self, bundle: str, reason: str, cause: LoadFailure) -> None:
        super().__init__(f"{bundle}: {reason}", context={"bundle": bundle, "cause": cause.name})
        self.bundle = bundle
        self.reason = reason
        self.cause = cause


class InvocationFault(ServerPilotError):
    """A plugin lifecycle call raised while executing."""

    def __init__(self, bundle: str, method: str, fault: BaseException) -> None:
        super().__init__(
            f"{bundle} raised {type(fault).__name__} in {method}: {fault}",
            context={"bundle": bundle, "method": method},
        )
        self.bundle = bundle
        self.method = method
        self.fault = fault


class PluginContractError(ServerPilotError):
    """The host asked a plugin for a lifecycle method it does not expose."""

    def __init__(self, bundle: str, method: str) -> None:
        super().__init__(f"{bundle} has no callable {method!r}", context={"bundle": bundle, "method": method})
        self.bundle = bundle
        self.method = method


# ── Actor directory ─────────────────────────────────────────────────────────


class ActorResolutionError(ServerPilotError):
    """An actor name could not be resolved to an identity."""

    def __init__(self, name: str, reason: str = "not a valid actor name") -> None:
        super().__init__(f"Cannot resolve actor {name!r}: {reason}", context={"name": name})
        self.name = name
