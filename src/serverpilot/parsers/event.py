"""Classified events: a raw line bound to the line type that matched it."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..errors import UnclassifiedAccess
from .base import ABSENT, LineType
from .envelope import RawLine

if TYPE_CHECKING:
    from ..directory.actors import Actor, ActorDirectory


@dataclass(frozen=True)
class _Fields:
    sub_contents: str | None
    cause_user: "Actor | None"
    recipient: "Actor | None"


class ClassifiedEvent:
    """A typed server output line with lazily extracted fields.

    ``sub_contents``, ``cause_user`` and ``recipient`` are resolved on first
    access: the bound line type's pattern is re-run against the content and
    actor names are resolved through the directory. The result is cached,
    so later reads return the very same Actor objects.

    Plugin threads receive the same event concurrently, so resolution is
    guarded by a per-event lock and happens at most once.

    Reading any field of a generic event (``line_type is None``) raises
    :class:`UnclassifiedAccess`; check ``is_generic`` first.
    """

    __slots__ = ("_raw", "_type", "_directory", "_fields", "_lock")

    def __init__(
        self,
        raw: RawLine,
        line_type: LineType | None,
        directory: "ActorDirectory | None" = None,
    ) -> None:
        self._raw = raw
        self._type = line_type
        self._directory = directory
        self._fields: _Fields | None = None
        self._lock = threading.Lock()

    # ── Envelope ────────────────────────────────────────────────────────────

    @property
    def raw(self) -> RawLine:
        return self._raw

    @property
    def line(self) -> str:
        return self._raw.line

    @property
    def timestamp(self) -> str:
        return self._raw.timestamp

    @property
    def thread(self) -> str:
        return self._raw.thread

    @property
    def content(self) -> str:
        return self._raw.content

    # ── Classification ──────────────────────────────────────────────────────

    @property
    def line_type(self) -> LineType | None:
        return self._type

    @property
    def type_name(self) -> str | None:
        return self._type.name if self._type is not None else None

    @property
    def is_generic(self) -> bool:
        return self._type is None

    def is_type(self, *types: LineType) -> bool:
        return self._type is not None and self._type in types

    @property
    def is_death(self) -> bool:
        return self._require_type("is_death").death

    # ── Lazy fields ─────────────────────────────────────────────────────────

    @property
    def sub_contents(self) -> str | None:
        return self._load("sub_contents").sub_contents

    @property
    def cause_user(self) -> "Actor | None":
        return self._load("cause_user").cause_user

    @property
    def recipient(self) -> "Actor | None":
        return self._load("recipient").recipient

    @property
    def resolved(self) -> bool:
        return self._fields is not None

    def _require_type(self, field: str) -> LineType:
        if self._type is None:
            raise UnclassifiedAccess(field)
        return self._type

    def _load(self, field: str) -> _Fields:
        line_type = self._require_type(field)
        fields = self._fields
        if fields is not None:
            return fields
        with self._lock:
            if self._fields is None:
                self._fields = self._extract(line_type)
            return self._fields

    def _extract(self, line_type: LineType) -> _Fields:
        m = line_type.match(self._raw.content)
        if m is None:
            # Only reachable if a caller bound a type that never matched.
            raise ValueError(f"{line_type.name} no longer matches {self._raw.content!r}")

        def group(index: int) -> str | None:
            return None if index == ABSENT else m.group(index)

        return _Fields(
            sub_contents=group(line_type.sub_contents_index),
            cause_user=self._actor(group(line_type.cause_user_index)),
            recipient=self._actor(group(line_type.recipient_index)),
        )

    def _actor(self, name: str | None) -> "Actor | None":
        if name is None:
            return None
        if self._directory is None:
            from ..directory.actors import Actor

            return Actor(name)
        return self._directory.resolve(name)

    # ── Serialisation ───────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Flat dict for JSON/table output; resolves fields when classified."""
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "thread": self.thread,
            "type": self.type_name,
            "content": self.content,
        }
        if self._type is not None:
            data["death"] = self._type.death
            data["cause_user"] = str(self.cause_user) if self.cause_user else None
            data["recipient"] = str(self.recipient) if self.recipient else None
            data["sub_contents"] = self.sub_contents
        return data

    def __repr__(self) -> str:
        return f"ClassifiedEvent({self.type_name or 'GENERIC'}, {self.content!r})"
