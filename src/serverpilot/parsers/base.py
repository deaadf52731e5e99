"""Line type definitions and the registry that orders them.

A :class:`LineType` is a pattern over the *content* of an output line
(everything after the ``[time] [thread]: `` envelope) plus the capture
group indices of the three extractable fields. Index ``-1`` means the
field does not exist for that type.

Types are grouped into named :class:`LineTypeSet` objects. The
:class:`LineTypeRegistry` scans its sets in registration order and, inside
each set, its types in declaration order: the first match wins. Overlapping
patterns are not detected; the registering code is responsible for ordering
them so the more specific shape comes first.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator

ABSENT = -1


@dataclass(frozen=True)
class LineType:
    """An immutable, pattern-based description of one message shape.

    Attributes:
        name:               Unique name inside its set, e.g. ``OPPED_SERVER``.
        pattern:            Regex the whole content must match.
        cause_user_index:   Group holding the actor that caused the line.
        recipient_index:    Group holding the actor the line is about.
        sub_contents_index: Group holding free-form detail (reason, weapon...).
        death:              Structural tag for the death-message catalog.
    """

    name: str
    pattern: re.Pattern[str]
    cause_user_index: int = ABSENT
    recipient_index: int = ABSENT
    sub_contents_index: int = ABSENT
    death: bool = False

    def __post_init__(self) -> None:
        groups = self.pattern.groups
        for label in ("cause_user_index", "recipient_index", "sub_contents_index"):
            index = getattr(self, label)
            if index == ABSENT:
                continue
            if not 1 <= index <= groups:
                raise ValueError(
                    f"{self.name}: {label}={index} but pattern has {groups} group(s)"
                )

    @classmethod
    def build(
        cls,
        name: str,
        pattern: str,
        cause_user: int = ABSENT,
        recipient: int = ABSENT,
        sub_contents: int = ABSENT,
        *,
        death: bool = False,
    ) -> "LineType":
        return cls(name, re.compile(pattern), cause_user, recipient, sub_contents, death)

    def matches(self, content: str) -> bool:
        return self.pattern.fullmatch(content) is not None

    def match(self, content: str) -> re.Match[str] | None:
        return self.pattern.fullmatch(content)

    def __repr__(self) -> str:
        return f"LineType({self.name})"


@dataclass
class LineTypeSet:
    """An ordered, named group of line types.

    Types are reachable by attribute (``catalog.SERVER.DONE_LOADING``) or by
    item (``catalog.SERVER["DONE_LOADING"]``).
    """

    name: str
    types: list[LineType] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for line_type in self.types:
            if line_type.name in seen:
                raise ValueError(f"Duplicate line type {line_type.name!r} in set {self.name!r}")
            seen.add(line_type.name)

    def add(self, line_type: LineType) -> LineType:
        if any(t.name == line_type.name for t in self.types):
            raise ValueError(f"Duplicate line type {line_type.name!r} in set {self.name!r}")
        self.types.append(line_type)
        return line_type

    def first_match(self, content: str) -> LineType | None:
        for line_type in self.types:
            if line_type.matches(content):
                return line_type
        return None

    def __getitem__(self, name: str) -> LineType:
        for line_type in self.types:
            if line_type.name == name:
                return line_type
        raise KeyError(name)

    def __getattr__(self, name: str) -> LineType:
        if name.startswith("_") or name in ("name", "types"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"Set {self.name!r} has no line type {name!r}") from None

    def __contains__(self, item: object) -> bool:
        return item in self.types

    def __iter__(self) -> Iterator[LineType]:
        return iter(self.types)

    def __len__(self) -> int:
        return len(self.types)


class LineTypeRegistry:
    """Ordered collection of line type sets, consulted first-match-wins.

    The registry is built once at startup and then only read. Sets that
    plugins contribute through their ``line_types`` attribute are registered
    with ``first=True`` so they are consulted before the built-in sets.
    """

    def __init__(self, sets: Iterable[LineTypeSet] = ()) -> None:
        self._sets: list[LineTypeSet] = []
        for line_set in sets:
            self.register(line_set)

    def register(self, line_set: LineTypeSet, *, first: bool = False) -> None:
        if any(s.name == line_set.name for s in self._sets):
            raise ValueError(f"Line type set {line_set.name!r} is already registered")
        if first:
            self._sets.insert(0, line_set)
        else:
            self._sets.append(line_set)

    def classify_content(self, content: str) -> LineType | None:
        """Return the first line type matching *content*, or None."""
        for line_set in self._sets:
            found = line_set.first_match(content)
            if found is not None:
                return found
        return None

    def get_set(self, name: str) -> LineTypeSet:
        for line_set in self._sets:
            if line_set.name == name:
                return line_set
        raise KeyError(name)

    def find(self, name: str) -> LineType | None:
        """Look up a line type by name across all sets (first set wins)."""
        for line_set in self._sets:
            for line_type in line_set:
                if line_type.name == name:
                    return line_type
        return None

    @property
    def sets(self) -> list[LineTypeSet]:
        return list(self._sets)

    def __iter__(self) -> Iterator[LineType]:
        for line_set in self._sets:
            yield from line_set

    def __len__(self) -> int:
        return sum(len(s) for s in self._sets)
