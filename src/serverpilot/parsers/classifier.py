"""Turn raw server output into classified events.

Classification order (first match wins):
  1. Sets in the order they were registered with the registry.
  2. Inside a set, line types in declaration order.
  3. No match -> generic event (no type, fields locked).

An explicitly requested type is validated instead of searched for; a
mismatch raises :class:`TypeMismatchError` rather than falling back.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Iterator

from ..errors import TypeMismatchError
from .base import LineType, LineTypeRegistry
from .catalog import default_registry
from .envelope import RawLine, parse_envelope, try_parse_envelope
from .event import ClassifiedEvent

if TYPE_CHECKING:
    from ..directory.actors import ActorDirectory

logger = logging.getLogger(__name__)


class LineClassifier:
    """Classify enveloped lines against a :class:`LineTypeRegistry`.

    Args:
        registry:  Line type registry; defaults to the built-in catalog.
        directory: Actor directory used by events to resolve names.
    """

    def __init__(
        self,
        registry: LineTypeRegistry | None = None,
        directory: "ActorDirectory | None" = None,
    ) -> None:
        self.registry = registry if registry is not None else default_registry()
        self.directory = directory

    def classify(self, raw: RawLine, line_type: LineType | None = None) -> ClassifiedEvent:
        if line_type is not None:
            if not line_type.matches(raw.content):
                raise TypeMismatchError(line_type.name, raw.content)
            return ClassifiedEvent(raw, line_type, self.directory)
        found = self.registry.classify_content(raw.content)
        return ClassifiedEvent(raw, found, self.directory)

    def classify_line(self, line: str, line_type: LineType | None = None) -> ClassifiedEvent:
        """Parse the envelope of *line* and classify it.

        Raises:
            EnvelopeMismatchError: the line has no envelope.
            TypeMismatchError:     *line_type* given and not matching.
        """
        return self.classify(parse_envelope(line), line_type)

    def classify_lines(self, lines: Iterable[str]) -> Iterator[ClassifiedEvent]:
        """Classify a stream of raw lines, skipping those without an envelope."""
        for line in lines:
            if not line.strip():
                continue
            raw = try_parse_envelope(line)
            if raw is None:
                logger.debug("Skipping line without envelope: %r", line)
                continue
            yield self.classify(raw)

    def classify_file(self, path: str) -> Iterator[ClassifiedEvent]:
        """Stream-classify a saved server log file."""
        with open(path, encoding="utf-8", errors="replace") as f:
            yield from self.classify_lines(f)
