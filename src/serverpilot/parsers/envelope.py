"""The fixed ``[HH:MM:SS] [thread/LEVEL]: content`` envelope.

Every line the server prints carries this prefix. Only the content part is
handed to the line type patterns. The thread label ends at the first ``]: ``,
so chat text that itself contains ``]: `` stays whole in the content.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import EnvelopeMismatchError

ENVELOPE_RE = re.compile(
    r"\[((?:[01]\d|2[0-3]):[0-5]\d:[0-5]\d)\] "  # timestamp
    r"\[(.+?)\]: "                               # thread label, up to the first "]: "
    r"(.+)"                                      # content
)


@dataclass(frozen=True)
class RawLine:
    """One enveloped output line, split into its three parts."""

    timestamp: str
    thread: str
    content: str
    line: str

    @property
    def level(self) -> str | None:
        """Log level from a ``Server thread/INFO`` style label, if present."""
        _, sep, level = self.thread.rpartition("/")
        return level if sep else None

    def __str__(self) -> str:
        return self.line


def parse_envelope(line: str) -> RawLine:
    """Split a raw output line into timestamp, thread label and content.

    Raises:
        EnvelopeMismatchError: the line does not carry the envelope.
    """
    stripped = line.rstrip("\r\n")
    m = ENVELOPE_RE.fullmatch(stripped)
    if m is None:
        raise EnvelopeMismatchError(stripped)
    return RawLine(timestamp=m.group(1), thread=m.group(2), content=m.group(3), line=stripped)


def try_parse_envelope(line: str) -> RawLine | None:
    """Like :func:`parse_envelope` but returns None instead of raising."""
    try:
        return parse_envelope(line)
    except EnvelopeMismatchError:
        return None
