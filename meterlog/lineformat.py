"""Line formats for meters that read one reading per text line.

A format string names where the value (``$v``), the identifier (``$i``)
and the timestamp (``$t``) stand in a line.  Whitespace in the format
matches any run of whitespace, including none; every other character
must appear literally.  Matching stops at the first mismatch, and a line
yields a reading once at least one field has been read.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

from meterlog.reading import Reading, StringIdentifier

MISSING_IDENTIFIER = "<null>"

_FLOAT = re.compile(
    r"[+-]?(?:"
    r"0x(?:[0-9a-f]+\.?[0-9a-f]*|\.[0-9a-f]+)(?:p[+-]?\d+)?"
    r"|(?:\d+\.?\d*|\.\d+)(?:e[+-]?\d+)?"
    r"|inf(?:inity)?"
    r"|nan(?:\([0-9a-z_]*\))?"
    r")",
    re.IGNORECASE,
)
_WORD = re.compile(r"\S+")
_SPACE = re.compile(r"\s*")


class _Kind(enum.Enum):
    VALUE = "%1$lf"
    IDENTIFIER = "%2$ms"
    TIMESTAMP = "%3$lf"
    SPACE = "space"
    LITERAL = "literal"


_TOKENS = {"v": _Kind.VALUE, "i": _Kind.IDENTIFIER, "t": _Kind.TIMESTAMP}


@dataclass(frozen=True)
class _Directive:
    kind: _Kind
    char: str = ""


def _chop_line_end(line: str) -> str:
    """Cut the line at its last newline, then at its last carriage return."""
    for terminator in ("\n", "\r"):
        cut = line.rfind(terminator)
        if cut >= 0:
            line = line[:cut]
    return line


def _to_float(text: str) -> float:
    lowered = text.lower()
    if "nan" in lowered:
        return float("nan")
    if "x" in lowered:
        return float.fromhex(text)
    return float(text)


def _scan_float(line: str, pos: int) -> tuple[float, int] | None:
    match = _FLOAT.match(line, pos)
    if match is None:
        return None
    return _to_float(match.group(0)), match.end()


def parse_plain_value(line: str) -> float | None:
    """Read a number from the start of ``line``; None if there is none."""
    text = _chop_line_end(line)
    pos = _SPACE.match(text).end()
    scanned = _scan_float(text, pos)
    return None if scanned is None else scanned[0]


class LineFormat:
    """A compiled ``$v``/``$i``/``$t`` line format."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        self._directives = list(self._compile(pattern))

    def __repr__(self) -> str:
        return f"LineFormat({self.pattern!r})"

    @staticmethod
    def _compile(pattern: str):
        chars = iter(enumerate(pattern))
        for index, char in chars:
            if char == "$":
                if index + 1 < len(pattern):
                    _, token = next(chars)
                    kind = _TOKENS.get(token)
                    if kind is not None:
                        yield _Directive(kind)
            elif char.isspace():
                yield _Directive(_Kind.SPACE, char)
            else:
                yield _Directive(_Kind.LITERAL, char)

    @property
    def scanf_format(self) -> str:
        """The format in conversion-specification notation, for diagnostics."""
        parts = []
        for directive in self._directives:
            if directive.kind is _Kind.SPACE:
                parts.append(directive.char)
            elif directive.kind is _Kind.LITERAL:
                parts.append("%%" if directive.char == "%" else directive.char)
            else:
                parts.append(directive.kind.value)
        return "".join(parts)

    def _scan(self, text: str) -> tuple[int, float, str | None, float]:
        found = 0
        value = 0.0
        identifier: str | None = None
        timestamp = -1.0
        pos = 0
        for directive in self._directives:
            kind = directive.kind
            if kind is _Kind.SPACE:
                pos = _SPACE.match(text, pos).end()
                continue
            if kind is _Kind.LITERAL:
                if directive.char == "%":
                    pos = _SPACE.match(text, pos).end()
                if pos >= len(text) or text[pos] != directive.char:
                    break
                pos += 1
                continue
            pos = _SPACE.match(text, pos).end()
            if pos >= len(text):
                break
            if kind is _Kind.IDENTIFIER:
                match = _WORD.match(text, pos)
                identifier = match.group(0)
                pos = match.end()
            else:
                scanned = _scan_float(text, pos)
                if scanned is None:
                    break
                number, pos = scanned
                if kind is _Kind.VALUE:
                    value = number
                else:
                    timestamp = number
            found += 1
        return found, value, identifier, timestamp

    def parse(self, line: str) -> Reading | None:
        """Turn one line into a reading, or None if no field matched."""
        found, value, identifier, timestamp = self._scan(_chop_line_end(line))
        if found < 1:
            return None
        reading = Reading(
            value=value,
            identifier=StringIdentifier(
                identifier if identifier is not None else MISSING_IDENTIFIER
            ),
        )
        if timestamp >= 0.0:
            reading.time_from_double(timestamp)
        else:
            reading.set_now()
        return reading