"""Meter readings and the identifiers that name them."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


class ReadingIdentifier:
    """Base of all identifiers attached to a reading."""


@dataclass(frozen=True)
class ObisIdentifier(ReadingIdentifier):
    """Identifies a reading by its OBIS code."""

    obis: Any = None

    def __str__(self) -> str:
        return f"ObisIdentifier:{self.obis}"


@dataclass(frozen=True)
class StringIdentifier(ReadingIdentifier):
    """Identifies a reading by a free-form string."""

    string: str = ""

    def __str__(self) -> str:
        return "StringIdentifier:"


@dataclass(frozen=True)
class ChannelIdentifier(ReadingIdentifier):
    """Identifies a reading by a numeric channel."""

    channel: int = 0

    def __str__(self) -> str:
        return "ChannelIdentifier:"


@dataclass(frozen=True)
class NilIdentifier(ReadingIdentifier):
    """An identifier that carries no information."""

    def __str__(self) -> str:
        return "NilIdentifier"


_MICROS = 1_000_000


@dataclass
class Reading:
    """A single value with its timestamp and identifier.

    Equality compares the value, the timestamp and the deleted flag only.
    """

    value: float = 0.0
    seconds: int = 0
    microseconds: int = 0
    identifier: ReadingIdentifier | None = field(default=None, compare=False)
    deleted: bool = False

    def time_ms(self) -> int:
        """Timestamp in milliseconds, truncated."""
        return int(self.seconds * 1e3 + self.microseconds / 1e3)

    def time_s(self) -> int:
        """Timestamp in whole seconds, rounded down."""
        return self.seconds

    def set_now(self) -> None:
        """Stamp the reading with the current time."""
        self.seconds, self.microseconds = divmod(time.time_ns() // 1000, _MICROS)

    def set_time(self, seconds: int, microseconds: int = 0) -> None:
        """Set the timestamp from seconds and microseconds."""
        self.seconds = int(seconds)
        self.microseconds = int(microseconds)

    def time_from_double(self, value: float) -> None:
        """Set the timestamp from fractional seconds."""
        seconds = int(value)
        micros = round((value - seconds) * _MICROS)
        if micros >= _MICROS:
            seconds += 1
            micros -= _MICROS
        elif micros < 0:
            seconds -= 1
            micros += _MICROS
        self.seconds = seconds
        self.microseconds = micros

    def mark_delete(self) -> None:
        """Flag the reading as consumed."""
        self.deleted = True

    def reset(self) -> None:
        """Clear the deleted flag."""
        self.deleted = False