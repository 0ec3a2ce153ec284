"""Shared enumerations, errors and option lookup helpers."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from typing import Any


class LogLevel(enum.IntEnum):
    """Verbosity levels used by the meter protocols."""

    ALERT = 0
    ERROR = 1
    WARNING = 3
    INFO = 5
    DEBUG = 10
    FINEST = 15


class Parity(enum.Enum):
    """Serial line framing: data bits, parity and stop bits."""

    P8N1 = "8n1"
    P7N1 = "7n1"
    P7E1 = "7e1"
    P7O1 = "7o1"


class MeterError(Exception):
    """Base class for all errors raised by the meter protocols."""


class OptionNotFoundError(MeterError):
    """A required configuration option is missing."""


class InvalidTypeError(MeterError):
    """A configuration option has a value of the wrong type."""


def _lookup(options: Mapping[str, Any], key: str) -> Any:
    if options is None or key not in options:
        raise OptionNotFoundError(f"option '{key}' not found")
    return options[key]


def lookup_string(options: Mapping[str, Any], key: str) -> str:
    """Return the string option ``key``."""
    value = _lookup(options, key)
    if not isinstance(value, str):
        raise InvalidTypeError(f"option '{key}' is not a string")
    return value


def lookup_int(options: Mapping[str, Any], key: str) -> int:
    """Return the integer option ``key``."""
    value = _lookup(options, key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidTypeError(f"option '{key}' is not an integer")
    return value


def lookup_float(options: Mapping[str, Any], key: str) -> float:
    """Return the numeric option ``key`` as a float."""
    value = _lookup(options, key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidTypeError(f"option '{key}' is not a number")
    return float(value)


def lookup_bool(options: Mapping[str, Any], key: str) -> bool:
    """Return the boolean option ``key``."""
    value = _lookup(options, key)
    if not isinstance(value, bool):
        raise InvalidTypeError(f"option '{key}' is not a boolean")
    return value