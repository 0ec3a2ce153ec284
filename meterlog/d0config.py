"""Configuration of a D0 (EN 62056-21) meter connection."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from meterlog.common import (
    MeterError,
    OptionNotFoundError,
    Parity,
    lookup_int,
    lookup_string,
)

BAUDRATES = frozenset(
    {
        50, 75, 110, 134, 150, 200, 300, 600, 1200, 1800, 2400, 4800,
        9600, 19200, 38400, 57600, 115200, 230400,
    }
)
DEFAULT_BAUDRATE = 9600
DEFAULT_READ_TIMEOUT = 10

_log = logging.getLogger(__name__)
_HEX_PREFIX = re.compile(r"[ \t\n\v\f\r]*([+-]?)([0-9a-fA-F]*)")


def _hex_byte(chunk: str) -> int:
    match = _HEX_PREFIX.match(chunk)
    sign, digits = match.groups()
    value = int(digits, 16) if digits else 0
    if sign == "-":
        value = -value
    return value & 0xFF


def parse_hex_sequence(text: str) -> bytes:
    """Turn a string of hex pairs such as ``063030300d0a`` into bytes."""
    return bytes(_hex_byte(text[i:i + 2]) for i in range(0, len(text), 2))


def parse_baudrate(value: int) -> int:
    """Check that ``value`` is a supported serial baud rate."""
    if value not in BAUDRATES:
        _log.error("Invalid baudrate: %s", value)
        raise MeterError("Invalid baudrate")
    return value


def parse_parity(text: str) -> Parity:
    """Parse a framing name such as ``7e1``, ignoring case."""
    try:
        return Parity(text.lower())
    except ValueError:
        raise MeterError("Invalid parity") from None


@dataclass
class D0Config:
    """Settings for a D0 meter reached over a serial device or TCP."""

    host: str = ""
    device: str = ""
    dump_file: str = ""
    pull: bytes = b""
    ack: bytes = b""
    auto_ack: bool = False
    baudrate: int = DEFAULT_BAUDRATE
    baudrate_read: int = DEFAULT_BAUDRATE
    parity: Parity = Parity.P7E1
    wait_sync_end: bool = False
    read_timeout: int = DEFAULT_READ_TIMEOUT
    baudrate_change_delay_ms: int = 0

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> D0Config:
        """Build a configuration from meter options."""
        config = cls()
        try:
            config.host = lookup_string(options, "host")
        except OptionNotFoundError:
            try:
                config.device = lookup_string(options, "device")
                if not config.device:
                    raise MeterError("device without length")
            except MeterError:
                _log.error("Missing device or host")
                raise
        except MeterError:
            _log.error("Missing device or host")
            raise

        try:
            config.dump_file = lookup_string(options, "dump_file")
        except OptionNotFoundError:
            pass

        try:
            config.pull = parse_hex_sequence(lookup_string(options, "pullseq"))
            _log.debug("pullseq len:%d found", len(config.pull))
        except OptionNotFoundError:
            config.pull = b""

        try:
            ack = lookup_string(options, "ackseq")
            if ack == "auto":
                config.auto_ack = True
                _log.debug("using autoack")
            else:
                config.ack = parse_hex_sequence(ack)
                _log.debug("ackseq len:%d found %r", len(config.ack), config.ack)
        except OptionNotFoundError:
            config.ack = b""

        try:
            config.baudrate = parse_baudrate(lookup_int(options, "baudrate"))
        except OptionNotFoundError:
            config.baudrate = DEFAULT_BAUDRATE
        except MeterError:
            _log.error("Failed to parse the baudrate")
            raise

        try:
            config.baudrate_read = parse_baudrate(lookup_int(options, "baudrate_read"))
        except OptionNotFoundError:
            config.baudrate_read = config.baudrate
        except MeterError:
            _log.error("Failed to parse the baudrate_read")
            raise

        try:
            config.parity = parse_parity(lookup_string(options, "parity"))
        except OptionNotFoundError:
            config.parity = Parity.P7E1
        except MeterError:
            _log.error("Failed to parse the parity")
            raise

        try:
            wait_sync = lookup_string(options, "wait_sync").lower()
            if wait_sync == "end":
                config.wait_sync_end = True
            elif wait_sync == "off":
                config.wait_sync_end = False
            else:
                raise MeterError("Invalid wait_sync")
        except OptionNotFoundError:
            pass
        except MeterError:
            _log.error("Failed to parse wait_sync")
            raise

        try:
            config.read_timeout = lookup_int(options, "read_timeout")
        except OptionNotFoundError:
            pass
        except MeterError:
            _log.error("Failed to parse read_timeout")
            raise

        try:
            config.baudrate_change_delay_ms = lookup_int(options, "baudrate_change_delay")
        except OptionNotFoundError:
            pass
        except MeterError:
            _log.error("Failed to parse baudrate_change_delay")
            raise

        return config