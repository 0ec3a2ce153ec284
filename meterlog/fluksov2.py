"""Reader for the SPI delta output of the Flukso v2 meter."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from typing import Any

from meterlog.common import MeterError, OptionNotFoundError, lookup_string
from meterlog.reading import ChannelIdentifier, Reading

DEFAULT_FIFO = "/var/run/spid/delta/out"
LINE_LENGTH = 64

_log = logging.getLogger(__name__)
_DELIMITER = re.compile(r"[ \t]")
_INTEGER = re.compile(r"\s*([+-]?\d+)")


def _atoi(token: str) -> int:
    match = _INTEGER.match(token)
    return int(match.group(1)) if match else 0


def parse_flukso_line(line: str | bytes) -> list[Reading]:
    """Parse one line ``<time> <ch> <consumption> <power> ...`` into readings.

    Each channel yields a consumption reading identified by the negative
    channel number plus one and a power reading by the positive one.
    """
    if isinstance(line, bytes):
        line = line.decode("ascii", errors="replace")
    first, *rest = _DELIMITER.split(line)
    if len(rest) % 3:
        raise MeterError(f"incomplete channel record in line {line!r}")
    seconds = _atoi(first)
    readings: list[Reading] = []
    tokens = iter(rest)
    for channel_token, consumption, power in zip(tokens, tokens, tokens):
        channel = _atoi(channel_token) + 1  # +1 distinguishes +0 from -0
        readings.append(
            Reading(
                value=float(_atoi(consumption)),
                seconds=seconds,
                identifier=ChannelIdentifier(-channel),
            )
        )
        readings.append(
            Reading(
                value=float(_atoi(power)),
                seconds=seconds,
                identifier=ChannelIdentifier(channel),
            )
        )
    return readings


class MeterFluksoV2:
    """Reads channel readings from the Flukso v2 delta fifo."""

    def __init__(self, options: Mapping[str, Any] | None = None) -> None:
        try:
            self.fifo = lookup_string(options or {}, "fifo")
        except OptionNotFoundError:
            self.fifo = DEFAULT_FIFO
        self._fd: int | None = None

    def __enter__(self) -> MeterFluksoV2:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        """Open the fifo for reading."""
        try:
            self._fd = os.open(self.fifo, os.O_RDONLY)
        except OSError as exc:
            _log.error("open(%s): %s", self.fifo, exc.strerror)
            raise MeterError(f"open({self.fifo}): {exc.strerror}") from exc

    def close(self) -> None:
        """Close the fifo."""
        if self._fd is None:
            raise MeterError("meter is not open")
        fd, self._fd = self._fd, None
        os.close(fd)

    def _read_line(self) -> bytes | None:
        if self._fd is None:
            raise MeterError("meter is not open")
        buffer = bytearray()
        while len(buffer) < LINE_LENGTH:
            try:
                byte = os.read(self._fd, 1)
            except OSError as exc:
                _log.error("read_line(%s): %s", self.fifo, exc.strerror)
                raise MeterError(f"read_line({self.fifo}): {exc.strerror}") from exc
            if not byte:
                return bytes(buffer) if buffer else None
            if byte == b"\n":
                break
            buffer += byte
        return bytes(buffer)

    def read(self, n: int) -> list[Reading]:
        """Read the next non-empty line and return at most ``n`` readings."""
        while True:
            line = self._read_line()
            if line is None:
                return []
            if line:
                break
        return parse_flukso_line(line)[:n]