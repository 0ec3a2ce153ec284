"""Annotated hex dump of the traffic on a D0 meter connection.

Control messages are written as text lines starting with ``#####``.
Received bytes follow a ``>>>>>`` header, sent bytes a ``<<<<<`` header.
They are shown 16 to a row, as hex pairs and as printable characters.
Every header carries a monotonic timestamp and the milliseconds elapsed
since the previous header.
"""

from __future__ import annotations

import enum
import os
import time
from collections.abc import Callable
from typing import BinaryIO

ROW_BYTES = 16
_CHAR_COLUMN = 3 * ROW_BYTES + 2
_ROW_WIDTH = _CHAR_COLUMN + 18
_NS_PER_SECOND = 1_000_000_000
_NS_PER_MS = 1_000_000


class DumpMode(enum.Enum):
    """The kind of data being written to the dump."""

    NONE = 0
    CTRL = 1
    DUMP_IN = 2
    DUMP_OUT = 3


_HEADERS = {
    DumpMode.CTRL: b"##### ",
    DumpMode.DUMP_IN: b">>>>> ",
    DumpMode.DUMP_OUT: b"<<<<< ",
}
_LINE_END = b"\n"


def _blank_row() -> bytearray:
    return bytearray(b" " * (_ROW_WIDTH - 1) + _LINE_END)


def _printable(byte: int) -> int:
    return byte if 0x20 <= byte < 0x7F else 0x20


class DumpWriter:
    """Writes a D0 traffic dump to a file path or a binary stream.

    A path is opened for appending and closed by :meth:`close`; a stream
    passed in is only flushed.
    """

    def __init__(
        self,
        target: str | os.PathLike[str] | BinaryIO,
        clock: Callable[[], int] | None = None,
    ) -> None:
        if isinstance(target, (str, os.PathLike)):
            self._out: BinaryIO = open(target, "ab")
            self._owned = True
        else:
            self._out = target
            self._owned = False
        self._clock = clock or time.monotonic_ns
        self._old_mode = DumpMode.NONE
        self._pos = 0
        self._row = _blank_row()
        self._last: tuple[int, int] = (0, 0)
        self._closed = False

    def __enter__(self) -> DumpWriter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        """True once :meth:`close` has been called."""
        return self._closed

    def _timestamp(self) -> bytes:
        seconds, nanos = divmod(self._clock(), _NS_PER_SECOND)
        last_seconds, last_nanos = self._last
        delta = seconds * 1000 + nanos // _NS_PER_MS
        delta -= last_nanos // _NS_PER_MS
        delta -= last_seconds * 1000
        if last_seconds == 0:
            delta = 0
        self._last = (seconds, nanos)
        return b"%2d.%09ds (%6d ms) " % (seconds % 100, nanos, delta)

    def _flush_row(self) -> None:
        self._out.write(bytes(self._row))
        self._pos = 0
        self._row = _blank_row()

    def _start_section(self, mode: DumpMode) -> None:
        if self._pos:
            self._flush_row()
        self._out.write(_LINE_END)
        self._out.flush()
        self._out.write(_HEADERS.get(mode, _HEADERS[DumpMode.CTRL]))
        self._out.write(self._timestamp())
        if mode in (DumpMode.DUMP_IN, DumpMode.DUMP_OUT):
            self._out.write(_LINE_END)

    def write(self, mode: DumpMode, data: bytes | str) -> None:
        """Append ``data`` to the dump in the given mode."""
        if self._closed:
            raise ValueError("dump is closed")
        if isinstance(data, str):
            data = data.encode("latin-1", errors="replace")
        if mode is not self._old_mode:
            self._start_section(mode)
        if mode is DumpMode.CTRL:
            self._out.write(data)
        elif mode in (DumpMode.DUMP_IN, DumpMode.DUMP_OUT):
            for byte in data:
                start = self._pos * 3
                self._row[start:start + 2] = b"%02x" % byte
                self._row[_CHAR_COLUMN + self._pos] = _printable(byte)
                self._pos += 1
                if self._pos >= ROW_BYTES:
                    self._flush_row()
        # control messages always start a line of their own
        self._old_mode = DumpMode.NONE if mode is DumpMode.CTRL else mode

    def control(self, text: str) -> None:
        """Write a control message on a line of its own."""
        self.write(DumpMode.CTRL, text)

    def close(self) -> None:
        """Flush the dump and close it if it was opened from a path."""
        if self._closed:
            return
        self._closed = True
        self._out.flush()
        if self._owned:
            self._out.close()