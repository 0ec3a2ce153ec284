"""Meter that reads values from files and fifos, one per line."""

from __future__ import annotations

import contextlib
import logging
import os
import time
from collections.abc import Mapping
from typing import Any, BinaryIO

from meterlog.common import (
    MeterError,
    OptionNotFoundError,
    lookup_bool,
    lookup_int,
    lookup_string,
)
from meterlog.lineformat import LineFormat, parse_plain_value
from meterlog.reading import Reading, StringIdentifier

LINE_LIMIT = 255
_POLL_SECONDS = 0.05

_log = logging.getLogger(__name__)


def _signature(path: str) -> tuple[int, int, int]:
    info = os.stat(path)
    return info.st_ino, info.st_size, info.st_mtime_ns


class MeterFile:
    """Reads readings from a file.

    With a positive ``interval`` the file is read on every call; otherwise
    each read first waits until the file has changed.
    """

    def __init__(self, options: Mapping[str, Any]) -> None:
        try:
            self.path = lookup_string(options, "path")
        except MeterError:
            _log.error("Missing path or invalid type")
            raise
        try:
            self.line_format: LineFormat | None = LineFormat(
                lookup_string(options, "format")
            )
            _log.debug(
                'Parsed format string "%s" => "%s"',
                self.line_format.pattern,
                self.line_format.scanf_format,
            )
        except OptionNotFoundError:
            self.line_format = None
        try:
            self.rewind = lookup_bool(options, "rewind")
        except OptionNotFoundError:
            self.rewind = False
        try:
            self.interval = lookup_int(options, "interval")
        except OptionNotFoundError:
            self.interval = -1
        self._file: BinaryIO | None = None
        self._watched: tuple[int, int, int] | None = None

    def __enter__(self) -> MeterFile:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        """Open the file, watching it for changes if no interval is set."""
        self._watched = None
        if self.interval <= 0:
            _log.debug('Watching file "%s" for changes', self.path)
            try:
                self._watched = _signature(self.path)
            except OSError as exc:
                _log.error("watch(%s): %s", self.path, exc.strerror)
                self.interval = 1
        try:
            self._file = open(self.path, "rb", buffering=0)
        except OSError as exc:
            _log.error("fopen(%s): %s", self.path, exc.strerror)
            raise MeterError(f"fopen({self.path}): {exc.strerror}") from exc

    def close(self) -> None:
        """Close the file."""
        if self._file is None:
            raise MeterError("meter is not open")
        handle, self._file = self._file, None
        self._watched = None
        handle.close()

    def _wait_for_change(self) -> None:
        while self._watched is not None:
            try:
                current = _signature(self.path)
            except OSError as exc:
                _log.error("watch(%s): %s", self.path, exc.strerror)
                self._watched = None
                self.interval = 1
                return
            if current != self._watched:
                self._watched = current
                return
            time.sleep(_POLL_SECONDS)

    def _parse(self, line: str) -> Reading | None:
        if self.line_format is not None:
            return self.line_format.parse(line)
        value = parse_plain_value(line)
        if value is None:
            return None
        reading = Reading(value=value, identifier=StringIdentifier(""))
        reading.set_now()
        return reading

    def read(self, n: int) -> list[Reading]:
        """Read up to ``n`` readings from the file."""
        if self._file is None:
            raise MeterError("meter is not open")
        self._wait_for_change()
        if self.rewind:
            with contextlib.suppress(OSError):
                self._file.seek(0)
        readings: list[Reading] = []
        while len(readings) < n:
            raw = self._file.readline(LINE_LIMIT)
            if not raw:
                break
            reading = self._parse(raw.decode("utf-8", errors="replace"))
            if reading is not None:
                readings.append(reading)
        return readings