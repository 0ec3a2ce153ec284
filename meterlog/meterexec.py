"""Meter that reads values from the output of a command."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping
from typing import Any

from meterlog.common import MeterError, OptionNotFoundError, lookup_string
from meterlog.lineformat import LineFormat, parse_plain_value
from meterlog.reading import Reading, StringIdentifier

LINE_LIMIT = 255

_log = logging.getLogger(__name__)


class MeterExec:
    """Runs a shell command on each read and parses its output lines."""

    def __init__(self, options: Mapping[str, Any]) -> None:
        try:
            self.command = lookup_string(options, "command")
        except MeterError:
            _log.error("MeterExec: Missing command or invalid type")
            raise
        try:
            self.line_format: LineFormat | None = LineFormat(
                lookup_string(options, "format")
            )
            _log.debug(
                'MeterExec: Parsed format string "%s" => "%s"',
                self.line_format.pattern,
                self.line_format.scanf_format,
            )
        except OptionNotFoundError:
            self.line_format = None

    def __enter__(self) -> MeterExec:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _start(self) -> subprocess.Popen:
        return subprocess.Popen(self.command, shell=True, stdout=subprocess.PIPE)

    def open(self) -> None:
        """Check that the command can be started; refuse to run as root."""
        if hasattr(os, "geteuid") and os.geteuid() == 0:
            _log.error("MeterExec: protocol cannot be run with root privileges!")
            raise MeterError("MeterExec protocol cannot be run with root privileges")
        _log.debug("MeterExec: Executing command line '%s'", self.command)
        try:
            process = self._start()
        except OSError as exc:
            _log.error("MeterExec: popen(%s) failed with: %s", self.command, exc.strerror)
            raise MeterError(f"popen({self.command}): {exc.strerror}") from exc
        process.stdout.close()
        process.wait()

    def close(self) -> None:
        """Nothing stays open between reads."""

    def _parse(self, line: str) -> Reading | None:
        if self.line_format is not None:
            return self.line_format.parse(line)
        value = parse_plain_value(line)
        reading = Reading(
            value=0.0 if value is None else value, identifier=StringIdentifier("")
        )
        reading.set_now()
        return reading

    def read(self, n: int) -> list[Reading]:
        """Run the command and return up to ``n`` readings from its output."""
        _log.debug("MeterExec: Calling '%s'", self.command)
        try:
            process = self._start()
        except OSError as exc:
            _log.warning("MeterExec: popen(%s) failed with: %s", self.command, exc.strerror)
            return []
        readings: list[Reading] = []
        try:
            while len(readings) < n:
                raw = process.stdout.readline(LINE_LIMIT)
                if not raw:
                    break
                reading = self._parse(raw.decode("utf-8", errors="replace"))
                if reading is not None:
                    readings.append(reading)
        finally:
            _log.debug("MeterExec: Closing process '%s'", self.command)
            process.stdout.close()
            process.wait()
        return readings