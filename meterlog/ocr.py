"""Meter that reads values from images by recognizing needles and lights."""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Mapping
from typing import Any

import numpy as np
from PIL import Image

from meterlog.common import (
    InvalidTypeError,
    MeterError,
    OptionNotFoundError,
    lookup_bool,
    lookup_float,
    lookup_int,
    lookup_string,
)
from meterlog.ocrconfig import Autofix, parse_autofix
from meterlog.ocrimage import MIN_ROTATE_DEGREES, autofix_detection, load_image, rotate
from meterlog.ocrmath import calc_impulses
from meterlog.ocrrecognizers import Reads, Recognizer, RecognizerBinary, RecognizerNeedle
from meterlog.reading import Reading, StringIdentifier

_TILE_SPACING = 1
_JPEG_QUALITY = 100
_RECOGNIZERS = {"needle": RecognizerNeedle, "binary": RecognizerBinary}

_log = logging.getLogger(__name__)


def _signature(path: str) -> tuple[int, int, int]:
    info = os.stat(path)
    return info.st_ino, info.st_size, info.st_mtime_ns


def _save_tiled(images: list[np.ndarray], path: str) -> None:
    images = [img for img in images if img.size]
    if not images:
        return
    height = sum(img.shape[0] for img in images) + _TILE_SPACING * (len(images) - 1)
    width = max(img.shape[1] for img in images)
    canvas = np.full((height, width, 3), 255, dtype=np.uint8)
    top = 0
    for img in images:
        h, w = img.shape[:2]
        canvas[top:top + h, :w] = img[..., :3]
        top += h + _TILE_SPACING
    _save_jpeg(canvas, path)


def _save_jpeg(image: np.ndarray, path: str) -> None:
    try:
        Image.fromarray(image).save(path, "JPEG", quality=_JPEG_QUALITY)
    except OSError as exc:
        _log.error("couldn't open debug file %s: %s", path, exc)


class MeterOCR:
    """Reads meter values from an image file that is updated from outside."""

    def __init__(self, options: Mapping[str, Any]) -> None:
        try:
            device = lookup_string(options, "v4l2_dev")
        except MeterError:
            device = ""
        if device:
            raise MeterError("video capture devices are not supported")
        try:
            self.file = lookup_string(options, "file")
        except MeterError:
            _log.error("Missing image file name")
            raise

        self.generate_debug_image = False
        try:
            self.generate_debug_image = lookup_bool(options, "generate_debug_image")
        except OptionNotFoundError:
            pass
        except MeterError:
            _log.error("Failed to parse 'generate_debug_image'")
            raise

        self.impulses = 0
        try:
            self.impulses = lookup_int(options, "impulses")
        except OptionNotFoundError:
            pass
        except MeterError:
            _log.error("Failed to parse 'impulses'")
            raise

        self.rotate = 0.0
        try:
            self.rotate = lookup_float(options, "rotate")
        except OptionNotFoundError:
            pass
        except MeterError:
            _log.error("Invalid type for 'rotate'")
            raise

        self.autofix = self._parse_autofix(options)
        self.recognizers = self._parse_recognizers(options)
        for recognizer in self.recognizers:
            recognizer.collect_debug = self.generate_debug_image
        coords = [r.capture_coords() for r in self.recognizers]
        self.min_x = min(c[0] for c in coords)
        self.min_y = min(c[1] for c in coords)
        self.max_x = max(c[2] for c in coords)
        self.max_y = max(c[3] for c in coords)

        self._last_reads: dict[str, Reads] | None = None
        self._forced_file_changed = True
        self._watched: tuple[int, int, int] | None = None

    @staticmethod
    def _parse_autofix(options: Mapping[str, Any]) -> Autofix | None:
        if "autofix" not in options:
            return None
        data = options["autofix"]
        if not isinstance(data, Mapping):
            _log.error("Failed to parse 'autofix'")
            raise InvalidTypeError("option 'autofix' is not an object")
        try:
            return parse_autofix(data)
        except OptionNotFoundError:
            return None  # autofix is optional

    @staticmethod
    def _parse_recognizers(options: Mapping[str, Any]) -> list[Recognizer]:
        if "recognizer" not in options:
            raise OptionNotFoundError("no recognizer given")
        items = options["recognizer"]
        if not isinstance(items, list):
            _log.error("Failed to parse 'recognizer'")
            raise InvalidTypeError("option 'recognizer' is not an array")
        if not items:
            raise OptionNotFoundError("no recognizer given")
        recognizers = []
        for item in items:
            kind = "tesseract"
            if isinstance(item, Mapping) and "type" in item:
                kind = str(item["type"])
            factory = _RECOGNIZERS.get(kind)
            if factory is None:
                raise OptionNotFoundError("recognizer type unknown!")
            recognizers.append(factory(item))
        return recognizers

    def __enter__(self) -> MeterOCR:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        """Start watching the image file and check that it can be read."""
        try:
            self._watched = _signature(self.file)
        except OSError:
            self._watched = None
        try:
            with open(self.file, "rb"):
                pass
        except OSError as exc:
            _log.error("fopen(%s): %s", self.file, exc.strerror)
            raise MeterError(f"fopen({self.file}): {exc.strerror}") from exc

    def close(self) -> None:
        """Stop watching the image file."""
        self._watched = None

    def set_forced_file_changed(self) -> None:
        """Make the next read process the image even if it has not changed."""
        self._forced_file_changed = True

    def _file_changed(self) -> bool:
        if self._watched is None:
            return True
        try:
            current = _signature(self.file)
        except OSError:
            return False
        if current != self._watched:
            self._watched = current
            return True
        return False

    def read(self, max_reads: int) -> list[Reading]:
        """Recognize the current image and return up to ``max_reads`` readings.

        With ``impulses`` set, the readings are impulse counts since the last
        successful read, and the first read returns nothing.
        """
        if max_reads < 1:
            return []
        if not self._file_changed() and not self._forced_file_changed:
            return []
        self._forced_file_changed = False

        try:
            image = load_image(self.file)
        except MeterError:
            return []
        _log.info("image = %d x %d", image.shape[1], image.shape[0])

        if abs(self.rotate) >= MIN_ROTATE_DEGREES:
            image = rotate(image, self.rotate)
        debug_images = [image.copy()] if self.generate_debug_image else []

        dx = dy = 0
        if self.autofix is not None:
            offset = autofix_detection(image, self.autofix)
            if offset is not None:
                dx, dy = offset

        readings: dict[str, Reads] = {}
        for recognizer in self.recognizers:
            recognizer.recognize(image, dx, dy, readings, self._last_reads)
            debug_images.extend(recognizer.debug_images)

        if debug_images:
            _save_tiled(debug_images, f"{self.file}_debug.jpg")

        result, was_nan = self._collect(readings, max_reads, image)

        self._last_reads = None if was_nan else readings
        return result

    def _collect(
        self, readings: dict[str, Reads], max_reads: int, image: np.ndarray
    ) -> tuple[list[Reading], bool]:
        result: list[Reading] = []
        was_nan = False
        if self.impulses and self._last_reads is None:
            return result, was_nan  # first read yields no impulses
        for identifier, reads in sorted(readings.items()):
            if not math.isnan(reads.value):
                if self.impulses:
                    old = self._last_reads.setdefault(identifier, Reads())
                    value = float(calc_impulses(reads.value, old.value, self.impulses))
                    _log.debug(
                        "returning: id <%s> impulses <%d> (abs value: %f)",
                        identifier, value, reads.value,
                    )
                    if value < 0 and self.generate_debug_image:
                        _save_jpeg(image, f"{self.file}_debug_{reads.value:g}.jpg")
                else:
                    value = reads.value
                    _log.debug("returning: id <%s> value <%f>", identifier, value)
                result.append(self._reading(value, identifier))
                if len(result) >= max_reads:
                    break
            else:
                was_nan = True
            if reads.conf_id:
                result.append(self._reading(float(reads.min_conf), reads.conf_id))
                if len(result) >= max_reads:
                    break
        return result, was_nan

    @staticmethod
    def _reading(value: float, identifier: str) -> Reading:
        reading = Reading(value=value, identifier=StringIdentifier(identifier))
        reading.set_now()
        return reading