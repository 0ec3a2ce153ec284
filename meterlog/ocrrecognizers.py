"""Recognizers that turn areas of a meter image into readings.

Images are numpy arrays of shape ``(height, width, 3)`` holding 8-bit RGB.
Pixels are compared as packed ``0xRRGGBBAA`` values with an alpha of zero.
Readings are collected per identifier in a dict of :class:`Reads`.
"""

from __future__ import annotations

import abc
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import numpy as np

from meterlog.common import MeterError, OptionNotFoundError
from meterlog.ocrconfig import BoundingBox, BoxType, parse_bounding_boxes
from meterlog.ocrimage import crop, multiply_color_matrix, parse_kernel
from meterlog.ocrmath import debounce, round_based_on_smaller_digits

RED_COLOR_LIMIT = 0x80000000
FULL_CONFIDENCE = 100
AUTOCENTER_MAX_REDO = 3
EDGE_HIGH = 70
EDGE_LOW = 30

_GREEN = 0x00FF0000
_RED = 0xFF000000
_BLUE = 0x0000FF00
_WHITE = 0xFFFFFF00
_RAD = math.pi / 180

_log = logging.getLogger(__name__)


@dataclass
class Reads:
    """Value being assembled for one identifier, with its lowest confidence."""

    value: float = 0.0
    min_conf: int = FULL_CONFIDENCE
    conf_id: str = ""


def _cdiv(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b > 0) else -quotient


def _pixel(image: np.ndarray, x: int, y: int) -> int:
    height, width = image.shape[:2]
    if not (0 <= x < width and 0 <= y < height):
        return 0
    r, g, b = (int(c) for c in image[y, x, :3])
    return (r << 24) | (g << 16) | (b << 8)


def _set_pixel(image: np.ndarray, x: int, y: int, color: int) -> None:
    height, width = image.shape[:2]
    if 0 <= x < width and 0 <= y < height:
        image[y, x, :3] = ((color >> 24) & 0xFF, (color >> 16) & 0xFF, (color >> 8) & 0xFF)


def _kernel_from(data: Mapping[str, Any]) -> np.ndarray:
    text = data.get("kernelColorString", "") if isinstance(data, Mapping) else ""
    if not isinstance(text, str):
        raise MeterError("kernelColorString must be a string")
    return parse_kernel(text)


class Recognizer(abc.ABC):
    """Base of all recognizers: a set of bounding boxes and the area they span."""

    def __init__(self, kind: str, data: Mapping[str, Any]) -> None:
        self.kind = kind
        self.boxes: list[BoundingBox] = parse_bounding_boxes(data)
        self.min_x = 0
        self.min_y = 0
        self.max_x = 0
        self.max_y = 0
        self.collect_debug = False
        self.debug_images: list[np.ndarray] = []

    def capture_coords(self) -> tuple[int, int, int, int]:
        """The area of the image this recognizer needs: min x, min y, max x, max y."""
        return self.min_x, self.min_y, self.max_x, self.max_y

    def _debug(self, image: np.ndarray) -> None:
        if self.collect_debug:
            self.debug_images.append(image.copy())

    def _prepare(self, image: np.ndarray, dx: int, dy: int, kernel: np.ndarray) -> np.ndarray:
        self.debug_images = []
        _log.debug(
            "Cropping image to (%d,%d)-(%d,%d)", self.min_x, self.min_y, self.max_x, self.max_y
        )
        work = crop(
            image, self.min_x + dx, self.min_y + dy,
            self.max_x - self.min_x, self.max_y - self.min_y,
        )
        self._debug(work)
        work = multiply_color_matrix(work, kernel)
        self._debug(work)
        return work

    @abc.abstractmethod
    def recognize(
        self,
        image: np.ndarray | None,
        dx: int,
        dy: int,
        readings: dict[str, Reads],
        old_readings: Mapping[str, Reads] | None,
    ) -> bool:
        """Add what is recognized in ``image`` to ``readings``."""


class RecognizerNeedle(Recognizer):
    """Reads the position of red needles on round dials."""

    def __init__(self, data: Mapping[str, Any]) -> None:
        super().__init__("needle", data)
        self.kernel = _kernel_from(data)
        bounds = []
        for box in self.boxes:
            if box.box_type is not BoxType.CIRCLE:
                raise OptionNotFoundError("boundingbox without circle")
            r = box.cr * 2 if box.autocenter else box.cr  # border for autocentring
            bounds.append((box.cx - r, box.cy - r, box.cx + r, box.cy + r))
        self.min_x = min(b[0] for b in bounds)
        self.min_y = min(b[1] for b in bounds)
        self.max_x = max(b[2] for b in bounds)
        self.max_y = max(b[3] for b in bounds)

    def recognize(self, image, dx, dy, readings, old_readings):
        """Read each dial; a dial whose needle is not found yields NaN."""
        if image is None:
            return False
        work = self._prepare(image, dx, dy, self.kernel)
        for box in self.boxes:
            conf, deg_from, deg_to, deg_avg = self._scan_box(work, box)
            reads = readings.setdefault(box.identifier, Reads())
            if box.conf_id:
                reads.conf_id = box.conf_id
            if conf:
                self._add_digit(box, reads, conf, deg_from, deg_to, deg_avg, old_readings)
            else:
                reads.value = math.nan
                reads.min_conf = 0
        self._debug(work)
        return True

    def _add_digit(self, box, reads, conf, deg_from, deg_to, deg_avg, old_readings):
        nr = int(box.offset + _cdiv(deg_avg, 36))
        if nr < 0:
            nr += 10
        if nr > 9:
            nr -= 10
        fnr = box.offset + (deg_from + deg_to) / 72
        if fnr < 0:
            fnr += 10.0
        if fnr > 10.0:
            fnr -= 10.0
        scale = 10.0 ** box.scaler
        if not box.digit:
            smaller = math.modf(reads.value / scale)[0]
            nr, conf = round_based_on_smaller_digits(nr, fnr, smaller, conf)
        elif old_readings is not None and box.identifier in old_readings:
            old = old_readings[box.identifier]
            prev_digit = round(math.modf(old.value / (10.0 ** (box.scaler + 1)))[0] * 10)
            nr = debounce(prev_digit, fnr)
        reads.value += nr * scale
        if conf < reads.min_conf:
            reads.min_conf = conf

    def _scan_box(self, work: np.ndarray, box: BoundingBox) -> tuple[int, int, int, int]:
        redo_count = 0
        while True:
            redo = False
            cx = box.cx + box.ac_dx - self.min_x
            cy = box.cy + box.ac_dy - self.min_y
            conf = FULL_CONFIDENCE
            if box.autocenter:
                if _pixel(work, cx, cy) < RED_COLOR_LIMIT:
                    _log.error("recognizerNeedle center not red!")
                    return 0, -1, -1, -1
            elif any(
                _pixel(work, x, y) < RED_COLOR_LIMIT
                for x in range(cx - 1, cx + 2)
                for y in range(cy - 1, cy + 2)
            ):
                _log.error("recognizerNeedle center not red!")
                conf = 0
            deg_from = deg_to = deg_avg = -1
            if conf > 0:
                _set_pixel(work, cx, cy, _GREEN)
                deg_from, deg_to = self._scan_circle(work, box, cx, cy)
                deg_avg = _cdiv(deg_from + deg_to, 2)
                if deg_to < 0:
                    conf = 0
                elif box.autocenter and self._autocenter(work, box, cx, cy, deg_avg):
                    redo_count += 1
                    redo = True
            if not (redo and redo_count < AUTOCENTER_MAX_REDO):
                return conf, deg_from, deg_to, deg_avg

    @staticmethod
    def _scan_circle(work: np.ndarray, box: BoundingBox, cx: int, cy: int) -> tuple[int, int]:
        deg_from = deg_to = -1
        last = (-1, -1)
        wrap = False
        for deg in range(360):
            px = int(cx + box.cr * math.sin(deg * _RAD))
            py = int(cy - box.cr * math.cos(deg * _RAD))
            if (px, py) == last:
                continue  # don't scan the same pixel twice
            if _pixel(work, px, py) > RED_COLOR_LIMIT:
                if deg == 0:
                    wrap = True
                if wrap:  # needle around 0 degrees
                    if deg < 180:
                        deg_to = deg
                    elif deg - 360 < deg_from:
                        deg_from = deg - 360
                else:
                    if deg_from < 0:
                        deg_from = deg
                    deg_to = deg
                _set_pixel(work, px, py, _RED)
            else:
                _set_pixel(work, px, py, _BLUE)
            last = (px, py)
        return deg_from, deg_to

    @staticmethod
    def _autocenter(work: np.ndarray, box: BoundingBox, cx: int, cy: int, deg_avg: int) -> bool:
        """Move the centre so the needle base is equally far from it all round."""
        radii = []
        for deg in range(deg_avg + 90, deg_avg + 360, 90):
            found = 0
            last = (-1, -1)
            for r in range(box.cr - 1, 0, -1):
                px = int(cx + r * math.sin(deg * _RAD))
                py = int(cy - r * math.cos(deg * _RAD))
                if (px, py) != last:
                    if _pixel(work, px, py) > RED_COLOR_LIMIT:
                        found = r
                        break
                    last = (px, py)
            if not found:
                break
            radii.append(found)
            _log.debug("scanning at %d: r=%d", deg, found)
        if len(radii) < 3:
            _log.error("couldn't autocenter!")
            return False
        half = (radii[0] + radii[2]) / 2.0
        ndx = (radii[0] - half) * math.sin((deg_avg + 90) * _RAD)
        ndy = -(radii[0] - half) * math.cos((deg_avg + 90) * _RAD)
        ndx += (radii[1] - half) * math.sin((deg_avg + 180) * _RAD)
        ndy += -(radii[1] - half) * math.cos((deg_avg + 180) * _RAD)
        _log.debug("ndx=%f ndy=%f", ndx, ndy)
        _set_pixel(work, cx + round(ndx), cy + round(ndy), _WHITE)
        if abs(ndx) > 1.0 or abs(ndy) > 1.0:
            box.ac_dx += round(ndx)
            box.ac_dy += round(ndy)
            return True
        return False


class RecognizerBinary(Recognizer):
    """Detects a light going on and off in one box and reports each switch-on."""

    def __init__(self, data: Mapping[str, Any]) -> None:
        super().__init__("binary", data)
        self.kernel = _kernel_from(data)
        if len(self.boxes) != 1:
            raise OptionNotFoundError("Recognizer binary just needs exactly one boundingbox")
        box = self.boxes[0]
        if box.box_type is not BoxType.BOX:
            raise OptionNotFoundError("boundingbox without box")
        self.min_x, self.min_y, self.max_x, self.max_y = box.x1, box.y1, box.x2, box.y2
        self.last_state = False
        self.max_value = 0

    def recognize(self, image, dx, dy, readings, old_readings):
        """Set the value to 1 for a box whose light has just switched on."""
        if image is None:
            return False
        work = self._prepare(image, dx, dy, self.kernel)
        for box in self.boxes:
            cx = box.x1 - self.min_x
            cy = box.y1 - self.min_y
            w = max(box.x2 - box.x1, 1)
            h = max(box.y2 - box.y1, 1)
            samples = max(h - cy, 0) * max(w - cx, 0)
            value = (_pixel(work, cx, cy) >> 24) * samples // (w * h)
            self.max_value = max(self.max_value, value)
            _log.debug("recognizerBinary detected maxval = %d val=%d", self.max_value, value)
            if not self.last_state:
                new_state = value > EDGE_HIGH
            else:
                new_state = not value < EDGE_LOW
            if new_state != self.last_state:
                if new_state:
                    readings.setdefault(box.identifier, Reads()).value = 1
                    _log.info("recognizerBinary detected impulse val=%d", value)
                self.last_state = new_state
        self._debug(work)
        return True