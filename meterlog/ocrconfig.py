"""Configuration of the image recognition meter: bounding boxes and autofix."""

from __future__ import annotations

import enum
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from meterlog.common import MeterError, OptionNotFoundError

MIN_RADIUS = 10

_log = logging.getLogger(__name__)
_MISSING = object()
_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class BoxType(enum.Enum):
    """Shape of a bounding box."""

    BOX = "box"
    CIRCLE = "circle"


@dataclass
class BoundingBox:
    """An area of the image holding one digit or needle.

    ``ac_dx`` and ``ac_dy`` hold the centre correction found by autocentring.
    """

    identifier: str
    conf_id: str = ""
    scaler: int = 0
    digit: bool = False
    box_type: BoxType = BoxType.BOX
    x1: int = -1
    y1: int = -1
    x2: int = -1
    y2: int = -1
    cx: int = -1
    cy: int = -1
    cr: int = -1
    offset: float = 0.0
    autocenter: bool = True
    ac_dx: int = 0
    ac_dy: int = 0


@dataclass(frozen=True)
class Autofix:
    """Area searched for two edges to correct the image position."""

    range: int = 0
    x: int = -1
    y: int = -1


def _get(data: Any, key: str) -> Any:
    if isinstance(data, Mapping) and key in data:
        return data[key]
    return _MISSING


def _as_int(value: Any) -> int:
    if isinstance(value, (bool, int)):
        return int(value)
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        match = _INT_PREFIX.match(value)
        return int(match.group(1)) if match else 0
    return 0


def _as_float(value: Any) -> float:
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, str):
        match = _FLOAT_PREFIX.match(value)
        return float(match.group(1)) if match else 0.0
    return 0.0


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return len(value) > 0
    if isinstance(value, (bool, int, float)):
        return bool(value)
    return False


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def parse_bounding_box(data: Mapping[str, Any]) -> BoundingBox:
    """Build a bounding box from its configuration object."""
    identifier = _get(data, "identifier")
    if identifier is _MISSING:
        raise OptionNotFoundError("boundingbox identifier")
    box = BoundingBox(identifier=_as_str(identifier))

    if (value := _get(data, "confidence_id")) is not _MISSING:
        box.conf_id = _as_str(value)
    if (value := _get(data, "scaler")) is not _MISSING:
        box.scaler = _as_int(value)
    if (value := _get(data, "digit")) is not _MISSING:
        box.digit = _as_bool(value)

    if (rect := _get(data, "box")) is not _MISSING:
        if (value := _get(rect, "x1")) is not _MISSING:
            box.x1 = _as_int(value)
        if (value := _get(rect, "y1")) is not _MISSING:
            box.y1 = _as_int(value)
        if (value := _get(rect, "x2")) is not _MISSING:
            box.x2 = _as_int(value)
            if box.x2 < box.x1:
                raise OptionNotFoundError("boundingbox x2 < x1")
        if (value := _get(rect, "y2")) is not _MISSING:
            box.y2 = _as_int(value)
            if box.y2 < box.y1:
                raise OptionNotFoundError("boundingbox y2 < y1")
    elif (circle := _get(data, "circle")) is not _MISSING:
        box.box_type = BoxType.CIRCLE
        if (value := _get(circle, "cx")) is not _MISSING:
            box.cx = _as_int(value)
        if (value := _get(circle, "cy")) is not _MISSING:
            box.cy = _as_int(value)
        if (value := _get(circle, "cr")) is not _MISSING:
            box.cr = _as_int(value)
        if (value := _get(circle, "offset")) is not _MISSING:
            box.offset = _as_float(value)
            if box.offset < -10.0 or box.offset > 10.0:
                raise MeterError("offset invalid value <0 or >10")
        if box.cx < box.cr or box.cy < box.cr or box.cr < MIN_RADIUS:
            raise OptionNotFoundError("circle cx < cr or cy < cr or cr<10")

    _log.debug(
        "boundingbox <%s>: conf_id=%s, scaler=%d, digit=%d, (%d,%d)-(%d,%d)",
        box.identifier, box.conf_id, box.scaler, int(box.digit),
        box.x1, box.y1, box.x2, box.y2,
    )
    return box


def parse_bounding_boxes(data: Mapping[str, Any]) -> list[BoundingBox]:
    """Read the ``boundingboxes`` of a recognizer, smallest scaler first."""
    boxes = _get(data, "boundingboxes")
    if boxes is _MISSING:
        raise OptionNotFoundError("no boundingboxes given")
    if not isinstance(boxes, list) or not boxes:
        raise OptionNotFoundError("empty boundingboxes given")
    try:
        parsed = [parse_bounding_box(item) for item in boxes]
    except OptionNotFoundError:
        raise
    except MeterError:
        _log.error("Failed to parse 'boundingboxes'")
        raise
    parsed.sort(key=lambda box: box.scaler)
    return parsed


def parse_autofix(data: Mapping[str, Any]) -> Autofix:
    """Read the autofix settings; all three values must be valid."""
    _log.debug("autofix=%s", data)
    range_ = -0
    x = -1
    y = -1
    if (value := _get(data, "range")) is not _MISSING:
        range_ = _as_int(value)
    if (value := _get(data, "x")) is not _MISSING:
        x = _as_int(value)
    if (value := _get(data, "y")) is not _MISSING:
        y = _as_int(value)
    if range_ < 1 or x < range_ or y < range_:
        raise OptionNotFoundError("autofix range < 1 or x < range or y < range")
    return Autofix(range=range_, x=x, y=y)