import os
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from meterlog.common import InvalidTypeError, MeterError, OptionNotFoundError
from meterlog.ocr import MeterOCR
from meterlog.ocrconfig import Autofix
from meterlog.reading import StringIdentifier


def _dial(lit=True):
    image = np.zeros((100, 100, 3), dtype=np.uint8)
    if lit:
        yy, xx = np.mgrid[0:100, 0:100]
        image[(xx - 50) ** 2 + (yy - 50) ** 2 <= 16] = (255, 0, 0)
        image[48:53, 50:73] = (255, 0, 0)
    return image


def _write(path, image):
    Image.fromarray(image).save(path, "PNG")
    return str(path)


def _recognizer():
    return [
        {
            "type": "needle",
            "boundingboxes": [
                {
                    "identifier": "needle",
                    "digit": True,
                    "confidence_id": "conf",
                    "circle": {"cx": 50, "cy": 50, "cr": 15},
                }
            ],
        }
    ]


@pytest.fixture
def dial_file(tmp_path):
    return _write(tmp_path / "meter.png", _dial())


def _meter(path, **extra):
    options = {"file": path, "recognizer": _recognizer()}
    options.update(extra)
    return MeterOCR(options)


def test_read_value_and_confidence(dial_file):
    with _meter(dial_file) as meter:
        readings = meter.read(2)
    assert [r.identifier for r in readings] == [
        StringIdentifier("needle"),
        StringIdentifier("conf"),
    ]
    assert readings[0].value == 2
    assert readings[1].value == 100


def test_read_respects_max(dial_file):
    with _meter(dial_file) as meter:
        readings = meter.read(1)
    assert len(readings) == 1
    assert readings[0].identifier == StringIdentifier("needle")


def test_read_zero_max(dial_file):
    with _meter(dial_file) as meter:
        assert meter.read(0) == []


def test_unchanged_file_is_skipped_until_forced(dial_file):
    with _meter(dial_file) as meter:
        first = meter.read(2)
        assert meter.read(2) == []
        meter.set_forced_file_changed()
        again = meter.read(2)
    assert [r.value for r in again] == [r.value for r in first]


def test_changed_file_is_read_again(tmp_path, dial_file):
    with _meter(dial_file) as meter:
        meter.read(2)
        _write(Path(dial_file), _dial())
        os.utime(dial_file, ns=(1, 1))
        assert len(meter.read(2)) == 2


def test_impulses_first_read_empty_then_zero(dial_file):
    with _meter(dial_file, impulses=10) as meter:
        assert meter.read(2) == []
        meter.set_forced_file_changed()
        readings = meter.read(2)
    assert readings[0].value == 0
    assert readings[0].identifier == StringIdentifier("needle")


def test_nan_value_skipped_but_confidence_reported(tmp_path):
    path = _write(tmp_path / "dark.png", _dial(lit=False))
    with _meter(path) as meter:
        readings = meter.read(2)
    assert len(readings) == 1
    assert readings[0].identifier == StringIdentifier("conf")
    assert readings[0].value == 0


def test_unreadable_image_returns_nothing(tmp_path):
    path = tmp_path / "broken.png"
    path.write_bytes(b"not an image")
    with _meter(str(path)) as meter:
        assert meter.read(2) == []


def test_debug_image_written(dial_file):
    with _meter(dial_file, generate_debug_image=True) as meter:
        meter.read(2)
    debug = Path(dial_file + "_debug.jpg")
    assert debug.exists()
    with Image.open(debug) as img:
        assert img.width >= 100


def test_open_missing_file(tmp_path):
    meter = _meter(str(tmp_path / "missing.png"))
    with pytest.raises(MeterError):
        meter.open()


def test_missing_file_option():
    with pytest.raises(OptionNotFoundError):
        MeterOCR({"recognizer": _recognizer()})


def test_missing_recognizer(dial_file):
    with pytest.raises(OptionNotFoundError):
        MeterOCR({"file": dial_file})


def test_empty_recognizer_list(dial_file):
    with pytest.raises(OptionNotFoundError):
        MeterOCR({"file": dial_file, "recognizer": []})


def test_default_recognizer_type_unknown(dial_file):
    with pytest.raises(OptionNotFoundError):
        MeterOCR({"file": dial_file, "recognizer": [{"boundingboxes": [{"identifier": "id1"}]}]})


def test_recognizer_not_a_list(dial_file):
    with pytest.raises(InvalidTypeError):
        MeterOCR({"file": dial_file, "recognizer": {"type": "needle"}})


def test_autofix_parsed(dial_file):
    meter = _meter(dial_file, autofix={"range": 20, "x": 465, "y": 395})
    assert meter.autofix == Autofix(range=20, x=465, y=395)


def test_invalid_autofix_is_ignored(dial_file):
    meter = _meter(dial_file, autofix={"range": 0, "x": 465, "y": 395})
    assert meter.autofix is None


def test_capture_area_spans_recognizers(dial_file):
    meter = _meter(dial_file)
    coords = meter.recognizers[0].capture_coords()
    assert (meter.min_x, meter.min_y, meter.max_x, meter.max_y) == coords