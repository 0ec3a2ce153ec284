import numpy as np
import pytest
from PIL import Image

from meterlog.common import MeterError
from meterlog.ocrconfig import Autofix
from meterlog.ocrimage import (
    autofix_detection,
    crop,
    load_image,
    multiply_color_matrix,
    parse_kernel,
    rotate,
)


def _gradient_image(height=20, width=30):
    ys, xs = np.mgrid[0:height, 0:width]
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[..., 0] = xs * 5
    img[..., 1] = ys * 7
    img[..., 2] = (xs + ys) % 256
    return img


def test_load_image_round_trip(tmp_path):
    original = _gradient_image()
    path = tmp_path / "meter.png"
    Image.fromarray(original).save(path)
    loaded = load_image(path)
    assert loaded.shape == original.shape
    assert np.array_equal(loaded, original)


def test_load_image_missing_file(tmp_path):
    with pytest.raises(MeterError):
        load_image(tmp_path / "missing.png")


def test_crop_inside_matches_slice():
    img = _gradient_image()
    part = crop(img, 4, 3, 10, 6)
    assert part.shape == (6, 10, 3)
    assert np.array_equal(part, img[3:9, 4:14])


def test_crop_outside_is_black():
    img = _gradient_image()
    part = crop(img, -2, -3, 6, 5)
    assert part.shape == (5, 6, 3)
    assert not part[:3].any()
    assert not part[:, :2].any()
    assert np.array_equal(part[3:, 2:], img[0:2, 0:4])


def test_crop_negative_size_raises():
    with pytest.raises(ValueError):
        crop(_gradient_image(), 0, 0, -1, 4)


def test_parse_kernel_default_amplifies_red():
    kernel = parse_kernel("")
    assert kernel.shape == (3, 3)
    assert kernel[0].tolist() == [2.0, -1.0, -1.0]
    assert not kernel[1:].any()


def test_parse_kernel_identity():
    kernel = parse_kernel("1 0 0 0 1 0 0 0 1 ")
    assert np.array_equal(kernel, np.eye(3))


@pytest.mark.parametrize("text", ["1 2 3", "1 0 0 0 1 0 0 0 x", "1 0 0 0 1 0 0 0 1 1"])
def test_parse_kernel_rejects_bad_input(text):
    with pytest.raises(MeterError):
        parse_kernel(text)


def test_multiply_identity_keeps_image():
    img = _gradient_image()
    assert np.array_equal(multiply_color_matrix(img, np.eye(3)), img)


def test_multiply_default_kernel_detects_red():
    img = np.zeros((2, 2, 3), dtype=np.uint8)
    img[0, 0] = (255, 0, 0)
    img[0, 1] = (0, 255, 0)
    img[1, 0] = (255, 255, 255)
    out = multiply_color_matrix(img, parse_kernel(""))
    assert out[0, 0, 0] == 255
    assert out[0, 1, 0] == 0
    assert out[1, 0, 0] == 0
    assert not out[..., 1:].any()


def test_rotate_tiny_angle_unchanged():
    img = _gradient_image()
    assert np.array_equal(rotate(img, 0.05), img)


def test_rotate_keeps_size():
    img = _gradient_image()
    assert rotate(img, -2.0).shape == img.shape


def test_rotate_quarter_turn_is_clockwise():
    img = np.zeros((40, 40, 3), dtype=np.uint8)
    img[:, :20] = 255
    out = rotate(img, 90.0)
    assert out[5, 20].tolist() == [255, 255, 255]
    assert out[35, 20].tolist() == [0, 0, 0]


def test_autofix_uniform_image_not_found():
    img = np.full((30, 30, 3), 100, dtype=np.uint8)
    assert autofix_detection(img, Autofix(range=5, x=15, y=15)) is None


def test_autofix_disabled_without_range():
    img = np.full((30, 30, 3), 100, dtype=np.uint8)
    assert autofix_detection(img, Autofix()) is None


def test_autofix_finds_crossing_edges():
    col = np.zeros(30, dtype=np.int32)
    col[14] = 60
    col[15:] = 120
    row = np.zeros(30, dtype=np.int32)
    row[16] = 60
    row[17:] = 120
    gray = (row[:, None] + col[None, :]).astype(np.uint8)
    img = np.stack([gray, gray, gray], axis=-1)
    assert autofix_detection(img, Autofix(range=5, x=15, y=15)) == (-2, 2)