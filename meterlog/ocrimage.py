"""Image operations used by the image recognition meter.

Images are numpy arrays of shape ``(height, width, 3)`` holding 8-bit RGB.
"""

from __future__ import annotations

import logging
import os

import numpy as np
from PIL import Image

from meterlog.common import MeterError
from meterlog.ocrconfig import Autofix

MIN_ROTATE_DEGREES = 0.1
EDGE_THRESHOLD = 40
KERNEL_SIZE = 3

_log = logging.getLogger(__name__)
_LUMINANCE_WEIGHTS = (0.3, 0.5, 0.2)
_WHITE = (255, 255, 255)


def load_image(path: str | os.PathLike[str]) -> np.ndarray:
    """Read an image file as an RGB array."""
    try:
        with Image.open(path) as img:
            return np.array(img.convert("RGB"), dtype=np.uint8)
    except OSError as exc:
        _log.debug("could not read image %s: %s", path, exc)
        raise MeterError(f"cannot read image {path}: {exc}") from exc


def crop(image: np.ndarray, x: int, y: int, width: int, height: int) -> np.ndarray:
    """Copy a ``width`` x ``height`` area starting at ``(x, y)``.

    Parts of the area outside the image are black.
    """
    if width < 0 or height < 0:
        raise ValueError(f"invalid crop size {width}x{height}")
    img_h, img_w = image.shape[:2]
    out = np.zeros((height, width) + image.shape[2:], dtype=image.dtype)
    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = min(x + width, img_w), min(y + height, img_h)
    if x1 > x0 and y1 > y0:
        out[y0 - y:y1 - y, x0 - x:x1 - x] = image[y0:y1, x0:x1]
    return out


def parse_kernel(text: str) -> np.ndarray:
    """Parse a 3x3 colour matrix given as nine numbers, row by row.

    An empty string gives the default matrix that amplifies red only.
    """
    tokens = text.split()
    if not tokens:
        kernel = np.zeros((KERNEL_SIZE, KERNEL_SIZE))
        kernel[0] = (2.0, -1.0, -1.0)
        return kernel
    if len(tokens) != KERNEL_SIZE * KERNEL_SIZE:
        raise MeterError(
            f"colour kernel needs {KERNEL_SIZE * KERNEL_SIZE} values, got {len(tokens)}"
        )
    try:
        values = [float(token) for token in tokens]
    except ValueError as exc:
        raise MeterError(f"invalid colour kernel {text!r}") from exc
    return np.array(values).reshape(KERNEL_SIZE, KERNEL_SIZE)


def multiply_color_matrix(image: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    """Map every pixel through the colour matrix; row i yields channel i."""
    rgb = image[..., :3].astype(np.float64)
    mixed = rgb @ np.asarray(kernel, dtype=np.float64).T
    return np.clip(np.trunc(mixed), 0, 255).astype(np.uint8)


def rotate(image: np.ndarray, degrees: float) -> np.ndarray:
    """Rotate clockwise about the centre, keeping the size and filling white.

    Angles smaller than a tenth of a degree leave the image unchanged.
    """
    if abs(degrees) < MIN_ROTATE_DEGREES:
        return image.copy()
    img = Image.fromarray(image)
    fill = _WHITE if img.mode == "RGB" else 255
    rotated = img.rotate(
        -degrees, resample=Image.Resampling.BICUBIC, expand=False, fillcolor=fill
    )
    return np.array(rotated, dtype=np.uint8)


def _luminance(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image.astype(np.int32)
    r, g, b = (image[..., i].astype(np.float64) for i in range(3))
    wr, wg, wb = _LUMINANCE_WEIGHTS
    return np.floor(wr * r + wg * g + wb * b + 0.5).astype(np.int32)


def _two_sided_edges(gray: np.ndarray, axis: int) -> np.ndarray:
    """Edge strength where the gradient keeps its sign on both sides."""
    g = np.moveaxis(gray, axis, -1)
    out = np.zeros_like(g)
    left = g[..., 1:-1] - g[..., :-2]
    right = g[..., 2:] - g[..., 1:-1]
    strength = np.where(left < 0, -np.maximum(left, right), np.minimum(left, right))
    out[..., 1:-1] = np.where(left * right > 0, strength, 0)
    return np.moveaxis(out, -1, axis)


def _last_on_from_left(row: np.ndarray) -> int:
    off = np.flatnonzero(~row)
    loc = int(off[0]) if off.size else row.size
    return loc - 1


def _last_on_from_bottom(column: np.ndarray) -> int:
    off = np.flatnonzero(~column[::-1])
    loc = column.size - 1 - int(off[0]) if off.size else -1
    return loc + 1


def autofix_detection(image: np.ndarray, autofix: Autofix) -> tuple[int, int] | None:
    """Find how far the image is shifted against the autofix position.

    Searches the square of ``2 * range + 1`` pixels around the autofix
    point for a vertical and a horizontal edge and returns the offset of
    their crossing as ``(dx, dy)``, or None when no crossing is found.
    """
    if autofix.range <= 0:
        return None
    size = 2 * autofix.range + 1
    area = crop(image, autofix.x - autofix.range, autofix.y - autofix.range, size, size)
    gray = _luminance(area)

    on_vertical = _two_sided_edges(gray, axis=1) < EDGE_THRESHOLD
    on_horizontal = _two_sided_edges(gray, axis=0) < EDGE_THRESHOLD

    min_on_x = size
    min_on_y = -1
    for i in range(size):
        min_on_x = min(min_on_x, _last_on_from_left(on_vertical[i, :]))
        min_on_y = max(min_on_y, _last_on_from_bottom(on_horizontal[:, i]))

    if 0 < min_on_x < size and 0 < min_on_y < size:
        dx = min_on_x - autofix.range
        dy = min_on_y - autofix.range
        _log.debug("autofixDetection: dX=%d, dY=%d", dx, dy)
        return dx, dy
    _log.error("autofixDetection: not found!")
    return None