"""Geometric transforms: rotation, flips, warps, cropping, padding and resizing."""

from __future__ import annotations

import math
from enum import Enum
from typing import Callable

import numpy as np

from .context import GpuImage, Stream
from .pixel import _allocate, _launch, _require_valid, _to_u8

_EPS = 1e-4

Mapping = Callable[[np.ndarray, np.ndarray], "tuple[np.ndarray, np.ndarray]"]


class FlipDirection(Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    BOTH = "both"


def _bilinear(src: np.ndarray, sx: np.ndarray, sy: np.ndarray) -> np.ndarray:
    """Sample an (h, w, c) float array at source coordinates; outside points are 0."""
    h, w = src.shape[:2]
    finite = np.isfinite(sx) & np.isfinite(sy)
    sx = np.where(finite, sx, 0.0)
    sy = np.where(finite, sy, 0.0)
    inside = (
        finite
        & (sx >= -_EPS)
        & (sx <= w - 1 + _EPS)
        & (sy >= -_EPS)
        & (sy <= h - 1 + _EPS)
    )
    sx = np.clip(sx, 0, w - 1)
    sy = np.clip(sy, 0, h - 1)
    x0 = np.floor(sx).astype(np.intp)
    y0 = np.floor(sy).astype(np.intp)
    x1 = np.minimum(x0 + 1, w - 1)
    y1 = np.minimum(y0 + 1, h - 1)
    fx = (sx - x0)[..., None]
    fy = (sy - y0)[..., None]
    top = src[y0, x0] * (1 - fx) + src[y0, x1] * fx
    bottom = src[y1, x0] * (1 - fx) + src[y1, x1] * fx
    values = top * (1 - fy) + bottom * fy
    values[~inside] = 0
    return values


def _warp(
    image: GpuImage,
    out_width: int,
    out_height: int,
    mapping: Mapping,
    stream: Stream | None,
) -> GpuImage:
    """Fill an output image by mapping each output pixel back into ``image``."""
    if out_width <= 0 or out_height <= 0:
        raise ValueError("Output dimensions must be positive")
    output = _allocate(out_width, out_height, image.channels)
    src, dst = image.pixels(), output.pixels()

    def run() -> None:
        ys, xs = np.mgrid[0:out_height, 0:out_width].astype(np.float64)
        sx, sy = mapping(xs, ys)
        dst[...] = _to_u8(_bilinear(src.astype(np.float64), sx, sy))

    _launch(stream, run)
    return output


def _bounding(extent: float) -> int:
    return max(1, math.ceil(round(extent, 6)))


def rotate(
    image: GpuImage, angle_degrees: float, stream: Stream | None = None
) -> GpuImage:
    """Rotate clockwise about the centre; the output grows to hold the whole image."""
    _require_valid(image)
    theta = math.radians(angle_degrees)
    cos, sin = math.cos(theta), math.sin(theta)
    w, h = image.width, image.height
    out_w = _bounding(w * abs(cos) + h * abs(sin))
    out_h = _bounding(w * abs(sin) + h * abs(cos))
    cx, cy = (w - 1) / 2, (h - 1) / 2
    ocx, ocy = (out_w - 1) / 2, (out_h - 1) / 2

    def mapping(xs, ys):
        dx, dy = xs - ocx, ys - ocy
        return cos * dx + sin * dy + cx, -sin * dx + cos * dy + cy

    return _warp(image, out_w, out_h, mapping, stream)


def rotate90(image: GpuImage, times: int = 1, stream: Stream | None = None) -> GpuImage:
    """Rotate clockwise by ``times`` quarter turns."""
    _require_valid(image)
    turns = times % 4
    if turns % 2:
        out_w, out_h = image.height, image.width
    else:
        out_w, out_h = image.width, image.height
    output = _allocate(out_w, out_h, image.channels)
    src, dst = image.pixels(), output.pixels()

    def run() -> None:
        dst[...] = np.rot90(src, k=-turns, axes=(0, 1))

    _launch(stream, run)
    return output


def flip(
    image: GpuImage, direction: FlipDirection | str, stream: Stream | None = None
) -> GpuImage:
    _require_valid(image)
    direction = FlipDirection(direction)
    output = _allocate(image.width, image.height, image.channels)
    src, dst = image.pixels(), output.pixels()
    if direction is FlipDirection.HORIZONTAL:
        view = src[:, ::-1]
    elif direction is FlipDirection.VERTICAL:
        view = src[::-1]
    else:
        view = src[::-1, ::-1]

    def run() -> None:
        dst[...] = view

    _launch(stream, run)
    return output


def _matrix(matrix, count: int) -> np.ndarray:
    if matrix is None:
        raise ValueError("Transform matrix is None")
    values = np.asarray(matrix, dtype=np.float64).ravel()
    if values.size != count:
        raise ValueError(f"Transform matrix must have {count} elements")
    return values


def affine_transform(
    image: GpuImage,
    matrix,
    output_width: int,
    output_height: int,
    stream: Stream | None = None,
) -> GpuImage:
    """Warp by the 2x3 matrix [a, b, tx, c, d, ty] mapping input to output."""
    _require_valid(image)
    a, b, tx, c, d, ty = _matrix(matrix, 6)
    det = a * d - b * c
    if abs(det) < 1e-12:
        raise ValueError("Affine matrix is singular")

    def mapping(xs, ys):
        px, py = xs - tx, ys - ty
        return (d * px - b * py) / det, (-c * px + a * py) / det

    return _warp(image, output_width, output_height, mapping, stream)


def perspective_transform(
    image: GpuImage,
    matrix,
    output_width: int,
    output_height: int,
    stream: Stream | None = None,
) -> GpuImage:
    """Warp by a 3x3 homography mapping input to output."""
    _require_valid(image)
    forward = _matrix(matrix, 9).reshape(3, 3)
    try:
        inverse = np.linalg.inv(forward)
    except np.linalg.LinAlgError as exc:
        raise ValueError("Perspective matrix is singular") from exc

    def mapping(xs, ys):
        with np.errstate(divide="ignore", invalid="ignore"):
            denom = inverse[2, 0] * xs + inverse[2, 1] * ys + inverse[2, 2]
            sx = (inverse[0, 0] * xs + inverse[0, 1] * ys + inverse[0, 2]) / denom
            sy = (inverse[1, 0] * xs + inverse[1, 1] * ys + inverse[1, 2]) / denom
        return sx, sy

    return _warp(image, output_width, output_height, mapping, stream)


def crop(
    image: GpuImage,
    x: int,
    y: int,
    width: int,
    height: int,
    stream: Stream | None = None,
) -> GpuImage:
    _require_valid(image)
    if width <= 0 or height <= 0:
        raise ValueError("Crop dimensions must be positive")
    if x < 0 or y < 0 or x + width > image.width or y + height > image.height:
        raise ValueError("Crop region lies outside the image")
    output = _allocate(width, height, image.channels)
    src, dst = image.pixels(), output.pixels()

    def run() -> None:
        dst[...] = src[y : y + height, x : x + width]

    _launch(stream, run)
    return output


def pad(
    image: GpuImage,
    top: int,
    bottom: int,
    left: int,
    right: int,
    pad_value: int = 0,
    stream: Stream | None = None,
) -> GpuImage:
    """Surround the image with borders filled with ``pad_value``."""
    _require_valid(image)
    if min(top, bottom, left, right) < 0:
        raise ValueError("Padding must not be negative")
    if not 0 <= pad_value <= 255:
        raise ValueError("Pad value must be in 0..255")
    w, h = image.width, image.height
    output = _allocate(w + left + right, h + top + bottom, image.channels)
    src, dst = image.pixels(), output.pixels()

    def run() -> None:
        dst[...] = pad_value
        dst[top : top + h, left : left + w] = src

    _launch(stream, run)
    return output


def resize(
    image: GpuImage, new_width: int, new_height: int, stream: Stream | None = None
) -> GpuImage:
    """Bilinear resize with pixel centres aligned."""
    _require_valid(image)
    if new_width <= 0 or new_height <= 0:
        raise ValueError("Target dimensions must be positive")
    w, h = image.width, image.height
    scale_x, scale_y = w / new_width, h / new_height

    def mapping(xs, ys):
        sx = np.clip((xs + 0.5) * scale_x - 0.5, 0, w - 1)
        sy = np.clip((ys + 0.5) * scale_y - 0.5, 0, h - 1)
        return sx, sy

    return _warp(image, new_width, new_height, mapping, stream)


def resize_by_scale(
    image: GpuImage, scale_x: float, scale_y: float, stream: Stream | None = None
) -> GpuImage:
    _require_valid(image)
    if scale_x <= 0 or scale_y <= 0:
        raise ValueError("Scale factors must be positive")
    return resize(image, int(image.width * scale_x), int(image.height * scale_y), stream)