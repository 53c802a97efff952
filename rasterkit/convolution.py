"""Convolution, Gaussian blur and Sobel edge detection."""

from __future__ import annotations

import math
from enum import Enum

import numpy as np

from .context import GpuImage, Stream
from .pixel import _allocate, _launch, _luminance, _require_valid, _to_u8


class BorderMode(Enum):
    ZERO = "zero"
    MIRROR = "mirror"
    REPLICATE = "replicate"


SOBEL_X = np.array([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=np.float64)
SOBEL_Y = np.array([[-1, -2, -1], [0, 0, 0], [1, 2, 1]], dtype=np.float64)

_NUMPY_PAD = {
    BorderMode.ZERO: "constant",
    BorderMode.MIRROR: "reflect",
    BorderMode.REPLICATE: "edge",
}


def _check_kernel_size(size: int) -> None:
    if size <= 0 or size % 2 == 0:
        raise ValueError("Kernel size must be a positive odd number")


def _square_kernel(kernel) -> np.ndarray:
    if kernel is None:
        raise ValueError("Kernel is None")
    arr = np.asarray(kernel, dtype=np.float64)
    if arr.ndim == 1:
        size = math.isqrt(arr.size)
        if size * size != arr.size:
            raise ValueError("Flat kernel length must be a perfect square")
        arr = arr.reshape(size, size)
    if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
        raise ValueError("Kernel must be square")
    _check_kernel_size(arr.shape[0])
    return arr


def _line_kernel(kernel) -> np.ndarray:
    if kernel is None:
        raise ValueError("Kernel is None")
    arr = np.asarray(kernel, dtype=np.float64).ravel()
    _check_kernel_size(arr.size)
    return arr


def _correlate(src: np.ndarray, kernel: np.ndarray, mode: BorderMode) -> np.ndarray:
    """Slide ``kernel`` over an (h, w, c) float array with the given border handling."""
    ry, rx = kernel.shape[0] // 2, kernel.shape[1] // 2
    h, w = src.shape[:2]
    padded = np.pad(src, ((ry, ry), (rx, rx), (0, 0)), mode=_NUMPY_PAD[mode])
    out = np.zeros(src.shape, dtype=np.float64)
    for (i, j), weight in np.ndenumerate(kernel):
        if weight:
            out += weight * padded[i : i + h, j : j + w]
    return out


def gaussian_kernel_1d(size: int, sigma: float) -> np.ndarray:
    """A normalised 1-D Gaussian of odd length ``size``."""
    _check_kernel_size(size)
    if sigma <= 0:
        raise ValueError("Sigma must be positive")
    offsets = np.arange(size, dtype=np.float64) - size // 2
    weights = np.exp(-(offsets**2) / (2.0 * sigma * sigma))
    return weights / weights.sum()


def gaussian_kernel(size: int, sigma: float) -> np.ndarray:
    """A normalised ``size`` x ``size`` Gaussian."""
    line = gaussian_kernel_1d(size, sigma)
    return np.outer(line, line)


def convolve(
    image: GpuImage,
    kernel,
    border_mode: BorderMode | str = BorderMode.ZERO,
    stream: Stream | None = None,
) -> GpuImage:
    """Filter every channel with a square odd-sized kernel."""
    _require_valid(image)
    weights = _square_kernel(kernel)
    mode = BorderMode(border_mode)
    output = _allocate(image.width, image.height, image.channels)
    src, dst = image.pixels(), output.pixels()

    def run() -> None:
        dst[...] = _to_u8(_correlate(src.astype(np.float64), weights, mode))

    _launch(stream, run)
    return output


def separable_convolve(
    image: GpuImage, row_kernel, col_kernel, stream: Stream | None = None
) -> GpuImage:
    """Filter with a horizontal kernel and then a vertical one of the same length."""
    _require_valid(image)
    row = _line_kernel(row_kernel)
    col = _line_kernel(col_kernel)
    if row.size != col.size:
        raise ValueError("Row and column kernels must have the same size")
    output = _allocate(image.width, image.height, image.channels)
    src, dst = image.pixels(), output.pixels()

    def run() -> None:
        horizontal = _correlate(src.astype(np.float64), row[None, :], BorderMode.REPLICATE)
        dst[...] = _to_u8(_correlate(horizontal, col[:, None], BorderMode.REPLICATE))

    _launch(stream, run)
    return output


def gaussian_blur(
    image: GpuImage,
    kernel_size: int = 5,
    sigma: float = 1.0,
    stream: Stream | None = None,
) -> GpuImage:
    _require_valid(image)
    line = gaussian_kernel_1d(kernel_size, sigma)
    return separable_convolve(image, line, line, stream)


def sobel_edge_detection(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    """Gradient magnitude as a single-channel image."""
    _require_valid(image)
    output = _allocate(image.width, image.height, 1)
    src, dst = image.pixels(), output.pixels()

    def run() -> None:
        if src.shape[2] == 1:
            gray = src.astype(np.float64)
        else:
            gray = _luminance(src)[..., None]
        gx = _correlate(gray, SOBEL_X, BorderMode.REPLICATE)
        gy = _correlate(gray, SOBEL_Y, BorderMode.REPLICATE)
        dst[...] = _to_u8(np.hypot(gx, gy))

    _launch(stream, run)
    return output