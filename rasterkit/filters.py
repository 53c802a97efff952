"""Neighbourhood filters: median, bilateral, box, sharpen and Laplacian."""

from __future__ import annotations

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .context import GpuImage, Stream
from .convolution import BorderMode, _check_kernel_size, _correlate
from .pixel import _allocate, _launch, _require_valid, _to_u8

_CROSS = np.array([[0, 1, 0], [1, 0, 1], [0, 1, 0]], dtype=np.float64)
_LAPLACIAN = np.array([[0, 1, 0], [1, -4, 1], [0, 1, 0]], dtype=np.float64)


def _edge_padded(src: np.ndarray, radius: int) -> np.ndarray:
    return np.pad(src, ((radius, radius), (radius, radius), (0, 0)), mode="edge")


def _filtered(image: GpuImage, compute, stream: Stream | None) -> GpuImage:
    """Allocate an output like ``image`` and fill it with ``compute(src)``."""
    output = _allocate(image.width, image.height, image.channels)
    src, dst = image.pixels(), output.pixels()

    def run() -> None:
        dst[...] = compute(src)

    _launch(stream, run)
    return output


def median_filter(
    image: GpuImage, kernel_size: int = 3, stream: Stream | None = None
) -> GpuImage:
    """Replace each sample by the median of its square neighbourhood, per channel."""
    _require_valid(image)
    _check_kernel_size(kernel_size)
    radius = kernel_size // 2

    def compute(src: np.ndarray) -> np.ndarray:
        windows = sliding_window_view(
            _edge_padded(src, radius), (kernel_size, kernel_size), axis=(0, 1)
        )
        return _to_u8(np.median(windows, axis=(-2, -1)))

    return _filtered(image, compute, stream)


def bilateral_filter(
    image: GpuImage,
    kernel_size: int = 5,
    sigma_space: float = 10.0,
    sigma_color: float = 50.0,
    stream: Stream | None = None,
) -> GpuImage:
    """Edge-preserving smoothing weighted by distance and colour difference."""
    _require_valid(image)
    _check_kernel_size(kernel_size)
    if sigma_space <= 0 or sigma_color <= 0:
        raise ValueError("Sigma values must be positive")
    radius = kernel_size // 2
    space_denom = 2.0 * sigma_space * sigma_space
    color_denom = 2.0 * sigma_color * sigma_color

    def compute(src: np.ndarray) -> np.ndarray:
        centre = src.astype(np.float64)
        padded = _edge_padded(centre, radius)
        h, w = centre.shape[:2]
        total = np.zeros_like(centre)
        weights = np.zeros(centre.shape[:2] + (1,), dtype=np.float64)
        for dy in range(-radius, radius + 1):
            for dx in range(-radius, radius + 1):
                neighbour = padded[radius + dy : radius + dy + h, radius + dx : radius + dx + w]
                spatial = np.exp(-(dx * dx + dy * dy) / space_denom)
                diff2 = np.sum((neighbour - centre) ** 2, axis=-1, keepdims=True)
                weight = spatial * np.exp(-diff2 / color_denom)
                total += weight * neighbour
                weights += weight
        return _to_u8(total / weights)

    return _filtered(image, compute, stream)


def box_filter(
    image: GpuImage, kernel_size: int = 3, stream: Stream | None = None
) -> GpuImage:
    """Mean of each square neighbourhood, with replicated borders."""
    _require_valid(image)
    _check_kernel_size(kernel_size)
    kernel = np.full((kernel_size, kernel_size), 1.0 / (kernel_size * kernel_size))

    def compute(src: np.ndarray) -> np.ndarray:
        return _to_u8(_correlate(src.astype(np.float64), kernel, BorderMode.REPLICATE))

    return _filtered(image, compute, stream)


def sharpen(
    image: GpuImage, strength: float = 1.0, stream: Stream | None = None
) -> GpuImage:
    """Unsharp-style sharpening; a strength of 0 leaves the image unchanged."""
    _require_valid(image)
    kernel = -float(strength) * _CROSS
    kernel[1, 1] = 1.0 + 4.0 * float(strength)

    def compute(src: np.ndarray) -> np.ndarray:
        return _to_u8(_correlate(src.astype(np.float64), kernel, BorderMode.REPLICATE))

    return _filtered(image, compute, stream)


def laplacian(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    """Magnitude of the 4-neighbour Laplacian, per channel."""
    _require_valid(image)

    def compute(src: np.ndarray) -> np.ndarray:
        response = _correlate(src.astype(np.float64), _LAPLACIAN, BorderMode.REPLICATE)
        return _to_u8(np.abs(response))

    return _filtered(image, compute, stream)