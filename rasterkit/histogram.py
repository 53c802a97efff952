"""Histograms and histogram equalisation."""

from __future__ import annotations

import numpy as np

from .context import GpuImage, Stream
from .pixel import _allocate, _launch, _luminance, _require_valid, _to_u8

NUM_BINS = 256


def _counts(values: np.ndarray) -> list[int]:
    return np.bincount(values.ravel(), minlength=NUM_BINS).tolist()


def _settle(stream: Stream | None) -> None:
    if stream is not None:
        stream.synchronize()


def calculate(image: GpuImage, stream: Stream | None = None) -> list[int]:
    """Luminance histogram; multi-channel images are converted to gray first."""
    _require_valid(image)
    _settle(stream)
    pixels = image.pixels()
    if image.channels == 1:
        return _counts(pixels[..., 0])
    return _counts(_to_u8(_luminance(pixels)))


def calculate_channel(
    image: GpuImage, channel: int, stream: Stream | None = None
) -> list[int]:
    """Histogram of one channel, without any conversion."""
    _require_valid(image)
    if not 0 <= channel < image.channels:
        raise ValueError(f"Channel {channel} out of range")
    _settle(stream)
    return _counts(image.pixels()[..., channel])


def calculate_rgb(image: GpuImage, stream: Stream | None = None) -> list[list[int]]:
    """Histograms of the red, green and blue channels."""
    _require_valid(image)
    if image.channels < 3:
        raise ValueError("RGB histogram requires at least 3 channels")
    _settle(stream)
    return [calculate_channel(image, channel) for channel in range(3)]


def _equalize_plane(plane: np.ndarray) -> np.ndarray:
    counts = np.bincount(plane.ravel(), minlength=NUM_BINS)
    cdf = np.cumsum(counts)
    total = int(cdf[-1])
    cdf_min = int(cdf[np.flatnonzero(counts)[0]])
    if total == cdf_min:
        return plane.copy()
    lut = np.clip(
        np.rint((cdf - cdf_min) / (total - cdf_min) * 255.0), 0, 255
    ).astype(np.uint8)
    return lut[plane]


def equalize(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    """Spread intensities over the full range; each colour channel on its own, alpha kept."""
    _require_valid(image)
    output = _allocate(image.width, image.height, image.channels)
    src, dst = image.pixels(), output.pixels()
    color_channels = 3 if image.channels == 4 else image.channels

    def run() -> None:
        dst[...] = src
        for channel in range(color_channels):
            dst[..., channel] = _equalize_plane(src[..., channel])

    _launch(stream, run)
    return output