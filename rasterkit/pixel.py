"""Per-pixel operations: inversion, grayscale conversion and brightness."""

from __future__ import annotations

from typing import Callable

import numpy as np

from .context import GpuImage, ImageAllocator, Stream

GRAY_WEIGHTS = np.array([0.299, 0.587, 0.114])


def _launch(stream: Stream | None, task: Callable[[], None]) -> None:
    """Run ``task`` now, or queue it on ``stream``."""
    if stream is None:
        task()
    else:
        stream.enqueue(task)


def _require_valid(image: GpuImage) -> None:
    if not image.is_valid:
        raise ValueError("Invalid input image")


def _allocate(width: int, height: int, channels: int) -> GpuImage:
    return ImageAllocator.instance().allocate(width, height, channels)


def _to_u8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def _luminance(pixels: np.ndarray) -> np.ndarray:
    """Weighted luminance of an (h, w, >=3) array, as floats of shape (h, w)."""
    return pixels[..., :3].astype(np.float64) @ GRAY_WEIGHTS


def invert(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    """Return a new image with every byte replaced by 255 minus its value."""
    _require_valid(image)
    output = _allocate(image.width, image.height, image.channels)
    src, dst = image.pixels(), output.pixels()
    _launch(stream, lambda: np.invert(src, out=dst))
    return output


def invert_in_place(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    _require_valid(image)
    pixels = image.pixels()
    _launch(stream, lambda: np.invert(pixels, out=pixels))
    return image


def to_grayscale(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    """Convert a 3- or 4-channel image to a single luminance channel."""
    _require_valid(image)
    if image.channels not in (3, 4):
        raise ValueError("Grayscale conversion requires a 3 or 4 channel image")
    output = _allocate(image.width, image.height, 1)
    src, dst = image.pixels(), output.pixels()

    def run() -> None:
        dst[..., 0] = _to_u8(_luminance(src))

    _launch(stream, run)
    return output


def _shifted(pixels: np.ndarray, offset: int) -> np.ndarray:
    return np.clip(pixels.astype(np.int64) + int(offset), 0, 255).astype(np.uint8)


def adjust_brightness(
    image: GpuImage, offset: int, stream: Stream | None = None
) -> GpuImage:
    """Add ``offset`` to every byte, saturating at 0 and 255."""
    _require_valid(image)
    output = _allocate(image.width, image.height, image.channels)
    src, dst = image.pixels(), output.pixels()

    def run() -> None:
        dst[...] = _shifted(src, offset)

    _launch(stream, run)
    return output


def adjust_brightness_in_place(
    image: GpuImage, offset: int, stream: Stream | None = None
) -> GpuImage:
    _require_valid(image)
    pixels = image.pixels()

    def run() -> None:
        pixels[...] = _shifted(pixels, offset)

    _launch(stream, run)
    return image