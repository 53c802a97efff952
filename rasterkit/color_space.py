"""Colour space conversions and channel splitting/merging.

Eight-bit encodings: HSV stores hue as degrees / 2 (0..179); YUV is full-range
YCbCr with chroma centred on 128; Lab stores L * 255 / 100 and a, b offset by 128.
"""

from __future__ import annotations

import numpy as np

from .context import GpuImage, Stream
from .pixel import GRAY_WEIGHTS, _allocate, _launch, _require_valid, _to_u8

_RGB_TO_XYZ = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041],
    ]
)
_XYZ_TO_RGB = np.linalg.inv(_RGB_TO_XYZ)
_WHITE = _RGB_TO_XYZ.sum(axis=1)
_DELTA = 6.0 / 29.0

_RGB_TO_YCC = np.array(
    [
        GRAY_WEIGHTS,
        [-0.168736, -0.331264, 0.5],
        [0.5, -0.418688, -0.081312],
    ]
)
_YCC_TO_RGB = np.array(
    [
        [1.0, 0.0, 1.402],
        [1.0, -0.344136, -0.714136],
        [1.0, 1.772, 0.0],
    ]
)
_CHROMA_OFFSET = np.array([0.0, 128.0, 128.0])


def _convert(image: GpuImage, compute, stream: Stream | None) -> GpuImage:
    """Apply ``compute`` to the first three channels, carrying any alpha over."""
    _require_valid(image)
    if image.channels not in (3, 4):
        raise ValueError("Colour conversion requires a 3 or 4 channel image")
    output = _allocate(image.width, image.height, image.channels)
    src, dst = image.pixels(), output.pixels()

    def run() -> None:
        dst[..., :3] = _to_u8(compute(src[..., :3].astype(np.float64)))
        if image.channels == 4:
            dst[..., 3] = src[..., 3]

    _launch(stream, run)
    return output


def _rgb_to_hsv(rgb: np.ndarray) -> np.ndarray:
    r, g, b = np.moveaxis(rgb / 255.0, -1, 0)
    value = np.max(rgb, axis=-1) / 255.0
    chroma = value - np.min(rgb, axis=-1) / 255.0
    safe = np.where(chroma > 0, chroma, 1.0)
    hue = np.select(
        [chroma == 0, value == r, value == g],
        [0.0, 60.0 * (((g - b) / safe) % 6.0), 60.0 * ((b - r) / safe + 2.0)],
        60.0 * ((r - g) / safe + 4.0),
    )
    sat = np.where(value > 0, chroma / np.where(value > 0, value, 1.0), 0.0)
    encoded_hue = np.rint(hue / 2.0) % 180.0
    return np.stack([encoded_hue, sat * 255.0, value * 255.0], axis=-1)


def _hsv_to_rgb(hsv: np.ndarray) -> np.ndarray:
    hue = (hsv[..., 0] * 2.0) % 360.0
    sat = hsv[..., 1] / 255.0
    value = hsv[..., 2] / 255.0
    chroma = value * sat
    sector_pos = hue / 60.0
    x = chroma * (1.0 - np.abs(sector_pos % 2.0 - 1.0))
    zero = np.zeros_like(chroma)
    sector = np.floor(sector_pos).astype(int) % 6
    choices = [
        (chroma, x, zero),
        (x, chroma, zero),
        (zero, chroma, x),
        (zero, x, chroma),
        (x, zero, chroma),
        (chroma, zero, x),
    ]
    conditions = [sector == k for k in range(6)]
    channels = [np.select(conditions, [c[i] for c in choices]) for i in range(3)]
    m = value - chroma
    return (np.stack(channels, axis=-1) + m[..., None]) * 255.0


def _rgb_to_yuv(rgb: np.ndarray) -> np.ndarray:
    return rgb @ _RGB_TO_YCC.T + _CHROMA_OFFSET


def _yuv_to_rgb(yuv: np.ndarray) -> np.ndarray:
    return (yuv - _CHROMA_OFFSET) @ _YCC_TO_RGB.T


def _f(t: np.ndarray) -> np.ndarray:
    return np.where(t > _DELTA**3, np.cbrt(t), t / (3.0 * _DELTA**2) + 4.0 / 29.0)


def _f_inv(t: np.ndarray) -> np.ndarray:
    return np.where(t > _DELTA, t**3, 3.0 * _DELTA**2 * (t - 4.0 / 29.0))


def _rgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    c = rgb / 255.0
    linear = np.where(c <= 0.04045, c / 12.92, ((c + 0.055) / 1.055) ** 2.4)
    fx, fy, fz = np.moveaxis(_f(linear @ _RGB_TO_XYZ.T / _WHITE), -1, 0)
    lightness = 116.0 * fy - 16.0
    a = 500.0 * (fx - fy)
    b = 200.0 * (fy - fz)
    return np.stack([lightness * 255.0 / 100.0, a + 128.0, b + 128.0], axis=-1)


def _lab_to_rgb(lab: np.ndarray) -> np.ndarray:
    lightness = lab[..., 0] * 100.0 / 255.0
    a = lab[..., 1] - 128.0
    b = lab[..., 2] - 128.0
    fy = (lightness + 16.0) / 116.0
    f = np.stack([fy + a / 500.0, fy, fy - b / 200.0], axis=-1)
    linear = np.clip((_f_inv(f) * _WHITE) @ _XYZ_TO_RGB.T, 0.0, 1.0)
    srgb = np.where(
        linear <= 0.0031308, 12.92 * linear, 1.055 * linear ** (1.0 / 2.4) - 0.055
    )
    return srgb * 255.0


def rgb_to_hsv(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    return _convert(image, _rgb_to_hsv, stream)


def hsv_to_rgb(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    return _convert(image, _hsv_to_rgb, stream)


def rgb_to_yuv(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    return _convert(image, _rgb_to_yuv, stream)


def yuv_to_rgb(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    return _convert(image, _yuv_to_rgb, stream)


def rgb_to_lab(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    return _convert(image, _rgb_to_lab, stream)


def lab_to_rgb(image: GpuImage, stream: Stream | None = None) -> GpuImage:
    return _convert(image, _lab_to_rgb, stream)


def split_channels(
    image: GpuImage, stream: Stream | None = None
) -> tuple[GpuImage, GpuImage, GpuImage]:
    """The first three channels as separate single-channel images."""
    _require_valid(image)
    if image.channels < 3:
        raise ValueError("Splitting requires at least 3 channels")
    outputs = tuple(_allocate(image.width, image.height, 1) for _ in range(3))
    src = image.pixels()
    targets = [out.pixels() for out in outputs]

    def run() -> None:
        for channel, dst in enumerate(targets):
            dst[..., 0] = src[..., channel]

    _launch(stream, run)
    return outputs


def merge_channels(
    channel0: GpuImage,
    channel1: GpuImage,
    channel2: GpuImage,
    stream: Stream | None = None,
) -> GpuImage:
    """Interleave three single-channel images of the same size."""
    planes = (channel0, channel1, channel2)
    for plane in planes:
        _require_valid(plane)
        if plane.channels != 1:
            raise ValueError("Merging requires single-channel images")
    if len({(p.width, p.height) for p in planes}) != 1:
        raise ValueError("Channel images must have the same size")
    output = _allocate(channel0.width, channel0.height, 3)
    sources = [p.pixels() for p in planes]
    dst = output.pixels()

    def run() -> None:
        dst[...] = np.concatenate(sources, axis=-1)

    _launch(stream, run)
    return output