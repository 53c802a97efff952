"""Reading and writing image files."""

from __future__ import annotations

import io
import os

import numpy as np
from PIL import Image

from .context import HostImage

SUPPORTED_FORMATS = ("png", "jpg", "jpeg", "bmp", "tga", "psd", "gif", "hdr", "pnm")

_WRITERS = {
    "png": ("PNG", {}),
    "jpg": ("JPEG", {"quality": 90}),
    "jpeg": ("JPEG", {"quality": 90}),
    "bmp": ("BMP", {}),
    "tga": ("TGA", {"compression": "tga_rle"}),
}

_MODES = {1: "L", 2: "LA", 3: "RGB", 4: "RGBA"}
_NATIVE_MODES = frozenset(_MODES.values())


def _extension(path) -> str:
    return os.fspath(path).rpartition(".")[2].lower()


def _decode(img: Image.Image) -> HostImage:
    mode = img.mode
    if mode in _NATIVE_MODES:
        native = img
    elif mode.startswith("I;16"):
        wide = np.asarray(img).astype(np.uint16)
        native = Image.fromarray((wide >> 8).astype(np.uint8))
    elif mode in ("P", "PA"):
        has_alpha = mode == "PA" or "transparency" in img.info
        native = img.convert("RGBA" if has_alpha else "RGB")
    elif mode in ("1", "I", "F"):
        native = img.convert("L")
    else:
        native = img.convert("RGB")
    return HostImage(
        native.width, native.height, len(native.getbands()), bytearray(native.tobytes())
    )


def _to_pil(image: HostImage, key: str) -> Image.Image:
    mode = _MODES.get(image.channels)
    if mode is None:
        raise ValueError(f"Unsupported channel count: {image.channels}")
    img = Image.frombytes(
        mode, (image.width, image.height), bytes(image.data[: image.total_bytes])
    )
    if key in ("jpg", "jpeg", "bmp") and mode == "LA":
        img = img.convert("L")
    elif key in ("jpg", "jpeg") and mode == "RGBA":
        img = img.convert("RGB")
    return img


def load_from_file(path) -> HostImage:
    try:
        with Image.open(path) as img:
            img.load()
            return _decode(img)
    except (OSError, ValueError, SyntaxError) as exc:
        raise RuntimeError(f"Failed to load image: {os.fspath(path)} ({exc})") from exc


def save_to_file(image: HostImage, path) -> bool:
    """Write the image in the format named by the file extension; False on failure."""
    if not image.is_valid:
        return False
    key = _extension(path)
    writer = _WRITERS.get(key)
    if writer is None:
        return False
    pil_format, options = writer
    try:
        _to_pil(image, key).save(path, format=pil_format, **options)
    except (OSError, ValueError):
        return False
    return True


def load_from_memory(data) -> HostImage:
    if not data:
        raise ValueError("Invalid memory buffer")
    try:
        with Image.open(io.BytesIO(bytes(data))) as img:
            img.load()
            return _decode(img)
    except (OSError, ValueError, SyntaxError) as exc:
        raise RuntimeError(f"Failed to decode image from memory: {exc}") from exc


def encode_to_memory(image: HostImage, fmt: str) -> bytes:
    if not image.is_valid:
        raise ValueError("Invalid image")
    key = fmt.lower()
    writer = _WRITERS.get(key)
    if writer is None:
        raise ValueError(f"Unsupported format: {fmt}")
    pil_format, options = writer
    out = io.BytesIO()
    try:
        _to_pil(image, key).save(out, format=pil_format, **options)
    except (OSError, ValueError) as exc:
        raise RuntimeError(f"Failed to encode image to {fmt}") from exc
    return out.getvalue()


def supported_formats() -> list[str]:
    return list(SUPPORTED_FORMATS)


def is_format_supported(path) -> bool:
    text = os.fspath(path)
    if not text or "." not in text:
        return False
    return _extension(text) in SUPPORTED_FORMATS