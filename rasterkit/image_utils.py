"""Image creation and host/device transfer helpers."""

from __future__ import annotations

from .context import VALID_CHANNELS, GpuImage, HostImage, ImageAllocator, Stream


def set_memory_pooling_enabled(enabled: bool) -> None:
    ImageAllocator.instance().pooling_enabled = enabled


def is_memory_pooling_enabled() -> bool:
    return ImageAllocator.instance().pooling_enabled


def validate_image_params(width: int, height: int, channels: int) -> bool:
    return width > 0 and height > 0 and channels in VALID_CHANNELS


def create_gpu_image(width: int, height: int, channels: int) -> GpuImage:
    return ImageAllocator.instance().allocate(width, height, channels)


def create_host_image(width: int, height: int, channels: int) -> HostImage:
    """A zero-filled host image."""
    if not validate_image_params(width, height, channels):
        raise ValueError("Invalid image parameters")
    return HostImage(width, height, channels, bytearray(width * height * channels))


def upload_to_gpu(host_image: HostImage) -> GpuImage:
    if not host_image.is_valid:
        raise ValueError("Invalid host image")
    gpu_image = create_gpu_image(host_image.width, host_image.height, host_image.channels)
    gpu_image.buffer.copy_from_host(memoryview(host_image.data)[: host_image.total_bytes])
    return gpu_image


def download_from_gpu(gpu_image: GpuImage) -> HostImage:
    if not gpu_image.is_valid:
        raise ValueError("Invalid GPU image")
    host_image = create_host_image(gpu_image.width, gpu_image.height, gpu_image.channels)
    host_image.data[:] = gpu_image.buffer.copy_to_host(host_image.total_bytes)
    return host_image


def upload_to_gpu_async(
    host_image: HostImage, gpu_image: GpuImage, stream: Stream | None = None
) -> GpuImage:
    """Resize ``gpu_image`` to fit and copy into it, on ``stream`` if one is given."""
    if not host_image.is_valid:
        raise ValueError("Invalid host image")
    ImageAllocator.instance().ensure_size(
        gpu_image, host_image.width, host_image.height, host_image.channels
    )
    buffer = gpu_image.buffer
    count = host_image.total_bytes

    def copy() -> None:
        buffer.copy_from_host(bytes(host_image.data[:count]))

    if stream is None:
        copy()
    else:
        stream.enqueue(copy)
    return gpu_image


def download_from_gpu_async(
    gpu_image: GpuImage, host_image: HostImage, stream: Stream | None = None
) -> HostImage:
    """Resize ``host_image`` to fit and copy into it, on ``stream`` if one is given."""
    if not gpu_image.is_valid:
        raise ValueError("Invalid GPU image")
    if (host_image.width, host_image.height, host_image.channels) != (
        gpu_image.width,
        gpu_image.height,
        gpu_image.channels,
    ):
        host_image.width = gpu_image.width
        host_image.height = gpu_image.height
        host_image.channels = gpu_image.channels
        host_image.data = bytearray(gpu_image.total_bytes)

    buffer = gpu_image.buffer
    count = gpu_image.total_bytes

    def copy() -> None:
        host_image.data[:count] = buffer.copy_to_host(count)

    if stream is None:
        copy()
    else:
        stream.enqueue(copy)
    return host_image