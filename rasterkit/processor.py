"""High-level image processor and a fluent builder for chains of operations."""

from __future__ import annotations

from typing import Callable, Iterable

from . import convolution, geometric, histogram, pixel
from .context import (
    ExecutionContext,
    ExecutionMode,
    ExecutionPolicy,
    GpuImage,
    HostImage,
    ImageAllocator,
)
from .image_utils import (
    create_gpu_image,
    download_from_gpu,
    upload_to_gpu,
    validate_image_params,
)

Operation = Callable[[GpuImage], GpuImage]


def _policy_for(mode: ExecutionMode | ExecutionPolicy | str) -> ExecutionPolicy:
    if isinstance(mode, ExecutionPolicy):
        return mode
    return ExecutionPolicy(ExecutionMode(mode))


class ImageProcessor:
    """Runs image operations under one execution context.

    In sync mode every operation has finished when its method returns; in
    async and batch modes work is queued on the context's stream until
    :meth:`synchronize` is called.
    """

    def __init__(
        self, mode: ExecutionMode | ExecutionPolicy | str = ExecutionMode.SYNC
    ) -> None:
        self._context = ExecutionContext(_policy_for(mode))

    @property
    def mode(self) -> ExecutionMode:
        return self._context.mode

    @property
    def context(self) -> ExecutionContext:
        return self._context

    @property
    def memory_pooling_enabled(self) -> bool:
        return ImageAllocator.instance().pooling_enabled

    def set_memory_pooling(self, enabled: bool) -> None:
        ImageAllocator.instance().pooling_enabled = enabled

    def set_mode(self, mode: ExecutionMode | str) -> None:
        """Switch to a new execution mode, finishing work queued under the old one."""
        self._context.synchronize()
        self._context = ExecutionContext(_policy_for(ExecutionMode(mode)))

    # ----- loading and downloading -----

    def load_from_memory(
        self, data, width: int, height: int, channels: int
    ) -> GpuImage:
        """Upload raw interleaved pixel bytes."""
        if data is None:
            raise ValueError("Data is None")
        if not validate_image_params(width, height, channels):
            raise ValueError("Invalid image parameters")
        image = create_gpu_image(width, height, channels)
        raw = bytes(data)
        if len(raw) < image.total_bytes:
            raise ValueError("Data is smaller than the image")
        image.buffer.copy_from_host(raw[: image.total_bytes])
        return image

    def load_from_host(self, host_image: HostImage) -> GpuImage:
        return upload_to_gpu(host_image)

    def download(self, image: GpuImage) -> HostImage:
        self._auto_sync()
        return download_from_gpu(image)

    def download_to_buffer(self, image: GpuImage, buffer) -> int:
        """Copy the pixels into a writable buffer; returns the number of bytes written."""
        if buffer is None:
            raise ValueError("Buffer is None")
        count = image.total_bytes
        with memoryview(buffer) as view, view.cast("B") as target:
            if target.nbytes < count:
                raise ValueError("Buffer too small")
            self._auto_sync()
            target[:count] = image.buffer.copy_to_host(count)
        return count

    # ----- pixel operations -----

    def invert(self, image: GpuImage) -> GpuImage:
        return self._finish(pixel.invert(image, self._context.stream))

    def to_grayscale(self, image: GpuImage) -> GpuImage:
        return self._finish(pixel.to_grayscale(image, self._context.stream))

    def adjust_brightness(self, image: GpuImage, offset: int) -> GpuImage:
        return self._finish(
            pixel.adjust_brightness(image, offset, self._context.stream)
        )

    def invert_in_place(self, image: GpuImage) -> GpuImage:
        return self._finish(pixel.invert_in_place(image, self._context.stream))

    def adjust_brightness_in_place(self, image: GpuImage, offset: int) -> GpuImage:
        return self._finish(
            pixel.adjust_brightness_in_place(image, offset, self._context.stream)
        )

    # ----- convolution -----

    def gaussian_blur(
        self, image: GpuImage, kernel_size: int = 5, sigma: float = 1.0
    ) -> GpuImage:
        return self._finish(
            convolution.gaussian_blur(image, kernel_size, sigma, self._context.stream)
        )

    def sobel_edge_detection(self, image: GpuImage) -> GpuImage:
        return self._finish(
            convolution.sobel_edge_detection(image, self._context.stream)
        )

    def convolve(self, image: GpuImage, kernel) -> GpuImage:
        """Convolve with a square kernel using zero padding at the borders."""
        return self._finish(
            convolution.convolve(
                image, kernel, convolution.BorderMode.ZERO, self._context.stream
            )
        )

    # ----- histograms -----

    def histogram(self, image: GpuImage) -> list[int]:
        result = histogram.calculate(image, self._context.stream)
        self._auto_sync()
        return result

    def histogram_rgb(self, image: GpuImage) -> list[list[int]]:
        result = histogram.calculate_rgb(image, self._context.stream)
        self._auto_sync()
        return result

    def histogram_equalize(self, image: GpuImage) -> GpuImage:
        return self._finish(histogram.equalize(image, self._context.stream))

    # ----- geometry -----

    def resize(self, image: GpuImage, new_width: int, new_height: int) -> GpuImage:
        return self._finish(
            geometric.resize(image, new_width, new_height, self._context.stream)
        )

    def resize_by_scale(
        self, image: GpuImage, scale_x: float, scale_y: float
    ) -> GpuImage:
        return self._finish(
            geometric.resize_by_scale(image, scale_x, scale_y, self._context.stream)
        )

    # ----- pipelines -----

    def pipeline(self, image: GpuImage, operations: Iterable[Operation]) -> GpuImage:
        """Feed ``image`` through each operation in turn, recycling intermediates."""
        current = image
        for operation in operations:
            following = operation(current)
            if (
                current is not image
                and following is not current
                and current.is_valid
            ):
                self._context.recycle_to_pool(current)
            current = following
        self._auto_sync()
        return current

    # ----- synchronisation -----

    def synchronize(self) -> None:
        self._context.synchronize()

    def is_complete(self) -> bool:
        if self.mode is ExecutionMode.SYNC:
            return True
        stream = self._context.stream
        return stream is None or stream.query()

    def _auto_sync(self) -> None:
        if self.mode is ExecutionMode.SYNC:
            self._context.synchronize()

    def _finish(self, result: GpuImage) -> GpuImage:
        self._auto_sync()
        return result

    def __repr__(self) -> str:
        return f"ImageProcessor(mode={self.mode.value})"


class PipelineBuilder:
    """Chains processor operations fluently; steps before :meth:`start` do nothing."""

    def __init__(self, processor: ImageProcessor) -> None:
        self._processor = processor
        self._current = GpuImage()
        self._has_input = False

    @property
    def has_input(self) -> bool:
        return self._has_input

    def start(self, image: GpuImage) -> PipelineBuilder:
        self._current = image
        self._has_input = True
        return self

    def _step(self, operation: Operation) -> PipelineBuilder:
        if self._has_input:
            self._current = operation(self._current)
        return self

    def grayscale(self) -> PipelineBuilder:
        return self._step(self._processor.to_grayscale)

    def blur(self, kernel_size: int = 5, sigma: float = 1.0) -> PipelineBuilder:
        return self._step(
            lambda image: self._processor.gaussian_blur(image, kernel_size, sigma)
        )

    def sobel(self) -> PipelineBuilder:
        return self._step(self._processor.sobel_edge_detection)

    def invert(self) -> PipelineBuilder:
        return self._step(self._processor.invert)

    def brightness(self, offset: int) -> PipelineBuilder:
        return self._step(
            lambda image: self._processor.adjust_brightness(image, offset)
        )

    def resize(self, width: int, height: int) -> PipelineBuilder:
        return self._step(lambda image: self._processor.resize(image, width, height))

    def equalize(self) -> PipelineBuilder:
        return self._step(self._processor.histogram_equalize)

    def execute(self) -> GpuImage:
        """Return the result and reset; an empty image if nothing was started."""
        result = self._current
        self._current = GpuImage()
        self._has_input = False
        return result

    def execute_and_download(self) -> HostImage:
        result = self.execute()
        if not result.is_valid:
            return HostImage()
        return self._processor.download(result)