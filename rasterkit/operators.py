"""Composable image operators, pipelines of them and a registry by name."""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterator

from .context import ExecutionContext, GpuImage
from .convolution import gaussian_blur, sobel_edge_detection
from .geometric import resize, resize_by_scale
from .histogram import equalize
from .pixel import (
    adjust_brightness,
    adjust_brightness_in_place,
    invert,
    invert_in_place,
    to_grayscale,
)


@dataclass(frozen=True)
class OperatorTraits:
    """What an operator is called and how it changes its input."""

    name: str
    in_place_capable: bool
    changes_dimensions: bool
    changes_channels: bool


class ImageOperator(ABC):
    """An operation that turns one image into another."""

    @abstractmethod
    def apply(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        """Return a new image holding the result."""

    def apply_in_place(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        raise RuntimeError("In-place operation not supported")

    @abstractmethod
    def traits(self) -> OperatorTraits:
        """Metadata describing this operator."""

    def clone(self) -> ImageOperator:
        return copy.copy(self)

    def can_apply_in_place(self) -> bool:
        return self.traits().in_place_capable


class InvertOperator(ImageOperator):
    def apply(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        return invert(image, ctx.stream)

    def apply_in_place(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        return invert_in_place(image, ctx.stream)

    def traits(self) -> OperatorTraits:
        return OperatorTraits("invert", True, False, False)


class GrayscaleOperator(ImageOperator):
    def apply(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        return to_grayscale(image, ctx.stream)

    def traits(self) -> OperatorTraits:
        return OperatorTraits("grayscale", False, False, True)


class BrightnessOperator(ImageOperator):
    def __init__(self, offset: int = 0) -> None:
        self.offset = offset

    def apply(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        return adjust_brightness(image, self.offset, ctx.stream)

    def apply_in_place(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        return adjust_brightness_in_place(image, self.offset, ctx.stream)

    def traits(self) -> OperatorTraits:
        return OperatorTraits("brightness", True, False, False)

    def __repr__(self) -> str:
        return f"BrightnessOperator(offset={self.offset})"


class GaussianBlurOperator(ImageOperator):
    def __init__(self, kernel_size: int = 5, sigma: float = 1.0) -> None:
        self.kernel_size = kernel_size
        self.sigma = sigma

    def apply(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        return gaussian_blur(image, self.kernel_size, self.sigma, ctx.stream)

    def traits(self) -> OperatorTraits:
        return OperatorTraits("gaussian_blur", False, False, False)

    def __repr__(self) -> str:
        return f"GaussianBlurOperator(kernel_size={self.kernel_size}, sigma={self.sigma})"


class SobelOperator(ImageOperator):
    def apply(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        return sobel_edge_detection(image, ctx.stream)

    def traits(self) -> OperatorTraits:
        return OperatorTraits("sobel", False, False, True)


class ResizeOperator(ImageOperator):
    """Resizes either to fixed dimensions or by scale factors."""

    def __init__(self, width: int = 0, height: int = 0) -> None:
        self._width = width
        self._height = height
        self._scale_x = 0.0
        self._scale_y = 0.0
        self._use_scale = False

    @classmethod
    def by_scale(cls, scale_x: float, scale_y: float) -> ResizeOperator:
        op = cls()
        op.set_scale(scale_x, scale_y)
        return op

    @classmethod
    def by_dimensions(cls, width: int, height: int) -> ResizeOperator:
        return cls(width, height)

    def set_dimensions(self, width: int, height: int) -> None:
        """Switch to fixed-dimension mode."""
        self._width = width
        self._height = height
        self._use_scale = False

    def set_scale(self, scale_x: float, scale_y: float) -> None:
        """Switch to scale-factor mode."""
        self._scale_x = scale_x
        self._scale_y = scale_y
        self._use_scale = True

    @property
    def is_scale_mode(self) -> bool:
        return self._use_scale

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def scale_x(self) -> float:
        return self._scale_x

    @property
    def scale_y(self) -> float:
        return self._scale_y

    def apply(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        if self._use_scale:
            return resize_by_scale(image, self._scale_x, self._scale_y, ctx.stream)
        return resize(image, self._width, self._height, ctx.stream)

    def traits(self) -> OperatorTraits:
        return OperatorTraits("resize", False, True, False)

    def __repr__(self) -> str:
        if self._use_scale:
            return f"ResizeOperator.by_scale({self._scale_x}, {self._scale_y})"
        return f"ResizeOperator({self._width}, {self._height})"


class HistogramEqualizeOperator(ImageOperator):
    def apply(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        return equalize(image, ctx.stream)

    def traits(self) -> OperatorTraits:
        return OperatorTraits("histogram_equalize", False, False, False)


class OperatorPipeline(ImageOperator):
    """A chain of operators applied one after another."""

    def __init__(self) -> None:
        self._operators: list[ImageOperator] = []

    def then(self, op: ImageOperator | type[ImageOperator]) -> OperatorPipeline:
        """Append an operator instance, or an operator class built with no arguments."""
        if isinstance(op, type):
            op = op()
        if not isinstance(op, ImageOperator):
            raise TypeError("Pipeline stages must be image operators")
        self._operators.append(op)
        return self

    def apply(self, image: GpuImage, ctx: ExecutionContext) -> GpuImage:
        """Run every stage; an empty pipeline returns the input, invalid input gives an empty image."""
        if not self._operators:
            return image
        if not image.is_valid:
            return GpuImage()

        current = image
        for op in self._operators:
            following = op.apply(current, ctx)
            if current is not image and current.is_valid:
                ctx.recycle_to_pool(current)
            current = following
        return current

    def traits(self) -> OperatorTraits:
        name = "pipeline"
        changes_dimensions = False
        changes_channels = False
        for op in self._operators:
            t = op.traits()
            name += " -> " + t.name
            changes_dimensions = changes_dimensions or t.changes_dimensions
            changes_channels = changes_channels or t.changes_channels
        return OperatorTraits(name, False, changes_dimensions, changes_channels)

    def clone(self) -> OperatorPipeline:
        pipeline = OperatorPipeline()
        pipeline._operators = [op.clone() for op in self._operators]
        return pipeline

    def clear(self) -> None:
        self._operators.clear()

    def __len__(self) -> int:
        return len(self._operators)

    def __iter__(self) -> Iterator[ImageOperator]:
        return iter(self._operators)


class OperatorRegistry:
    """Creates operators by name."""

    _instance: OperatorRegistry | None = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[], ImageOperator]] = {}
        self.register("invert", InvertOperator)
        self.register("grayscale", GrayscaleOperator)
        self.register("brightness", BrightnessOperator)
        self.register("gaussian_blur", GaussianBlurOperator)
        self.register("sobel", SobelOperator)
        self.register("resize", ResizeOperator)
        self.register("histogram_equalize", HistogramEqualizeOperator)

    @classmethod
    def instance(cls) -> OperatorRegistry:
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def register(self, name: str, factory: Callable[[], ImageOperator]) -> None:
        self._factories[name] = factory

    def create(self, name: str) -> ImageOperator | None:
        """A new operator for ``name``, or None if the name is unknown."""
        factory = self._factories.get(name)
        return factory() if factory is not None else None

    def names(self) -> list[str]:
        return sorted(self._factories)


def make_invert() -> InvertOperator:
    return InvertOperator()


def make_grayscale() -> GrayscaleOperator:
    return GrayscaleOperator()


def make_brightness(offset: int = 0) -> BrightnessOperator:
    return BrightnessOperator(offset)


def make_gaussian_blur(kernel_size: int = 5, sigma: float = 1.0) -> GaussianBlurOperator:
    return GaussianBlurOperator(kernel_size, sigma)


def make_sobel() -> SobelOperator:
    return SobelOperator()


def make_resize(width: int, height: int) -> ResizeOperator:
    return ResizeOperator.by_dimensions(width, height)


def make_resize_by_scale(scale_x: float, scale_y: float) -> ResizeOperator:
    return ResizeOperator.by_scale(scale_x, scale_y)


def make_histogram_equalize() -> HistogramEqualizeOperator:
    return HistogramEqualizeOperator()