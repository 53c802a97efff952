"""Images, execution policies, streams and the image allocator."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

import numpy as np

from .memory import DeviceBuffer, MemoryManager

VALID_CHANNELS = (1, 3, 4)


@dataclass(eq=False)
class GpuImage:
    """An image whose pixels live in a device buffer, row-major and interleaved."""

    width: int = 0
    height: int = 0
    channels: int = 0
    buffer: DeviceBuffer = field(default_factory=DeviceBuffer)

    @property
    def total_bytes(self) -> int:
        return self.width * self.height * self.channels

    @property
    def is_valid(self) -> bool:
        return (
            self.buffer.is_valid
            and self.width > 0
            and self.height > 0
            and self.channels > 0
            and self.buffer.size >= self.total_bytes
        )

    def pixels(self) -> np.ndarray:
        """A writable (height, width, channels) view of the pixel storage."""
        if not self.is_valid:
            raise ValueError("Invalid GPU image")
        flat = np.frombuffer(self.buffer.data, dtype=np.uint8, count=self.total_bytes)
        return flat.reshape(self.height, self.width, self.channels)


@dataclass(eq=False)
class HostImage:
    """An image held in host memory."""

    width: int = 0
    height: int = 0
    channels: int = 0
    data: bytearray = field(default_factory=bytearray)

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytearray):
            self.data = bytearray(self.data)

    @property
    def total_bytes(self) -> int:
        return self.width * self.height * self.channels

    @property
    def is_valid(self) -> bool:
        return (
            self.width > 0
            and self.height > 0
            and self.channels > 0
            and len(self.data) >= self.total_bytes
        )

    def _offset(self, x: int, y: int, channel: int) -> int:
        if not (0 <= x < self.width and 0 <= y < self.height and 0 <= channel < self.channels):
            raise IndexError(f"pixel ({x}, {y}, {channel}) out of range")
        return (y * self.width + x) * self.channels + channel

    def at(self, x: int, y: int, channel: int = 0) -> int:
        return self.data[self._offset(x, y, channel)]

    def __getitem__(self, key: tuple[int, int, int]) -> int:
        return self.at(*key)

    def __setitem__(self, key: tuple[int, int, int], value: int) -> None:
        self.data[self._offset(*key)] = value

    def pixels(self) -> np.ndarray:
        """A writable (height, width, channels) view of the pixel data."""
        flat = np.frombuffer(self.data, dtype=np.uint8, count=self.total_bytes)
        return flat.reshape(self.height, self.width, self.channels)


class ExecutionMode(Enum):
    SYNC = "sync"
    ASYNC = "async"
    BATCH = "batch"


class Stream:
    """An ordered queue of work that runs when the stream is synchronized."""

    def __init__(self) -> None:
        self._pending: deque[Callable[[], None]] = deque()
        self._lock = threading.Lock()

    def enqueue(self, task: Callable[[], None]) -> None:
        with self._lock:
            self._pending.append(task)

    def synchronize(self) -> None:
        """Run every queued task in order."""
        while True:
            with self._lock:
                if not self._pending:
                    return
                task = self._pending.popleft()
            task()

    def query(self) -> bool:
        """True when no work is outstanding."""
        with self._lock:
            return not self._pending


class ExecutionPolicy:
    """How work is scheduled: synchronously or on a stream."""

    def __init__(
        self, mode: ExecutionMode | str = ExecutionMode.SYNC, stream: Stream | None = None
    ) -> None:
        self._mode = ExecutionMode(mode)
        if stream is not None:
            self._stream: Stream | None = stream
            self._owns_stream = False
        elif self._mode is ExecutionMode.SYNC:
            self._stream = None
            self._owns_stream = False
        else:
            self._stream = Stream()
            self._owns_stream = True

    @classmethod
    def sync(cls) -> ExecutionPolicy:
        return cls(ExecutionMode.SYNC)

    @classmethod
    def asynchronous(cls, stream: Stream | None = None) -> ExecutionPolicy:
        return cls(ExecutionMode.ASYNC, stream)

    @classmethod
    def batch(cls) -> ExecutionPolicy:
        return cls(ExecutionMode.BATCH)

    @property
    def mode(self) -> ExecutionMode:
        return self._mode

    @property
    def stream(self) -> Stream | None:
        return self._stream

    @property
    def owns_stream(self) -> bool:
        return self._owns_stream

    def synchronize(self) -> None:
        if self._stream is not None:
            self._stream.synchronize()

    def __repr__(self) -> str:
        return f"ExecutionPolicy(mode={self._mode.value}, owns_stream={self._owns_stream})"


def _check_params(width: int, height: int, channels: int) -> None:
    if width <= 0 or height <= 0 or channels not in VALID_CHANNELS:
        raise ValueError("Invalid image parameters")


class ImageAllocator:
    """Creates images, optionally drawing storage from the memory pool."""

    _instance: ImageAllocator | None = None
    _instance_lock = threading.Lock()

    def __init__(self, pooling_enabled: bool = False) -> None:
        self._pooling_enabled = pooling_enabled

    @classmethod
    def instance(cls) -> ImageAllocator:
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @property
    def pooling_enabled(self) -> bool:
        return self._pooling_enabled

    @pooling_enabled.setter
    def pooling_enabled(self, enabled: bool) -> None:
        self._pooling_enabled = bool(enabled)

    def allocate(
        self, width: int, height: int, channels: int, use_pool: bool = True
    ) -> GpuImage:
        _check_params(width, height, channels)
        size = width * height * channels
        if use_pool and self._pooling_enabled:
            buffer = MemoryManager.instance().allocate(size)
        else:
            buffer = DeviceBuffer(size)
        return GpuImage(width, height, channels, buffer)

    def ensure_size(
        self,
        output: GpuImage,
        width: int,
        height: int,
        channels: int,
        use_pool: bool = True,
    ) -> bool:
        """Give ``output`` fresh storage unless it already fits; True if it was replaced."""
        if (
            (output.width, output.height, output.channels) == (width, height, channels)
            and output.is_valid
        ):
            return False
        fresh = self.allocate(width, height, channels, use_pool)
        output.width, output.height, output.channels = width, height, channels
        output.buffer = fresh.buffer
        return True

    def ensure_like(
        self, reference: GpuImage, output: GpuImage, use_pool: bool = True
    ) -> bool:
        return self.ensure_size(
            output, reference.width, reference.height, reference.channels, use_pool
        )

    def recycle(self, image: GpuImage) -> None:
        """Take the image's storage away, returning it to the pool if pooling is on."""
        was_valid = image.is_valid
        buffer = image.buffer
        image.buffer = DeviceBuffer()
        if self._pooling_enabled and was_valid:
            MemoryManager.instance().deallocate(buffer)
        else:
            buffer.release()


class ExecutionContext:
    """Bundles an execution policy with image allocation."""

    def __init__(self, policy: ExecutionPolicy | ExecutionMode | str | None = None) -> None:
        if policy is None:
            policy = ExecutionPolicy.sync()
        elif not isinstance(policy, ExecutionPolicy):
            policy = ExecutionPolicy(policy)
        self._policy = policy

    @property
    def policy(self) -> ExecutionPolicy:
        return self._policy

    @property
    def stream(self) -> Stream | None:
        return self._policy.stream

    @property
    def mode(self) -> ExecutionMode:
        return self._policy.mode

    def allocate_output(self, width: int, height: int, channels: int) -> GpuImage:
        return ImageAllocator.instance().allocate(width, height, channels)

    def allocate_like(self, image: GpuImage) -> GpuImage:
        return self.allocate_output(image.width, image.height, image.channels)

    def ensure_output_size(
        self, output: GpuImage, width: int, height: int, channels: int
    ) -> bool:
        return ImageAllocator.instance().ensure_size(output, width, height, channels)

    def ensure_like(self, reference: GpuImage, output: GpuImage) -> bool:
        return ImageAllocator.instance().ensure_like(reference, output)

    def recycle_to_pool(self, image: GpuImage) -> None:
        ImageAllocator.instance().recycle(image)

    def release(self, image: GpuImage) -> None:
        self.recycle_to_pool(image)

    def synchronize(self) -> None:
        self._policy.synchronize()