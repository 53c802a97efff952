"""Pooled byte storage that stands in for device memory."""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass

ALIGNMENT = 256
DEFAULT_MAX_POOL_SIZE = 512 * 1024 * 1024


def align_size(size: int) -> int:
    """Round ``size`` up to the allocation alignment."""
    if size < 0:
        raise ValueError("size must not be negative")
    return (size + ALIGNMENT - 1) & ~(ALIGNMENT - 1)


class DeviceBuffer:
    """A block of device storage; empty when it holds no bytes."""

    __slots__ = ("_storage",)

    def __init__(self, size: int = 0) -> None:
        if size < 0:
            raise ValueError("buffer size must not be negative")
        self._storage: bytearray | None = bytearray(size) if size else None

    @classmethod
    def from_raw(cls, storage: bytearray | None) -> DeviceBuffer:
        """Wrap existing storage without copying it."""
        buffer = cls()
        if storage:
            buffer._storage = storage
        return buffer

    @property
    def data(self) -> bytearray | None:
        return self._storage

    @property
    def size(self) -> int:
        return len(self._storage) if self._storage is not None else 0

    @property
    def is_valid(self) -> bool:
        return self._storage is not None and len(self._storage) > 0

    def copy_from_host(self, data) -> None:
        """Copy a bytes-like object into the start of the buffer."""
        if data is None:
            raise ValueError("host data is None")
        with memoryview(data) as view, view.cast("B") as flat:
            count = flat.nbytes
            if count > self.size:
                raise ValueError("copy size exceeds buffer size")
            if count:
                self._storage[:count] = flat

    def copy_to_host(self, size: int | None = None) -> bytes:
        """Return the first ``size`` bytes, or the whole buffer."""
        if size is None:
            size = self.size
        if size < 0:
            raise ValueError("copy size must not be negative")
        if size > self.size:
            raise ValueError("copy size exceeds buffer size")
        return bytes(self._storage[:size]) if size else b""

    def release(self) -> None:
        self._storage = None

    def detach(self) -> tuple[bytearray | None, int]:
        """Give up ownership of the storage and return it with its size."""
        storage, size = self._storage, self.size
        self._storage = None
        return storage, size

    def __repr__(self) -> str:
        return f"DeviceBuffer(size={self.size})"


@dataclass(frozen=True)
class MemoryStats:
    total_allocated: int
    pool_size: int
    peak_usage: int


class MemoryManager:
    """Allocates aligned buffers and keeps freed ones for reuse."""

    _instance: MemoryManager | None = None
    _instance_lock = threading.Lock()

    def __init__(
        self, pool_enabled: bool = True, max_pool_size: int = DEFAULT_MAX_POOL_SIZE
    ) -> None:
        self.pool_enabled = pool_enabled
        self.max_pool_size = max_pool_size
        self._lock = threading.Lock()
        self._pool: defaultdict[int, list[bytearray]] = defaultdict(list)
        self._pool_size = 0
        self._total_allocated = 0
        self._peak_usage = 0

    @classmethod
    def instance(cls) -> MemoryManager:
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def allocate(self, size: int) -> DeviceBuffer:
        if size == 0:
            return DeviceBuffer()
        aligned = align_size(size)

        if self.pool_enabled:
            with self._lock:
                free = self._pool.get(aligned)
                if free:
                    storage = free.pop()
                    self._pool_size -= aligned
                    return DeviceBuffer.from_raw(storage)

        buffer = DeviceBuffer(aligned)
        with self._lock:
            self._total_allocated += aligned
            self._peak_usage = max(self._peak_usage, self._total_allocated)
        return buffer

    def deallocate(self, buffer: DeviceBuffer) -> None:
        """Return a buffer to the pool, or free it when the pool is full."""
        if not buffer.is_valid:
            return
        aligned = align_size(buffer.size)

        if self.pool_enabled:
            with self._lock:
                if self._pool_size + aligned <= self.max_pool_size:
                    storage, size = buffer.detach()
                    if size < aligned:
                        storage.extend(bytes(aligned - size))
                    self._pool[aligned].append(storage)
                    self._pool_size += aligned
                    return

        buffer.release()

    def clear_pool(self) -> None:
        with self._lock:
            self._pool.clear()
            self._pool_size = 0

    def stats(self) -> MemoryStats:
        with self._lock:
            return MemoryStats(self._total_allocated, self._pool_size, self._peak_usage)