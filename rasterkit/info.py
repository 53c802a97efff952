"""Library version and compute device information."""

from __future__ import annotations

import os
import platform

from .memory import MemoryManager

VERSION_MAJOR = 2
VERSION_MINOR = 1
VERSION_PATCH = 0


def version_string() -> str:
    """The library version as ``major.minor.patch``."""
    return f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}"


def device_info() -> str:
    """A one-line description of the device that runs image operations."""
    name = platform.processor() or platform.machine() or "unknown"
    threads = os.cpu_count() or 1
    pool_mb = MemoryManager.instance().max_pool_size // (1024 * 1024)
    return f"Device: host CPU ({name}), Threads: {threads}, Memory: {pool_mb} MB"