"""
Persistence for learned endpoint statistics.

Provides the storage adapter interface, in-memory and JSON file adapters,
the validated snapshot model and the debounced background writer.
"""

from .base import StorageAdapter
from .memory import InMemoryStorage
from .file import FileStorage
from .snapshot import EndpointSnapshot, StreakTallySnapshot
from .writer import DebouncedWriter

__all__ = [
    "StorageAdapter",
    "InMemoryStorage",
    "FileStorage",
    "EndpointSnapshot",
    "StreakTallySnapshot",
    "DebouncedWriter",
]
