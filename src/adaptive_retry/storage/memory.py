"""
In-memory storage adapter.
"""

import copy
from typing import Any, Dict, List, Optional

from .base import StorageAdapter


class InMemoryStorage(StorageAdapter):
    """In-memory implementation of the storage adapter; snapshots are copied in and out."""

    def __init__(self):
        """Initialize in-memory store."""
        self.snapshots: Dict[str, Dict[str, Any]] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        snapshot = self.snapshots.get(key)
        return copy.deepcopy(snapshot) if snapshot is not None else None

    async def set(self, key: str, snapshot: Dict[str, Any]) -> None:
        self.snapshots[key] = copy.deepcopy(snapshot)

    async def delete(self, key: str) -> None:
        self.snapshots.pop(key, None)

    async def list_keys(self) -> List[str]:
        return list(self.snapshots.keys())
