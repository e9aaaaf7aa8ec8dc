"""
Storage adapter interface for learned endpoint statistics.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class StorageAdapter(ABC):
    """
    Abstract base class for statistics persistence.

    Snapshots are plain JSON-compatible dictionaries keyed by endpoint.
    Streak buckets arrive string-keyed, as any JSON round trip would
    produce them.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Load one snapshot, or None if absent."""
        pass

    @abstractmethod
    async def set(self, key: str, snapshot: Dict[str, Any]) -> None:
        """Store a snapshot, replacing any previous one."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a snapshot; missing keys are ignored."""
        pass

    @abstractmethod
    async def list_keys(self) -> List[str]:
        """List all stored keys."""
        pass
