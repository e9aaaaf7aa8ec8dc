"""
File-based storage adapter.

Keeps every endpoint snapshot in a single JSON document. Suitable for a
single process; concurrent writers in other processes are not coordinated.
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional

from ..errors import StorageError
from .base import StorageAdapter


logger = logging.getLogger(__name__)


class FileStorage(StorageAdapter):
    """JSON file implementation of the storage adapter."""

    def __init__(self, file_path: str):
        """
        Initialize file-based store.

        Args:
            file_path: Path to persistence file
        """
        self.file_path = file_path
        self.lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        async with self.lock:
            snapshots = await self._load_from_file()
        return snapshots.get(key)

    async def set(self, key: str, snapshot: Dict[str, Any]) -> None:
        async with self.lock:
            snapshots = await self._load_from_file()
            snapshots[key] = snapshot
            await self._save_to_file(snapshots)

    async def delete(self, key: str) -> None:
        async with self.lock:
            snapshots = await self._load_from_file()
            if snapshots.pop(key, None) is not None:
                await self._save_to_file(snapshots)

    async def list_keys(self) -> List[str]:
        async with self.lock:
            snapshots = await self._load_from_file()
        return list(snapshots.keys())

    async def _load_from_file(self) -> Dict[str, Dict[str, Any]]:
        """Load snapshots from file; a missing or unreadable file is empty."""
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt statistics file {self.file_path}: {e}")
            return {}
        except OSError as e:
            raise StorageError(f"Failed to read {self.file_path}", cause=e) from e

        if not isinstance(data, dict):
            logger.warning(f"Ignoring statistics file {self.file_path}: top level is not an object")
            return {}
        return data

    async def _save_to_file(self, snapshots: Dict[str, Dict[str, Any]]) -> None:
        """Write snapshots atomically via a temporary file."""
        tmp_path = f"{self.file_path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(snapshots, f, indent=2)
            os.replace(tmp_path, self.file_path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write {self.file_path}", cause=e) from e
