"""
Debounced, per-key background persistence.

A small delayed task queue: the first change to a key arms its timer and
later changes ride on it, so a burst of mutations produces one write
carrying the latest snapshot, and a key under sustained traffic is still
written once per window. Writes are best effort; adapter failures are
logged, never raised into the caller's retry loop.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Set

from .base import StorageAdapter


logger = logging.getLogger(__name__)


class DebouncedWriter:
    """
    Coalesces snapshot writes per key.

    Keys scheduled while no event loop is running stay queued until
    ``flush()`` is awaited.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        snapshot_fn: Callable[[str], Optional[Dict[str, Any]]],
        delay_ms: float = 1000
    ):
        """
        Initialize debounced writer.

        Args:
            storage: Destination adapter
            snapshot_fn: Produces the current snapshot for a key (None skips the write)
            delay_ms: Debounce window
        """
        self.storage = storage
        self.snapshot_fn = snapshot_fn
        self.delay_ms = delay_ms

        self._pending: Set[str] = set()
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Dict[asyncio.Task, str] = {}
        self._lock = threading.Lock()

        # Statistics
        self.writes = 0
        self.failures = 0

    @property
    def pending_keys(self) -> Set[str]:
        """Keys with an unwritten change."""
        with self._lock:
            return set(self._pending)

    def schedule(self, key: str) -> None:
        """Mark a key dirty, arming its timer if none is running."""
        with self._lock:
            self._pending.add(key)
            if key in self._timers:
                return

            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return

            self._timers[key] = loop.call_later(self.delay_ms / 1000, self._fire, key)

    def cancel(self, key: str) -> None:
        """Drop any pending write for a key."""
        with self._lock:
            self._pending.discard(key)
            timer = self._timers.pop(key, None)
            if timer is not None:
                timer.cancel()

    def cancel_all(self) -> None:
        """Drop every pending write."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._pending.clear()

    async def wait(self, key: Optional[str] = None) -> None:
        """Wait for writes already in flight, for one key or all of them."""
        with self._lock:
            tasks = [task for task, task_key in self._tasks.items() if key is None or task_key == key]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def flush(self) -> None:
        """Write every pending key now and wait for in-flight writes."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            keys = list(self._pending)

        # Older writes land first so a key's latest snapshot wins
        await self.wait()

        tasks: List[asyncio.Task] = [self._start(key) for key in keys]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _fire(self, key: str) -> None:
        with self._lock:
            self._timers.pop(key, None)
        self._start(key)

    def _start(self, key: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._write(key))
        with self._lock:
            self._tasks[task] = key
        task.add_done_callback(self._forget)
        return task

    def _forget(self, task: asyncio.Task) -> None:
        with self._lock:
            self._tasks.pop(task, None)

    async def _write(self, key: str) -> None:
        with self._lock:
            if key not in self._pending:
                return
            self._pending.discard(key)

        snapshot = self.snapshot_fn(key)
        if snapshot is None:
            return

        try:
            await self.storage.set(key, snapshot)
            self.writes += 1
            logger.debug(f"Persisted statistics for '{key}'")
        except Exception as e:
            self.failures += 1
            logger.error(f"Failed to persist statistics for '{key}': {e}")
