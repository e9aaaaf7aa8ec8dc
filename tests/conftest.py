"""
Shared fixtures for the adaptive retry test suite.

- A controllable wall clock for breaker cooldowns and timestamps
- A fast algorithm config so retry loops finish in milliseconds
- Storage adapters that record or fail their writes
"""

from typing import Any, Dict, List, Tuple

import pytest

from adaptive_retry.config import AlgorithmConfig
from adaptive_retry.errors import StorageError
from adaptive_retry.storage.memory import InMemoryStorage


class FakeClock:
    """Wall clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms / 1000


class RecordingStorage(InMemoryStorage):
    """In-memory storage that keeps a log of every write."""

    def __init__(self):
        super().__init__()
        self.writes: List[Tuple[str, Dict[str, Any]]] = []

    async def set(self, key: str, snapshot: Dict[str, Any]) -> None:
        self.writes.append((key, snapshot))
        await super().set(key, snapshot)


class FailingStorage(InMemoryStorage):
    """Storage whose writes always fail."""

    def __init__(self):
        super().__init__()
        self.attempted_writes = 0

    async def set(self, key: str, snapshot: Dict[str, Any]) -> None:
        self.attempted_writes += 1
        raise StorageError("disk full", key=key)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fast_config():
    """Delays clamped to 1-2ms."""
    return AlgorithmConfig(min_delay=1, max_delay=2)


@pytest.fixture
def memory_storage():
    return InMemoryStorage()


@pytest.fixture
def recording_storage():
    return RecordingStorage()


@pytest.fixture
def failing_storage():
    return FailingStorage()
