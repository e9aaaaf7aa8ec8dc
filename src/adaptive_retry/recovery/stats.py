"""
Per-endpoint learned retry statistics.

Tracks hour-of-day success rates (exponential moving average with an
adaptive learning rate), observed recovery latency, and how failure
streaks of each length have historically ended. These signals feed the
delay calculator.
"""

import copy
import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, Tuple, Union

from pydantic import ValidationError

from ..config import AlgorithmConfig, merge_config
from ..storage.base import StorageAdapter
from ..storage.snapshot import (
    HOURS_PER_DAY, EndpointSnapshot, StreakTallySnapshot, clamp_bucket
)
from ..storage.writer import DebouncedWriter
from ..types import ErrorCategory


logger = logging.getLogger(__name__)

MAX_EMA_ALPHA = 0.3
MIN_TIME_OF_DAY_FACTOR = 0.5
MAX_TIME_OF_DAY_FACTOR = 3.0
DEAD_HOUR_RATE = 0.01
RECOVERY_PERCENTILE = 0.75


@dataclass
class StreakTally:
    """Outcomes of failure streaks that reached a given length."""
    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


@dataclass
class EndpointStatistics:
    """Learned behaviour of a single endpoint."""
    endpoint: str
    recent_recovery_times: Deque[float] = field(default_factory=lambda: deque(maxlen=100))
    avg_recovery_time: float = 1000.0
    hourly_success_rate: List[float] = field(default_factory=lambda: [0.5] * HOURS_PER_DAY)
    hourly_attempts: List[int] = field(default_factory=lambda: [0] * HOURS_PER_DAY)
    streak_outcomes: Dict[int, StreakTally] = field(default_factory=dict)
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None
    consecutive_failures: int = 0
    error_category_counts: Dict[ErrorCategory, int] = field(
        default_factory=lambda: {category: 0 for category in ErrorCategory}
    )

    @classmethod
    def create(cls, endpoint: str, config: AlgorithmConfig) -> "EndpointStatistics":
        """Empty statistics sized for a config."""
        return cls(
            endpoint=endpoint,
            recent_recovery_times=deque(maxlen=config.max_history_samples),
            avg_recovery_time=config.default_recovery_time,
        )

    def to_snapshot(self) -> EndpointSnapshot:
        """Serializable copy."""
        return EndpointSnapshot(
            endpoint=self.endpoint,
            recent_recovery_times=list(self.recent_recovery_times),
            avg_recovery_time=self.avg_recovery_time,
            hourly_success_rate=list(self.hourly_success_rate),
            hourly_attempts=list(self.hourly_attempts),
            streak_outcomes={
                bucket: StreakTallySnapshot(succeeded=tally.succeeded, failed=tally.failed)
                for bucket, tally in self.streak_outcomes.items()
            },
            last_failure_time=self.last_failure_time,
            last_success_time=self.last_success_time,
            consecutive_failures=self.consecutive_failures,
            error_category_counts=dict(self.error_category_counts),
        )

    @classmethod
    def from_snapshot(cls, snapshot: EndpointSnapshot, config: AlgorithmConfig) -> "EndpointStatistics":
        """Rebuild live statistics; history beyond the cap keeps the newest entries."""
        history = deque(snapshot.recent_recovery_times, maxlen=config.max_history_samples)
        return cls(
            endpoint=snapshot.endpoint,
            recent_recovery_times=history,
            avg_recovery_time=_mean(history, config.default_recovery_time),
            hourly_success_rate=list(snapshot.hourly_success_rate),
            hourly_attempts=list(snapshot.hourly_attempts),
            streak_outcomes={
                bucket: StreakTally(succeeded=tally.succeeded, failed=tally.failed)
                for bucket, tally in snapshot.streak_outcomes.items()
            },
            last_failure_time=snapshot.last_failure_time,
            last_success_time=snapshot.last_success_time,
            consecutive_failures=snapshot.consecutive_failures,
            error_category_counts=dict(snapshot.error_category_counts),
        )


def _mean(values: Union[Deque[float], List[float]], default: float) -> float:
    if not values:
        return default
    return sum(values) / len(values)


def update_rate(current_rate: float, attempts: int, success: bool) -> float:
    """
    One EMA step for an hour bucket.

    The learning rate starts at 1/(n+1) and is capped at MAX_EMA_ALPHA, so
    early samples move the rate quickly while later ones are damped.

    Args:
        current_rate: Rate before this outcome
        attempts: Attempts already recorded in the bucket
        success: Outcome of this attempt

    Returns:
        Updated rate in [0, 1]
    """
    alpha = min(MAX_EMA_ALPHA, 1.0 / (attempts + 1))
    return current_rate * (1 - alpha) + (1.0 if success else 0.0) * alpha


class StatisticsStore:
    """
    Registry of EndpointStatistics with optional debounced persistence.

    Every record is applied under a per-endpoint lock, so retry sequences
    sharing an endpoint (in coroutines or threads) never interleave inside
    a single update.
    """

    def __init__(
        self,
        config: Optional[Union[AlgorithmConfig, Dict[str, Any]]] = None,
        storage: Optional[StorageAdapter] = None,
        save_debounce_ms: float = 1000,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize statistics store.

        Args:
            config: Algorithm configuration or overrides
            storage: Optional persistence adapter
            save_debounce_ms: Debounce window for persistence writes
            clock: Wall clock in seconds; also decides the hour bucket
        """
        self.config = merge_config(config)
        self.storage = storage
        self._clock = clock

        self._stats: Dict[str, EndpointStatistics] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.RLock()

        self._writer: Optional[DebouncedWriter] = None
        if storage is not None:
            self._writer = DebouncedWriter(storage, self._snapshot_for, save_debounce_ms)

    @property
    def writer(self) -> Optional[DebouncedWriter]:
        """Background writer, if persistence is configured."""
        return self._writer

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def current_hour(self) -> int:
        """Local hour of day (0-23) used for the hourly buckets."""
        return time.localtime(self._clock()).tm_hour

    @contextmanager
    def _locked(self, endpoint: str) -> Iterator[EndpointStatistics]:
        """Get or create an endpoint's statistics and hold its lock."""
        with self._registry_lock:
            stat = self._stats.get(endpoint)
            if stat is None:
                stat = EndpointStatistics.create(endpoint, self.config)
                self._stats[endpoint] = stat
                self._locks[endpoint] = threading.RLock()
                logger.debug(f"Tracking new endpoint '{endpoint}'")
            lock = self._locks[endpoint]

        with lock:
            yield stat

    def _lookup(self, endpoint: str) -> Optional[Tuple[EndpointStatistics, threading.RLock]]:
        with self._registry_lock:
            stat = self._stats.get(endpoint)
            if stat is None:
                return None
            return stat, self._locks[endpoint]

    # Recording

    def record_success(self, endpoint: str, attempt_number: int, recovery_time: Optional[float] = None) -> None:
        """
        Record a successful attempt.

        Args:
            endpoint: Endpoint identifier
            attempt_number: 1-based attempt that succeeded
            recovery_time: Elapsed ms from the first attempt, used when attempt_number > 1
        """
        hour = self.current_hour()
        now = self._now_ms()

        with self._locked(endpoint) as stat:
            stat.hourly_success_rate[hour] = update_rate(
                stat.hourly_success_rate[hour], stat.hourly_attempts[hour], True
            )
            stat.hourly_attempts[hour] += 1

            if recovery_time is not None and attempt_number > 1:
                stat.recent_recovery_times.append(recovery_time)
                stat.avg_recovery_time = _mean(stat.recent_recovery_times, self.config.default_recovery_time)

            if stat.consecutive_failures > 0:
                self._record_streak_outcome(stat, stat.consecutive_failures, succeeded=True)

            stat.last_success_time = now
            stat.consecutive_failures = 0

        logger.debug(f"Recorded success for '{endpoint}' on attempt {attempt_number}")
        self._schedule_save(endpoint)

    def record_failure(self, endpoint: str, category: ErrorCategory) -> None:
        """Record a failed attempt of the given category."""
        hour = self.current_hour()
        now = self._now_ms()

        with self._locked(endpoint) as stat:
            stat.hourly_success_rate[hour] = update_rate(
                stat.hourly_success_rate[hour], stat.hourly_attempts[hour], False
            )
            stat.hourly_attempts[hour] += 1
            stat.error_category_counts[category] = stat.error_category_counts.get(category, 0) + 1
            stat.consecutive_failures += 1
            stat.last_failure_time = now
            streak = stat.consecutive_failures

        logger.debug(f"Recorded {category.value} failure for '{endpoint}' (streak {streak})")
        self._schedule_save(endpoint)

    def record_exhausted(self, endpoint: str) -> None:
        """Record that a retry sequence gave up while its failure streak was active."""
        with self._locked(endpoint) as stat:
            if stat.consecutive_failures > 0:
                self._record_streak_outcome(stat, stat.consecutive_failures, succeeded=False)

        self._schedule_save(endpoint)

    @staticmethod
    def _record_streak_outcome(stat: EndpointStatistics, streak: int, succeeded: bool) -> None:
        tally = stat.streak_outcomes.setdefault(clamp_bucket(streak), StreakTally())
        if succeeded:
            tally.succeeded += 1
        else:
            tally.failed += 1

    # Signals

    def get_success_probability(self, endpoint: str, attempt_number: int) -> float:
        """
        Probability that a streak of ``attempt_number`` failures still ends in success.

        Uses the empirical tally once it has enough samples, otherwise a
        geometric prior.
        """
        prior = self.config.success_prior ** max(attempt_number - 1, 0)

        entry = self._lookup(endpoint)
        if entry is None:
            return prior

        stat, lock = entry
        with lock:
            tally = stat.streak_outcomes.get(clamp_bucket(attempt_number))
            if tally is not None and tally.total >= self.config.min_streak_samples:
                return tally.succeeded / tally.total

        return prior

    def get_time_of_day_factor(self, endpoint: str) -> float:
        """
        Multiplier comparing this hour's success rate with the daily average.

        Above 1 slows retries during historically bad hours, below 1 speeds
        them up during good ones. Neutral until the hour has enough data.
        """
        entry = self._lookup(endpoint)
        if entry is None:
            return 1.0

        hour = self.current_hour()
        stat, lock = entry
        with lock:
            if stat.hourly_attempts[hour] < self.config.min_hourly_attempts:
                return 1.0
            hourly_rate = stat.hourly_success_rate[hour]
            avg_rate = sum(stat.hourly_success_rate) / HOURS_PER_DAY

        if hourly_rate <= DEAD_HOUR_RATE:
            return MAX_TIME_OF_DAY_FACTOR

        factor = avg_rate / hourly_rate
        return min(max(factor, MIN_TIME_OF_DAY_FACTOR), MAX_TIME_OF_DAY_FACTOR)

    def get_recovery_estimate(self, endpoint: str) -> float:
        """75th percentile of observed recovery times (ms)."""
        entry = self._lookup(endpoint)
        if entry is None:
            return self.config.default_recovery_time

        stat, lock = entry
        with lock:
            ordered = sorted(stat.recent_recovery_times)

        if not ordered:
            return self.config.default_recovery_time
        return ordered[int(len(ordered) * RECOVERY_PERCENTILE)]

    # Queries

    def get_stats(self, endpoint: str) -> Optional[EndpointStatistics]:
        """Copy of an endpoint's statistics, or None if untracked."""
        entry = self._lookup(endpoint)
        if entry is None:
            return None
        stat, lock = entry
        with lock:
            return copy.deepcopy(stat)

    def get_endpoints(self) -> List[str]:
        """Tracked endpoint identifiers."""
        with self._registry_lock:
            return list(self._stats.keys())

    # Lifecycle

    def set_config(self, config: AlgorithmConfig) -> None:
        """
        Switch to a new configuration.

        When ``max_history_samples`` changes, every tracked endpoint's
        recovery history is re-capped, keeping the newest entries.
        """
        resize = config.max_history_samples != self.config.max_history_samples
        self.config = config
        if not resize:
            return

        with self._registry_lock:
            entries = [(endpoint, stat, self._locks[endpoint]) for endpoint, stat in self._stats.items()]

        for endpoint, stat, lock in entries:
            with lock:
                stat.recent_recovery_times = deque(
                    stat.recent_recovery_times, maxlen=config.max_history_samples
                )
                stat.avg_recovery_time = _mean(stat.recent_recovery_times, config.default_recovery_time)
            self._schedule_save(endpoint)

        logger.info(f"Recovery history capped at {config.max_history_samples} samples")

    async def clear(self, endpoint: str) -> None:
        """Forget an endpoint in memory and in storage."""
        with self._registry_lock:
            self._stats.pop(endpoint, None)
            self._locks.pop(endpoint, None)

        if self._writer is not None:
            self._writer.cancel(endpoint)
            await self._writer.wait(endpoint)
            await self._delete_persisted(endpoint)

    async def clear_all(self) -> None:
        """Forget every endpoint in memory and in storage."""
        with self._registry_lock:
            endpoints = list(self._stats.keys())
            self._stats.clear()
            self._locks.clear()

        if self._writer is not None:
            self._writer.cancel_all()
            await self._writer.wait()
            for endpoint in endpoints:
                await self._delete_persisted(endpoint)

        logger.info(f"Cleared statistics for {len(endpoints)} endpoints")

    async def load_from_storage(self) -> int:
        """
        Load every persisted snapshot into memory.

        Malformed snapshots are skipped. Returns the number of endpoints
        loaded.
        """
        if self.storage is None:
            return 0

        try:
            keys = await self.storage.list_keys()
        except Exception as e:
            logger.error(f"Failed to list persisted statistics: {e}")
            return 0

        loaded = 0
        for key in keys:
            try:
                data = await self.storage.get(key)
            except Exception as e:
                logger.error(f"Failed to load statistics for '{key}': {e}")
                continue
            if data is None:
                continue

            try:
                snapshot = EndpointSnapshot.model_validate(data)
            except ValidationError as e:
                logger.warning(f"Skipping malformed statistics for '{key}': {e.error_count()} errors")
                continue

            stat = EndpointStatistics.from_snapshot(snapshot, self.config)
            with self._registry_lock:
                self._stats[key] = stat
                self._locks.setdefault(key, threading.RLock())
            loaded += 1

        logger.info(f"Loaded statistics for {loaded} endpoints from storage")
        return loaded

    async def flush(self) -> None:
        """Write all pending snapshots now."""
        if self._writer is not None:
            await self._writer.flush()

    def _schedule_save(self, endpoint: str) -> None:
        if self._writer is not None:
            self._writer.schedule(endpoint)

    def _snapshot_for(self, endpoint: str) -> Optional[Dict[str, Any]]:
        entry = self._lookup(endpoint)
        if entry is None:
            return None
        stat, lock = entry
        with lock:
            snapshot = stat.to_snapshot()
        return snapshot.model_dump(mode="json")

    async def _delete_persisted(self, endpoint: str) -> None:
        try:
            await self.storage.delete(endpoint)
        except Exception as e:
            logger.error(f"Failed to delete persisted statistics for '{endpoint}': {e}")
