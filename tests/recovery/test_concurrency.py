"""
Tests for shared endpoint state under concurrent use.

Retry sequences running as coroutines, and recordings made from worker
threads, must each land exactly once in the endpoint's statistics and
breaker.
"""

import asyncio
import errno
import threading

import pytest

from adaptive_retry.config import CircuitBreakerConfig
from adaptive_retry.recovery.circuit_breaker import CircuitBreaker
from adaptive_retry.recovery.retry import AdaptiveRetry
from adaptive_retry.recovery.stats import StatisticsStore
from adaptive_retry.types import ErrorCategory


def failing_once():
    state = {"calls": 0}

    async def operation():
        state["calls"] += 1
        await asyncio.sleep(0)
        if state["calls"] == 1:
            raise ConnectionResetError(errno.ECONNRESET, "reset")
        return state["calls"]

    return operation


async def always_failing():
    await asyncio.sleep(0)
    raise ConnectionResetError(errno.ECONNRESET, "reset")


def run_threads(target, count: int = 8) -> None:
    threads = [threading.Thread(target=target) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


@pytest.mark.recovery
class TestConcurrentSequences:
    """Test many retry sequences sharing one endpoint."""

    @pytest.mark.asyncio
    async def test_gathered_sequences_count_exactly(self, fast_config, clock):
        retry = AdaptiveRetry(
            config=fast_config,
            circuit_breaker_config=CircuitBreakerConfig(failure_threshold=1000),
            clock=clock,
        )

        outcomes = await asyncio.gather(*(
            retry.execute(failing_once(), "shared", max_retries=3) for _ in range(30)
        ))

        assert all(outcome.attempts == 2 for outcome in outcomes)

        stats = retry.get_stats("shared")
        assert sum(stats.hourly_attempts) == 60
        assert stats.error_category_counts[ErrorCategory.TRANSIENT] == 30
        assert sum(count for category, count in stats.error_category_counts.items()
                   if category != ErrorCategory.TRANSIENT) == 0

        metrics = retry.metrics.get_endpoint("shared")
        assert metrics.attempts == 60
        assert metrics.successes == 30
        assert metrics.retries[ErrorCategory.TRANSIENT] == 30

    @pytest.mark.asyncio
    async def test_gathered_failures_reach_breaker_exactly(self, fast_config, clock):
        retry = AdaptiveRetry(
            config=fast_config,
            circuit_breaker_config=CircuitBreakerConfig(failure_threshold=1000),
            clock=clock,
        )

        results = await asyncio.gather(
            *(retry.execute(always_failing, "shared", max_retries=1) for _ in range(25)),
            return_exceptions=True,
        )

        assert all(isinstance(result, ConnectionResetError) for result in results)
        assert retry.get_circuit_breaker_status("shared").failure_count == 25

        stats = retry.get_stats("shared")
        assert sum(stats.hourly_attempts) == 25
        assert stats.consecutive_failures == 25
        assert sum(tally.failed for tally in stats.streak_outcomes.values()) == 25


@pytest.mark.recovery
class TestThreadedRecording:
    """Test recordings made from worker threads."""

    def test_store_records_are_atomic(self, clock):
        store = StatisticsStore(clock=clock)

        def work():
            for _ in range(500):
                store.record_failure("shared", ErrorCategory.TIMEOUT)
                store.record_success("shared", 2, recovery_time=5)

        run_threads(work)

        stats = store.get_stats("shared")
        assert sum(stats.hourly_attempts) == 8000
        assert stats.error_category_counts[ErrorCategory.TIMEOUT] == 4000
        assert stats.consecutive_failures == 0
        assert 0.0 <= stats.hourly_success_rate[store.current_hour()] <= 1.0

    def test_first_record_from_many_threads_creates_one_entry(self, clock):
        store = StatisticsStore(clock=clock)
        barrier = threading.Barrier(8)

        def work():
            barrier.wait()
            store.record_failure("fresh", ErrorCategory.OVERLOAD)

        run_threads(work)

        assert store.get_endpoints() == ["fresh"]
        assert store.get_stats("fresh").error_category_counts[ErrorCategory.OVERLOAD] == 8

    def test_breaker_failures_are_atomic(self, clock):
        breaker = CircuitBreaker("shared", CircuitBreakerConfig(failure_threshold=100000), clock)

        def work():
            for _ in range(1000):
                breaker.record_failure()

        run_threads(work)

        assert breaker.failure_count == 8000
        assert breaker.is_closed
