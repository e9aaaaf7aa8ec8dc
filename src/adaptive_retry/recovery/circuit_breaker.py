"""
Per-endpoint circuit breaker.

Stops calling an endpoint after a run of consecutive failures and probes
it again once a cooldown has elapsed. The OPEN to HALF_OPEN transition
happens lazily on the next ``can_attempt()`` call; there are no timers.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..config import CircuitBreakerConfig
from ..types import CircuitState


logger = logging.getLogger(__name__)


@dataclass
class CircuitBreakerStatus:
    """Point-in-time view of a circuit breaker."""
    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_time: Optional[float]
    last_state_change: float
    time_until_retry: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time,
            "last_state_change": self.last_state_change,
            "time_until_retry": self.time_until_retry,
        }


class CircuitBreaker:
    """
    Three-state circuit breaker driven by consecutive failures.

    - CLOSED: attempts allowed; opens after ``failure_threshold`` failures in a row
    - OPEN: attempts rejected until ``reset_timeout`` ms after the last failure
    - HALF_OPEN: attempts allowed; closes after ``success_threshold``
      successes, reopens on any failure

    Times are milliseconds taken from an injectable clock.
    """

    def __init__(
        self,
        name: str = "default",
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Identifier used in logs (usually the endpoint)
            config: Breaker thresholds
            clock: Wall clock in seconds
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.last_state_change = self._now_ms()

        self._lock = threading.RLock()

    def _now_ms(self) -> float:
        return self._clock() * 1000

    @property
    def state(self) -> CircuitState:
        """Current state without triggering the cooldown check."""
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self._state == CircuitState.HALF_OPEN

    def can_attempt(self) -> bool:
        """
        Check whether an attempt may proceed.

        An OPEN breaker whose cooldown has elapsed moves to HALF_OPEN and
        admits the attempt.
        """
        with self._lock:
            if self._state != CircuitState.OPEN:
                return True

            if self._cooldown_elapsed():
                self._transition_to(CircuitState.HALF_OPEN)
                return True

            return False

    def record_success(self) -> None:
        """Record a successful attempt."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self.failure_count = 0

    def record_failure(self) -> None:
        """Record a failed attempt."""
        with self._lock:
            self.last_failure_time = self._now_ms()

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif self._state == CircuitState.CLOSED:
                self.failure_count += 1
                if self.failure_count >= self.config.failure_threshold:
                    self._transition_to(CircuitState.OPEN)

            logger.debug(
                f"Circuit '{self.name}': recorded failure {self.failure_count}, "
                f"state={self._state.value}"
            )

    def get_status(self) -> CircuitBreakerStatus:
        """Snapshot of the breaker; ``time_until_retry`` is set only while OPEN."""
        with self._lock:
            time_until_retry = None
            if self._state == CircuitState.OPEN:
                time_until_retry = self._time_until_retry()

            return CircuitBreakerStatus(
                name=self.name,
                state=self._state,
                failure_count=self.failure_count,
                success_count=self.success_count,
                last_failure_time=self.last_failure_time,
                last_state_change=self.last_state_change,
                time_until_retry=time_until_retry,
            )

    def reset(self) -> None:
        """Force CLOSED and forget all failure history."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self.failure_count = 0
            self.success_count = 0
            self.last_failure_time = None
        logger.info(f"Circuit '{self.name}' reset")

    def open(self) -> None:
        """Force OPEN; the cooldown starts now."""
        with self._lock:
            self._transition_to(CircuitState.OPEN)
            self.last_failure_time = self._now_ms()

    def update_config(self, **overrides) -> None:
        """Replace thresholds; the current state is kept."""
        with self._lock:
            self.config = self.config.updated(**overrides)

    def _cooldown_elapsed(self) -> bool:
        if self.last_failure_time is None:
            return True
        return self._now_ms() - self.last_failure_time >= self.config.reset_timeout

    def _time_until_retry(self) -> float:
        if self.last_failure_time is None:
            return 0.0
        elapsed = self._now_ms() - self.last_failure_time
        return max(0.0, self.config.reset_timeout - elapsed)

    def _transition_to(self, new_state: CircuitState) -> None:
        """Move to a new state; same-state calls are no-ops."""
        if new_state == self._state:
            return

        old_state = self._state
        self._state = new_state
        self.last_state_change = self._now_ms()

        if new_state == CircuitState.CLOSED:
            self.failure_count = 0
            self.success_count = 0
        elif new_state == CircuitState.HALF_OPEN:
            self.success_count = 0

        logger.info(
            f"Circuit '{self.name}': {old_state.value} -> {new_state.value} "
            f"(failures: {self.failure_count})"
        )

    def __repr__(self) -> str:
        return f"CircuitBreaker(name='{self.name}', state={self._state.value})"
