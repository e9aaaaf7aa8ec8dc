"""
Retry activity metrics.

Per-endpoint counts of attempts, outcomes and chosen delays, kept by each
retry executor and reported through ``AdaptiveRetry.get_metrics()``.
"""

import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..types import ErrorCategory, RetryInfo


def _per_category() -> Dict[ErrorCategory, int]:
    return {category: 0 for category in ErrorCategory}


@dataclass
class DelaySummary:
    """Delays (ms) chosen after failures of one category."""
    count: int = 0
    total: float = 0.0
    min: Optional[float] = None
    max: Optional[float] = None

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0

    def observe(self, delay: float) -> None:
        self.count += 1
        self.total += delay
        self.min = delay if self.min is None else min(self.min, delay)
        self.max = delay if self.max is None else max(self.max, delay)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "total": self.total,
            "min": self.min,
            "max": self.max,
            "average": self.average,
        }


@dataclass
class EndpointMetrics:
    """What the executor did for one endpoint."""
    endpoint: str
    attempts: int = 0
    successes: int = 0
    circuit_rejections: int = 0
    retries: Dict[ErrorCategory, int] = field(default_factory=_per_category)
    exhausted: Dict[ErrorCategory, int] = field(default_factory=_per_category)
    delays: Dict[ErrorCategory, DelaySummary] = field(default_factory=dict)

    @property
    def total_retries(self) -> int:
        return sum(self.retries.values())

    @property
    def total_exhausted(self) -> int:
        return sum(self.exhausted.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "circuit_rejections": self.circuit_rejections,
            "retries": {category.value: count for category, count in self.retries.items()},
            "exhausted": {category.value: count for category, count in self.exhausted.items()},
            "delays": {category.value: summary.to_dict() for category, summary in self.delays.items()},
        }


class RetryMetrics:
    """
    Thread-safe per-endpoint retry metrics.

    Each executor owns one instance; there is no process-wide registry.
    """

    def __init__(self):
        self._endpoints: Dict[str, EndpointMetrics] = {}
        self._lock = threading.Lock()

    def _entry(self, endpoint: str) -> EndpointMetrics:
        # Caller holds the lock
        entry = self._endpoints.get(endpoint)
        if entry is None:
            entry = EndpointMetrics(endpoint)
            self._endpoints[endpoint] = entry
        return entry

    def record_attempt(self, endpoint: str) -> None:
        with self._lock:
            self._entry(endpoint).attempts += 1

    def record_success(self, endpoint: str) -> None:
        with self._lock:
            self._entry(endpoint).successes += 1

    def record_retry(self, endpoint: str, info: RetryInfo) -> None:
        """Count a scheduled retry and the delay chosen for it."""
        with self._lock:
            entry = self._entry(endpoint)
            entry.retries[info.category] += 1
            entry.delays.setdefault(info.category, DelaySummary()).observe(info.delay)

    def record_exhausted(self, endpoint: str, category: ErrorCategory) -> None:
        with self._lock:
            self._entry(endpoint).exhausted[category] += 1

    def record_rejection(self, endpoint: str) -> None:
        with self._lock:
            self._entry(endpoint).circuit_rejections += 1

    def get_endpoint(self, endpoint: str) -> Optional[EndpointMetrics]:
        """Copy of one endpoint's metrics, or None if nothing was recorded."""
        with self._lock:
            entry = self._endpoints.get(endpoint)
            return copy.deepcopy(entry) if entry is not None else None

    def totals(self) -> Dict[str, int]:
        """Counts summed over all endpoints."""
        with self._lock:
            entries = list(self._endpoints.values())
            return {
                "attempts": sum(entry.attempts for entry in entries),
                "successes": sum(entry.successes for entry in entries),
                "retries": sum(entry.total_retries for entry in entries),
                "exhausted": sum(entry.total_exhausted for entry in entries),
                "circuit_rejections": sum(entry.circuit_rejections for entry in entries),
            }

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict report: overall totals and each endpoint's breakdown."""
        totals = self.totals()
        with self._lock:
            endpoints = {name: entry.to_dict() for name, entry in self._endpoints.items()}
        return {"totals": totals, "endpoints": endpoints}

    def reset(self, endpoint: Optional[str] = None) -> None:
        """Forget one endpoint's metrics, or all of them."""
        with self._lock:
            if endpoint is None:
                self._endpoints.clear()
            else:
                self._endpoints.pop(endpoint, None)
