"""
Core value types shared across the adaptive retry layer.

Enums for error categories and circuit states, plus the small
per-attempt value objects handed to callers and observers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar


T = TypeVar("T")


class ErrorCategory(str, Enum):
    """Classifier verdicts driving retry policy."""
    TRANSIENT = "TRANSIENT"
    OVERLOAD = "OVERLOAD"
    TIMEOUT = "TIMEOUT"
    PERMANENT = "PERMANENT"
    UNKNOWN = "UNKNOWN"


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "CLOSED"        # Normal operation
    OPEN = "OPEN"            # Rejecting attempts
    HALF_OPEN = "HALF_OPEN"  # Probing recovery


@dataclass(frozen=True)
class DelayFactors:
    """Signals that went into a single delay calculation."""
    error_weight: float
    time_of_day_factor: float
    recovery_estimate: float
    success_probability: float
    streak_penalty: float

    @classmethod
    def neutral(cls) -> "DelayFactors":
        """Factors reported when no calculation took place."""
        return cls(
            error_weight=0.0,
            time_of_day_factor=1.0,
            recovery_estimate=0.0,
            success_probability=0.0,
            streak_penalty=1.0,
        )


@dataclass(frozen=True)
class DelayResult:
    """Outcome of a delay calculation."""
    delay: int
    should_retry: bool
    factors: DelayFactors


@dataclass(frozen=True)
class RetryInfo:
    """Diagnostics passed to a retry observer before each wait."""
    attempt: int
    delay: int
    error: BaseException
    factors: DelayFactors
    category: ErrorCategory
    success_probability: float


@dataclass
class RetryResult(Generic[T]):
    """Successful execution result."""
    result: T
    attempts: int
    total_time: float
    endpoint: str

    def to_dict(self) -> dict:
        """Convert to dictionary (result left as-is)."""
        return {
            "result": self.result,
            "attempts": self.attempts,
            "total_time": self.total_time,
            "endpoint": self.endpoint,
        }
