"""
Adaptive error recovery components.

Provides the learned statistics store, the delay calculator, per-endpoint
circuit breakers and the retry executor that ties them together.
"""

from .stats import StatisticsStore, EndpointStatistics, StreakTally
from .calculator import DelayCalculator
from .circuit_breaker import CircuitBreaker, CircuitBreakerStatus
from .retry import AdaptiveRetry, with_adaptive_retry

__all__ = [
    "StatisticsStore",
    "EndpointStatistics",
    "StreakTally",
    "DelayCalculator",
    "CircuitBreaker",
    "CircuitBreakerStatus",
    "AdaptiveRetry",
    "with_adaptive_retry"
]
