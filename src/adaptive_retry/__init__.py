"""
Adaptive Retry

Retry layer that learns from each endpoint's history: delays adapt to the
error category, time of day, observed recovery time and failure streaks,
with a per-endpoint circuit breaker and optional persistence.
"""

# Core types and configuration
from .types import ErrorCategory, CircuitState, DelayFactors, DelayResult, RetryInfo, RetryResult
from .config import (
    AlgorithmConfig, CircuitBreakerConfig,
    get_default_config, get_default_circuit_breaker_config, merge_config, update_config
)
from .errors import AdaptiveRetryError, CircuitOpenError, OperationTimeoutError, StorageError

# Error classification
from .classifier import (
    ErrorClassifier, DefaultClassifier, StatusCodeClassifier, FunctionClassifier,
    classify_error, extract_status_code, extract_error_code, is_retryable, get_category_description
)

# Recovery
from .recovery import (
    StatisticsStore, EndpointStatistics, StreakTally,
    DelayCalculator, CircuitBreaker, CircuitBreakerStatus,
    AdaptiveRetry, with_adaptive_retry
)

# Persistence
from .storage import StorageAdapter, InMemoryStorage, FileStorage, EndpointSnapshot

# Monitoring
from .monitoring import RetryMetrics, EndpointMetrics, DelaySummary

__version__ = "1.0.0"
__all__ = [
    # Types
    "ErrorCategory",
    "CircuitState",
    "DelayFactors",
    "DelayResult",
    "RetryInfo",
    "RetryResult",

    # Configuration
    "AlgorithmConfig",
    "CircuitBreakerConfig",
    "get_default_config",
    "get_default_circuit_breaker_config",
    "merge_config",
    "update_config",

    # Errors
    "AdaptiveRetryError",
    "CircuitOpenError",
    "OperationTimeoutError",
    "StorageError",

    # Classification
    "ErrorClassifier",
    "DefaultClassifier",
    "StatusCodeClassifier",
    "FunctionClassifier",
    "classify_error",
    "extract_status_code",
    "extract_error_code",
    "is_retryable",
    "get_category_description",

    # Recovery
    "StatisticsStore",
    "EndpointStatistics",
    "StreakTally",
    "DelayCalculator",
    "CircuitBreaker",
    "CircuitBreakerStatus",
    "AdaptiveRetry",
    "with_adaptive_retry",

    # Persistence
    "StorageAdapter",
    "InMemoryStorage",
    "FileStorage",
    "EndpointSnapshot",

    # Monitoring
    "RetryMetrics",
    "EndpointMetrics",
    "DelaySummary",
]
