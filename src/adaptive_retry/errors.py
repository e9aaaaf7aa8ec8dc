"""
Adaptive Retry Error Model

This module provides the exception hierarchy raised by the retry layer.
Failures of the wrapped operation are never wrapped: on exhaustion the
original exception propagates unchanged.
"""

from __future__ import annotations
from typing import Optional, Dict, Any


class AdaptiveRetryError(Exception):
    """
    Base class for all errors raised by the retry layer itself.

    Carries a message and optional structured details.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize an adaptive retry error.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        result: Dict[str, Any] = {
            "type": type(self).__name__,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class CircuitOpenError(AdaptiveRetryError):
    """Circuit is open for an endpoint; the attempt was rejected without running."""

    def __init__(self, endpoint: str, time_until_retry: float):
        self.endpoint = endpoint
        self.time_until_retry = time_until_retry
        super().__init__(
            f"Circuit breaker is open for endpoint: {endpoint}. "
            f"Retry in {time_until_retry:.0f}ms",
            {"endpoint": endpoint, "time_until_retry": time_until_retry},
        )


class OperationTimeoutError(AdaptiveRetryError, TimeoutError):
    """A single attempt exceeded its time budget."""

    def __init__(self, timeout_ms: float):
        self.timeout_ms = timeout_ms
        super().__init__(f"Timeout after {timeout_ms:.0f}ms", {"timeout_ms": timeout_ms})


class StorageError(AdaptiveRetryError):
    """A storage adapter failed to read or write a snapshot."""

    def __init__(self, message: str, key: Optional[str] = None, cause: Optional[Exception] = None):
        details: Dict[str, Any] = {}
        if key is not None:
            details["key"] = key
        if cause is not None:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.key = key
        self.cause = cause
