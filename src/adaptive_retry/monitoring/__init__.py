"""
Monitoring for the adaptive retry layer.

Per-endpoint retry counts and delay summaries owned by each executor.
"""

from .metrics import DelaySummary, EndpointMetrics, RetryMetrics

__all__ = [
    "RetryMetrics",
    "EndpointMetrics",
    "DelaySummary",
]
