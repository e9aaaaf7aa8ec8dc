"""
Serialized form of per-endpoint statistics.

Validates snapshots coming back from storage and restores the
integer-keyed streak tally from its string-keyed JSON form.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_serializer, field_validator

from ..types import ErrorCategory


HOURS_PER_DAY = 24
MIN_STREAK_BUCKET = 1
MAX_STREAK_BUCKET = 10


def clamp_bucket(streak: int) -> int:
    """Clamp a streak length into the tally's bucket range."""
    return max(MIN_STREAK_BUCKET, min(int(streak), MAX_STREAK_BUCKET))


class StreakTallySnapshot(BaseModel):
    """How often a failure streak of a given length ended each way."""
    succeeded: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)


class EndpointSnapshot(BaseModel):
    """
    Persisted EndpointStatistics.

    Hour arrays must have 24 entries; rates are clamped to [0, 1] and
    out-of-range streak buckets are folded into the nearest valid bucket.
    """
    endpoint: str
    recent_recovery_times: List[float] = Field(default_factory=list)
    avg_recovery_time: float = Field(default=1000, ge=0)
    hourly_success_rate: List[float] = Field(default_factory=lambda: [0.5] * HOURS_PER_DAY)
    hourly_attempts: List[int] = Field(default_factory=lambda: [0] * HOURS_PER_DAY)
    streak_outcomes: Dict[int, StreakTallySnapshot] = Field(default_factory=dict)
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None
    consecutive_failures: int = Field(default=0, ge=0)
    error_category_counts: Dict[ErrorCategory, int] = Field(
        default_factory=lambda: {category: 0 for category in ErrorCategory}
    )

    @field_validator("hourly_success_rate")
    @classmethod
    def check_rates(cls, v: List[float]) -> List[float]:
        if len(v) != HOURS_PER_DAY:
            raise ValueError(f"expected {HOURS_PER_DAY} hourly rates, got {len(v)}")
        return [min(max(rate, 0.0), 1.0) for rate in v]

    @field_validator("hourly_attempts")
    @classmethod
    def check_attempts(cls, v: List[int]) -> List[int]:
        if len(v) != HOURS_PER_DAY:
            raise ValueError(f"expected {HOURS_PER_DAY} hourly counters, got {len(v)}")
        if any(count < 0 for count in v):
            raise ValueError("hourly attempt counters must be >= 0")
        return v

    @field_validator("recent_recovery_times")
    @classmethod
    def check_recovery_times(cls, v: List[float]) -> List[float]:
        if any(duration < 0 for duration in v):
            raise ValueError("recovery times must be >= 0")
        return v

    @field_validator("streak_outcomes", mode="before")
    @classmethod
    def parse_streak_buckets(cls, v: Any) -> Dict[int, Any]:
        """Turn "3"-style JSON keys back into clamped integer buckets."""
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("streak_outcomes must be a mapping")

        buckets: Dict[int, Dict[str, int]] = {}
        for key, tally in v.items():
            if isinstance(tally, StreakTallySnapshot):
                tally = tally.model_dump()
            if not isinstance(tally, dict):
                raise ValueError(f"streak bucket {key} is not a tally")
            try:
                bucket = clamp_bucket(int(key))
                succeeded = int(tally.get("succeeded", 0))
                failed = int(tally.get("failed", 0))
            except (TypeError, ValueError) as e:
                raise ValueError(f"streak bucket {key!r} is malformed: {e}")
            merged = buckets.setdefault(bucket, {"succeeded": 0, "failed": 0})
            merged["succeeded"] += succeeded
            merged["failed"] += failed
        return buckets

    @field_validator("error_category_counts")
    @classmethod
    def fill_categories(cls, v: Dict[ErrorCategory, int]) -> Dict[ErrorCategory, int]:
        counts = {category: 0 for category in ErrorCategory}
        counts.update(v)
        return counts

    @field_serializer("streak_outcomes")
    def serialize_streak_buckets(self, v: Dict[int, StreakTallySnapshot]) -> Dict[str, Dict[str, int]]:
        return {str(bucket): tally.model_dump() for bucket, tally in sorted(v.items())}

    @field_serializer("error_category_counts")
    def serialize_category_counts(self, v: Dict[ErrorCategory, int]) -> Dict[str, int]:
        return {category.value: count for category, count in v.items()}
