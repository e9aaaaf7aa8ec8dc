"""
Configuration for the delay algorithm and circuit breakers.

All durations are milliseconds. AlgorithmConfig is a validated pydantic
model; partial per-category maps are merged over the defaults, so callers
only need to name the categories they want to change.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Union
from pydantic import BaseModel, Field, field_validator, model_validator

from .types import ErrorCategory


DEFAULT_BASE_DELAYS: Dict[ErrorCategory, float] = {
    ErrorCategory.TRANSIENT: 100,
    ErrorCategory.OVERLOAD: 1000,
    ErrorCategory.TIMEOUT: 500,
    ErrorCategory.PERMANENT: 0,
    ErrorCategory.UNKNOWN: 300,
}

DEFAULT_ERROR_WEIGHTS: Dict[ErrorCategory, float] = {
    ErrorCategory.TRANSIENT: 1.0,
    ErrorCategory.OVERLOAD: 3.0,
    ErrorCategory.TIMEOUT: 1.5,
    ErrorCategory.PERMANENT: 0,
    ErrorCategory.UNKNOWN: 2.0,
}


def _merge_category_map(value: Any, defaults: Dict[ErrorCategory, float]) -> Dict[ErrorCategory, float]:
    if value is None:
        return dict(defaults)
    if not isinstance(value, dict):
        raise ValueError("expected a mapping of error category to number")
    merged = dict(defaults)
    for key, amount in value.items():
        merged[ErrorCategory(key)] = amount
    return merged


class AlgorithmConfig(BaseModel):
    """
    Tunables for the delay calculator and statistics store.

    The last five fields are the heuristic constants of the learning model
    (blend weight, sample thresholds, priors).
    """
    base_delays: Dict[ErrorCategory, float] = Field(
        default_factory=lambda: dict(DEFAULT_BASE_DELAYS),
        description="Baseline delay per error category (ms)"
    )
    error_weights: Dict[ErrorCategory, float] = Field(
        default_factory=lambda: dict(DEFAULT_ERROR_WEIGHTS),
        description="Severity multiplier per error category"
    )
    streak_base: float = Field(default=1.5, ge=1.0, description="Geometric growth base for the streak penalty")
    max_streak_penalty: float = Field(default=10, ge=1.0, description="Upper bound on the streak penalty")
    jitter_percent: float = Field(default=0.2, ge=0.0, le=1.0, description="Symmetric jitter as a fraction of the delay")
    max_delay: int = Field(default=30000, ge=0, description="Largest delay ever returned (ms)")
    min_delay: int = Field(default=50, ge=0, description="Smallest delay ever returned (ms)")
    min_success_probability: float = Field(default=0.1, ge=0.0, le=1.0, description="Learned futility cutoff")
    max_history_samples: int = Field(default=100, ge=1, description="Recovery-time history cap per endpoint")

    recovery_blend_weight: float = Field(default=0.6, ge=0.0, le=1.0, description="Weight of the observed recovery estimate")
    min_streak_samples: int = Field(default=5, ge=1, description="Samples needed before trusting a streak tally")
    min_hourly_attempts: int = Field(default=10, ge=1, description="Attempts needed before trusting an hour bucket")
    success_prior: float = Field(default=0.7, gt=0.0, le=1.0, description="Per-attempt success prior")
    default_recovery_time: float = Field(default=1000, ge=0, description="Recovery prior while history is empty (ms)")

    model_config = {"extra": "forbid"}

    @field_validator("base_delays", mode="before")
    @classmethod
    def merge_base_delays(cls, v: Any) -> Dict[ErrorCategory, float]:
        """Overlay a partial map on the default base delays."""
        return _merge_category_map(v, DEFAULT_BASE_DELAYS)

    @field_validator("error_weights", mode="before")
    @classmethod
    def merge_error_weights(cls, v: Any) -> Dict[ErrorCategory, float]:
        """Overlay a partial map on the default error weights."""
        return _merge_category_map(v, DEFAULT_ERROR_WEIGHTS)

    @field_validator("base_delays", "error_weights")
    @classmethod
    def non_negative(cls, v: Dict[ErrorCategory, float]) -> Dict[ErrorCategory, float]:
        for category, amount in v.items():
            if amount < 0:
                raise ValueError(f"{category.value} must be >= 0, got {amount}")
        return v

    @model_validator(mode="after")
    def check_delay_bounds(self) -> AlgorithmConfig:
        """Ensure the clamp range is not inverted."""
        if self.min_delay > self.max_delay:
            raise ValueError(f"min_delay ({self.min_delay}) exceeds max_delay ({self.max_delay})")
        return self


@dataclass
class CircuitBreakerConfig:
    """Configuration for a per-endpoint circuit breaker."""
    failure_threshold: int = 5   # Consecutive failures before opening
    reset_timeout: float = 30000  # ms in OPEN before probing
    success_threshold: int = 2   # HALF_OPEN successes needed to close

    def __post_init__(self):
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")

    def updated(self, **overrides) -> CircuitBreakerConfig:
        """Return a copy with the given fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown circuit breaker settings: {sorted(unknown)}")
        values = {name: getattr(self, name) for name in known}
        values.update(overrides)
        return CircuitBreakerConfig(**values)


def get_default_config() -> AlgorithmConfig:
    """Fresh algorithm config with all defaults."""
    return AlgorithmConfig()


def get_default_circuit_breaker_config() -> CircuitBreakerConfig:
    """Fresh circuit breaker config with all defaults."""
    return CircuitBreakerConfig()


def merge_config(overrides: Optional[Union[AlgorithmConfig, Dict[str, Any]]] = None) -> AlgorithmConfig:
    """
    Build an AlgorithmConfig from user overrides.

    Args:
        overrides: A complete config, a dict of field overrides, or None

    Returns:
        Validated config; per-category maps merge key by key
    """
    if overrides is None:
        return AlgorithmConfig()
    if isinstance(overrides, AlgorithmConfig):
        return overrides.model_copy(deep=True)
    return AlgorithmConfig(**overrides)


def update_config(config: AlgorithmConfig, **overrides) -> AlgorithmConfig:
    """
    Return a new config with overrides applied on top of an existing one.

    Per-category maps merge over the existing values rather than the
    defaults.
    """
    values = config.model_dump()
    for name in ("base_delays", "error_weights"):
        if name in overrides and overrides[name] is not None:
            merged = dict(values[name])
            merged.update({ErrorCategory(k): v for k, v in overrides.pop(name).items()})
            values[name] = merged
    values.update(overrides)
    return AlgorithmConfig(**values)
