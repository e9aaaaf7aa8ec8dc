"""
Adaptive delay calculation.

Combines the error category with learned endpoint signals to produce the
wait before the next attempt, or a decision to stop retrying.
"""

import math
import random
from typing import Optional

from ..config import AlgorithmConfig, merge_config, update_config
from ..types import DelayFactors, DelayResult, ErrorCategory
from .stats import StatisticsStore


class DelayCalculator:
    """
    Computes retry delays from error category and endpoint history.

    The delay is the category baseline scaled by severity, time of day and
    streak length, blended towards the observed recovery time, jittered and
    clamped to the configured bounds.
    """

    def __init__(self, config: Optional[AlgorithmConfig] = None, rng: Optional[random.Random] = None):
        """
        Initialize delay calculator.

        Args:
            config: Algorithm configuration (defaults if omitted)
            rng: Random source for jitter
        """
        self.config = merge_config(config)
        self.rng = rng or random.Random()

    def calculate(
        self,
        category: ErrorCategory,
        attempt_number: int,
        stats: StatisticsStore,
        endpoint: str
    ) -> DelayResult:
        """
        Calculate the delay before the next attempt.

        Args:
            category: Classification of the failure just observed
            attempt_number: 1-based attempt that failed
            stats: Statistics source for the endpoint
            endpoint: Endpoint identifier

        Returns:
            DelayResult with the delay in ms and the retry decision
        """
        if category == ErrorCategory.PERMANENT:
            return DelayResult(delay=0, should_retry=False, factors=DelayFactors.neutral())

        factors = self.compute_factors(category, attempt_number, stats, endpoint)

        if factors.success_probability < self.config.min_success_probability:
            return DelayResult(delay=0, should_retry=False, factors=factors)

        delay = (
            self.config.base_delays[category]
            * factors.error_weight
            * factors.time_of_day_factor
            * factors.streak_penalty
        )

        if factors.recovery_estimate > 0:
            weight = self.config.recovery_blend_weight
            delay = delay * (1 - weight) + factors.recovery_estimate * weight

        jitter_range = delay * self.config.jitter_percent
        delay += jitter_range * self.rng.uniform(-1, 1)

        delay = max(self.config.min_delay, delay)
        delay = min(self.config.max_delay, delay)

        # Round half up
        return DelayResult(delay=int(math.floor(delay + 0.5)), should_retry=True, factors=factors)

    def compute_factors(
        self,
        category: ErrorCategory,
        attempt_number: int,
        stats: StatisticsStore,
        endpoint: str
    ) -> DelayFactors:
        """Collect the signals feeding a delay calculation."""
        return DelayFactors(
            error_weight=self.config.error_weights[category],
            time_of_day_factor=stats.get_time_of_day_factor(endpoint),
            recovery_estimate=stats.get_recovery_estimate(endpoint),
            success_probability=stats.get_success_probability(endpoint, attempt_number),
            streak_penalty=self.streak_penalty(attempt_number),
        )

    def streak_penalty(self, attempt_number: int) -> float:
        return min(
            self.config.streak_base ** (attempt_number - 1),
            self.config.max_streak_penalty
        )

    def get_config(self) -> AlgorithmConfig:
        """Copy of the active configuration."""
        return self.config.model_copy(deep=True)

    def update_config(self, **overrides) -> None:
        """Apply validated overrides to the active configuration."""
        self.config = update_config(self.config, **overrides)
