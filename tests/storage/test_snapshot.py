"""
Tests for snapshot validation.
"""

import pytest
from pydantic import ValidationError

from adaptive_retry.storage.snapshot import EndpointSnapshot, clamp_bucket
from adaptive_retry.types import ErrorCategory


@pytest.mark.unit
class TestEndpointSnapshot:
    """Test parsing of persisted endpoint statistics."""

    def test_defaults(self):
        snapshot = EndpointSnapshot(endpoint="api")

        assert snapshot.hourly_success_rate == [0.5] * 24
        assert snapshot.hourly_attempts == [0] * 24
        assert snapshot.error_category_counts == {category: 0 for category in ErrorCategory}

    def test_string_streak_keys_become_ints(self):
        snapshot = EndpointSnapshot.model_validate({
            "endpoint": "api",
            "streak_outcomes": {"2": {"succeeded": 3}, "0": {"failed": 1}, "15": {"succeeded": 1}},
        })

        assert set(snapshot.streak_outcomes) == {1, 2, 10}
        assert snapshot.streak_outcomes[2].succeeded == 3
        assert snapshot.streak_outcomes[2].failed == 0
        assert snapshot.streak_outcomes[1].failed == 1

    def test_duplicate_buckets_merge(self):
        snapshot = EndpointSnapshot.model_validate({
            "endpoint": "api",
            "streak_outcomes": {"11": {"succeeded": 1}, "12": {"succeeded": 2, "failed": 1}},
        })

        assert snapshot.streak_outcomes[10].succeeded == 3
        assert snapshot.streak_outcomes[10].failed == 1

    def test_rates_clamped(self):
        rates = [0.5] * 24
        rates[3] = 1.7
        rates[4] = -0.2

        snapshot = EndpointSnapshot(endpoint="api", hourly_success_rate=rates)

        assert snapshot.hourly_success_rate[3] == 1.0
        assert snapshot.hourly_success_rate[4] == 0.0

    @pytest.mark.parametrize("data", [
        {"endpoint": "api", "hourly_success_rate": [0.5] * 23},
        {"endpoint": "api", "hourly_attempts": [-1] * 24},
        {"endpoint": "api", "recent_recovery_times": [-5]},
        {"endpoint": "api", "streak_outcomes": {"x": {"succeeded": 1}}},
        {"endpoint": "api", "streak_outcomes": {"2": 7}},
        {"endpoint": "api", "streak_outcomes": {"3": {"succeeded": None, "failed": 1}}},
        {"endpoint": "api", "streak_outcomes": {"3": {"failed": [1]}}},
        {"endpoint": "api", "error_category_counts": {"BOGUS": 1}},
        {"hourly_attempts": [0] * 24},
    ])
    def test_malformed_rejected(self, data):
        with pytest.raises(ValidationError):
            EndpointSnapshot.model_validate(data)

    def test_json_dump_uses_string_keys(self):
        snapshot = EndpointSnapshot.model_validate({
            "endpoint": "api",
            "streak_outcomes": {"3": {"succeeded": 1}},
            "error_category_counts": {"TIMEOUT": 2},
        })

        data = snapshot.model_dump(mode="json")

        assert data["streak_outcomes"] == {"3": {"succeeded": 1, "failed": 0}}
        assert data["error_category_counts"]["TIMEOUT"] == 2

    def test_clamp_bucket(self):
        assert clamp_bucket(0) == 1
        assert clamp_bucket(5) == 5
        assert clamp_bucket(42) == 10
