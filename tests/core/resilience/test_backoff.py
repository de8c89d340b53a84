"""
Tests for BackoffPolicy.

Test Coverage:
    - Doubling from the initial delay
    - Clamping to [initial_delay, max_delay]
    - Jitter stays within bounds
    - Window exhaustion
    - Validation of constructor arguments
    - Construction from stream connector settings
"""

import pytest

from core.resilience import BackoffPolicy


class TestGetDelay:
    def test_doubles_from_initial(self):
        policy = BackoffPolicy(initial_delay=1.0, max_delay=60.0)
        assert [policy.get_delay(i) for i in range(5)] == [1.0, 2.0, 4.0, 8.0, 16.0]

    def test_clamped_to_max(self):
        policy = BackoffPolicy(initial_delay=1.0, max_delay=60.0)
        assert policy.get_delay(6) == 60.0
        assert policy.get_delay(500) == 60.0

    def test_negative_attempt_treated_as_first(self):
        policy = BackoffPolicy(initial_delay=2.0, max_delay=10.0)
        assert policy.get_delay(-3) == 2.0

    def test_jitter_stays_in_bounds(self):
        policy = BackoffPolicy(initial_delay=1.0, max_delay=5.0, jitter=0.5)
        for attempt in range(10):
            for _ in range(20):
                assert 1.0 <= policy.get_delay(attempt) <= 5.0


class TestIsExhausted:
    def test_window(self):
        policy = BackoffPolicy(max_attempts=3)
        assert not policy.is_exhausted(1)
        assert not policy.is_exhausted(2)
        assert policy.is_exhausted(3)
        assert policy.is_exhausted(4)


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"initial_delay": -1},
            {"initial_delay": 5.0, "max_delay": 1.0},
            {"jitter": -0.1},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            BackoffPolicy(**kwargs)

    def test_coerces_strings(self):
        policy = BackoffPolicy(max_attempts="4", initial_delay="0.5", max_delay="2")
        assert policy.max_attempts == 4
        assert policy.initial_delay == 0.5
        assert policy.max_delay == 2.0


class TestFromStreamSettings:
    def test_minutes_converted(self):
        policy = BackoffPolicy.from_stream_settings(
            max_attempts=10, initial_backoff_seconds=1, max_backoff_minutes=1
        )
        assert policy.max_attempts == 10
        assert policy.initial_delay == 1.0
        assert policy.max_delay == 60.0
        assert policy.jitter == 0.0
