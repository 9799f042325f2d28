"""Tests for the message retry backoff policy."""

import random

import pytest

from switchboard.domain.services.retry_policy import RetryPolicy
from switchboard.settings import Settings


def test_nominal_delays_double_until_capped():
    """Test that nominal delays grow exponentially and stop at the cap."""
    policy = RetryPolicy()

    delays = [policy.base_delay_for(n) for n in range(7)]

    assert delays == [1000, 2000, 4000, 8000, 16000, 30000, 30000]


def test_huge_retry_index_does_not_overflow():
    """Test that very large retry indexes still return the cap."""
    policy = RetryPolicy()

    assert policy.base_delay_for(10_000) == 30000


def test_jitter_stays_within_ratio_and_cap():
    """Test that jittered delays stay within +/- jitter_ratio and never exceed the cap."""
    policy = RetryPolicy(jitter_ratio=0.1)
    rng = random.Random(42)

    for retry_index in range(8):
        nominal = policy.base_delay_for(retry_index)
        for _ in range(50):
            delay = policy.delay_for(retry_index, rng)
            assert nominal * 0.9 <= delay <= nominal * 1.1
            assert delay <= policy.max_delay_ms


def test_no_jitter_returns_nominal_delay():
    policy = RetryPolicy(jitter_ratio=0)

    assert policy.delay_for(2) == 4000


def test_exhaustion_after_max_attempts():
    """Test that the budget is used up after max_attempts failed attempts."""
    policy = RetryPolicy(max_attempts=5)

    assert not policy.is_exhausted(4)
    assert policy.is_exhausted(5)
    assert policy.is_exhausted(6)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"base_delay_ms": 0},
        {"backoff_factor": 0.5},
        {"base_delay_ms": 5000, "max_delay_ms": 1000},
        {"max_attempts": 0},
        {"jitter_ratio": 1.5},
    ],
)
def test_invalid_parameters_rejected(kwargs):
    """Test that nonsensical policies cannot be built."""
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_negative_retry_index_rejected():
    with pytest.raises(ValueError):
        RetryPolicy().base_delay_for(-1)


def test_policy_from_settings():
    """Test that the policy picks up the configured values."""
    settings = Settings(
        retry_base_delay_ms=250,
        retry_backoff_factor=3.0,
        retry_max_delay_ms=9000,
        retry_max_attempts=3,
        retry_jitter_ratio=0.2,
    )

    policy = RetryPolicy.from_settings(settings)

    assert policy.base_delay_ms == 250
    assert policy.backoff_factor == 3.0
    assert policy.max_delay_ms == 9000
    assert policy.max_attempts == 3
    assert policy.jitter_ratio == 0.2
    assert policy.base_delay_for(2) == 2250
