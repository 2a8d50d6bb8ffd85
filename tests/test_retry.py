"""Tests for the bounded retry wrapper."""

from __future__ import annotations

import random

import pytest

from conclave_tick.retry import RetryPolicy, TransientError, call_with_retry


def test_delay_grows_exponentially_and_caps():
    policy = RetryPolicy(attempts=5, base_delay=1.0, max_delay=8.0, jitter=0.0)
    assert [policy.delay_for(attempt) for attempt in range(5)] == [1.0, 2.0, 4.0, 8.0, 8.0]


def test_jitter_stays_within_ratio():
    policy = RetryPolicy(base_delay=2.0, max_delay=10.0, jitter=0.25)
    rng = random.Random(7)
    for _ in range(50):
        delay = policy.delay_for(0, rng)
        assert 1.5 <= delay <= 2.5


def test_transient_failures_are_retried():
    calls = []
    sleeps = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise TransientError("503")
        return "ok"

    result = call_with_retry(
        flaky,
        policy=RetryPolicy(attempts=3, base_delay=0.5, jitter=0.0),
        sleep=sleeps.append,
    )
    assert result == "ok"
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_non_transient_errors_propagate_immediately():
    calls = []
    sleeps = []

    def broken():
        calls.append(1)
        raise ValueError("bug")

    with pytest.raises(ValueError):
        call_with_retry(broken, policy=RetryPolicy(attempts=5), sleep=sleeps.append)
    assert len(calls) == 1
    assert sleeps == []


def test_exhaustion_raises_last_transient_error():
    sleeps = []

    def always_down():
        raise TransientError("still down", result="last")

    with pytest.raises(TransientError) as excinfo:
        call_with_retry(
            always_down,
            policy=RetryPolicy(attempts=2, jitter=0.0),
            sleep=sleeps.append,
        )
    assert excinfo.value.result == "last"
    assert len(sleeps) == 1
