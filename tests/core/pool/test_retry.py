from unittest.mock import MagicMock

import pytest

from resilientdb.core.pool import RetryPolicy
from resilientdb.core.pool.retry import wait_backoff


def test_backoff_doubles_then_caps() -> None:
    policy = RetryPolicy(base_delay=1.0, max_delay=30.0)
    assert [policy.backoff(i) for i in range(7)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]


def test_backoff_is_bounded_and_monotonic() -> None:
    policy = RetryPolicy(base_delay=0.25, max_delay=10.0)
    delays = [policy.backoff(i) for i in range(200)]
    assert all(d <= policy.max_delay for d in delays)
    assert all(a <= b for a, b in zip(delays, delays[1:]))
    assert delays[-1] == policy.max_delay


def test_backoff_huge_index_does_not_overflow() -> None:
    assert RetryPolicy(base_delay=1.0, max_delay=5.0).backoff(10_000) == 5.0


def test_backoff_rejects_negative_index() -> None:
    with pytest.raises(ValueError):
        RetryPolicy().backoff(-1)


def test_default_policy() -> None:
    policy = RetryPolicy()
    assert policy.max_retries == 5
    assert policy.backoff(0) == 1.0
    assert policy.max_delay == 30.0


@pytest.mark.parametrize(
    "kwargs", [{"max_retries": -1}, {"base_delay": -0.1}, {"max_delay": -1.0}]
)
def test_policy_rejects_negative_values(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_wait_backoff_uses_attempt_number_minus_one() -> None:
    wait = wait_backoff(RetryPolicy(base_delay=1.0, max_delay=30.0))
    assert wait(MagicMock(attempt_number=1)) == 1.0
    assert wait(MagicMock(attempt_number=3)) == 4.0
