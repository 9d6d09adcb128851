"""
Tests for bounded exponential backoff.
"""

import asyncio

import pytest

from ctxpack.infrastructure.retry import RetryPolicy, with_retry


class Transient(Exception):
    pass


def _flaky(failures, result="ok", error=Transient):
    calls = []

    async def operation():
        calls.append(1)
        if len(calls) <= failures:
            raise error("boom")
        return result

    return operation, calls


def test_delays_grow_and_are_capped():
    policy = RetryPolicy(base_delay=0.5, max_delay=3.0)
    assert [policy.delay_for(n) for n in range(5)] == [0.5, 1.0, 2.0, 3.0, 3.0]


def test_succeeds_after_transient_failures():
    operation, calls = _flaky(2)
    policy = RetryPolicy(max_retries=2, base_delay=0.0)

    assert asyncio.run(with_retry(operation, policy, retry_on=(Transient,))) == "ok"
    assert len(calls) == 3


def test_gives_up_after_max_retries():
    operation, calls = _flaky(5)

    with pytest.raises(Transient):
        asyncio.run(with_retry(operation, RetryPolicy(max_retries=1, base_delay=0.0), retry_on=(Transient,)))
    assert len(calls) == 2


def test_unlisted_errors_are_not_retried():
    operation, calls = _flaky(1, error=KeyError)

    with pytest.raises(KeyError):
        asyncio.run(with_retry(operation, RetryPolicy(max_retries=3, base_delay=0.0), retry_on=(Transient,)))
    assert len(calls) == 1


def test_slow_attempts_time_out_and_are_retried():
    calls = []

    async def operation():
        calls.append(1)
        if len(calls) == 1:
            await asyncio.sleep(1.0)
        return "done"

    policy = RetryPolicy(max_retries=1, base_delay=0.0)
    result = asyncio.run(with_retry(operation, policy, retry_on=(Transient,), call_timeout=0.05))

    assert result == "done"
    assert len(calls) == 2
