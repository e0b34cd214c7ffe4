import asyncio
from types import SimpleNamespace

import pytest

from llm import ModelOutputError
from retry import DEFAULT_POLICY, RetryPolicy


class Flaky:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self, value):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return f"{outcome}:{value}"


def test_succeeds_after_retryable_failures():
    fn = Flaky(ModelOutputError("bad json"), ModelOutputError("bad json"), "ok")
    result = asyncio.run(RetryPolicy(backoff_seconds=0).call(fn, "x"))
    assert result == "ok:x"
    assert fn.calls == 3


def test_last_error_propagates_when_attempts_run_out():
    fn = Flaky(ModelOutputError("one"), ModelOutputError("two"), ModelOutputError("three"), "never")
    with pytest.raises(ModelOutputError, match="three"):
        asyncio.run(RetryPolicy(backoff_seconds=0).call(fn, "x"))
    assert fn.calls == 3


def test_other_errors_are_not_retried():
    fn = Flaky(ConnectionError("down"), "ok")
    with pytest.raises(ConnectionError):
        asyncio.run(RetryPolicy(backoff_seconds=0).call(fn, "x"))
    assert fn.calls == 1


def test_custom_predicate():
    policy = RetryPolicy(max_attempts=2, backoff_seconds=0, retryable=lambda e: isinstance(e, ConnectionError))
    fn = Flaky(ConnectionError("blip"), "ok")
    assert asyncio.run(policy.call(fn, "y")) == "ok:y"


def test_single_attempt_policy():
    fn = Flaky(ModelOutputError("bad"), "ok")
    with pytest.raises(ModelOutputError):
        asyncio.run(RetryPolicy(max_attempts=1).call(fn, "x"))
    assert fn.calls == 1


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


def test_default_backoff_is_linear():
    wait = DEFAULT_POLICY._retrying().wait
    assert DEFAULT_POLICY.max_attempts == 3
    assert [wait(SimpleNamespace(attempt_number=n)) for n in (1, 2)] == [1.0, 2.0]
