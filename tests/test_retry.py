"""Tests for retry classification, backoff and cancellation."""

import time

import pytest

from git_suspect.context import RunContext
from git_suspect.errors import (
    AnalysisCancelled,
    ParseError,
    ReasoningTimeout,
    ReasoningTransportError,
    RetryExhaustedError,
)
from git_suspect.retry import RetryPolicy, is_retryable, with_retry

FAST = RetryPolicy(max_retries=3, base_delay=0.001, max_delay=0.002)


class Flaky:
    def __init__(self, failures, result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class _Response:
    status_code = 503


class _HttpError(Exception):
    response = _Response()


class TestIsRetryable:
    @pytest.mark.parametrize(
        "err",
        [
            ReasoningTimeout("slow"),
            TimeoutError(),
            ReasoningTransportError("quota", status_code=429),
            ReasoningTransportError("bad gateway", status_code=502),
            ReasoningTransportError("connection reset by peer"),
            _HttpError("upstream"),
        ],
    )
    def test_retryable(self, err):
        assert is_retryable(err)

    @pytest.mark.parametrize(
        "err",
        [
            None,
            ParseError("no verdict"),
            AnalysisCancelled(),
            ReasoningTransportError("bad request", status_code=400),
            ReasoningTransportError("permission denied", status_code=403),
            ValueError("boom"),
        ],
    )
    def test_not_retryable(self, err):
        assert not is_retryable(err)


class TestRetryPolicy:
    def test_delay_doubles_and_caps(self):
        policy = RetryPolicy(max_retries=5, base_delay=1.0, max_delay=30.0)
        assert [policy.delay(i) for i in range(6)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]


class TestWithRetry:
    def test_succeeds_after_transient_failures(self):
        op = Flaky([ReasoningTimeout("slow"), ReasoningTimeout("slow")])
        assert with_retry(op, FAST) == "ok"
        assert op.calls == 3

    def test_backoff_doubles_up_to_the_cap(self):
        ctx = RunContext()
        slept = []
        ctx.sleep = slept.append
        policy = RetryPolicy(max_retries=4, base_delay=1.0, max_delay=5.0)
        op = Flaky([ReasoningTimeout("slow")] * 4)

        assert with_retry(op, policy, ctx) == "ok"
        assert slept == [1.0, 2.0, 4.0, 5.0]
        assert slept == [policy.delay(n) for n in range(4)]

    def test_non_retryable_propagates_immediately(self):
        op = Flaky([ParseError("garbage")])
        with pytest.raises(ParseError):
            with_retry(op, FAST)
        assert op.calls == 1

    def test_exhaustion(self):
        errors = [ReasoningTransportError("overloaded", status_code=503) for _ in range(10)]
        op = Flaky(errors)
        with pytest.raises(RetryExhaustedError) as exc_info:
            with_retry(op, FAST)
        assert op.calls == FAST.max_retries + 1
        assert exc_info.value.attempts == FAST.max_retries
        assert isinstance(exc_info.value.__cause__, ReasoningTransportError)
        assert exc_info.value.last_error.status_code == 503

    def test_zero_retries_runs_once(self):
        op = Flaky([ReasoningTimeout("slow")])
        with pytest.raises(RetryExhaustedError):
            with_retry(op, RetryPolicy(max_retries=0))
        assert op.calls == 1

    def test_cancel_during_backoff(self):
        ctx = RunContext()

        def op():
            ctx.cancel()
            raise ReasoningTimeout("slow")

        started = time.monotonic()
        with pytest.raises(AnalysisCancelled):
            with_retry(op, RetryPolicy(max_retries=3, base_delay=10.0, max_delay=10.0), ctx)
        assert time.monotonic() - started < 5

    def test_already_cancelled_never_calls(self):
        ctx = RunContext()
        ctx.cancel()
        op = Flaky([])
        with pytest.raises(AnalysisCancelled):
            with_retry(op, FAST, ctx)
        assert op.calls == 0

    def test_deadline_bounds_the_backoff(self):
        ctx = RunContext.with_timeout(0.05)
        op = Flaky([ReasoningTimeout("slow")] * 10)
        started = time.monotonic()
        with pytest.raises(ReasoningTimeout):
            with_retry(op, RetryPolicy(max_retries=3, base_delay=10.0, max_delay=10.0), ctx)
        assert time.monotonic() - started < 5


class TestRunContext:
    def test_child_takes_earlier_deadline(self):
        parent = RunContext.with_timeout(100)
        child = parent.child(1)
        assert child.remaining() <= 1
        assert parent.child(1000).deadline == parent.deadline
        assert RunContext().child(None).deadline is None

    def test_child_shares_cancellation(self):
        parent = RunContext()
        child = parent.child(10)
        parent.cancel()
        assert child.cancelled
        with pytest.raises(AnalysisCancelled):
            child.check()

    def test_expired_check(self):
        ctx = RunContext.with_timeout(0)
        assert ctx.expired
        with pytest.raises(ReasoningTimeout):
            ctx.check()
