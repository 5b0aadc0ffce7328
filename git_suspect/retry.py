"""Bounded exponential backoff around fallible reasoning round trips."""

from dataclasses import dataclass
from typing import Callable, TypeVar

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from git_suspect.context import RunContext
from git_suspect.errors import AnalysisCancelled, ParseError, ReasoningTimeout, RetryExhaustedError
from git_suspect.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})

# Fallback when an error carries no status code.
TRANSIENT_MESSAGES = (
    "connection reset",
    "connection refused",
    "connection aborted",
    "no such host",
    "name or service not known",
    "nodename nor servname",
    "temporary failure",
    "timeout",
    "timed out",
)


@dataclass(frozen=True)
class RetryPolicy:
    """max_retries counts retries, so an operation runs at most max_retries + 1 times."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, retry_index: int) -> float:
        """Backoff before retry ``retry_index`` (0 = first retry)."""
        return min(self.base_delay * (2 ** retry_index), self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()


def _status_code(err: BaseException) -> int | None:
    code = getattr(err, "status_code", None)
    if code is None:
        response = getattr(err, "response", None)
        code = getattr(response, "status_code", None)
    return code if isinstance(code, int) else None


def is_retryable(err: BaseException | None) -> bool:
    """Whether an error is worth another attempt."""
    if err is None:
        return False
    if isinstance(err, (AnalysisCancelled, ParseError)):
        return False
    if isinstance(err, (ReasoningTimeout, TimeoutError)):
        return True
    if _status_code(err) in RETRYABLE_STATUS:
        return True
    message = str(err).lower()
    return any(m in message for m in TRANSIENT_MESSAGES)


def with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ctx: RunContext | None = None,
    label: str = "",
) -> T:
    """Run ``operation`` until it succeeds, fails for good, or the context ends.

    Non-retryable errors propagate unchanged on first sight. Cancellation
    during a backoff sleep raises AnalysisCancelled. Exhausting all retries
    raises RetryExhaustedError chained to the last error.
    """
    ctx = ctx or RunContext()
    prefix = f"[{label}] " if label else ""

    def log_retry(state: RetryCallState) -> None:
        logger.warning(
            "%sattempt %d failed: %s; retrying in %.1fs",
            prefix,
            state.attempt_number,
            state.outcome.exception(),
            state.next_action.sleep,
        )

    retryer = Retrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=wait_exponential(multiplier=policy.base_delay, max=policy.max_delay),
        retry=retry_if_exception(is_retryable),
        sleep=ctx.sleep,
        before=lambda state: ctx.check(),
        before_sleep=log_retry,
    )
    try:
        return retryer(operation)
    except RetryError as exc:
        last_error = exc.last_attempt.exception()
        raise RetryExhaustedError(policy.max_retries, last_error) from last_error
