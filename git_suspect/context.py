"""Cooperative cancellation and deadlines shared by the orchestrator and workers."""

import threading
import time

from git_suspect.errors import AnalysisCancelled, ReasoningTimeout


class RunContext:
    """Cancellation signal plus an optional absolute deadline (monotonic clock).

    Children created with :meth:`child` share the parent's cancellation event,
    so cancelling the run reaches every in-flight call, while each child may
    carry a tighter deadline of its own.
    """

    def __init__(self, event: threading.Event | None = None, deadline: float | None = None):
        self._event = event or threading.Event()
        self.deadline = deadline

    @classmethod
    def with_timeout(cls, timeout: float | None) -> "RunContext":
        if timeout is None:
            return cls()
        return cls(deadline=time.monotonic() + timeout)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def child(self, timeout: float | None) -> "RunContext":
        deadline = self.deadline
        if timeout is not None:
            own = time.monotonic() + timeout
            deadline = own if deadline is None else min(deadline, own)
        return RunContext(self._event, deadline)

    def check(self) -> None:
        if self.cancelled:
            raise AnalysisCancelled()
        if self.expired:
            raise ReasoningTimeout("deadline exceeded")

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early on cancellation or deadline."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._event.wait(seconds)
        self.check()
