"""Two-phase analysis: sequential diff extraction, then bounded parallel reasoning.

Phase 1 walks the selected commits in order on the calling thread, because
the git reader must never be used from two threads at once. Phase 2 hands
the extracted diffs to a fixed-size thread pool for the reasoning calls.
Every commit ends as exactly one AnalysisOutcome, and outcomes reach the sink
in commit order through OrderedEmitter.
"""

import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait

from git_suspect.context import RunContext
from git_suspect.diffs import DEFAULT_MAX_DIFF_SIZE, DiffExtractor
from git_suspect.errors import AnalysisCancelled, GitSuspectError
from git_suspect.filters import IgnorePolicy
from git_suspect.llm import ReasoningClient
from git_suspect.logging_config import get_logger
from git_suspect.miner import GitReader, select_commits
from git_suspect.models import AnalysisOutcome, AnalysisVerdict, Commit, DiffContext, RunSummary, SummaryCounter
from git_suspect.parser import parse_verdict
from git_suspect.prompt import build_prompt
from git_suspect.retry import DEFAULT_RETRY_POLICY, RetryPolicy, with_retry
from git_suspect.utils import truncate_commit_message
from git_suspect.validator import MAX_WORKERS

logger = get_logger(__name__)

MIN_WORKERS = 1
DEFAULT_WORKERS = 3
DEFAULT_CALL_TIMEOUT = 600.0
DEFAULT_GRACE_PERIOD = 5.0
POLL_INTERVAL = 0.2


def clamp_workers(workers: int) -> int:
    return max(MIN_WORKERS, min(MAX_WORKERS, int(workers)))


class OrderedEmitter:
    """Reorders concurrent submissions back into index order for one sink.

    The lock guards the pending map, the cursor, the counters and the sink
    write together; nothing else touches the sink during a run.
    """

    def __init__(self, sink, total: int):
        self._sink = sink
        self._lock = threading.Lock()
        self._pending: dict[int, AnalysisOutcome] = {}
        self._next = 0
        self._total = total
        self._counter = SummaryCounter(total)
        self.sink_errors = 0

    def submit(self, outcome: AnalysisOutcome) -> bool:
        """Buffer ``outcome`` and flush every ready index. False for duplicates."""
        with self._lock:
            if outcome.index < self._next or outcome.index in self._pending:
                logger.debug("ignoring late outcome for slot %d", outcome.index)
                return False
            self._pending[outcome.index] = outcome
            while self._next in self._pending:
                ready = self._pending.pop(self._next)
                self._counter.record(ready)
                try:
                    self._sink.emit(ready)
                except Exception:
                    self.sink_errors += 1
                    logger.exception("failed to write result for %s", ready.short_id)
                self._next += 1
            return True

    def has(self, index: int) -> bool:
        with self._lock:
            return index < self._next or index in self._pending

    @property
    def complete(self) -> bool:
        with self._lock:
            return self._next >= self._total

    def summary(self, duration: float = 0.0, model: str = "") -> RunSummary:
        with self._lock:
            summary = self._counter.snapshot(duration, model)
            summary.sink_errors = self.sink_errors
            return summary


class TwoPhaseOrchestrator:
    """Runs selection, extraction and analysis for one repository."""

    def __init__(
        self,
        reader: GitReader,
        client: ReasoningClient,
        bug_description: str,
        workers: int = DEFAULT_WORKERS,
        call_timeout: float | None = DEFAULT_CALL_TIMEOUT,
        max_diff_size: int = DEFAULT_MAX_DIFF_SIZE,
        policy: IgnorePolicy | None = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        message_max_length: int = 80,
        skip_merges: bool = True,
    ):
        self.reader = reader
        self.client = client
        self.bug_description = bug_description
        self.workers = clamp_workers(workers)
        self.call_timeout = call_timeout
        self.max_diff_size = max_diff_size
        self.policy = policy or IgnorePolicy()
        self.retry_policy = retry_policy
        self.grace_period = grace_period
        self.message_max_length = message_max_length
        self.skip_merges = skip_merges

    def run(self, count: int, sink, branch: str | None = None, ctx: RunContext | None = None) -> RunSummary:
        """Select ``count`` commits from ``branch`` and analyze them.

        Raises RepositoryError or SelectionError only when selection itself
        fails; every later failure is captured into a per-commit outcome.
        """
        commits, tip = select_commits(self.reader, count, branch, skip_merges=self.skip_merges)
        logger.info("Selected %d commit(s) up to %s", len(commits), tip.short_id)
        return self.analyze(commits, tip, sink, ctx)

    def analyze(self, commits: list[Commit], tip: Commit, sink, ctx: RunContext | None = None) -> RunSummary:
        ctx = ctx or RunContext()
        started = time.monotonic()
        emitter = OrderedEmitter(sink, len(commits))

        contexts = self._extract_all(commits, tip, emitter, ctx)
        self._analyze_all(commits, contexts, emitter, ctx)

        summary = emitter.summary(time.monotonic() - started, getattr(self.client, "model", ""))
        summary.cancelled = ctx.cancelled
        logger.info(
            "Done: %d commit(s), %d high, %d medium, %d low, %d skipped, %d error(s) in %.2fs",
            summary.total,
            summary.high,
            summary.medium,
            summary.low,
            summary.skipped,
            summary.errors,
            summary.duration,
        )
        return summary

    # Phase 1

    def _extract_all(self, commits, tip, emitter, ctx) -> dict[int, DiffContext]:
        """Extract diffs in order on this thread; returns the slots needing analysis."""
        extractor = DiffExtractor(self.reader, tip, self.policy, self.max_diff_size)
        eligible: dict[int, DiffContext] = {}

        for index, commit in enumerate(commits):
            if ctx.cancelled:
                logger.warning("Cancelled during extraction at commit %d/%d", index + 1, len(commits))
                break
            try:
                diff_context = extractor.extract(commit)
            except GitSuspectError as exc:
                logger.error("Failed to extract diffs for %s: %s", commit.short_id, exc)
                emitter.submit(self._outcome(index, commit, error=exc))
                continue
            if diff_context.skipped:
                logger.info("Commit %s | skipped, no relevant code changes", commit.short_id)
                emitter.submit(self._outcome(index, commit, skipped=True))
                continue
            eligible[index] = diff_context

        logger.debug("Extraction finished: %d of %d commit(s) need analysis", len(eligible), len(commits))
        return eligible

    # Phase 2

    def _analyze_all(self, commits, eligible, emitter, ctx) -> None:
        if eligible and not ctx.cancelled:
            pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="git-suspect")
            try:
                futures = {
                    pool.submit(self._analyze_one, index, diff_context, emitter, ctx): index
                    for index, diff_context in eligible.items()
                }
                self._wait(futures, ctx)
            finally:
                pool.shutdown(wait=False, cancel_futures=True)

        # Slots never started, abandoned after the grace period, or not
        # reached by a cancelled extraction.
        for index, commit in enumerate(commits):
            if not emitter.has(index):
                emitter.submit(self._outcome(index, commit, error=AnalysisCancelled()))

    def _wait(self, futures, ctx) -> None:
        pending = set(futures)
        while pending:
            _done, pending = wait(pending, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED)
            if not ctx.cancelled or not pending:
                continue
            logger.warning(
                "Received cancellation, waiting up to %.1fs for %d in-flight analysis(es)",
                self.grace_period,
                len(pending),
            )
            for future in pending:
                future.cancel()
            _done, pending = wait(pending, timeout=self.grace_period)
            if pending:
                logger.warning("Timed out waiting for workers, finishing without them")
            return

    def _analyze_one(self, index: int, diff_context: DiffContext, emitter: OrderedEmitter, ctx: RunContext) -> None:
        commit = diff_context.commit
        try:
            if ctx.cancelled:
                raise AnalysisCancelled()
            call_ctx = ctx.child(self.call_timeout)
            logger.debug("Starting analysis of commit %s", commit.short_id)
            verdict = with_retry(
                lambda: self._round_trip(diff_context, call_ctx),
                self.retry_policy,
                call_ctx,
                label=commit.short_id,
            )
            outcome = self._outcome(index, commit, verdict=verdict)
        except GitSuspectError as exc:
            logger.error("Failed to analyze commit %s: %s", commit.short_id, exc)
            outcome = self._outcome(index, commit, error=exc)
        except Exception as exc:
            logger.exception("Unexpected failure analyzing commit %s", commit.short_id)
            outcome = self._outcome(index, commit, error=exc)
        emitter.submit(outcome)

    def _round_trip(self, diff_context: DiffContext, call_ctx: RunContext) -> AnalysisVerdict:
        prompt = build_prompt(self.bug_description, diff_context)
        text = self.client.generate(prompt, call_ctx)
        return parse_verdict(text)

    def _outcome(self, index, commit, verdict=None, error=None, skipped=False) -> AnalysisOutcome:
        return AnalysisOutcome(
            index=index,
            hexsha=commit.hexsha,
            message=truncate_commit_message(commit.message, self.message_max_length),
            verdict=verdict,
            error=error,
            skipped=skipped,
        )
