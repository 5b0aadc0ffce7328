"""Data types shared across extraction, analysis and reporting."""

from dataclasses import dataclass, field
from enum import Enum


class Tier(str, Enum):
    """Likelihood that a commit introduced the described defect."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# Line operations inside a rendered hunk.
OP_CONTEXT = " "
OP_ADD = "+"
OP_DELETE = "-"


@dataclass(frozen=True)
class Commit:
    hexsha: str
    message: str
    parents: tuple[str, ...] = ()
    author: str = ""
    date: str = ""

    @property
    def short_id(self) -> str:
        return self.hexsha[:8]

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    @property
    def parent(self) -> str | None:
        """First parent, or None for a root commit."""
        return self.parents[0] if self.parents else None


@dataclass
class Hunk:
    header: str
    lines: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class FilePatch:
    """One file's worth of a tree diff."""

    path: str
    old_path: str | None = None
    binary: bool = False
    hunks: list[Hunk] = field(default_factory=list)

    @property
    def is_rename(self) -> bool:
        return self.old_path is not None and self.old_path != self.path


@dataclass(frozen=True)
class DiffContext:
    """Pre-extracted dual diff for one commit.

    ``skipped`` is true exactly when no file survived the ignore policy; in
    that case both diff texts are empty and no reasoning call is made.
    """

    commit: Commit
    standard_diff: str = ""
    full_diff: str = ""
    touched_files: tuple[str, ...] = ()

    @property
    def skipped(self) -> bool:
        return not self.touched_files


@dataclass(frozen=True)
class AnalysisVerdict:
    tier: Tier
    reasoning: str = ""


STATUS_ANALYZED = "analyzed"
STATUS_SKIPPED = "skipped"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class AnalysisOutcome:
    """Terminal per-commit result, emitted in commit order."""

    index: int
    hexsha: str
    message: str
    verdict: AnalysisVerdict | None = None
    error: BaseException | None = None
    skipped: bool = False

    @property
    def short_id(self) -> str:
        return self.hexsha[:8]

    @property
    def status(self) -> str:
        if self.error is not None:
            return STATUS_ERROR
        if self.skipped:
            return STATUS_SKIPPED
        if self.verdict is None:
            return STATUS_ERROR
        return STATUS_ANALYZED

    @property
    def error_kind(self) -> str:
        return type(self.error).__name__ if self.error is not None else ""


@dataclass
class RunSummary:
    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    skipped: int = 0
    errors: int = 0
    duration: float = 0.0
    model: str = ""
    cancelled: bool = False
    # results the sink failed to write; not part of the summary record
    sink_errors: int = 0

    @property
    def accounted(self) -> int:
        return self.high + self.medium + self.low + self.skipped + self.errors

    def to_dict(self) -> dict:
        return {
            "type": "summary",
            "total": self.total,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
            "skipped": self.skipped,
            "errors": self.errors,
            "duration": f"{self.duration:.2f}s",
            "model": self.model,
        }


class SummaryCounter:
    """Per-run tallies. Only the ordering buffer mutates this, under its lock."""

    def __init__(self, total: int):
        self.total = total
        self.by_tier = {tier: 0 for tier in Tier}
        self.skipped = 0
        self.errors = 0

    def record(self, outcome: AnalysisOutcome) -> None:
        status = outcome.status
        if status == STATUS_ERROR:
            self.errors += 1
        elif status == STATUS_SKIPPED:
            self.skipped += 1
        else:
            self.by_tier[outcome.verdict.tier] += 1

    def snapshot(self, duration: float = 0.0, model: str = "") -> RunSummary:
        return RunSummary(
            total=self.total,
            high=self.by_tier[Tier.HIGH],
            medium=self.by_tier[Tier.MEDIUM],
            low=self.by_tier[Tier.LOW],
            skipped=self.skipped,
            errors=self.errors,
            duration=duration,
            model=model,
        )
