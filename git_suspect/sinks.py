"""Result sinks. Each receives finalized outcomes one at a time, in commit order."""

import json
from datetime import datetime, timezone
from typing import TextIO

from git_suspect.models import STATUS_ERROR, STATUS_SKIPPED, AnalysisOutcome, RunSummary
from git_suspect.utils import format_duration

FORMATS = ("json", "text", "markdown")


def log_record(level: str, msg: str) -> dict:
    return {
        "type": "log",
        "level": level,
        "msg": msg,
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
    }


def result_record(outcome: AnalysisOutcome) -> dict:
    """The ``result`` record for an analyzed outcome."""
    return {
        "type": "result",
        "hash": outcome.short_id,
        "message": outcome.message,
        "probability": outcome.verdict.tier.value,
        "reasoning": outcome.verdict.reasoning,
    }


class ListSink:
    """Collects outcomes in memory; handy for library use and tests."""

    def __init__(self):
        self.outcomes: list[AnalysisOutcome] = []
        self.summary: RunSummary | None = None

    def emit(self, outcome: AnalysisOutcome) -> None:
        self.outcomes.append(outcome)

    def finish(self, summary: RunSummary) -> None:
        self.summary = summary


class JsonLinesSink:
    """One JSON object per line: result, log and a final summary record."""

    def __init__(self, stream: TextIO):
        self.stream = stream

    def _write(self, record: dict) -> None:
        self.stream.write(json.dumps(record, ensure_ascii=False) + "\n")
        self.stream.flush()

    def emit(self, outcome: AnalysisOutcome) -> None:
        status = outcome.status
        if status == STATUS_ERROR:
            self._write(log_record("ERROR", f"Failed to analyze commit {outcome.hexsha}: {outcome.error}"))
        elif status == STATUS_SKIPPED:
            self._write(log_record("INFO", f"Commit: {outcome.short_id} | [Skipped - No relevant code changes]"))
        else:
            self._write(result_record(outcome))

    def finish(self, summary: RunSummary) -> None:
        self._write(summary.to_dict())


class TextSink:
    def __init__(self, stream: TextIO):
        self.stream = stream

    def emit(self, outcome: AnalysisOutcome) -> None:
        status = outcome.status
        head = f"[{outcome.index + 1}] {outcome.short_id} {outcome.message}"
        if status == STATUS_ERROR:
            lines = [head, f"    ERROR ({outcome.error_kind}): {outcome.error}"]
        elif status == STATUS_SKIPPED:
            lines = [head, "    SKIPPED: no relevant code changes"]
        else:
            lines = [head, f"    {outcome.verdict.tier.value}: {outcome.verdict.reasoning}"]
        self.stream.write("\n".join(lines) + "\n")
        self.stream.flush()

    def finish(self, summary: RunSummary) -> None:
        self.stream.write(
            f"\nSummary: {summary.total} commit(s) | high={summary.high} medium={summary.medium} "
            f"low={summary.low} skipped={summary.skipped} errors={summary.errors} "
            f"| {format_duration(summary.duration)}"
            + (f" | model={summary.model}" if summary.model else "")
            + ("\n(run was interrupted)" if summary.cancelled else "")
            + "\n"
        )
        self.stream.flush()


class MarkdownSink:
    """Markdown report; the header is written lazily on the first outcome."""

    def __init__(self, stream: TextIO, title: str = "Suspect Commit Report", bug_description: str = ""):
        self.stream = stream
        self.title = title
        self.bug_description = bug_description
        self._started = False

    def _start(self) -> None:
        if self._started:
            return
        self._started = True
        lines = [f"# {self.title}", ""]
        if self.bug_description:
            lines.extend(["## Bug", "", self.bug_description.strip(), ""])
        lines.extend(["## Commits", ""])
        self.stream.write("\n".join(lines) + "\n")

    def emit(self, outcome: AnalysisOutcome) -> None:
        self._start()
        status = outcome.status
        lines = [f"### {outcome.index + 1}. `{outcome.short_id}` {outcome.message}", ""]
        if status == STATUS_ERROR:
            lines.append(f"- result: **error** ({outcome.error_kind})")
            lines.append(f"- detail: {outcome.error}")
        elif status == STATUS_SKIPPED:
            lines.append("- result: skipped (no relevant code changes)")
        else:
            lines.append(f"- probability: **{outcome.verdict.tier.value}**")
            lines.append(f"- reasoning: {outcome.verdict.reasoning}")
        self.stream.write("\n".join(lines) + "\n\n")
        self.stream.flush()

    def finish(self, summary: RunSummary) -> None:
        self._start()
        lines = [
            "## Summary",
            "",
            "| total | high | medium | low | skipped | errors | duration |",
            "|---|---|---|---|---|---|---|",
            f"| {summary.total} | {summary.high} | {summary.medium} | {summary.low} "
            f"| {summary.skipped} | {summary.errors} | {format_duration(summary.duration)} |",
        ]
        if summary.model:
            lines.extend(["", f"Model: `{summary.model}`"])
        if summary.cancelled:
            lines.extend(["", "_Run was interrupted before all commits finished._"])
        self.stream.write("\n".join(lines) + "\n")
        self.stream.flush()


def make_sink(fmt: str, stream: TextIO, bug_description: str = ""):
    if fmt == "json":
        return JsonLinesSink(stream)
    if fmt == "text":
        return TextSink(stream)
    if fmt == "markdown":
        return MarkdownSink(stream, bug_description=bug_description)
    raise ValueError(f"unknown output format: {fmt}")
