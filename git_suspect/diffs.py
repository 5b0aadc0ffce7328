"""Dual-diff extraction: what a commit changed, and what became of it since."""

from typing import Iterable

from git.exc import GitCommandError

from git_suspect.errors import ExtractionError
from git_suspect.filters import IgnorePolicy
from git_suspect.logging_config import get_logger
from git_suspect.miner import GitReader
from git_suspect.models import Commit, DiffContext, FilePatch

logger = get_logger(__name__)

DEFAULT_MAX_DIFF_SIZE = 50000
TRUNCATION_MARKER = "\n... [truncated: diff too large] ...\n"
NO_FURTHER_CHANGES = "No further changes to these files since this commit."
EVOLUTION_LABEL = " (evolution to tip)"


def truncate_diff(diff_text: str, max_bytes: int) -> str:
    """Cap diff text at max_bytes of UTF-8, marker included.

    Cuts at the last newline before the limit when that newline sits past the
    midpoint, otherwise hard-cuts. A limit too small to hold the marker gives
    a bare cut.
    """
    data = diff_text.encode("utf-8")
    if len(data) <= max_bytes:
        return diff_text

    marker = TRUNCATION_MARKER.encode("utf-8")
    if max_bytes <= len(marker):
        if max_bytes <= 0:
            return ""
        return data[:max_bytes].decode("utf-8", errors="ignore")

    cut = max_bytes - len(marker)
    last_newline = data.rfind(b"\n", 0, cut)
    if last_newline > cut // 2:
        cut = last_newline
    return data[:cut].decode("utf-8", errors="ignore") + TRUNCATION_MARKER


def render_patches(patches: Iterable[FilePatch], label: str = "") -> str:
    """Render patches as text, one ' '/'+'/'-' tag per hunk line."""
    out: list[str] = []
    for fp in patches:
        header = f"--- {fp.path}{label}"
        if fp.is_rename:
            header += f" (renamed from {fp.old_path})"
        out.append(header)
        for hunk in fp.hunks:
            out.append(hunk.header)
            out.extend(op + text for op, text in hunk.lines)
    return "\n".join(out) + "\n" if out else ""


def _literal(paths: Iterable[str]) -> list[str]:
    # paths may contain glob characters; keep git from expanding them
    return [f":(literal){p}" for p in paths]


class DiffExtractor:
    """Builds DiffContexts against one branch tip. Not thread-safe (see GitReader)."""

    def __init__(
        self,
        reader: GitReader,
        tip: Commit,
        policy: IgnorePolicy | None = None,
        max_diff_size: int = DEFAULT_MAX_DIFF_SIZE,
    ):
        self.reader = reader
        self.tip = tip
        self.policy = policy or IgnorePolicy()
        self.max_diff_size = max_diff_size

    def extract(self, commit: Commit) -> DiffContext:
        """Standard and scoped full diff for ``commit``; raises ExtractionError."""
        try:
            patches = self.reader.diff(commit.parent, commit.hexsha)
        except (GitCommandError, ValueError, OSError) as exc:
            raise ExtractionError(f"standard diff failed: {exc}", commit.hexsha) from exc

        kept = self._filter(patches, commit)
        touched = []
        for fp in kept:
            if fp.path not in touched:
                touched.append(fp.path)

        if not touched:
            logger.debug("%s touches no relevant files, skipping", commit.short_id)
            return DiffContext(commit=commit)

        standard = truncate_diff(render_patches(kept), self.max_diff_size)
        full = self._full_diff(commit, touched)
        return DiffContext(
            commit=commit,
            standard_diff=standard,
            full_diff=full,
            touched_files=tuple(touched),
        )

    def _filter(self, patches: list[FilePatch], commit: Commit) -> list[FilePatch]:
        kept = []
        for fp in patches:
            if not fp.path:
                continue
            if fp.binary:
                logger.debug("%s: dropping binary file %s", commit.short_id, fp.path)
                continue
            reason = self.policy.reason(fp.path)
            if reason:
                logger.debug("%s: dropping %s (%s)", commit.short_id, fp.path, reason)
                continue
            kept.append(fp)
        return kept

    def _full_diff(self, commit: Commit, touched: list[str]) -> str:
        wanted = set(touched)
        try:
            patches = self.reader.diff(commit.hexsha, self.tip.hexsha, paths=_literal(touched))
        except (GitCommandError, ValueError, OSError) as exc:
            raise ExtractionError(f"full diff failed: {exc}", commit.hexsha) from exc

        scoped = [
            fp
            for fp in patches
            if not fp.binary and (fp.path in wanted or fp.old_path in wanted)
        ]
        text = render_patches(scoped, EVOLUTION_LABEL)
        if not text:
            return NO_FURTHER_CHANGES
        return truncate_diff(text, self.max_diff_size)
