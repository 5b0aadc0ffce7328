"""Git history access: open, resolve, walk and diff trees."""
import contextlib
import re
import shutil
import tempfile
from typing import Iterator, Sequence

from git import Repo
from git.exc import BadName, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from git_suspect.errors import RepositoryError, SelectionError
from git_suspect.logging_config import get_logger
from git_suspect.models import OP_ADD, OP_CONTEXT, OP_DELETE, Commit, FilePatch, Hunk

logger = get_logger(__name__)

# git's well-known empty tree; a root commit is diffed against it.
EMPTY_TREE_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

_REMOTE_PREFIXES = ("http://", "https://", "git@", "ssh://")


def is_remote_url(path: str) -> bool:
    return (path or "").startswith(_REMOTE_PREFIXES)


@contextlib.contextmanager
def open_repository(path_or_url: str) -> Iterator["GitReader"]:
    """Open a local repository, or clone a remote one into a temp dir for the run."""
    if is_remote_url(path_or_url):
        tmp_dir = tempfile.mkdtemp(prefix="git-suspect-")
        logger.info("Cloning %s into temporary directory...", path_or_url)
        try:
            try:
                repo = Repo.clone_from(path_or_url, tmp_dir)
            except GitCommandError as exc:
                raise RepositoryError(f"failed to clone repo: {exc}") from exc
            try:
                yield GitReader(repo)
            finally:
                repo.close()
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)
        return

    try:
        repo = Repo(path_or_url)
    except (NoSuchPathError, InvalidGitRepositoryError) as exc:
        raise RepositoryError(f"failed to open git repo at {path_or_url}: {exc!r}") from exc
    try:
        yield GitReader(repo)
    finally:
        repo.close()


def _to_commit(c) -> Commit:
    message = c.message
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")
    return Commit(
        hexsha=c.hexsha,
        message=message.strip(),
        parents=tuple(p.hexsha for p in c.parents),
        author=c.author.name or "",
        date=c.committed_datetime.date().isoformat(),
    )


class GitReader:
    """Read-only view over one GitPython ``Repo``.

    GitPython keeps per-repo object caches and persistent ``cat-file``
    processes, so a reader must only ever be used from one thread at a time.
    """

    def __init__(self, repo: Repo, context_lines: int = 3):
        self.repo = repo
        self.context_lines = context_lines

    def resolve(self, ref: str | None = None) -> Commit:
        """Resolve a branch, tag or revision (HEAD when empty) to a commit."""
        rev = ref or "HEAD"
        try:
            return _to_commit(self.repo.commit(rev))
        except (BadName, ValueError, GitCommandError) as exc:
            raise SelectionError(f"failed to resolve {rev}: {exc}") from exc

    def walk(self, ref: str | None = None) -> Iterator[Commit]:
        """Reverse-chronological history starting at ``ref``."""
        for c in self.repo.iter_commits(ref or "HEAD"):
            yield _to_commit(c)

    def diff(self, old: str | None, new: str, paths: Sequence[str] | None = None) -> list[FilePatch]:
        """Tree diff old -> new as file patches; ``old=None`` means the empty tree."""
        args = [
            "--no-color",
            "--no-ext-diff",
            "--no-textconv",
            "--src-prefix=a/",
            "--dst-prefix=b/",
            "-M",
            f"--unified={self.context_lines}",
            old or EMPTY_TREE_SHA,
            new,
        ]
        if paths:
            args.append("--")
            args.extend(paths)
        raw = self.repo.git.diff(*args, stdout_as_string=False)
        return parse_patch(raw.decode("utf-8", errors="replace"))


def select_commits(
    reader: GitReader, count: int, branch: str | None = None, skip_merges: bool = True
) -> tuple[list[Commit], Commit]:
    """Latest ``count`` commits reachable from ``branch`` plus the tip commit."""
    tip = reader.resolve(branch)
    if count <= 0:
        return [], tip

    commits = []
    try:
        for c in reader.walk(tip.hexsha):
            if len(commits) >= count:
                break
            if skip_merges and c.is_merge:
                logger.debug("skipping merge commit %s", c.short_id)
                continue
            commits.append(c)
    except GitCommandError as exc:
        raise SelectionError(f"error iterating commits: {exc}") from exc
    return commits, tip


_DIFF_HEADER = re.compile(r"^diff --git a/(.+) b/(.+)$")
_QUOTED_DIFF_HEADER = re.compile(r'^diff --git "a/(.*)" "b/(.*)"$')
_HUNK_HEADER = re.compile(r"^@@ -\d+(?:,\d+)? \+\d+(?:,\d+)? @@")


def _unescape(body: str) -> str:
    raw = body.encode("ascii", errors="backslashreplace").decode("unicode_escape")
    return raw.encode("latin-1", errors="replace").decode("utf-8", errors="replace")


def _unquote(path: str) -> str:
    """Undo git's C-style quoting of unusual path names."""
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        return _unescape(path[1:-1])
    return path


def _side_path(raw: str, prefix: str) -> str | None:
    raw = raw.rstrip("\t")
    if raw == "/dev/null":
        return None
    raw = _unquote(raw)
    if raw.startswith(prefix):
        raw = raw[len(prefix):]
    return raw


def parse_patch(text: str) -> list[FilePatch]:
    """Split ``git diff`` output into per-file patches with tagged hunk lines."""
    patches: list[FilePatch] = []
    current = None
    hunk = None

    for line in text.split("\n"):
        if line.startswith("diff --git "):
            quoted = _QUOTED_DIFF_HEADER.match(line)
            if quoted:
                old_path, new_path = _unescape(quoted.group(1)), _unescape(quoted.group(2))
            else:
                m = _DIFF_HEADER.match(line)
                old_path, new_path = (m.group(1), m.group(2)) if m else ("", "")
            current = FilePatch(path=new_path, old_path=old_path or None)
            patches.append(current)
            hunk = None
            continue
        if current is None:
            continue

        if hunk is None:
            if line.startswith("--- "):
                current.old_path = _side_path(line[4:], "a/")
            elif line.startswith("+++ "):
                new_path = _side_path(line[4:], "b/")
                current.path = new_path if new_path is not None else (current.old_path or current.path)
            elif line.startswith("rename from "):
                current.old_path = _unquote(line[len("rename from "):])
            elif line.startswith("rename to "):
                current.path = _unquote(line[len("rename to "):])
            elif line.startswith("Binary files ") or line == "GIT binary patch":
                current.binary = True
            elif _HUNK_HEADER.match(line):
                hunk = Hunk(header=line)
                current.hunks.append(hunk)
            continue

        if _HUNK_HEADER.match(line):
            hunk = Hunk(header=line)
            current.hunks.append(hunk)
        elif line.startswith("+"):
            hunk.lines.append((OP_ADD, line[1:]))
        elif line.startswith("-"):
            hunk.lines.append((OP_DELETE, line[1:]))
        elif line.startswith(" "):
            hunk.lines.append((OP_CONTEXT, line[1:]))
        # "\ No newline at end of file" and the trailing empty split are dropped

    return patches
