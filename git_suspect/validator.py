"""Input validation for user-supplied run parameters."""

import os
import re

from git_suspect.errors import ConfigError
from git_suspect.miner import is_remote_url

MAX_COMMITS = 1000
MAX_WORKERS = 50

_BRANCH_RE = re.compile(r"^[a-zA-Z0-9/_.-]+$")
_SENSITIVE_PATHS = ("/etc", "/sys", "/proc", "/dev")


def validate_num_commits(n: int) -> None:
    if n <= 0:
        raise ConfigError(f"number of commits must be positive, got {n}")
    if n > MAX_COMMITS:
        raise ConfigError(f"number of commits exceeds maximum of {MAX_COMMITS}, got {n}")


def validate_num_workers(n: int) -> None:
    if n <= 0:
        raise ConfigError(f"number of workers must be positive, got {n}")
    if n > MAX_WORKERS:
        raise ConfigError(f"number of workers exceeds maximum of {MAX_WORKERS}, got {n}")


def validate_branch_name(branch: str) -> None:
    """Empty is allowed and means HEAD."""
    if not branch:
        return
    if ".." in branch:
        raise ConfigError("branch name contains suspicious pattern '..'")
    if branch.startswith("-"):
        raise ConfigError("branch name cannot start with '-'")
    if branch.startswith("/") or branch.endswith("/"):
        raise ConfigError("branch name cannot start or end with '/'")
    if not _BRANCH_RE.match(branch):
        raise ConfigError(f"branch name contains invalid characters: {branch}")


def validate_repo_path(path: str) -> None:
    if not path:
        raise ConfigError("repository path cannot be empty")
    if is_remote_url(path):
        return
    if ".." in path:
        raise ConfigError("repository path contains suspicious pattern '..'")
    clean = os.path.normpath(os.path.abspath(path))
    for sensitive in _SENSITIVE_PATHS:
        if clean == sensitive or clean.startswith(sensitive + os.sep):
            raise ConfigError(f"repository path points to sensitive system directory: {clean}")


def validate_bug_description(msg: str) -> None:
    if not (msg or "").strip():
        raise ConfigError("bug description cannot be empty")
