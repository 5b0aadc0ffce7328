"""Which changed files are noise for root-cause analysis."""

import fnmatch
from dataclasses import dataclass, field

from git_suspect.errors import ConfigError

DEFAULT_LOCK_FILES = (
    "go.sum",
    "package-lock.json",
    "yarn.lock",
    "Gemfile.lock",
    "poetry.lock",
    "pnpm-lock.yaml",
    "Cargo.lock",
    "composer.lock",
    "Pipfile.lock",
    "shrinkwrap.yaml",
)
DEFAULT_TEST_PATTERNS = (
    "*_test.go",
    "*.test.js",
    "*.test.ts",
    "*.spec.js",
    "*.spec.ts",
    "*_test.py",
    "test_*.py",
    "*_spec.rb",
)
DEFAULT_DIRECTORIES = (
    "vendor",
    "node_modules",
    "dist",
    "build",
    "out",
    ".idea",
    ".vscode",
    ".git",
    "__pycache__",
    ".pytest_cache",
    ".tox",
)
DEFAULT_CI_PREFIXES = (".github/", ".gitlab/", ".circleci/")
DEFAULT_CI_FILES = (".gitlab-ci.yml", ".travis.yml")


@dataclass(frozen=True)
class IgnorePolicy:
    """Path filter applied to every changed file before analysis.

    lock_files match on the file name, test_patterns and extra_globs are
    fnmatch patterns (test patterns against the file name, extra globs against
    the whole path), directories match any parent directory component, and
    CI entries match path prefixes or exact repo-relative paths.
    """

    lock_files: tuple[str, ...] = DEFAULT_LOCK_FILES
    test_patterns: tuple[str, ...] = DEFAULT_TEST_PATTERNS
    directories: tuple[str, ...] = DEFAULT_DIRECTORIES
    ci_prefixes: tuple[str, ...] = DEFAULT_CI_PREFIXES
    ci_files: tuple[str, ...] = DEFAULT_CI_FILES
    extra_globs: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_config(cls, ignore: dict | None = None, extra_globs=None) -> "IgnorePolicy":
        """Build a policy; any list given in ``ignore`` replaces the default."""
        ignore = ignore or {}
        kwargs = {}
        for key in ("lock_files", "test_patterns", "directories", "ci_prefixes", "ci_files"):
            values = ignore.get(key)
            if values is None:
                continue
            if isinstance(values, str):
                raise ConfigError(f"ignore.{key} must be a list, got {values!r}")
            kwargs[key] = tuple(str(v) for v in values)
        kwargs["extra_globs"] = tuple(str(v) for v in (extra_globs or ()))
        return cls(**kwargs)

    def reason(self, path: str) -> str | None:
        """Why ``path`` is ignored, or None when it should be analyzed."""
        p = (path or "").replace("\\", "/")
        name = p.rsplit("/", 1)[-1]

        if name in self.lock_files:
            return "lock file"
        for pattern in self.test_patterns:
            if fnmatch.fnmatchcase(name, pattern):
                return f"test file ({pattern})"

        parents = p.split("/")[:-1]
        for directory in self.directories:
            if directory.strip("/") in parents:
                return f"ignored directory ({directory})"

        for prefix in self.ci_prefixes:
            if p.startswith(prefix):
                return f"ci config ({prefix})"
        if p in self.ci_files:
            return "ci config"

        for pattern in self.extra_globs:
            if fnmatch.fnmatch(p, pattern):
                return f"file filter ({pattern})"
        return None

    def ignores(self, path: str) -> bool:
        return self.reason(path) is not None
