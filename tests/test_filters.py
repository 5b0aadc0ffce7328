"""Tests for the changed-file ignore policy."""

import pytest

from git_suspect.errors import ConfigError
from git_suspect.filters import IgnorePolicy


class TestDefaultPolicy:
    @pytest.mark.parametrize(
        "path",
        [
            "go.sum",
            "web/package-lock.json",
            "yarn.lock",
            "pkg/server_test.go",
            "src/app.test.ts",
            "tests/test_app.py",
            "vendor/lib/x.go",
            "frontend/node_modules/left-pad/index.js",
            "build/out.js",
            ".github/workflows/ci.yml",
            ".gitlab-ci.yml",
        ],
    )
    def test_ignored(self, path):
        assert IgnorePolicy().ignores(path)

    @pytest.mark.parametrize(
        "path",
        [
            "main.go",
            "src/app.ts",
            "git_suspect/miner.py",
            "docs/build.md",
            "contest.py",
            "src/.github.py",
        ],
    )
    def test_kept(self, path):
        assert not IgnorePolicy().ignores(path)

    def test_reason_names_the_rule(self):
        policy = IgnorePolicy()
        assert policy.reason("Cargo.lock") == "lock file"
        assert policy.reason("vendor/x.go").startswith("ignored directory")
        assert policy.reason("main.go") is None

    def test_directory_must_be_a_parent_component(self):
        # a file named like an ignored directory is still code
        assert not IgnorePolicy().ignores("cmd/build")
        assert not IgnorePolicy().ignores("distance/calc.go")


class TestFromConfig:
    def test_lists_replace_defaults(self):
        policy = IgnorePolicy.from_config({"lock_files": ["deps.lock"]})
        assert policy.ignores("deps.lock")
        assert not policy.ignores("go.sum")
        # untouched keys keep their defaults
        assert policy.ignores("vendor/x.go")

    def test_extra_globs_match_whole_path(self):
        policy = IgnorePolicy.from_config({}, ["docs/*", "*.md"])
        assert policy.ignores("docs/guide.txt")
        assert policy.ignores("README.md")
        assert not policy.ignores("src/main.go")

    def test_empty_config_is_default(self):
        assert IgnorePolicy.from_config(None) == IgnorePolicy()

    def test_scalar_entry_is_rejected(self):
        with pytest.raises(ConfigError, match="ignore.lock_files must be a list"):
            IgnorePolicy.from_config({"lock_files": "go.sum"})
