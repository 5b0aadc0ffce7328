"""Shared fixtures: throwaway git repositories and a scripted reasoning backend."""

import os
import threading

import pytest
from git import Actor, Repo

from git_suspect.llm import ReasoningClient
from git_suspect.miner import GitReader

ACTOR = Actor("Test Author", "author@example.com")

LOW_ANSWER = '{"probability": "LOW", "reasoning": "unrelated change"}'
HIGH_ANSWER = '{"probability": "HIGH", "reasoning": "removes the nil check"}'


class RepoBuilder:
    """Builds commits directly through the index so no user git config is needed."""

    def __init__(self, root):
        self.root = str(root)
        self.repo = Repo.init(self.root)
        self.reader = GitReader(self.repo)

    def write(self, path, content):
        full = os.path.join(self.root, path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        if isinstance(content, bytes):
            with open(full, "wb") as f:
                f.write(content)
        else:
            with open(full, "w", encoding="utf-8", newline="") as f:
                f.write(content)

    def commit(self, message, files=None, removed=(), parents=None) -> str:
        """Stage ``files`` and ``removed`` and commit; returns the new hexsha."""
        for path, content in (files or {}).items():
            self.write(path, content)
            self.repo.index.add([path])
        if removed:
            self.repo.index.remove(list(removed), working_tree=True)
        kwargs = {}
        if parents is not None:
            kwargs["parent_commits"] = [self.repo.commit(p) for p in parents]
        c = self.repo.index.commit(message, author=ACTOR, committer=ACTOR, **kwargs)
        return c.hexsha


class ScriptedClient(ReasoningClient):
    """Answers by commit id found in the prompt.

    Each script is a list of steps consumed in order, the last one repeating.
    A step is a response string, an exception to raise, or a callable taking
    the call context and returning a string.
    """

    name = "scripted"
    model = "scripted-model"

    def __init__(self, scripts=None, default=LOW_ANSWER):
        self.scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self.default = default
        self.calls = []
        self.completed = []
        self._lock = threading.Lock()

    def _next_step(self, prompt):
        with self._lock:
            for hexsha, steps in self.scripts.items():
                if hexsha in prompt:
                    self.calls.append(hexsha)
                    return hexsha, steps.pop(0) if len(steps) > 1 else steps[0]
            self.calls.append(None)
            return None, self.default

    def calls_for(self, hexsha) -> int:
        with self._lock:
            return self.calls.count(hexsha)

    def generate(self, prompt, ctx):
        hexsha, step = self._next_step(prompt)
        if callable(step) and not isinstance(step, BaseException):
            step = step(ctx)
        if isinstance(step, BaseException):
            raise step
        with self._lock:
            self.completed.append(hexsha)
        return step


@pytest.fixture
def builder(tmp_path):
    b = RepoBuilder(tmp_path / "repo")
    yield b
    b.repo.close()
