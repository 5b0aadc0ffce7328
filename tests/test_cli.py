"""Tests for the command-line entrypoint."""

import json

import pytest

from conftest import HIGH_ANSWER, ScriptedClient
from git_suspect import cli
from git_suspect.llm import DEFAULT_MLX_MODEL, DEFAULT_MODEL, build_client
from git_suspect.sinks import JsonLinesSink


@pytest.fixture
def clean_env(tmp_path, monkeypatch):
    """No config file, no API key, no provider override."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in ("GEMINI_API_KEY", "GEMINI_MODEL", "GIT_SUSPECT_PROVIDER"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestInitConfig:
    def test_writes_defaults(self, clean_env, capsys):
        assert cli.main(["init-config", "--path", "cfg.yaml"]) == 0
        assert "[init-config] wrote cfg.yaml" in capsys.readouterr().out
        assert "performance:" in (clean_env / "cfg.yaml").read_text()

    def test_refuses_to_overwrite(self, clean_env):
        (clean_env / "cfg.yaml").write_text("llm: {}\n")
        assert cli.main(["init-config", "--path", "cfg.yaml"]) == 1
        assert cli.main(["init-config", "--path", "cfg.yaml", "--force"]) == 0


class TestAnalyze:
    def test_requires_error_flag(self, clean_env):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["analyze"])
        assert exc_info.value.code == 2

    def test_missing_api_key(self, clean_env, builder):
        builder.commit("initial", {"app.py": "x = 1\n"})
        assert cli.main(["analyze", "--repo", builder.root, "-e", "crash"]) == 2

    def test_too_many_commits(self, clean_env, builder):
        builder.commit("initial", {"app.py": "x = 1\n"})
        code = cli.main(["analyze", "--repo", builder.root, "-e", "crash", "-n", "5000", "--apikey", "k"])
        assert code == 2

    def test_bad_config_file(self, clean_env, builder):
        (clean_env / "bad.yaml").write_text("- not a mapping\n")
        code = cli.main(["analyze", "--repo", builder.root, "-e", "crash", "--config", "bad.yaml", "--apikey", "k"])
        assert code == 2

    def test_not_a_repository(self, clean_env):
        (clean_env / "plain").mkdir()
        assert cli.main(["analyze", "--repo", "plain", "-e", "crash", "--apikey", "k"]) == 1

    def test_unknown_branch(self, clean_env, builder):
        builder.commit("initial", {"app.py": "x = 1\n"})
        code = cli.main(["analyze", "--repo", builder.root, "-e", "crash", "--branch", "nope", "--apikey", "k"])
        assert code == 1

    def test_writes_json_lines(self, clean_env, builder, monkeypatch):
        builder.commit("initial", {"app.py": "x = 1\n"})
        sha = builder.commit("break it", {"app.py": "x = None\n"})
        client = ScriptedClient({sha: [HIGH_ANSWER]})
        monkeypatch.setattr(cli, "build_client", lambda *args, **kwargs: client)

        out = clean_env / "out" / "results.jsonl"
        code = cli.main(
            ["analyze", "--repo", builder.root, "-e", "x is None", "-n", "2", "--provider", "mlx", "--out", str(out), "-q"]
        )

        assert code == 0
        records = [json.loads(line) for line in out.read_text().splitlines()]
        assert [r["type"] for r in records] == ["result", "result", "summary"]
        assert records[0]["hash"] == sha[:8]
        assert records[0]["probability"] == "HIGH"
        assert records[-1]["total"] == 2
        assert records[-1]["model"] == "scripted-model"

    def test_markdown_format_from_config(self, clean_env, builder, monkeypatch):
        builder.commit("initial", {"app.py": "x = 1\n"})
        (clean_env / ".git-suspect.yaml").write_text("output:\n  format: markdown\nllm:\n  provider: mlx\n")
        monkeypatch.setattr(cli, "build_client", lambda *args, **kwargs: ScriptedClient())

        out = clean_env / "report.md"
        code = cli.main(["analyze", "--repo", builder.root, "-e", "crash", "--out", str(out), "-q"])

        assert code == 0
        assert out.read_text().startswith("# Suspect Commit Report")

    def test_sink_write_failure_exits_nonzero(self, clean_env, builder, monkeypatch):
        builder.commit("initial", {"app.py": "x = 1\n"})

        class BrokenSink(JsonLinesSink):
            def emit(self, outcome):
                raise OSError("disk full")

        monkeypatch.setattr(cli, "build_client", lambda *args, **kwargs: ScriptedClient())
        monkeypatch.setattr(cli, "make_sink", lambda fmt, stream, **kwargs: BrokenSink(stream))

        code = cli.main(["analyze", "--repo", builder.root, "-e", "crash", "--provider", "mlx", "-q"])
        assert code == 1


class TestModelDefaults:
    def _settings(self, argv):
        return cli._load_settings(cli.build_parser().parse_args(argv))

    def test_mlx_without_model_uses_local_default(self, clean_env):
        cfg = self._settings(["analyze", "-e", "crash", "--provider", "mlx"])
        client = build_client(cfg.llm.provider, cfg.llm.model, cfg.llm.api_key, cfg.llm.temperature)
        assert client.model == DEFAULT_MLX_MODEL

    def test_gemini_without_model_uses_gemini_default(self, clean_env):
        cfg = self._settings(["analyze", "-e", "crash", "--apikey", "k"])
        client = build_client(cfg.llm.provider, cfg.llm.model, cfg.llm.api_key, cfg.llm.temperature)
        assert client.model == DEFAULT_MODEL

    def test_explicit_model_wins(self, clean_env):
        cfg = self._settings(["analyze", "-e", "crash", "--provider", "mlx", "--model", "local/coder"])
        assert build_client(cfg.llm.provider, cfg.llm.model).model == "local/coder"
