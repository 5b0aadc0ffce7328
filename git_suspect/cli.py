"""git-suspect CLI entrypoint."""

import argparse
import contextlib
import os
import signal
import sys

from git_suspect.config import Config, find_config_file, load_config, save_config
from git_suspect.context import RunContext
from git_suspect.errors import ConfigError, RepositoryError, SelectionError
from git_suspect.filters import IgnorePolicy
from git_suspect.llm import build_client
from git_suspect.logging_config import get_logger, setup_logging
from git_suspect.miner import open_repository
from git_suspect.orchestrator import TwoPhaseOrchestrator
from git_suspect.retry import RetryPolicy
from git_suspect.sinks import FORMATS, make_sink
from git_suspect.utils import parse_duration
from git_suspect.validator import (
    validate_branch_name,
    validate_bug_description,
    validate_num_commits,
    validate_num_workers,
    validate_repo_path,
)

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _duration_arg(value):
    try:
        return parse_duration(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="git-suspect",
        description="Rank recent commits by how likely they introduced a bug",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_analyze = subparsers.add_parser("analyze", help="Analyze the latest commits against a bug description")
    p_analyze.add_argument("--repo", default=".", help="Path to local git repository or remote URL")
    p_analyze.add_argument("--branch", default="", help="Branch or revision to analyze (default: HEAD)")
    p_analyze.add_argument("-e", "--error", required=True, help="Error message or bug description")
    p_analyze.add_argument("-n", type=int, default=None, help="Number of commits to analyze")
    p_analyze.add_argument("-j", type=int, default=None, help="Number of concurrent workers")
    p_analyze.add_argument("--provider", default="", help="Reasoning backend: gemini or mlx")
    p_analyze.add_argument("--model", default="", help="Model name for the backend")
    p_analyze.add_argument("--timeout", type=_duration_arg, default=None, help="Timeout per commit, e.g. 90s or 10m")
    p_analyze.add_argument("--max-diff-size", type=int, default=None, help="Diff truncation threshold in bytes")
    p_analyze.add_argument("--format", choices=FORMATS, default=None, help="Output format")
    p_analyze.add_argument("-o", "--out", default="", help="Output file path (default: stdout)")
    p_analyze.add_argument("--config", default="", help="Config file path (default: search standard locations)")
    p_analyze.add_argument("--apikey", default="", help="Gemini API key (prefer GEMINI_API_KEY)")
    p_analyze.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p_analyze.add_argument("-q", "--quiet", action="store_true", help="Only log errors")
    p_analyze.add_argument("--log-file", default=None, help="Append logs to this file")

    p_init = subparsers.add_parser("init-config", help="Write a config file with default settings")
    p_init.add_argument("--path", default=".git-suspect.yaml", help="Where to write the config file")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    return parser


def _load_settings(args) -> Config:
    cfg = load_config(args.config or find_config_file())
    cfg.apply_env()
    cfg.merge_flags(
        model=args.model,
        provider=args.provider,
        num_commits=args.n,
        workers=args.j,
        timeout=args.timeout,
        max_diff_size=args.max_diff_size,
        fmt=args.format,
        verbose=True if args.verbose else None,
    )
    if args.apikey:
        logger.warning(
            "API key passed via command line may be visible in process list. "
            "Consider using GEMINI_API_KEY environment variable instead."
        )
        cfg.llm.api_key = args.apikey
    cfg.validate()

    validate_bug_description(args.error)
    validate_num_commits(cfg.analysis.default_commits)
    validate_num_workers(cfg.performance.workers)
    validate_branch_name(args.branch)
    validate_repo_path(args.repo)
    if cfg.llm.provider == "gemini" and not cfg.llm.api_key:
        raise ConfigError("No API key provided. Use --apikey or set GEMINI_API_KEY.")
    return cfg


def _install_signal_handlers(ctx: RunContext):
    """First SIGINT/SIGTERM cancels the run; a second SIGINT aborts."""

    def handle(signum, _frame):
        if ctx.cancelled and signum == signal.SIGINT:
            raise KeyboardInterrupt
        logger.warning("Received %s, shutting down...", signal.Signals(signum).name)
        ctx.cancel()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, handle)
        except ValueError:
            # not on the main thread
            pass

    def restore():
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return restore


def _open_output(path):
    if not path:
        return contextlib.nullcontext(sys.stdout)
    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    return open(path, "w", encoding="utf-8")


def run_analyze(args) -> int:
    setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)
    try:
        cfg = _load_settings(args)
        client = build_client(cfg.llm.provider, cfg.llm.model, cfg.llm.api_key, cfg.llm.temperature)
    except ConfigError as exc:
        logger.error("Invalid settings: %s", exc)
        return EXIT_USAGE
    if cfg.output.verbose and not args.verbose and not args.quiet:
        setup_logging(verbose=True, log_file=args.log_file)

    perf = cfg.performance
    policy = IgnorePolicy.from_config(cfg.analysis.ignore, cfg.analysis.file_filters)
    retry_policy = RetryPolicy(perf.max_retries, perf.retry_base_delay, perf.retry_max_delay)
    ctx = RunContext.with_timeout(perf.run_timeout)
    restore_signals = _install_signal_handlers(ctx)

    try:
        with _open_output(args.out) as stream, open_repository(args.repo) as reader:
            reader.context_lines = cfg.analysis.context_lines
            sink = make_sink(cfg.output.format, stream, bug_description=args.error)
            orchestrator = TwoPhaseOrchestrator(
                reader,
                client,
                args.error,
                workers=perf.workers,
                call_timeout=cfg.llm.timeout,
                max_diff_size=cfg.analysis.max_diff_size,
                policy=policy,
                retry_policy=retry_policy,
                grace_period=perf.shutdown_grace,
                message_max_length=cfg.output.commit_message_max_length,
                skip_merges=cfg.analysis.skip_merge_commits,
            )
            logger.info("Using LLM model: %s (%s)", client.model, client.name)
            if args.branch:
                logger.info("Analyzing branch: %s", args.branch)
            logger.info(
                "Analyzing last %d commits for error: %r", cfg.analysis.default_commits, args.error
            )
            summary = orchestrator.run(cfg.analysis.default_commits, sink, branch=args.branch or None, ctx=ctx)
            sink.finish(summary)
    except (RepositoryError, SelectionError) as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE
    except OSError as exc:
        logger.error("Failed to write output: %s", exc)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.error("Aborted")
        return EXIT_INTERRUPTED
    finally:
        restore_signals()

    if summary.cancelled:
        return EXIT_INTERRUPTED
    if summary.sink_errors:
        logger.error("%d result(s) could not be written", summary.sink_errors)
        return EXIT_FAILURE
    return EXIT_OK


def run_init_config(args) -> int:
    if os.path.exists(args.path) and not args.force:
        print(f"Error: {args.path} already exists (use --force to overwrite)")
        return EXIT_FAILURE
    try:
        path = save_config(Config(), args.path)
    except ConfigError as exc:
        print(f"Error: {exc}")
        return EXIT_FAILURE
    print(f"[init-config] wrote {path}")
    return EXIT_OK


def main(argv=None) -> int:
    """Run CLI with analyze/init-config subcommands."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "analyze":
        return run_analyze(args)
    return run_init_config(args)


if __name__ == "__main__":
    sys.exit(main())
