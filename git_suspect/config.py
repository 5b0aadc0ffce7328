"""YAML configuration: discovery, loading, flag/env merging and validation."""

import os
from dataclasses import asdict, dataclass, field, fields

import yaml

from git_suspect.diffs import DEFAULT_MAX_DIFF_SIZE
from git_suspect.errors import ConfigError
from git_suspect.logging_config import get_logger
from git_suspect.orchestrator import DEFAULT_GRACE_PERIOD
from git_suspect.sinks import FORMATS
from git_suspect.utils import parse_duration
from git_suspect.validator import MAX_WORKERS

logger = get_logger(__name__)

CONFIG_LOCATIONS = (
    ".git-suspect.yaml",
    ".git-suspect.yml",
    "~/.config/git-suspect/config.yaml",
    "~/.config/git-suspect/config.yml",
    "~/.git-suspect.yaml",
)

_DURATION_FIELDS = {"timeout", "retry_base_delay", "retry_max_delay", "run_timeout", "shutdown_grace"}


@dataclass
class LLMConfig:
    provider: str = "gemini"
    # empty means the provider default, resolved by llm.build_client
    model: str = ""
    api_key: str = ""
    temperature: float = 0.1
    timeout: float = 600.0


@dataclass
class AnalysisConfig:
    default_commits: int = 5
    max_diff_size: int = DEFAULT_MAX_DIFF_SIZE
    skip_merge_commits: bool = True
    context_lines: int = 3
    file_filters: list[str] = field(default_factory=list)
    # lists here replace the built-in IgnorePolicy defaults key by key
    ignore: dict = field(default_factory=dict)


@dataclass
class PerformanceConfig:
    workers: int = 3
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    run_timeout: float | None = None
    shutdown_grace: float = DEFAULT_GRACE_PERIOD


@dataclass
class OutputConfig:
    format: str = "json"
    verbose: bool = False
    commit_message_max_length: int = 80


@dataclass
class Config:
    llm: LLMConfig = field(default_factory=LLMConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def apply_env(self, environ=None) -> None:
        """Environment overrides the file; flags later override both."""
        environ = os.environ if environ is None else environ
        if environ.get("GEMINI_MODEL"):
            self.llm.model = environ["GEMINI_MODEL"]
        if environ.get("GIT_SUSPECT_PROVIDER"):
            self.llm.provider = environ["GIT_SUSPECT_PROVIDER"]
        if environ.get("GEMINI_API_KEY"):
            self.llm.api_key = environ["GEMINI_API_KEY"]

    def merge_flags(
        self,
        model=None,
        provider=None,
        num_commits=None,
        workers=None,
        timeout=None,
        max_diff_size=None,
        fmt=None,
        verbose=None,
    ) -> None:
        """Flags take precedence; None or non-positive values leave settings alone."""
        if model:
            self.llm.model = model
        if provider:
            self.llm.provider = provider
        if num_commits is not None and num_commits > 0:
            self.analysis.default_commits = num_commits
        if workers is not None and workers > 0:
            self.performance.workers = workers
        if timeout is not None and timeout > 0:
            self.llm.timeout = timeout
        if max_diff_size is not None and max_diff_size > 0:
            self.analysis.max_diff_size = max_diff_size
        if fmt:
            self.output.format = fmt
        if verbose is not None:
            self.output.verbose = verbose

    def validate(self) -> None:
        if not self.llm.provider:
            raise ConfigError("llm.provider cannot be empty")
        if not 0 <= self.llm.temperature <= 1:
            raise ConfigError(f"llm.temperature must be between 0 and 1, got {self.llm.temperature}")
        if self.llm.timeout <= 0:
            raise ConfigError(f"llm.timeout must be positive, got {self.llm.timeout}")

        if self.analysis.default_commits <= 0:
            raise ConfigError(f"analysis.default_commits must be positive, got {self.analysis.default_commits}")
        if self.analysis.max_diff_size <= 0:
            raise ConfigError(f"analysis.max_diff_size must be positive, got {self.analysis.max_diff_size}")
        if self.analysis.context_lines < 0:
            raise ConfigError(f"analysis.context_lines cannot be negative, got {self.analysis.context_lines}")

        perf = self.performance
        if not 1 <= perf.workers <= MAX_WORKERS:
            raise ConfigError(f"performance.workers must be between 1 and {MAX_WORKERS}, got {perf.workers}")
        if perf.max_retries < 0:
            raise ConfigError(f"performance.max_retries cannot be negative, got {perf.max_retries}")
        if perf.retry_base_delay <= 0 or perf.retry_max_delay <= 0:
            raise ConfigError("performance retry delays must be positive")
        if perf.retry_base_delay > perf.retry_max_delay:
            raise ConfigError("performance.retry_base_delay cannot exceed performance.retry_max_delay")
        if perf.run_timeout is not None and perf.run_timeout <= 0:
            raise ConfigError(f"performance.run_timeout must be positive, got {perf.run_timeout}")

        if self.output.format not in FORMATS:
            raise ConfigError(f"output.format must be json, text, or markdown, got {self.output.format}")

    def to_dict(self) -> dict:
        data = asdict(self)
        if not data["llm"]["api_key"]:
            del data["llm"]["api_key"]
        return data


def _coerce(current, value, where: str):
    if value is None:
        return None
    try:
        if isinstance(current, bool):
            if not isinstance(value, bool):
                raise ValueError(f"expected true/false, got {value!r}")
            return value
        if isinstance(current, int):
            return int(value)
        if isinstance(current, float):
            return float(value)
        if isinstance(current, list):
            if not isinstance(value, list):
                raise ValueError(f"expected a list, got {value!r}")
            return [str(v) for v in value]
        if isinstance(current, dict):
            if not isinstance(value, dict):
                raise ValueError(f"expected a mapping, got {value!r}")
            for key, entry in value.items():
                if entry is not None and not isinstance(entry, list):
                    raise ValueError(f"{key} must be a list, got {entry!r}")
            return {str(k): None if e is None else [str(v) for v in e] for k, e in value.items()}
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid value for {where}: {exc}") from exc


def _merge_section(target, raw, name: str) -> None:
    if raw is None:
        return
    if not isinstance(raw, dict):
        raise ConfigError(f"config section '{name}' must be a mapping")
    known = {f.name for f in fields(target)}
    for key, value in raw.items():
        where = f"{name}.{key}"
        if key not in known:
            logger.warning("Ignoring unknown config key %s", where)
            continue
        if key in _DURATION_FIELDS:
            if value is None:
                setattr(target, key, None)
                continue
            try:
                value = parse_duration(value)
            except ValueError as exc:
                raise ConfigError(f"invalid value for {where}: {exc}") from exc
        else:
            value = _coerce(getattr(target, key), value, where)
        setattr(target, key, value)


def _expand(path: str) -> str:
    return os.path.expanduser(path) if path.startswith("~") else path


def find_config_file() -> str:
    """First existing file among CONFIG_LOCATIONS, or ''."""
    for loc in CONFIG_LOCATIONS:
        path = _expand(loc)
        if os.path.isfile(path):
            return path
    return ""


def load_config(path: str = "") -> Config:
    """Defaults overlaid with the YAML file at ``path``; a missing file means defaults."""
    cfg = Config()
    if not path:
        return cfg
    path = _expand(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        return cfg
    except OSError as exc:
        raise ConfigError(f"failed to read config file: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse config file: {exc}") from exc

    if data is None:
        return cfg
    if not isinstance(data, dict):
        raise ConfigError("config file must contain a mapping at the top level")

    for section in ("llm", "analysis", "performance", "output"):
        _merge_section(getattr(cfg, section), data.get(section), section)
    for key in data:
        if key not in ("llm", "analysis", "performance", "output"):
            logger.warning("Ignoring unknown config section %s", key)
    logger.debug("Loaded config from %s", path)
    return cfg


def save_config(cfg: Config, path: str) -> str:
    path = _expand(path)
    directory = os.path.dirname(path)
    try:
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(cfg.to_dict(), f, sort_keys=False, default_flow_style=False)
    except OSError as exc:
        raise ConfigError(f"failed to write config file: {exc}") from exc
    return path
