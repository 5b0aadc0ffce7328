"""Reasoning backends: Gemini over HTTP, or a local mlx-lm model."""

import threading

import requests

from git_suspect.context import RunContext
from git_suspect.errors import ConfigError, ReasoningTimeout, ReasoningTransportError
from git_suspect.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MODEL = "gemini-flash-latest"
DEFAULT_MLX_MODEL = "mlx-community/Qwen2.5-Coder-1.5B-Instruct-4bit"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Used when the caller's context carries no deadline.
DEFAULT_HTTP_TIMEOUT = 600.0


class ReasoningClient:
    """Text in, text out. Implementations must tolerate calls from several threads."""

    name = "base"
    model = ""

    def generate(self, prompt: str, ctx: RunContext) -> str:
        raise NotImplementedError


class GeminiClient(ReasoningClient):
    """Google Gemini ``generateContent`` over plain requests."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.1,
        base_url: str = GEMINI_BASE_URL,
        session: requests.Session | None = None,
    ):
        if not api_key:
            raise ConfigError("Gemini API key is required")
        self.api_key = api_key
        self.model = model[len("models/"):] if model.startswith("models/") else model
        self.temperature = temperature
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._local = threading.local()

    def _get_session(self) -> requests.Session:
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def generate(self, prompt: str, ctx: RunContext) -> str:
        ctx.check()
        remaining = ctx.remaining()
        timeout = DEFAULT_HTTP_TIMEOUT if remaining is None else max(remaining, 0.01)

        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": self.temperature},
        }
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        try:
            resp = self._get_session().post(url, json=payload, headers=headers, timeout=timeout)
        except requests.Timeout as exc:
            raise ReasoningTimeout(f"gemini request timed out after {timeout:.0f}s") from exc
        except requests.RequestException as exc:
            raise ReasoningTransportError(f"gemini request failed: {exc}") from exc

        if resp.status_code != 200:
            body = (resp.text or "").strip().replace("\n", " ")[:300]
            raise ReasoningTransportError(
                f"gemini api error {resp.status_code}: {body}", status_code=resp.status_code
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise ReasoningTransportError("gemini returned invalid JSON") from exc

        text = _candidate_text(data)
        if not text:
            reason = (data.get("promptFeedback") or {}).get("blockReason", "")
            raise ReasoningTransportError(f"empty response from gemini {reason}".strip())
        return text


def _candidate_text(data: dict) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


class MlxClient(ReasoningClient):
    """Local generation through mlx-lm; calls are serialized on one loaded model."""

    name = "mlx"

    def __init__(self, model: str = DEFAULT_MLX_MODEL, max_tokens: int = 1024):
        self.model = model
        self.max_tokens = max_tokens
        self._lock = threading.Lock()
        self._loaded = None

    def generate(self, prompt: str, ctx: RunContext) -> str:
        ctx.check()
        try:
            from mlx_lm import generate, load
        except ImportError as exc:
            raise ReasoningTransportError("Missing dependency: mlx-lm") from exc

        with self._lock:
            ctx.check()
            if self._loaded is None:
                logger.info("Loading local model %s", self.model)
                self._loaded = load(self.model)
            model, tokenizer = self._loaded
            answer = generate(model, tokenizer, prompt=prompt, max_tokens=self.max_tokens, verbose=False)
        return answer.strip()


def build_client(provider: str, model: str = "", api_key: str = "", temperature: float = 0.1) -> ReasoningClient:
    """Instantiate the backend named by ``provider``."""
    provider = (provider or "").strip().lower()
    if provider == "gemini":
        return GeminiClient(api_key=api_key, model=model or DEFAULT_MODEL, temperature=temperature)
    if provider == "mlx":
        return MlxClient(model=model or DEFAULT_MLX_MODEL)
    raise ConfigError(f"unknown llm provider: {provider!r}", {"supported": "gemini|mlx"})
