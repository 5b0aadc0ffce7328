"""Error taxonomy for git-suspect."""


class GitSuspectError(Exception):
    """Base exception for all git-suspect errors."""

    def __init__(self, message: str, details: dict[str, str] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigError(GitSuspectError):
    """Invalid or unreadable configuration."""


class RepositoryError(GitSuspectError):
    """Repository could not be opened or cloned."""


class SelectionError(GitSuspectError):
    """Reference resolution or history walk failed before any analysis."""


class ExtractionError(GitSuspectError):
    """Tree or patch lookup failed for a single commit."""

    def __init__(self, message: str, commit: str = ""):
        super().__init__(message, {"commit": commit[:8]} if commit else None)
        self.commit = commit


class ReasoningTransportError(GitSuspectError):
    """Network, quota or server failure talking to the reasoning backend."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, {"status": str(status_code)} if status_code else None)
        self.status_code = status_code


class ReasoningTimeout(ReasoningTransportError):
    """A reasoning call, or its surrounding deadline, timed out."""


class ParseError(GitSuspectError):
    """No structured verdict could be recovered from the response text."""


class RetryExhaustedError(GitSuspectError):
    """All retries were used up; wraps the last observed error."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"max retries ({attempts}) exceeded: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class AnalysisCancelled(GitSuspectError):
    """Run-wide cancellation was observed."""

    def __init__(self, message: str = "analysis cancelled"):
        super().__init__(message)
