"""Small formatting helpers."""

import re


def truncate_commit_message(message: str, max_length: int = 80) -> str:
    """First line of a commit message, capped at max_length with '...'."""
    first_line = (message or "").split("\n", 1)[0].rstrip("\r")
    if len(first_line) <= max_length:
        return first_line
    if max_length <= 3:
        return first_line[:max(0, max_length)]
    return first_line[: max_length - 3] + "..."


_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value) -> float:
    """Parse 30, "30s", "500ms", "5m" or "1h" into seconds."""
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    m = _DURATION_RE.match(str(value))
    if m is None:
        raise ValueError(f"invalid duration: {value!r}")
    unit = (m.group(2) or "s").lower()
    return float(m.group(1)) * _UNIT_SECONDS[unit]


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(seconds, 60)
    return f"{int(minutes)}m{secs:04.1f}s"
