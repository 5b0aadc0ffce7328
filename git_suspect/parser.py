"""Recover a structured verdict from free-form model output."""

import json
import re

from git_suspect.errors import ParseError
from git_suspect.models import AnalysisVerdict, Tier
from git_suspect.prompt import REASONING_FIELD, VERDICT_FIELD

_FLAT_OBJECT = re.compile(r"\{[^{}]*\}")
_TIER_ALIASES = {
    "HIGH": Tier.HIGH,
    "MEDIUM": Tier.MEDIUM,
    "MED": Tier.MEDIUM,
    "LOW": Tier.LOW,
}


def _decode_object(candidate: str) -> dict | None:
    try:
        obj = json.loads(candidate)
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def find_verdict_block(text: str) -> dict | None:
    """Decodable object ending at the last '}' that names the verdict field.

    Tries every '{' before the last '}', nearest first, so braces quoted in
    the model's prose do not derail the search.
    """
    end = text.rfind("}")
    if end == -1:
        return None
    needle = f'"{VERDICT_FIELD}"'
    start = text.rfind("{", 0, end)
    while start != -1:
        candidate = text[start:end + 1]
        if needle in candidate:
            obj = _decode_object(candidate)
            if obj is not None:
                return obj
        start = text.rfind("{", 0, start)
    return None


def find_flat_verdict(text: str) -> dict | None:
    """Last brace-free-inside object that names the verdict field and decodes."""
    needle = f'"{VERDICT_FIELD}"'
    found = None
    for m in _FLAT_OBJECT.finditer(text):
        candidate = m.group(0)
        if needle not in candidate:
            continue
        obj = _decode_object(candidate)
        if obj is not None:
            found = obj
    return found


def normalize_tier(value) -> Tier:
    """Map a tier string case-insensitively; anything unknown becomes LOW."""
    if isinstance(value, str):
        return _TIER_ALIASES.get(value.strip().upper(), Tier.LOW)
    return Tier.LOW


def parse_verdict(text: str) -> AnalysisVerdict:
    """Parse model output into a verdict; raises ParseError when none is found."""
    text = text or ""
    obj = find_verdict_block(text)
    if obj is None:
        obj = find_flat_verdict(text)
    if obj is None:
        preview = text.strip().replace("\n", " ")[:200]
        raise ParseError("no verdict object found in response", {"preview": preview})

    reasoning = obj.get(REASONING_FIELD, "")
    if reasoning is None:
        reasoning = ""
    elif not isinstance(reasoning, str):
        reasoning = json.dumps(reasoning, ensure_ascii=False)
    return AnalysisVerdict(tier=normalize_tier(obj.get(VERDICT_FIELD)), reasoning=reasoning.strip())
