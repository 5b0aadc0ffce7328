"""Tests for verdict recovery from free-form model output."""

import pytest

from git_suspect.errors import ParseError
from git_suspect.models import Tier
from git_suspect.parser import find_flat_verdict, normalize_tier, parse_verdict


class TestParseVerdict:
    def test_plain_object(self):
        verdict = parse_verdict('{"probability": "HIGH", "reasoning": "drops the bounds check"}')
        assert verdict.tier is Tier.HIGH
        assert verdict.reasoning == "drops the bounds check"

    def test_object_after_prose(self):
        text = (
            "Hypothesis: off-by-one in the pager.\n"
            "Classification: MEDIUM\n"
            '{"probability": "MEDIUM", "reasoning": "touches the pager loop"}'
        )
        assert parse_verdict(text).tier is Tier.MEDIUM

    def test_unrelated_braces_before_answer(self):
        text = (
            "The handler returns {} when empty and the guard reads "
            "`if (ok) { return true; }` which is unchanged.\n"
            '{"probability": "LOW", "reasoning": "guard untouched"}'
        )
        verdict = parse_verdict(text)
        assert verdict.tier is Tier.LOW
        assert verdict.reasoning == "guard untouched"

    def test_braces_inside_reasoning(self):
        text = '{"probability": "HIGH", "reasoning": "now returns {} instead of nil"}'
        verdict = parse_verdict(text)
        assert verdict.tier is Tier.HIGH
        assert verdict.reasoning == "now returns {} instead of nil"

    def test_trailing_commentary_with_braces(self):
        text = '{"probability": "HIGH", "reasoning": "race"}\nHope this helps {cheers}'
        assert parse_verdict(text).tier is Tier.HIGH

    def test_fenced_json(self):
        text = '```json\n{\n  "probability": "medium",\n  "reasoning": "maybe"\n}\n```'
        assert parse_verdict(text).tier is Tier.MEDIUM

    def test_nested_reasoning_is_serialized(self):
        verdict = parse_verdict('{"probability": "LOW", "reasoning": {"step": 1}}')
        assert verdict.reasoning == '{"step": 1}'

    def test_missing_reasoning(self):
        verdict = parse_verdict('{"probability": "HIGH"}')
        assert verdict.reasoning == ""

    def test_no_object(self):
        with pytest.raises(ParseError) as exc_info:
            parse_verdict("I could not decide.")
        assert "preview" in exc_info.value.details

    def test_object_without_verdict_field(self):
        with pytest.raises(ParseError):
            parse_verdict('{"answer": "HIGH"}')

    def test_empty(self):
        with pytest.raises(ParseError):
            parse_verdict("")


class TestNormalizeTier:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("HIGH", Tier.HIGH),
            ("high", Tier.HIGH),
            (" Medium ", Tier.MEDIUM),
            ("med", Tier.MEDIUM),
            ("low", Tier.LOW),
            ("CRITICAL", Tier.LOW),
            (None, Tier.LOW),
            (3, Tier.LOW),
        ],
    )
    def test_values(self, value, expected):
        assert normalize_tier(value) is expected

    def test_unknown_tier_still_parses(self):
        assert parse_verdict('{"probability": "very likely", "reasoning": "x"}').tier is Tier.LOW


class TestFindFlatVerdict:
    def test_last_flat_match_wins(self):
        text = '{"probability": "LOW"} then {"probability": "HIGH"}'
        assert find_flat_verdict(text) == {"probability": "HIGH"}
