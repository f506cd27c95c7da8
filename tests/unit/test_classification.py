"""Unit tests for classifier prompt construction and response decoding."""

from __future__ import annotations

import json

import pytest

from mnemovec.engine import parse_classification
from mnemovec.engine import ParsedClassification
from mnemovec.engine import ParseError
from mnemovec.engine.classification import clamp_confidence
from mnemovec.engine.classification import DEFAULT_EXPLANATION
from mnemovec.engine.prompt_builder import build_contradiction_prompt
from mnemovec.engine.prompt_builder import EXAMPLES


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


class TestContradictionPrompt:
    def test_includes_both_statements(self):
        prompt = build_contradiction_prompt("I love coffee", "I hate coffee")
        assert 'Statement 1: "I love coffee"' in prompt
        assert 'Statement 2: "I hate coffee"' in prompt

    def test_quotes_are_escaped(self):
        prompt = build_contradiction_prompt('She said "hi"', "ok")
        assert 'Statement 1: "She said \\"hi\\""' in prompt

    def test_includes_schema_examples_and_rule(self):
        prompt = build_contradiction_prompt("a", "b")
        assert '"contradicts"' in prompt
        assert '"confidence"' in prompt
        assert '"explanation"' in prompt
        for first, second, _, _ in EXAMPLES:
            assert first in prompt
            assert second in prompt
        assert prompt.endswith(
            "Only mark as contradiction if the statements cannot both be true "
            "at the same time."
        )


# ---------------------------------------------------------------------------
# Confidence clamping
# ---------------------------------------------------------------------------


class TestClampConfidence:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (150, 100),
            (-5, 0),
            ("abc", 0),
            (None, 0),
            (True, 0),
            (float("nan"), 0),
            (85.6, 86),
            ("42", 42),
            ("75%", 75),
            (0, 0),
            (100, 100),
            ([], 0),
        ],
    )
    def test_clamps(self, raw, expected):
        assert clamp_confidence(raw) == expected


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class TestParseClassification:
    def test_plain_json(self):
        outcome = parse_classification(
            '{"contradicts": true, "confidence": 95, "explanation": "Opposite"}'
        )
        assert isinstance(outcome, ParsedClassification)
        assert outcome.contradicts is True
        assert outcome.confidence == 95
        assert outcome.explanation == "Opposite"

    def test_code_fenced_json(self):
        raw = '```json\n{"contradicts": false, "confidence": 80, "explanation": "Fine"}\n```'
        outcome = parse_classification(raw)
        assert isinstance(outcome, ParsedClassification)
        assert outcome.contradicts is False
        assert outcome.confidence == 80

    def test_bare_code_fence(self):
        raw = '```\n{"contradicts": true, "confidence": 60}\n```'
        outcome = parse_classification(raw)
        assert isinstance(outcome, ParsedClassification)
        assert outcome.contradicts is True

    def test_prose_around_json(self):
        raw = (
            "Sure! Here is my analysis:\n"
            '{"contradicts": true, "confidence": 90, "explanation": "Cannot both hold"}\n'
            "Let me know if you need more."
        )
        outcome = parse_classification(raw)
        assert isinstance(outcome, ParsedClassification)
        assert outcome.explanation == "Cannot both hold"

    def test_out_of_range_confidence_is_clamped(self):
        high = parse_classification('{"contradicts": true, "confidence": 150}')
        low = parse_classification('{"contradicts": true, "confidence": -5}')
        bad = parse_classification('{"contradicts": true, "confidence": "abc"}')
        assert high.confidence == 100
        assert low.confidence == 0
        assert bad.confidence == 0

    def test_missing_fields_take_defaults(self):
        outcome = parse_classification("{}")
        assert isinstance(outcome, ParsedClassification)
        assert outcome.contradicts is False
        assert outcome.confidence == 0
        assert outcome.explanation == DEFAULT_EXPLANATION

    def test_blank_explanation_defaults(self):
        outcome = parse_classification('{"contradicts": true, "explanation": "  "}')
        assert outcome.explanation == DEFAULT_EXPLANATION

    @pytest.mark.parametrize("value", ["yes", 1, "false", None])
    def test_contradicts_requires_true(self, value):
        outcome = parse_classification(json.dumps({"contradicts": value}))
        assert outcome.contradicts is False

    def test_string_true_accepted(self):
        outcome = parse_classification('{"contradicts": "true"}')
        assert outcome.contradicts is True

    def test_no_json_is_parse_error(self):
        outcome = parse_classification("These statements contradict each other.")
        assert isinstance(outcome, ParseError)
        assert "no JSON object" in outcome.reason

    def test_invalid_json_is_parse_error(self):
        outcome = parse_classification("{contradicts: yes}")
        assert isinstance(outcome, ParseError)
        assert outcome.raw == "{contradicts: yes}"

    def test_non_text_is_parse_error(self):
        assert isinstance(parse_classification(None), ParseError)

    def test_raw_text_is_truncated(self):
        outcome = parse_classification("x" * 2000)
        assert isinstance(outcome, ParseError)
        assert len(outcome.raw) == 500
