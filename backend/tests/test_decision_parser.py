"""Tests for model output parsing and decision assembly."""

import json

import pytest

from factories import make_raw
from warlord.decision_builder import CORRECTION_PREFIX, DecisionBuilder
from warlord.decision_parser import DecisionParseError, DecisionParser, strip_code_fences
from warlord.models import Action

NESTED = {
    "stage_analysis": "launch stage",
    "market_assessment": "uptrend",
    "hot_events_overview": "none",
    "eth_analysis": "above EMA20",
    "trading_decision": {
        "action": "BUY",
        "confidence": "75%",
        "position_size": "0.5",
        "leverage": "20x",
        "stop_loss": 2950,
        "profit_target": "3200",
        "invalidation_condition": "close below 2950",
    },
    "reasoning": "momentum",
}


@pytest.fixture
def parser():
    return DecisionParser()


def test_parse_nested_object(parser):
    raw = parser.parse(json.dumps(NESTED))
    assert raw.action == "BUY"
    assert raw.confidence == "75%"
    assert raw.leverage == "20x"
    assert raw.stop_loss == 2950
    assert raw.invalidation_condition == "close below 2950"
    assert raw.instrument_analysis == "above EMA20"
    assert raw.reasoning == "momentum"


def test_parse_flat_object(parser):
    raw = parser.parse('{"action": "HOLD", "reasoning": "chop", "instrument_analysis": "flat"}')
    assert raw.action == "HOLD"
    assert raw.reasoning == "chop"
    assert raw.instrument_analysis == "flat"
    assert raw.confidence is None


def test_parse_strips_code_fences(parser):
    raw = parser.parse("```json\n" + json.dumps(NESTED) + "\n```")
    assert raw.action == "BUY"


def test_parse_recovers_object_from_surrounding_text(parser):
    raw = parser.parse("Here is my decision: " + json.dumps(NESTED) + " Good luck!")
    assert raw.action == "BUY"


@pytest.mark.parametrize("text", ["", "   ", "no json here", "{broken", "[1, 2, 3]"])
def test_parse_errors(parser, text):
    with pytest.raises(DecisionParseError):
        parser.parse(text)


def test_parse_rejects_non_string(parser):
    with pytest.raises(DecisionParseError):
        parser.parse(None)


def test_non_string_narrative_coerced(parser):
    raw = parser.parse('{"action": "HOLD", "reasoning": 42}')
    assert raw.reasoning == "42"


def test_strip_code_fences_plain_text_untouched():
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'


def test_builder_appends_corrections():
    decision = DecisionBuilder().build(
        make_raw(),
        action=Action.HOLD,
        size="0",
        leverage=20.0,
        confidence=80.0,
        stop_loss=None,
        profit_target=None,
        corrections=["first", "second"],
        timestamp=1,
    )
    lines = decision.reasoning.split("\n")
    assert lines == ["model reasoning", f"{CORRECTION_PREFIX} first", f"{CORRECTION_PREFIX} second"]
    assert decision.corrections == ("first", "second")


def test_error_decision_is_safe_hold():
    decision = DecisionBuilder().error_decision("timeout", timestamp=5)
    assert decision.action == Action.HOLD
    assert decision.size == "0"
    assert decision.leverage == 0.0
    assert "timeout" in decision.reasoning
    assert decision.to_dict()["action"] == "HOLD"
    assert decision.timestamp == 5
