"""Decision parsing layer: model text -> RawModelDecision."""

import json
import logging
from typing import Any, Dict

from warlord.models import RawModelDecision

logger = logging.getLogger(__name__)


class DecisionParseError(ValueError):
    """Model output is not a JSON object even after cleanup."""


def strip_code_fences(raw_response: str) -> str:
    """Remove a leading ```json / ``` fence and its closing fence."""
    cleaned = raw_response.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        cleaned = "\n".join(lines).strip()
    return cleaned


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class DecisionParser:
    """Parses LLM output into an untrusted RawModelDecision."""

    def parse(self, raw_response: str) -> RawModelDecision:
        """
        Parse LLM response.

        Code fences are stripped first; if the result still is not JSON the
        outermost ``{...}`` slice is tried once before giving up.

        Args:
            raw_response: Raw string response from the model

        Returns:
            RawModelDecision with fields copied verbatim

        Raises:
            DecisionParseError: If no JSON object can be recovered
        """
        if not isinstance(raw_response, str) or not raw_response.strip():
            raise DecisionParseError("Empty model response")

        data = self._load_object(strip_code_fences(raw_response))

        decision = data.get("trading_decision")
        if not isinstance(decision, dict):
            decision = data

        analysis = data.get("instrument_analysis", data.get("eth_analysis"))

        return RawModelDecision(
            action=_text(decision.get("action")),
            confidence=decision.get("confidence"),
            position_size=decision.get("position_size"),
            leverage=decision.get("leverage"),
            profit_target=decision.get("profit_target"),
            stop_loss=decision.get("stop_loss"),
            invalidation_condition=_text(decision.get("invalidation_condition")),
            stage_analysis=_text(data.get("stage_analysis")),
            market_assessment=_text(data.get("market_assessment")),
            hot_events_overview=_text(data.get("hot_events_overview")),
            instrument_analysis=_text(analysis),
            reasoning=_text(data.get("reasoning")),
        )

    @staticmethod
    def _load_object(cleaned: str) -> Dict[str, Any]:
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as first_error:
            start = cleaned.find("{")
            end = cleaned.rfind("}")
            if start == -1 or end <= start:
                logger.error(f"JSON parsing failed: {first_error}. Raw response: {cleaned[:500]}")
                raise DecisionParseError(f"Model response is not JSON: {first_error}") from first_error
            try:
                data = json.loads(cleaned[start:end + 1])
            except json.JSONDecodeError as e:
                logger.error(f"JSON parsing failed after retry: {e}. Raw response: {cleaned[:500]}")
                raise DecisionParseError(f"Model response is not JSON: {e}") from e
            logger.warning("Recovered JSON object from surrounding text")

        if not isinstance(data, dict):
            raise DecisionParseError(f"Parsed JSON is not an object (got {type(data).__name__})")
        return data
