"""Assembly of immutable FinalDecision objects."""

import logging
import time
from typing import Iterable, Optional

from warlord.models import Action, FinalDecision, RawModelDecision

logger = logging.getLogger(__name__)

CORRECTION_PREFIX = "[System correction]"


def now_ms() -> int:
    return int(time.time() * 1000)


class DecisionBuilder:
    """Merges reconciled numbers with the model's narrative fields."""

    def build(
        self,
        raw: RawModelDecision,
        action: Action,
        size: str,
        leverage: float,
        confidence: float,
        stop_loss: Optional[float],
        profit_target: Optional[float],
        corrections: Iterable[str] = (),
        timestamp: Optional[int] = None,
    ) -> FinalDecision:
        """
        Build the execution-ready decision.

        Narrative fields are kept verbatim; every correction is appended to
        the reasoning on its own line.

        Args:
            raw: Untrusted model decision the numbers were derived from
            action: Final action
            size: Final size in contracts ("0" when nothing trades)
            leverage: Final leverage
            confidence: Parsed confidence (0-100)
            stop_loss: Final stop-loss price or None
            profit_target: Final take-profit price or None
            corrections: Human-readable notes describing system overrides
            timestamp: Capture time in Unix ms (now if omitted)

        Returns:
            FinalDecision
        """
        notes = tuple(corrections)
        reasoning = raw.reasoning
        if notes:
            suffix = "\n".join(f"{CORRECTION_PREFIX} {note}" for note in notes)
            reasoning = f"{reasoning}\n{suffix}" if reasoning else suffix

        return FinalDecision(
            action=action,
            size=size,
            leverage=leverage,
            confidence=confidence,
            stop_loss=stop_loss,
            profit_target=profit_target,
            invalidation_condition=raw.invalidation_condition,
            stage_analysis=raw.stage_analysis,
            market_assessment=raw.market_assessment,
            hot_events_overview=raw.hot_events_overview,
            instrument_analysis=raw.instrument_analysis,
            reasoning=reasoning,
            corrections=notes,
            timestamp=now_ms() if timestamp is None else timestamp,
            raw=raw,
        )

    def error_decision(self, message: str, timestamp: Optional[int] = None) -> FinalDecision:
        """Safe HOLD with zero size and leverage carrying the error text."""
        return FinalDecision(
            action=Action.HOLD,
            size="0",
            leverage=0.0,
            confidence=0.0,
            stop_loss=None,
            profit_target=None,
            invalidation_condition="",
            stage_analysis="",
            market_assessment="",
            hot_events_overview="",
            instrument_analysis="",
            reasoning=f"Decision unavailable, holding: {message}",
            timestamp=now_ms() if timestamp is None else timestamp,
        )
