"""Rewrites untrusted model decisions into execution-safe ones."""

import logging
import math
import re
from decimal import ROUND_DOWN, ROUND_UP, Decimal
from typing import Any, List, Optional, Tuple

from warlord.config import RiskSettings
from warlord.decision_builder import DecisionBuilder
from warlord.models import Action, DecisionContext, FinalDecision, RawModelDecision
from warlord.risk_analyzers.position_risk_analyzer import is_tighter

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 50.0

_NUMBER_RE = re.compile(r"-?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_MARGIN_SUFFIX_RE = re.compile(r"(u|usdt)\s*$", re.IGNORECASE)

_CENT = Decimal("0.01")


def parse_number(value: Any) -> Optional[float]:
    """
    Best-effort numeric parse of a model field.

    Accepts numbers and strings such as ``"20x"``, ``"3,150.5"`` or
    ``"80%"``. Booleans, NaN, infinities and text without digits give None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_RE.search(value.replace(",", ""))
        if not match:
            return None
        number = float(match.group())
    else:
        return None
    return number if math.isfinite(number) else None


def parse_price(value: Any) -> Optional[float]:
    """Positive price or None (zero, negative and junk mean "not set")."""
    number = parse_number(value)
    if number is None or number <= 0:
        return None
    return number


def parse_confidence(value: Any) -> float:
    """Confidence in [0, 100]; unparseable input gives the default of 50."""
    number = parse_number(value)
    if number is None:
        return DEFAULT_CONFIDENCE
    return min(max(number, 0.0), 100.0)


def floor_2dp(value: float) -> Decimal:
    # Pre-round so float noise like 0.30000000000000004 does not leak through
    return Decimal(str(round(value, 8))).quantize(_CENT, rounding=ROUND_DOWN)


def ceil_2dp(value: float) -> Decimal:
    return Decimal(str(round(value, 8))).quantize(_CENT, rounding=ROUND_UP)


class DecisionReconciler:
    """
    Enforces hard risk limits on a RawModelDecision.

    The reconciler is a pure function of (raw decision, context): it never
    mutates its inputs and performs no I/O, so identical inputs always give
    identical decisions.
    """

    def __init__(self, risk: RiskSettings, builder: DecisionBuilder = None):
        self.risk = risk
        self.builder = builder or DecisionBuilder()

    def reconcile(
        self,
        raw: RawModelDecision,
        context: DecisionContext,
        timestamp: Optional[int] = None,
    ) -> FinalDecision:
        """
        Reconcile a raw model decision against the decision context.

        Args:
            raw: Untrusted model decision
            context: Feature bundle for this cycle
            timestamp: Capture time in Unix ms (now if omitted)

        Returns:
            FinalDecision safe to hand to the executor
        """
        notes: List[str] = []
        stage = context.stage

        action = Action.parse(raw.action)
        if action == Action.HOLD and raw.action.strip().upper() != Action.HOLD.value:
            notes.append(f"Unrecognized action '{raw.action}' treated as HOLD")

        confidence = parse_confidence(raw.confidence)
        leverage = self._normalize_leverage(raw.leverage, stage.leverage, notes)
        stop_loss = parse_price(raw.stop_loss)
        profit_target = parse_price(raw.profit_target)

        size = "0"
        if action.is_entry:
            action, size, stop_loss = self._reconcile_entry(
                action, raw, context, confidence, leverage, stop_loss, notes
            )
        elif action == Action.UPDATE_TPSL:
            action = self._gate_tpsl_update(context, stop_loss, profit_target, notes)
        elif action == Action.CLOSE and context.position is None:
            notes.append("CLOSE requested without an open position, holding")
            action = Action.HOLD

        for note in notes:
            logger.warning(f"Decision corrected: {note}")

        return self.builder.build(
            raw,
            action=action,
            size=size,
            leverage=leverage,
            confidence=confidence,
            stop_loss=stop_loss,
            profit_target=profit_target,
            corrections=notes,
            timestamp=timestamp,
        )

    @staticmethod
    def _normalize_leverage(value: Any, stage_leverage: float, notes: List[str]) -> float:
        leverage = parse_number(value)
        if leverage is None or leverage < 1:
            if value not in (None, ""):
                notes.append(f"Leverage '{value}' is invalid, using stage default {stage_leverage:g}x")
            return stage_leverage
        if leverage > stage_leverage:
            notes.append(f"Leverage {leverage:g}x exceeds the stage cap, reduced to {stage_leverage:g}x")
            return stage_leverage
        return leverage

    def _reconcile_entry(
        self,
        action: Action,
        raw: RawModelDecision,
        context: DecisionContext,
        confidence: float,
        leverage: float,
        stop_loss: Optional[float],
        notes: List[str],
    ) -> Tuple[Action, str, Optional[float]]:
        """Size a BUY/SELL; returns (action, size, stop_loss)."""
        risk = self.risk
        price = context.current_price
        contract_notional = context.contract_value * price
        available = max(context.available_equity, 0.0)
        reserve_cap = available * risk.safety_reserve_fraction

        position = context.position
        adding = position is not None and (
            (action == Action.BUY and position.direction == "long")
            or (action == Action.SELL and position.direction == "short")
        )
        if adding and not self._add_allowed(context, notes):
            return Action.HOLD, "0", stop_loss
        floor = risk.min_add_notional if adding else risk.min_entry_notional

        margin = min(available * context.stage.risk_factor * confidence / 100, reserve_cap)
        notional = margin * leverage

        if notional < floor:
            if confidence >= risk.floor_boost_min_confidence and reserve_cap * leverage >= floor:
                notes.append(
                    f"Notional {notional:.2f} USDT below the {floor:g} USDT minimum, raised to the minimum"
                )
                notional = floor
            else:
                notes.append(
                    f"Notional {notional:.2f} USDT below the {floor:g} USDT minimum and cannot be raised, holding"
                )
                return Action.HOLD, "0", stop_loss

        cap_contracts = notional / contract_notional
        requested = self._requested_contracts(raw.position_size, leverage, contract_notional)
        contracts = requested if requested is not None and 0 < requested < cap_contracts else cap_contracts

        size = floor_2dp(contracts)
        min_size = ceil_2dp(floor / contract_notional)
        if size < min_size:
            required_margin = float(min_size) * contract_notional / leverage
            if required_margin <= reserve_cap:
                notes.append(f"Size {size} contracts below the minimum notional, raised to {min_size}")
                size = min_size
            else:
                notes.append(
                    f"Minimum size {min_size} contracts needs {required_margin:.2f} USDT margin, "
                    f"only {reserve_cap:.2f} USDT usable, holding"
                )
                return Action.HOLD, "0", stop_loss

        if size < Decimal(str(risk.min_contracts)):
            notes.append(f"Size {size} contracts below the tradable minimum, holding")
            return Action.HOLD, "0", stop_loss

        if stop_loss is not None:
            stop_loss = self._clamp_entry_stop(action, stop_loss, price, leverage, notes)

        return action, str(size), stop_loss

    @staticmethod
    def _add_allowed(context: DecisionContext, notes: List[str]) -> bool:
        """Adding to a loser needs a DCA window, adding to a winner needs pyramiding."""
        analysis = context.analysis
        if analysis is None:
            notes.append("Adding to the position without a risk analysis, holding")
            return False
        if analysis.net_pnl <= 0:
            if not analysis.allow_dca:
                notes.append(f"Averaging down is not allowed ({analysis.risk_stage}), holding")
                return False
        elif not analysis.allow_pyramiding:
            notes.append(f"Pyramiding is not allowed ({analysis.risk_stage}), holding")
            return False
        return True

    @staticmethod
    def _requested_contracts(value: Any, leverage: float, contract_notional: float) -> Optional[float]:
        """Model size in contracts; a U/USDT suffix means margin in USDT."""
        amount = parse_number(value)
        if amount is None or amount <= 0:
            return None
        if isinstance(value, str) and _MARGIN_SUFFIX_RE.search(value.strip()):
            return amount * leverage / contract_notional
        return amount

    def _clamp_entry_stop(
        self,
        action: Action,
        stop_loss: float,
        price: float,
        leverage: float,
        notes: List[str],
    ) -> Optional[float]:
        """
        Keep a fresh stop inside the max-loss-of-margin boundary.

        A stop on the wrong side of price, or within the safety buffer of it,
        would trigger on fill and is dropped.
        """
        buffer = self.risk.stop_safety_buffer
        if action == Action.BUY and stop_loss > price * (1 - buffer):
            notes.append(f"Stop {stop_loss:.2f} is not below price {price:.2f} by the safety buffer, dropped")
            return None
        if action == Action.SELL and stop_loss < price * (1 + buffer):
            notes.append(f"Stop {stop_loss:.2f} is not above price {price:.2f} by the safety buffer, dropped")
            return None

        max_deviation = self.risk.max_loss_fraction / leverage
        if action == Action.BUY:
            limit = float(ceil_2dp(price * (1 - max_deviation)))
            if stop_loss < limit:
                notes.append(
                    f"Stop {stop_loss:.2f} risks more than {self.risk.max_loss_fraction:.0%} of margin, "
                    f"moved to {limit:.2f}"
                )
                return limit
        else:
            limit = float(floor_2dp(price * (1 + max_deviation)))
            if stop_loss > limit:
                notes.append(
                    f"Stop {stop_loss:.2f} risks more than {self.risk.max_loss_fraction:.0%} of margin, "
                    f"moved to {limit:.2f}"
                )
                return limit
        return stop_loss

    def _gate_tpsl_update(
        self,
        context: DecisionContext,
        stop_loss: Optional[float],
        profit_target: Optional[float],
        notes: List[str],
    ) -> Action:
        position = context.position
        if position is None:
            notes.append("UPDATE_TPSL requested without an open position, holding")
            return Action.HOLD
        if stop_loss is None and profit_target is None:
            notes.append("UPDATE_TPSL carries no valid stop or target price, holding")
            return Action.HOLD

        if stop_loss is None or position.direction not in ("long", "short"):
            return Action.UPDATE_TPSL

        current_stop = position.stop_loss_trigger_price
        if current_stop and current_stop > 0 and not is_tighter(stop_loss, current_stop, position.is_long):
            notes.append(
                f"UPDATE_TPSL rejected: stop {stop_loss:.2f} would loosen the active stop "
                f"{current_stop:.2f} on the {position.direction} position"
            )
            return Action.HOLD

        price = context.current_price
        buffer = self.risk.stop_safety_buffer
        if position.is_long:
            too_close = stop_loss > price * (1 - buffer)
        else:
            too_close = stop_loss < price * (1 + buffer)
        if too_close:
            notes.append(
                f"UPDATE_TPSL rejected: stop {stop_loss:.2f} is within the safety buffer of price "
                f"{price:.2f} on the {position.direction} position"
            )
            return Action.HOLD
        return Action.UPDATE_TPSL
