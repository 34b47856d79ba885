"""Position risk analysis: net PnL, break-even, profit ladder and stop ratchet."""

import logging
from typing import Optional, Tuple

from warlord.config import RiskSettings
from warlord.models import IndicatorSnapshot, Position, PositionAnalysis, StrategyStage

logger = logging.getLogger(__name__)

CLAMP_NOTE = " [clamped to safety buffer]"
KEPT_STOP_NOTE = " [kept tighter existing stop]"


def break_even_price(position: Position, fee_rate: float) -> float:
    """
    Break-even price after a round trip of fees.

    The exchange-supplied value wins when present and non-zero.
    """
    if position.break_even_price:
        return position.break_even_price
    entry = position.entry_price
    if position.is_long:
        return entry * (1 + fee_rate) / (1 - fee_rate)
    return entry * (1 - fee_rate) / (1 + fee_rate)


def is_tighter(candidate: float, current: float, is_long: bool) -> bool:
    """True when ``candidate`` protects the holder at least as well as ``current``."""
    return candidate >= current if is_long else candidate <= current


def ratchet_stop(
    candidate: float,
    current_stop: Optional[float],
    current_price: float,
    is_long: bool,
    safety_buffer: float,
) -> Tuple[float, bool, bool]:
    """
    Clamp a candidate stop to the safety buffer, then never let it loosen.

    Args:
        candidate: Proposed stop price
        current_stop: Stop currently recorded on the exchange (None/0 = not set)
        current_price: Latest price
        is_long: Position direction
        safety_buffer: Minimum distance from price as a fraction of price

    Returns:
        Tuple of (final_stop, clamped, kept_existing)
    """
    clamped = False
    if is_long:
        limit = current_price * (1 - safety_buffer)
        if candidate > limit:
            candidate, clamped = limit, True
    else:
        limit = current_price * (1 + safety_buffer)
        if candidate < limit:
            candidate, clamped = limit, True

    kept_existing = False
    if current_stop and current_stop > 0:
        final = max(candidate, current_stop) if is_long else min(candidate, current_stop)
        kept_existing = final != candidate
        candidate = final

    return candidate, clamped, kept_existing


class PositionRiskAnalyzer:
    """Computes risk state and a recommended stop for an open position."""

    def __init__(self, risk: RiskSettings):
        self.risk = risk

    def analyze(
        self,
        position: Position,
        current_price: float,
        indicators: IndicatorSnapshot,
        stage: StrategyStage,
        total_equity: float,
        contract_value: float,
    ) -> PositionAnalysis:
        """
        Analyze an open position.

        Args:
            position: Open position (size > 0)
            current_price: Latest traded price
            indicators: Indicators over the normalized candle feed
            stage: Active strategy stage
            total_equity: Account total equity, used for the exposure ratio
            contract_value: Base units per contract

        Returns:
            PositionAnalysis with a ratcheted recommended stop (or None)
        """
        risk = self.risk
        is_long = position.is_long
        break_even = break_even_price(position, risk.fee_rate)

        notional = position.size * contract_value * current_price
        estimated_fees = notional * risk.fee_rate * 2
        net_pnl = position.unrealized_pnl - estimated_fees
        net_roi = net_pnl / position.margin * 100 if position.margin > 0 else 0.0
        exposure_ratio = notional / total_equity if total_equity > 0 else float("inf")
        under_cap = exposure_ratio < stage.max_position_ratio

        candidate: Optional[float] = None
        allow_dca = False
        allow_pyramiding = False

        if net_pnl <= 0:
            if self._trend_aligned(is_long, current_price, indicators):
                if is_long:
                    drawdown = (position.entry_price - current_price) / position.entry_price * 100
                else:
                    drawdown = (current_price - position.entry_price) / position.entry_price * 100
                in_band = risk.dca_min_drawdown_pct < drawdown < risk.dca_max_drawdown_pct
                if stage.allow_dca and under_cap and in_band:
                    allow_dca = True
                    risk_stage = "Loss: trend intact, DCA window"
                    action_hint = (
                        f"Drawdown {drawdown:.2f}% with the trend intact; averaging down is allowed. "
                        "Do not move the stop."
                    )
                else:
                    risk_stage = "Loss: trend intact, hold"
                    action_hint = f"Drawdown {drawdown:.2f}% outside the DCA window; hold without moving the stop."
            else:
                offset = risk.trend_broken_stop_offset
                candidate = current_price * (1 - offset) if is_long else current_price * (1 + offset)
                risk_stage = "Loss: trend broken"
                action_hint = "Trend is against the position; DCA is forbidden, tighten the stop or close."
        else:
            if is_long:
                distance_pct = (current_price - break_even) / position.entry_price * 100
            else:
                distance_pct = (break_even - current_price) / position.entry_price * 100
            gain = current_price - break_even

            if distance_pct < risk.breakeven_buffer_pct:
                risk_stage = "Profit: fee buffer zone"
                action_hint = "Price is too close to break-even; leave the stop alone to avoid fee churn."
            elif distance_pct < risk.partial_lock_pct:
                candidate = break_even
                risk_stage = "Profit: lock break-even"
                action_hint = "Move the stop to break-even."
            elif distance_pct < risk.deep_lock_pct:
                candidate = break_even + risk.partial_lock_fraction * gain
                risk_stage = "Profit: partial lock"
                action_hint = f"Lock {risk.partial_lock_fraction:.0%} of the gain beyond break-even."
            else:
                candidate = break_even + risk.deep_lock_fraction * gain
                risk_stage = "Profit: deep lock"
                action_hint = f"Lock {risk.deep_lock_fraction:.0%} of the gain beyond break-even."

            if (
                stage.allow_pyramiding
                and under_cap
                and net_roi >= risk.pyramid_min_roi_pct
                and self._strong_trend(is_long, current_price, indicators)
            ):
                allow_pyramiding = True
                action_hint += " Trend is strong; pyramiding is allowed."

        recommended: Optional[float] = None
        stop_overridden = False
        if candidate is not None:
            recommended, clamped, kept_existing = ratchet_stop(
                candidate,
                position.stop_loss_trigger_price,
                current_price,
                is_long,
                risk.stop_safety_buffer,
            )
            if clamped:
                risk_stage += CLAMP_NOTE
                stop_overridden = True
            if kept_existing:
                risk_stage += KEPT_STOP_NOTE
                stop_overridden = True

        logger.debug(
            f"Position analysis: {position.side} {position.size} @ {position.entry_price}, "
            f"net_pnl={net_pnl:.4f}, roi={net_roi:.2f}%, stage='{risk_stage}', stop={recommended}"
        )

        return PositionAnalysis(
            net_pnl=net_pnl,
            net_roi=net_roi,
            break_even_price=break_even,
            recommended_stop_loss=recommended,
            risk_stage=risk_stage,
            action_hint=action_hint,
            allow_dca=allow_dca,
            allow_pyramiding=allow_pyramiding,
            stop_overridden=stop_overridden,
        )

    def _trend_aligned(self, is_long: bool, price: float, indicators: IndicatorSnapshot) -> bool:
        """Price on the position's side of EMA20 with MACD momentum not strongly opposing."""
        if price <= 0:
            return False
        momentum = indicators.macd_hist / price
        tolerance = self.risk.momentum_tolerance
        if is_long:
            return price > indicators.ema20 and momentum > -tolerance
        return price < indicators.ema20 and momentum < tolerance

    @staticmethod
    def _strong_trend(is_long: bool, price: float, indicators: IndicatorSnapshot) -> bool:
        """Band breakout, or MACD and KDJ pointing the same way as the position."""
        if is_long:
            breakout = indicators.boll_upper > 0 and price > indicators.boll_upper
            aligned = indicators.macd_hist > 0 and indicators.kdj_k > indicators.kdj_d
        else:
            breakout = indicators.boll_lower > 0 and price < indicators.boll_lower
            aligned = indicators.macd_hist < 0 and indicators.kdj_k < indicators.kdj_d
        return breakout or aligned
