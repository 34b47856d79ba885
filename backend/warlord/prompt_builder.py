"""Prompt construction for the decision model."""

import logging
from typing import Dict, List

from warlord.models import DecisionContext

logger = logging.getLogger(__name__)


RESPONSE_SCHEMA = """
{
  "stage_analysis": "...",
  "hot_events_overview": "...",
  "market_assessment": "...",
  "instrument_analysis": "...",
  "trading_decision": {
    "action": "BUY|SELL|HOLD|CLOSE|UPDATE_TPSL",
    "confidence": "0-100%",
    "position_size": "contracts, or margin in USDT suffixed with U",
    "leverage": "LEVERAGE",
    "profit_target": "price",
    "stop_loss": "price (respect the 20% max margin loss rule)",
    "invalidation_condition": "..."
  },
  "reasoning": "..."
}
"""

USER_INSTRUCTION = (
    "Use everything you know about current crypto market events, then decide by applying the "
    "DCA, profit-protection and first-entry stop rules above."
)


class PromptBuilder:
    """Formats a DecisionContext into chat messages."""

    def build_messages(self, context: DecisionContext) -> List[Dict[str, str]]:
        """
        Build system + user messages for the chat completion call.

        Args:
            context: Decision context for this cycle

        Returns:
            List of OpenAI-style message dicts
        """
        schema = RESPONSE_SCHEMA.replace("LEVERAGE", f"{context.stage.leverage:g}")
        system_prompt = self.build_system_prompt(context) + "\nJSON ONLY, NO MARKDOWN:\n" + schema
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": USER_INSTRUCTION},
        ]

    def build_system_prompt(self, context: DecisionContext) -> str:
        features = context.market_features
        ind = context.indicators
        price = context.current_price

        market_block = f"""
Price data:
- Last price: {price:.2f}
- 24h change: {features.get("daily_change_pct", 0.0):.2f}%
- 24h volume: {features.get("volume_24h_10k", 0.0):.0f} x10k USDT
- Turnover rate (volume / open interest value): {features.get("turnover_rate_pct", 0.0):.2f}%
- Funding rate: {features.get("funding_rate", 0.0) * 100:.4f}%

Technicals (15m):
Trend:
- MACD: {features.get("macd_label", "")} (diff: {ind.macd:.2f}, hist: {ind.macd_hist:.2f})
- Bollinger: {features.get("bollinger_label", "")} (upper: {ind.boll_upper:.2f}, lower: {ind.boll_lower:.2f})
- EMA20: {ind.ema20:.2f}

Oscillators:
- RSI(14): {ind.rsi14:.2f}
- KDJ: {features.get("kdj_label", "")} (K: {ind.kdj_k:.1f}, D: {ind.kdj_d:.1f}, J: {ind.kdj_j:.1f})

Volume:
- Volume ratio (last / MA5): {ind.volume_ratio:.2f}
"""

        return f"""
You are an ultra-short-term strategy trader focused on the {context.instrument_id} perpetual swap.

1. Market data:
{market_block}
2. Account:
- Stage: {context.stage.name}
- Stage guidance: {context.stage.guidance}
- Available balance: {context.available_equity:.2f} USDT (total equity {context.total_equity:.2f} USDT)
- Position: {self._position_block(context)}

3. Decision rules (highest priority: risk, DCA and profit protection):

1) First-entry stop rule:
   - The stop for a new entry must never imply a net loss above 20% of margin.
   - For BUY/SELL compute stop_loss so that |entry - stop| / entry * leverage < 0.2.
   - If the technical stop is wider than that, HOLD or reduce size.

2) DCA (only when the position section says averaging down is allowed):
   - Action BUY for a long position, SELL for a short position.
   - Do not set an overly tight stop right after averaging down.

3) Trend-broken risk control:
   - If the position section says the trend is against the position or DCA is forbidden,
     never add. Use UPDATE_TPSL to tighten the stop, or CLOSE.

4) Profit protection:
   - If net PnL is positive, follow the recommended stop with UPDATE_TPSL. Never loosen a stop.

5) Breaking news:
   - If there is major negative news, ignore every DCA signal and close.

6) Execution:
   - action: BUY / SELL / HOLD / CLOSE / UPDATE_TPSL
   - stop_loss: the recommended value for UPDATE_TPSL; a logical stop within the 20% rule for entries.

Produce a clean JSON trading decision.
"""

    @staticmethod
    def _position_block(context: DecisionContext) -> str:
        position = context.position
        analysis = context.analysis
        if position is None or analysis is None:
            return "no open position"

        recommended = (
            f"{analysis.recommended_stop_loss:.2f}" if analysis.recommended_stop_loss else "none"
        )
        current_stop = (
            f"{position.stop_loss_trigger_price:.2f}" if position.stop_loss_trigger_price else "NOT SET"
        )
        return f"""
    Holding: {position.direction.upper()} {position.size:g} contracts
    Entry: {position.entry_price:.2f} | Price: {context.current_price:.2f} | Break-even: {analysis.break_even_price:.2f}
    Net PnL after fees: {analysis.net_pnl:.2f} USDT ({analysis.net_roi:.2f}% ROI)
    Risk stage: {analysis.risk_stage}
    Advice: {analysis.action_hint}
    DCA allowed: {"yes" if analysis.allow_dca else "no"} | Pyramiding allowed: {"yes" if analysis.allow_pyramiding else "no"}
    Recommended stop: {recommended}
    Active stop: {current_stop}
"""
