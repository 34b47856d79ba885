"""Builders for test objects."""

import json
from dataclasses import replace

from warlord.config import Config, RiskSettings
from warlord.models import (
    AccountBalance,
    AccountContext,
    Candle,
    DecisionContext,
    IndicatorSnapshot,
    MarketData,
    Position,
    RawModelDecision,
    Ticker,
)
from warlord.strategy_stages import classify


def make_config(**overrides) -> Config:
    values = dict(
        okx_api_key="",
        okx_secret_key="",
        okx_passphrase="",
        deepseek_api_key="sk-test",
        is_simulation=True,
    )
    values.update(overrides)
    return Config(**values)


def make_indicators(**overrides) -> IndicatorSnapshot:
    values = dict(
        ema20=3000.0,
        macd=0.0,
        macd_signal=0.0,
        macd_hist=0.0,
        boll_upper=3100.0,
        boll_mid=3000.0,
        boll_lower=2900.0,
        rsi14=50.0,
        kdj_k=50.0,
        kdj_d=50.0,
        kdj_j=50.0,
        volume_sma5=10.0,
        volume_ratio=1.0,
    )
    values.update(overrides)
    return IndicatorSnapshot(**values)


def make_position(**overrides) -> Position:
    values = dict(
        instrument_id="ETH-USDT-SWAP",
        side="long",
        size=1.0,
        entry_price=3000.0,
        unrealized_pnl=0.0,
        unrealized_pnl_ratio=0.0,
        margin_mode="isolated",
        margin=15.0,
    )
    values.update(overrides)
    return Position(**values)


def make_raw(**overrides) -> RawModelDecision:
    values = dict(action="BUY", confidence="80%", leverage="20", reasoning="model reasoning")
    values.update(overrides)
    return RawModelDecision(**values)


def make_context(
    equity: float = 15.0,
    available: float = None,
    price: float = 3000.0,
    position: Position = None,
    analysis=None,
    contract_value: float = 0.1,
    indicators: IndicatorSnapshot = None,
) -> DecisionContext:
    return DecisionContext(
        instrument_id="ETH-USDT-SWAP",
        contract_value=contract_value,
        current_price=price,
        total_equity=equity,
        available_equity=equity if available is None else available,
        stage=classify(equity),
        indicators=indicators or make_indicators(),
        position=position,
        analysis=analysis,
    )


def make_candles(closes, start_ts: int = 1_700_000_000_000, step_ms: int = 900_000, volume: float = 10.0):
    """Oldest-first candles with a 2 point range around each close."""
    return [
        Candle(
            timestamp=start_ts + i * step_ms,
            open=close,
            high=close + 2,
            low=close - 2,
            close=close,
            volume=volume,
        )
        for i, close in enumerate(closes)
    ]


def make_market(price: float = 3000.0, candles=None, open_interest: float = 50000.0) -> MarketData:
    ticker = Ticker(
        instrument_id="ETH-USDT-SWAP",
        last=price,
        open_24h=price,
        high_24h=price + 50,
        low_24h=price - 50,
        volume_24h=1_000_000.0,
        timestamp=1_700_000_000_000,
    )
    if candles is None:
        candles = make_candles([price] * 60)
    return MarketData(ticker=ticker, candles=tuple(candles), funding_rate=0.0001, open_interest=open_interest)


def make_account(equity: float = 15.0, available: float = None, positions=()) -> AccountContext:
    balance = AccountBalance(
        total_equity=equity,
        available_equity=equity if available is None else available,
        update_time=1_700_000_000_000,
    )
    return AccountContext(balance=balance, positions=tuple(positions))


def risk_with(**overrides) -> RiskSettings:
    return replace(RiskSettings(), **overrides)


BUY_RESPONSE = json.dumps({
    "stage_analysis": "launch",
    "trading_decision": {"action": "BUY", "confidence": "80%", "leverage": "20"},
    "reasoning": "breakout",
})


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
