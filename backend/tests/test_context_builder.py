"""Tests for the decision context and prompt construction."""

import pytest

from factories import make_account, make_config, make_context, make_market, make_position
from warlord.prompt_builder import PromptBuilder
from warlord.snapshot_builders.context_builder import DecisionContextBuilder
from warlord.strategy_stages import STAGE_1, STAGE_2


@pytest.fixture
def builder():
    return DecisionContextBuilder(make_config())


def test_flat_account_has_no_analysis(builder):
    context = builder.build(make_market(), make_account())
    assert context.stage is STAGE_1
    assert context.position is None
    assert context.analysis is None
    assert context.current_price == 3000.0


def test_position_is_analyzed(builder):
    position = make_position(unrealized_pnl=20.0)
    context = builder.build(make_market(price=3200.0), make_account(equity=30.0, positions=[position]))
    assert context.stage is STAGE_2
    assert context.position is position
    assert context.analysis.risk_stage == "Profit: deep lock"


def test_positions_on_other_instruments_ignored(builder):
    position = make_position(instrument_id="BTC-USDT-SWAP")
    context = builder.build(make_market(), make_account(positions=[position]))
    assert context.position is None


def test_market_features(builder):
    context = builder.build(make_market(open_interest=50000.0), make_account())
    features = context.market_features
    assert features["daily_change_pct"] == 0.0
    assert features["volume_24h_10k"] == 100.0
    # 1,000,000 / (50,000 * 0.1 * 3000) * 100
    assert features["turnover_rate_pct"] == pytest.approx(1_000_000 / 15_000_000 * 100)
    assert features["funding_rate"] == 0.0001
    assert "macd_label" in features


def test_zero_price_rejected(builder):
    with pytest.raises(ValueError):
        builder.build(make_market(price=0.0), make_account())


def test_prompt_carries_stage_and_schema():
    messages = PromptBuilder().build_messages(make_context())
    assert [m["role"] for m in messages] == ["system", "user"]
    system = messages[0]["content"]
    assert STAGE_1.name in system
    assert '"leverage": "20"' in system
    assert "no open position" in system
    assert "JSON ONLY" in system


def test_prompt_describes_position(builder):
    position = make_position(unrealized_pnl=20.0, stop_loss_trigger_price=3100.0)
    context = builder.build(make_market(price=3200.0), make_account(equity=30.0, positions=[position]))
    system = PromptBuilder().build_system_prompt(context)
    assert "Holding: LONG 1 contracts" in system
    assert "Active stop: 3100.00" in system
    assert "Risk stage: Profit: deep lock" in system
