"""Tests for the shared engine state and the shutdown service."""

import signal

import pytest

from factories import make_config, make_market, make_raw
from warlord.decision_builder import DecisionBuilder
from warlord.engine_state import EngineState
from warlord.models import Action
from warlord.services.shutdown_service import ShutdownService


def decision(action=Action.HOLD, timestamp=0):
    return DecisionBuilder().build(
        make_raw(action=action.value),
        action=action,
        size="0",
        leverage=20.0,
        confidence=50.0,
        stop_loss=None,
        profit_target=None,
        timestamp=timestamp,
    )


def test_log_ids_are_unique(state):
    first = state.add_log("INFO", "one")
    second = state.add_log("INFO", "two")
    assert first.id != second.id
    assert first.id.startswith(str(first.timestamp))


def test_log_buffer_is_bounded_oldest_first(clock):
    state = EngineState(make_config(log_limit=3), clock=clock)
    for i in range(5):
        state.add_log("INFO", f"entry {i}")
    assert [entry.message for entry in state.logs] == ["entry 2", "entry 3", "entry 4"]


def test_unknown_log_type_rejected(state):
    with pytest.raises(ValueError):
        state.add_log("DEBUG", "nope")


def test_history_is_newest_first_and_bounded(clock):
    state = EngineState(make_config(history_limit=2), clock=clock)
    decisions = [decision(timestamp=i) for i in range(3)]
    for d in decisions:
        state.record_decision(d)
    assert list(state.history) == [decisions[2], decisions[1]]
    assert state.latest_decision is decisions[2]


def test_history_view_windows(state, clock):
    now = state.now_ms()
    old_buy = decision(Action.BUY, timestamp=now - 2 * 60 * 60 * 1000)
    recent_hold = decision(Action.HOLD, timestamp=now - 60 * 1000)
    recent_sell = decision(Action.SELL, timestamp=now - 30 * 1000)
    for d in (old_buy, recent_hold, recent_sell):
        state.record_decision(d)

    assert state.recent_decisions() == [recent_sell, recent_hold]
    assert state.action_decisions() == [recent_sell, old_buy]

    view = state.history_view()
    assert [d["action"] for d in view["recent"]] == ["SELL", "HOLD"]
    assert [d["action"] for d in view["actions"]] == ["SELL", "BUY"]


def test_status_masks_secrets(state):
    state.market_data = make_market()
    status = state.status()
    assert status["config"]["deepseek_api_key"] == "***"
    assert status["market_data"]["ticker"]["last"] == 3000.0
    assert status["latest_decision"] is None
    assert status["is_running"] is False


def test_set_running_logs(state):
    state.set_running(True)
    assert state.is_running
    assert "started" in state.logs[-1].message


def test_apply_config_resizes_buffers(state):
    for i in range(5):
        state.add_log("INFO", str(i))
    state.apply_config(make_config(log_limit=2, history_limit=10))
    assert state.logs.maxlen == 2
    assert [entry.message for entry in state.logs] == ["3", "4"]
    assert state.history.maxlen == 10


class StubController:
    def __init__(self, state):
        self.state = state
        self.running = True


def test_shutdown_pauses_engine(state):
    state.is_running = True
    controller = StubController(state)
    ShutdownService(controller).shutdown()
    assert controller.running is False
    assert state.is_running is False


def test_second_signal_aborts(state):
    service = ShutdownService(StubController(state))
    previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        service.register_signal_handlers()
        handler = signal.getsignal(signal.SIGTERM)
        handler(signal.SIGTERM, None)
        assert service.requested
        with pytest.raises(KeyboardInterrupt):
            handler(signal.SIGTERM, None)
    finally:
        for sig, original in previous.items():
            signal.signal(sig, original)
