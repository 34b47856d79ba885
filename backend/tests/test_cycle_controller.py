"""Tests for the poll tick, the analysis gate and the analysis cycle."""

from unittest.mock import MagicMock

import pytest

from factories import BUY_RESPONSE
from warlord.controllers.cycle_controller import CycleController
from warlord.decision_provider import ModelCallError
from warlord.exchange_adapters.exchange_adapter import ExchangeError
from warlord.models import Action, ExecutionResult


@pytest.fixture
def controller(config, state, data_acquisition, provider, executor, clock):
    return CycleController(config, state, data_acquisition, provider, executor, clock=clock)


def log_types(state):
    return [entry.type for entry in state.logs]


def test_paused_tick_refreshes_snapshots_only(controller, state, provider, data_acquisition):
    assert controller.tick() is None
    assert state.market_data is data_acquisition.fetch_market_data.return_value
    assert state.account_data is data_acquisition.fetch_account_data.return_value
    provider.get_decision.assert_not_called()


def test_running_tick_trades(controller, state, executor):
    state.is_running = True
    decision = controller.tick()

    assert decision.action == Action.BUY
    assert decision.size == "0.64"
    assert list(state.history) == [decision]
    assert state.latest_decision is decision
    executor.execute.assert_called_once_with(decision, None)
    assert log_types(state) == ["TRADE"]
    assert "order sim_1" in state.logs[-1].message


def test_analysis_gate(controller, state, provider, clock):
    state.is_running = True
    assert controller.tick() is not None

    clock.advance(5)
    assert controller.tick() is None

    clock.advance(10)
    assert controller.tick() is not None
    assert provider.get_decision.call_count == 2


def test_fetch_failure_logs_once_when_running(controller, state, data_acquisition, provider):
    state.is_running = True
    data_acquisition.fetch_market_data.side_effect = ExchangeError("timeout")

    assert controller.tick() is None
    assert log_types(state) == ["ERROR"]
    assert "Data sync failed" in state.logs[0].message
    provider.get_decision.assert_not_called()


def test_fetch_failure_silent_when_paused(controller, state, data_acquisition):
    data_acquisition.fetch_account_data.side_effect = ExchangeError("timeout")
    assert controller.tick() is None
    assert list(state.logs) == []


def test_parse_failure_holds(controller, state, provider, executor):
    state.is_running = True
    provider.get_decision.return_value = "I think you should buy"

    decision = controller.tick()

    assert decision.action == Action.HOLD
    assert decision.size == "0"
    assert decision.leverage == 0.0
    assert state.latest_decision is decision
    assert list(state.history) == []
    assert log_types(state) == ["ERROR"]
    executor.execute.assert_not_called()


def test_model_error_holds(controller, state, provider):
    state.is_running = True
    provider.get_decision.side_effect = ModelCallError("Model call timed out after 60s")
    decision = controller.tick()
    assert decision.action == Action.HOLD
    assert "timed out" in decision.reasoning


def test_missing_provider_holds(config, state, data_acquisition, executor, clock):
    controller = CycleController(config, state, data_acquisition, None, executor, clock=clock)
    state.is_running = True
    decision = controller.tick()
    assert decision.action == Action.HOLD
    assert "not configured" in decision.reasoning
    executor.execute.assert_not_called()


def test_pause_during_analysis_skips_execution(controller, state, provider, executor):
    state.is_running = True

    def pause_then_answer(messages):
        state.is_running = False
        return BUY_RESPONSE

    provider.get_decision.side_effect = pause_then_answer
    decision = controller.tick()

    assert decision.action == Action.BUY
    assert list(state.history) == [decision]
    executor.execute.assert_not_called()
    assert log_types(state) == ["INFO"]
    assert "not executed" in state.logs[0].message


def test_execution_error_logged(controller, state, executor):
    state.is_running = True
    executor.execute.return_value = ExecutionResult(executed=False, message="Execution failed", error="51008")
    controller.tick()
    assert log_types(state) == ["ERROR"]


def test_replaced_components_apply_on_next_tick(controller, state, config, data_acquisition, executor):
    new_provider = MagicMock()
    new_provider.get_decision.return_value = '{"action": "HOLD", "reasoning": "wait"}'
    new_executor = MagicMock()
    new_executor.execute.return_value = executor.execute.return_value

    controller.replace_components(config, data_acquisition, new_provider, new_executor)
    assert controller.decision_provider is not new_provider

    state.is_running = True
    controller.tick()
    assert controller.decision_provider is new_provider
    new_executor.execute.assert_called_once()


def test_startup_requires_exchange(controller, state, data_acquisition, provider):
    provider.test_connection.return_value = False
    assert controller.startup() is True
    assert "System initialized" in state.logs[-1].message

    data_acquisition.exchange_adapter.test_connection.return_value = False
    assert controller.startup() is False


def test_run_stops_after_shutdown(controller, monkeypatch):
    monkeypatch.setattr("warlord.controllers.cycle_controller.time.sleep", lambda seconds: None)
    calls = []

    def tick():
        calls.append(1)
        if len(calls) == 2:
            controller.shutdown()

    controller.tick = tick
    controller.run()
    assert len(calls) == 2
    assert controller.state.is_running is False


def test_run_survives_tick_exceptions(controller, state, monkeypatch):
    monkeypatch.setattr("warlord.controllers.cycle_controller.time.sleep", lambda seconds: None)

    def tick():
        controller.running = False
        raise RuntimeError("boom")

    controller.tick = tick
    controller.run()
    assert state.logs[-1].type == "ERROR"
    assert "boom" in state.logs[-1].message
