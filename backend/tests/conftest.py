"""Shared fixtures for the controller tests."""

from unittest.mock import MagicMock

import pytest

from factories import BUY_RESPONSE, FakeClock, make_account, make_config, make_market
from warlord.engine_state import EngineState
from warlord.models import ExecutionResult


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def state(config, clock):
    return EngineState(config, clock=clock)


@pytest.fixture
def data_acquisition():
    mock = MagicMock()
    mock.fetch_market_data.return_value = make_market()
    mock.fetch_account_data.return_value = make_account()
    mock.exchange_adapter.test_connection.return_value = True
    return mock


@pytest.fixture
def provider():
    mock = MagicMock()
    mock.get_decision.return_value = BUY_RESPONSE
    mock.test_connection.return_value = True
    return mock


@pytest.fixture
def executor():
    mock = MagicMock()
    mock.execute.return_value = ExecutionResult(
        executed=True, order_id="sim_1", message="BUY 0.64 contracts @ 20x"
    )
    return mock
