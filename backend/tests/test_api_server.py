"""Tests for the status API against a simulation-mode LoopController."""

import pytest
from fastapi.testclient import TestClient

import api_server
from factories import make_config
from warlord.loop_controller import LoopController


@pytest.fixture
def controller():
    return LoopController(make_config(deepseek_api_key="sk-real"))


@pytest.fixture
def client(controller):
    return TestClient(api_server.create_app(controller))


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_status_masks_secrets(client):
    body = client.get("/api/status").json()
    assert body["is_running"] is False
    assert body["config"]["deepseek_api_key"] == "***"
    assert body["latest_decision"] is None


def test_status_after_tick(client, controller):
    controller.cycle_controller.tick()
    body = client.get("/api/status").json()
    assert body["market_data"]["ticker"]["instrument_id"] == "ETH-USDT-SWAP"
    assert body["account_data"]["balance"]["total_equity"] == 15.0


def test_history_empty(client):
    assert client.get("/api/history").json() == {"recent": [], "actions": []}


def test_toggle(client, controller):
    response = client.post("/api/toggle", json={"running": True})
    assert response.json() == {"success": True, "is_running": True}
    assert controller.state.is_running
    assert "started" in controller.state.logs[-1].message


def test_toggle_requires_flag(client):
    assert client.post("/api/toggle", json={}).status_code == 422


def test_config_update_keeps_masked_secret(client, controller):
    response = client.post(
        "/api/config",
        json={"deepseek_api_key": "***", "analysis_interval_seconds": 30, "unknown": 1},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["config"]["deepseek_api_key"] == "***"
    assert controller.config.deepseek_api_key == "sk-real"
    assert controller.config.analysis_interval_seconds == 30
    assert controller.state.logs[-1].message == "Configuration updated via API"


def test_invalid_config_rejected(client, controller):
    response = client.post("/api/config", json={"is_simulation": False})
    assert response.status_code == 400
    assert "OKX_API_KEY" in response.json()["detail"]
    assert controller.config.is_simulation is True
