"""
Tests for the OKX adapter and the wire-format helpers.

The ccxt client is replaced by a MagicMock whose implicit endpoint methods
return canned OKX envelopes.
"""

from unittest.mock import MagicMock

import ccxt
import pytest

from factories import make_config
from warlord.exchange_adapters.exchange_adapter import (
    ExchangeError,
    extract_error_code,
    format_price,
    parse_candles,
    parse_position,
)
from warlord.exchange_adapters.okx_adapter import OkxAdapter, translate_ccxt_error


def ok(data):
    return {"code": "0", "msg": "", "data": data}


@pytest.fixture
def exchange():
    return MagicMock()


@pytest.fixture
def adapter(exchange):
    config = make_config(is_simulation=False, okx_api_key="key", okx_secret_key="secret", okx_passphrase="pass")
    return OkxAdapter(config, exchange=exchange)


RAW_POSITION = {
    "instId": "ETH-USDT-SWAP",
    "posSide": "long",
    "pos": "0.5",
    "avgPx": "3000",
    "upl": "1.2",
    "uplRatio": "0.08",
    "mgnMode": "isolated",
    "margin": "",
    "imr": "7.5",
    "liqPx": "2860.5",
    "cTime": "1700000000000",
    "bePx": "3003.6",
}


# --- helpers -----------------------------------------------------------------

def test_parse_candles_normalizes_newest_first_feed():
    rows = [
        ["3000", "3", "4", "2", "3.5", "10"],
        ["2000", "2", "3", "1", "2.5", "10"],
        ["1000", "1", "2", "0.5", "1.5", "10"],
    ]
    candles = parse_candles(rows)
    assert [c.timestamp for c in candles] == [1000, 2000, 3000]
    assert candles[-1].close == 3.5


def test_parse_candles_skips_short_rows():
    assert parse_candles([["1000", "1"]]) == []
    assert parse_candles(None) == []


@pytest.mark.parametrize(
    "value, expected",
    [(3150.456, "3150.46"), ("2950", "2950.00"), (0, None), (-5, None), ("", None), ("abc", None), (None, None)],
)
def test_format_price(value, expected):
    assert format_price(value) == expected


def test_extract_error_code_skips_success_codes():
    text = 'okx {"code":"1","data":[{"sCode":"51008","sMsg":"Insufficient"}],"msg":""}'
    assert extract_error_code(text) == "51008"
    assert extract_error_code('{"code":"0","data":[]}') is None
    assert extract_error_code("timeout") is None


def test_exchange_error_text():
    assert str(ExchangeError("boom", "51008")).startswith("Insufficient balance")
    assert str(ExchangeError("boom", "99999")) == "Code 99999: boom"
    assert str(ExchangeError("boom")) == "boom"
    error = ExchangeError("boom", "50011")
    assert error.code == "50011"
    assert error.message == "boom"
    assert error.translated is not None


def test_parse_position_attaches_matching_algo_orders():
    algo_orders = [
        {"instId": "ETH-USDT-SWAP", "posSide": "short", "slTriggerPx": "3100"},
        {"instId": "ETH-USDT-SWAP", "posSide": "long", "slTriggerPx": "", "tpTriggerPx": "3300"},
        {"instId": "ETH-USDT-SWAP", "posSide": "long", "slTriggerPx": "2950", "tpTriggerPx": ""},
    ]
    position = parse_position(RAW_POSITION, algo_orders)
    assert position.side == "long"
    assert position.size == 0.5
    assert position.margin == 7.5
    assert position.break_even_price == 3003.6
    assert position.stop_loss_trigger_price == 2950.0
    assert position.take_profit_trigger_price == 3300.0
    assert position.create_time == 1_700_000_000_000


def test_parse_position_without_algo_orders():
    position = parse_position(RAW_POSITION)
    assert position.stop_loss_trigger_price is None
    assert position.take_profit_trigger_price is None


@pytest.mark.parametrize("pos, direction", [("1", "long"), ("-2", "short")])
def test_parse_position_net_mode_keeps_direction(pos, direction):
    position = parse_position({**RAW_POSITION, "posSide": "net", "pos": pos})
    assert position.side == "net"
    assert position.direction == direction
    assert position.is_long == (direction == "long")
    assert position.size == abs(float(pos))


# --- ccxt error translation --------------------------------------------------

@pytest.mark.parametrize(
    "error, code",
    [
        (ccxt.AuthenticationError("bad key"), "50113"),
        (ccxt.InsufficientFunds("no money"), "51008"),
        (ccxt.RateLimitExceeded("slow down"), "50011"),
        (ccxt.BadRequest("bad size"), "51000"),
        (ccxt.NetworkError("connection reset"), None),
    ],
)
def test_translate_ccxt_error_fallback_codes(error, code):
    translated = translate_ccxt_error(error, "Place order")
    assert translated.code == code
    assert translated.message.startswith("Place order failed")


def test_translate_ccxt_error_prefers_embedded_code():
    error = ccxt.ExchangeError('okx {"code":"1","data":[{"sCode":"51008"}]}')
    assert translate_ccxt_error(error, "x").code == "51008"


# --- requests ----------------------------------------------------------------

def test_request_raises_on_error_envelope(adapter, exchange):
    exchange.privatePostTradeOrder.return_value = {
        "code": "1",
        "msg": "All operations failed",
        "data": [{"sCode": "51008", "sMsg": "Order failed, insufficient balance"}],
    }
    with pytest.raises(ExchangeError) as exc_info:
        adapter.place_market_order("buy", "long", "0.50")
    assert exc_info.value.code == "51008"
    assert "insufficient balance" in exc_info.value.message


def test_request_wraps_ccxt_exceptions(adapter, exchange):
    exchange.publicGetMarketTicker.side_effect = ccxt.RateLimitExceeded("429")
    with pytest.raises(ExchangeError) as exc_info:
        adapter.fetch_ticker()
    assert exc_info.value.code == "50011"


def test_fetch_ticker(adapter, exchange):
    exchange.publicGetMarketTicker.return_value = ok([{
        "instId": "ETH-USDT-SWAP", "last": "3001.5", "open24h": "2950", "high24h": "3050",
        "low24h": "2900", "volCcy24h": "123456789", "ts": "1700000000000",
    }])
    ticker = adapter.fetch_ticker()
    assert ticker.last == 3001.5
    assert ticker.volume_24h == 123456789.0
    exchange.publicGetMarketTicker.assert_called_once_with({"instId": "ETH-USDT-SWAP"})


def test_fetch_candles_returns_oldest_first(adapter, exchange):
    exchange.publicGetMarketCandles.return_value = ok([
        ["2000", "2", "3", "1", "2.5", "10", "0", "0", "1"],
        ["1000", "1", "2", "0.5", "1.5", "10", "0", "0", "1"],
    ])
    candles = adapter.fetch_candles("15m", 100)
    assert [c.timestamp for c in candles] == [1000, 2000]
    params = exchange.publicGetMarketCandles.call_args[0][0]
    assert params == {"instId": "ETH-USDT-SWAP", "bar": "15m", "limit": "100"}


def test_funding_rate_degrades_to_zero(adapter, exchange):
    exchange.publicGetPublicFundingRate.side_effect = ccxt.NetworkError("down")
    assert adapter.fetch_funding_rate() == 0.0


def test_fetch_balance(adapter, exchange):
    exchange.privateGetAccountBalance.return_value = ok([
        {"uTime": "1700000000000", "details": [{"ccy": "USDT", "eq": "15.5", "availEq": "12.25"}]}
    ])
    balance = adapter.fetch_balance()
    assert balance.total_equity == 15.5
    assert balance.available_equity == 12.25


def test_fetch_balance_caps_available_at_total(adapter, exchange):
    exchange.privateGetAccountBalance.return_value = ok([
        {"uTime": "1700000000000", "details": [{"ccy": "USDT", "eq": "10", "availEq": "12.5"}]}
    ])
    balance = adapter.fetch_balance()
    assert balance.available_equity == 10.0


def test_fetch_positions_degrades_without_algo_orders(adapter, exchange):
    exchange.privateGetAccountPositions.return_value = ok([RAW_POSITION])
    exchange.privateGetTradeOrdersAlgoPending.side_effect = ccxt.NetworkError("down")
    positions = adapter.fetch_positions()
    assert len(positions) == 1
    assert positions[0].stop_loss_trigger_price is None


def test_place_market_order_attaches_stops(adapter, exchange):
    exchange.privatePostTradeOrder.return_value = ok([{"ordId": "123", "sCode": "0"}])
    order_id = adapter.place_market_order("buy", "long", "0.64", stop_loss=2970.0, take_profit=0)
    assert order_id == "123"
    body = exchange.privatePostTradeOrder.call_args[0][0]
    assert body["sz"] == "0.64"
    assert body["tdMode"] == "isolated"
    assert body["attachAlgoOrds"] == [{"slTriggerPx": "2970.00", "slOrdPx": "-1"}]


def test_place_market_order_without_stops(adapter, exchange):
    exchange.privatePostTradeOrder.return_value = ok([{"ordId": "9"}])
    adapter.place_market_order("sell", "short", "0.10")
    assert "attachAlgoOrds" not in exchange.privatePostTradeOrder.call_args[0][0]


def test_update_tpsl_cancels_then_places(adapter, exchange):
    exchange.privateGetTradeOrdersAlgoPending.return_value = ok([
        {"algoId": "a1", "instId": "ETH-USDT-SWAP", "posSide": "long", "slTriggerPx": "2950"},
        {"algoId": "a2", "instId": "ETH-USDT-SWAP", "posSide": "long", "tpTriggerPx": "3300"},
        {"algoId": "a3", "instId": "ETH-USDT-SWAP", "posSide": "short", "slTriggerPx": "3100"},
    ])
    exchange.privatePostTradeCancelAlgos.return_value = ok([])
    exchange.privatePostTradeOrderAlgo.return_value = ok([{"algoId": "new"}])

    message = adapter.update_tpsl("long", "0.50", stop_loss=2980.0)

    assert "sl=2980.00" in message
    exchange.privatePostTradeCancelAlgos.assert_called_once_with(
        [{"algoId": "a1", "instId": "ETH-USDT-SWAP"}]
    )
    body = exchange.privatePostTradeOrderAlgo.call_args[0][0]
    assert body["slTriggerPx"] == "2980.00"
    assert body["side"] == "sell"
    assert body["reduceOnly"] is True
    assert "tpTriggerPx" not in body


def test_update_tpsl_without_prices_is_noop(adapter, exchange):
    message = adapter.update_tpsl("long", "0.50")
    assert "existing orders kept" in message
    exchange.privatePostTradeOrderAlgo.assert_not_called()


def test_ensure_long_short_mode_switches_once(adapter, exchange):
    exchange.privateGetAccountConfig.return_value = ok([{"posMode": "net_mode"}])
    exchange.privatePostAccountSetPositionMode.return_value = ok([])
    adapter.ensure_long_short_mode()
    exchange.privatePostAccountSetPositionMode.assert_called_once_with({"posMode": "long_short_mode"})


def test_add_margin_formats_amount(adapter, exchange):
    exchange.privatePostAccountPositionMarginBalance.return_value = ok([])
    adapter.add_margin("long", 1.234)
    body = exchange.privatePostAccountPositionMarginBalance.call_args[0][0]
    assert body == {"instId": "ETH-USDT-SWAP", "posSide": "long", "type": "add", "amt": "1.23"}


def test_connection_test_reports_failure(adapter, exchange):
    exchange.publicGetMarketTicker.side_effect = ccxt.NetworkError("down")
    assert adapter.test_connection() is False
