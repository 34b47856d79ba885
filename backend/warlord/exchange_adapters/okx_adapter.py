"""OKX perpetual swap adapter built on ccxt's implicit REST API."""

import logging
from typing import Any, Dict, List, Optional

import ccxt

from warlord.config import Config
from warlord.exchange_adapters.exchange_adapter import (
    ExchangeAdapter,
    ExchangeError,
    extract_error_code,
    format_price,
    parse_candles,
    parse_position,
    parse_ticker,
    to_float,
)
from warlord.models import AccountBalance, Candle, Position, Ticker

logger = logging.getLogger(__name__)

MARGIN_MODE = "isolated"


def translate_ccxt_error(error: Exception, action: str) -> ExchangeError:
    """Collapse any ccxt exception into ExchangeError, keeping the original text."""
    text = str(error)
    code = extract_error_code(text)
    if code is None:
        if isinstance(error, ccxt.AuthenticationError):
            code = "50113"
        elif isinstance(error, ccxt.InsufficientFunds):
            code = "51008"
        elif isinstance(error, ccxt.RateLimitExceeded):
            code = "50011"
        elif isinstance(error, (ccxt.BadRequest, ccxt.InvalidOrder)):
            code = "51000"
    return ExchangeError(f"{action} failed: {text}", code)


class OkxAdapter(ExchangeAdapter):
    """Handles the OKX connection for a single instrument."""

    def __init__(self, config: Config, exchange=None):
        """
        Initialize OKX adapter.

        Args:
            config: Configuration object with OKX credentials
            exchange: Optional pre-built ccxt client (tests inject a mock)
        """
        self.config = config
        self.instrument_id = config.instrument_id
        self.exchange = exchange or self._init_exchange(config)

    @staticmethod
    def _init_exchange(config: Config):
        """
        Initialize ccxt OKX client.

        Args:
            config: Configuration object

        Returns:
            Configured ccxt exchange instance
        """
        return ccxt.okx({
            'apiKey': config.okx_api_key,
            'secret': config.okx_secret_key,
            'password': config.okx_passphrase,
            'enableRateLimit': True,
            'options': {
                'defaultType': 'swap',
            },
        })

    def _request(self, endpoint: str, params: Any = None, action: str = "") -> List[Dict[str, Any]]:
        """
        Call an implicit ccxt endpoint and unwrap the OKX envelope.

        Raises:
            ExchangeError: On any ccxt exception or non-"0" response code
        """
        action = action or endpoint
        method = getattr(self.exchange, endpoint)
        try:
            response = method(params if params is not None else {})
        except ccxt.BaseError as e:
            raise translate_ccxt_error(e, action) from e

        code = str(response.get("code", "0"))
        data = response.get("data") or []
        if code != "0":
            detail = response.get("msg", "")
            if data and isinstance(data[0], dict) and data[0].get("sCode") not in (None, "", "0"):
                code = data[0]["sCode"]
                detail = data[0].get("sMsg") or detail
            raise ExchangeError(f"{action} failed: {detail}", code)
        return data

    def fetch_ticker(self) -> Ticker:
        data = self._request("publicGetMarketTicker", {'instId': self.instrument_id}, "Fetch ticker")
        if not data:
            raise ExchangeError(f"Fetch ticker failed: no data for {self.instrument_id}")
        return parse_ticker(data[0])

    def fetch_candles(self, bar: str, limit: int) -> List[Candle]:
        rows = self._request(
            "publicGetMarketCandles",
            {'instId': self.instrument_id, 'bar': bar, 'limit': str(limit)},
            "Fetch candles",
        )
        return parse_candles(rows)

    def fetch_funding_rate(self) -> float:
        try:
            data = self._request("publicGetPublicFundingRate", {'instId': self.instrument_id}, "Fetch funding rate")
        except ExchangeError as e:
            logger.warning(f"Funding rate unavailable: {e}")
            return 0.0
        return to_float(data[0].get("fundingRate")) if data else 0.0

    def fetch_open_interest(self) -> float:
        try:
            data = self._request(
                "publicGetPublicOpenInterest",
                {'instType': 'SWAP', 'instId': self.instrument_id},
                "Fetch open interest",
            )
        except ExchangeError as e:
            logger.warning(f"Open interest unavailable: {e}")
            return 0.0
        return to_float(data[0].get("oi")) if data else 0.0

    def fetch_balance(self) -> AccountBalance:
        data = self._request("privateGetAccountBalance", {'ccy': 'USDT'}, "Fetch balance")
        if not data:
            raise ExchangeError("Fetch balance failed: empty response")
        account = data[0]
        details = account.get("details") or [{}]
        usdt = details[0]
        total_equity = to_float(usdt.get("eq"))
        return AccountBalance(
            total_equity=total_equity,
            available_equity=min(to_float(usdt.get("availEq")), total_equity),
            update_time=int(to_float(account.get("uTime"))),
        )

    def fetch_positions(self) -> List[Position]:
        data = self._request("privateGetAccountPositions", {'instId': self.instrument_id}, "Fetch positions")
        if not data:
            return []
        algo_orders = self._fetch_pending_algo_orders()
        return [parse_position(raw, algo_orders) for raw in data]

    def _fetch_pending_algo_orders(self) -> List[Dict[str, Any]]:
        """Pending conditional orders; failures degrade to an empty list."""
        try:
            return self._request(
                "privateGetTradeOrdersAlgoPending",
                {'instId': self.instrument_id, 'ordType': 'conditional,oco'},
                "Fetch algo orders",
            )
        except ExchangeError as e:
            logger.warning(f"Pending algo orders unavailable: {e}")
            return []

    def set_leverage(self, leverage: float, pos_side: str) -> None:
        self._request(
            "privatePostAccountSetLeverage",
            {
                'instId': self.instrument_id,
                'lever': f"{leverage:g}",
                'mgnMode': MARGIN_MODE,
                'posSide': pos_side,
            },
            f"Set leverage {leverage:g}x",
        )

    def ensure_long_short_mode(self) -> None:
        data = self._request("privateGetAccountConfig", None, "Fetch account config")
        if not data or data[0].get("posMode") == "long_short_mode":
            return
        logger.info(f"Position mode is {data[0].get('posMode')}, switching to long_short_mode")
        self._request(
            "privatePostAccountSetPositionMode",
            {'posMode': 'long_short_mode'},
            "Switch to long/short position mode (close all positions first)",
        )

    def place_market_order(
        self,
        side: str,
        pos_side: str,
        size: str,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> str:
        body: Dict[str, Any] = {
            'instId': self.instrument_id,
            'tdMode': MARGIN_MODE,
            'side': side,
            'posSide': pos_side,
            'ordType': 'market',
            'sz': size,
        }

        sl_px = format_price(stop_loss)
        tp_px = format_price(take_profit)
        if sl_px or tp_px:
            algo: Dict[str, str] = {}
            if tp_px:
                algo['tpTriggerPx'] = tp_px
                algo['tpOrdPx'] = '-1'
            if sl_px:
                algo['slTriggerPx'] = sl_px
                algo['slOrdPx'] = '-1'
            body['attachAlgoOrds'] = [algo]

        data = self._request("privatePostTradeOrder", body, f"Place {side} {size} contracts")
        order_id = data[0].get("ordId", "") if data else ""
        logger.info(f"Order placed: {side} {pos_side} {size} contracts, id={order_id}, sl={sl_px}, tp={tp_px}")
        return order_id

    def close_position(self, pos_side: str) -> None:
        self._request(
            "privatePostTradeClosePosition",
            {'instId': self.instrument_id, 'posSide': pos_side, 'mgnMode': MARGIN_MODE},
            f"Close {pos_side} position",
        )

    def update_tpsl(
        self,
        pos_side: str,
        size: str,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> str:
        sl_px = format_price(stop_loss)
        tp_px = format_price(take_profit)
        if not sl_px and not tp_px:
            return "No new stop or target price, existing orders kept"

        # Only replace the kinds of orders a new price was given for
        to_cancel: Dict[str, Dict[str, str]] = {}
        for order in self._fetch_pending_algo_orders():
            if order.get("instId") != self.instrument_id or order.get("posSide") != pos_side:
                continue
            is_sl = to_float(order.get("slTriggerPx")) > 0
            is_tp = to_float(order.get("tpTriggerPx")) > 0
            if (sl_px and is_sl) or (tp_px and is_tp):
                to_cancel[order["algoId"]] = {'algoId': order["algoId"], 'instId': self.instrument_id}

        if to_cancel:
            self._request("privatePostTradeCancelAlgos", list(to_cancel.values()), "Cancel algo orders")
            logger.info(f"Cancelled {len(to_cancel)} pending algo orders")

        close_side = 'sell' if pos_side == 'long' else 'buy'
        base = {
            'instId': self.instrument_id,
            'posSide': pos_side,
            'tdMode': MARGIN_MODE,
            'side': close_side,
            'ordType': 'conditional',
            'sz': size,
            'reduceOnly': True,
        }
        if sl_px:
            self._request(
                "privatePostTradeOrderAlgo",
                dict(base, slTriggerPx=sl_px, slOrdPx='-1'),
                "Set stop loss",
            )
        if tp_px:
            self._request(
                "privatePostTradeOrderAlgo",
                dict(base, tpTriggerPx=tp_px, tpOrdPx='-1'),
                "Set take profit",
            )
        return f"TP/SL updated (sl={sl_px or '-'}, tp={tp_px or '-'})"

    def add_margin(self, pos_side: str, amount: float) -> None:
        self._request(
            "privatePostAccountPositionMarginBalance",
            {
                'instId': self.instrument_id,
                'posSide': pos_side,
                'type': 'add',
                'amt': f"{amount:.2f}",
            },
            f"Add {amount:.2f} USDT margin",
        )

    def test_connection(self) -> bool:
        try:
            self.fetch_ticker()
            if self.config.okx_api_key:
                self.fetch_balance()
        except ExchangeError as e:
            logger.error(f"OKX connection test failed: {e}")
            return False
        return True
