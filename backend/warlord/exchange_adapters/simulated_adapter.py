"""Offline exchange used when IS_SIMULATION is on. No order has side effects."""

import logging
import math
import random
import time
from typing import Callable, List, Optional

from warlord.exchange_adapters.exchange_adapter import ExchangeAdapter, parse_candles
from warlord.models import AccountBalance, Candle, Position, Ticker

logger = logging.getLogger(__name__)

BASE_PRICE = 3250.0
AMPLITUDE = 50.0
BAR_MS = 15 * 60 * 1000
SIM_EQUITY = 15.0


class SimulatedAdapter(ExchangeAdapter):
    """Synthesizes market data around a sine wave and acknowledges every order."""

    def __init__(self, instrument_id: str, clock: Callable[[], float] = time.time, rng: random.Random = None):
        """
        Args:
            instrument_id: Instrument the synthetic data is reported for
            clock: Returns the current time in seconds
            rng: Random source for candle noise
        """
        self.instrument_id = instrument_id
        self.clock = clock
        self.rng = rng or random.Random()

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def current_price(self) -> float:
        return BASE_PRICE + math.sin(self._now_ms() / 10000) * AMPLITUDE

    def fetch_ticker(self) -> Ticker:
        price = self.current_price()
        return Ticker(
            instrument_id=self.instrument_id,
            last=round(price, 2),
            open_24h=BASE_PRICE,
            high_24h=BASE_PRICE + AMPLITUDE,
            low_24h=BASE_PRICE - AMPLITUDE,
            volume_24h=500_000_000.0,
            timestamp=self._now_ms(),
        )

    def fetch_candles(self, bar: str, limit: int) -> List[Candle]:
        # Rows are produced newest-first, the same order the live feed uses
        now = self._now_ms()
        price = self.current_price()
        rows = []
        for i in range(limit):
            open_price = price
            close_price = open_price + open_price * (self.rng.random() - 0.5) * 0.005
            rows.append([
                str(now - i * BAR_MS),
                f"{open_price:.2f}",
                f"{max(open_price, close_price) + 2:.2f}",
                f"{min(open_price, close_price) - 2:.2f}",
                f"{close_price:.2f}",
                f"{self.rng.random() * 100:.2f}",
            ])
            price = round(open_price, 2) + (self.rng.random() - 0.5) * 10
        return parse_candles(rows)

    def fetch_funding_rate(self) -> float:
        return 0.0001

    def fetch_open_interest(self) -> float:
        return 50000.0

    def fetch_balance(self) -> AccountBalance:
        return AccountBalance(total_equity=SIM_EQUITY, available_equity=SIM_EQUITY, update_time=self._now_ms())

    def fetch_positions(self) -> List[Position]:
        return []

    def set_leverage(self, leverage: float, pos_side: str) -> None:
        logger.info(f"[SIM] Leverage {leverage:g}x for {pos_side}")

    def ensure_long_short_mode(self) -> None:
        pass

    def place_market_order(
        self,
        side: str,
        pos_side: str,
        size: str,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> str:
        order_id = f"sim_{self._now_ms()}"
        logger.info(f"[SIM] Market {side} {pos_side} {size} contracts, sl={stop_loss}, tp={take_profit}, id={order_id}")
        return order_id

    def close_position(self, pos_side: str) -> None:
        logger.info(f"[SIM] Close {pos_side}")

    def update_tpsl(
        self,
        pos_side: str,
        size: str,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> str:
        logger.info(f"[SIM] TP/SL for {pos_side}: sl={stop_loss}, tp={take_profit}, size={size}")
        return "Simulated TP/SL update"

    def add_margin(self, pos_side: str, amount: float) -> None:
        logger.info(f"[SIM] Add {amount:.2f} USDT margin to {pos_side}")

    def test_connection(self) -> bool:
        return True
