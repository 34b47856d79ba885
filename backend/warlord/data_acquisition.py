"""Data acquisition layer for fetching market and account snapshots."""

import logging
from typing import Optional

from warlord.config import Config
from warlord.exchange_adapters.exchange_adapter import ExchangeAdapter
from warlord.exchange_adapters.okx_adapter import OkxAdapter
from warlord.exchange_adapters.simulated_adapter import SimulatedAdapter
from warlord.models import AccountContext, MarketData


logger = logging.getLogger(__name__)


def create_exchange_adapter(config: Config) -> ExchangeAdapter:
    """Simulation or live OKX adapter depending on config."""
    if config.is_simulation:
        logger.info("SIMULATION MODE: using the offline exchange, no real orders will be sent")
        return SimulatedAdapter(config.instrument_id)
    logger.info(f"LIVE MODE: trading {config.instrument_id} on OKX")
    return OkxAdapter(config)


class DataAcquisition:
    """Fetches and normalizes market and account data through the adapter."""

    def __init__(self, config: Config, exchange_adapter: Optional[ExchangeAdapter] = None):
        """
        Initialize data acquisition.

        Args:
            config: Configuration object
            exchange_adapter: Adapter to read from (built from config if omitted)
        """
        self.config = config
        self.exchange_adapter = exchange_adapter or create_exchange_adapter(config)

    def fetch_market_data(self) -> MarketData:
        """
        Fetch ticker, candles, funding rate and open interest.

        Returns:
            MarketData with candles oldest-first

        Raises:
            ExchangeError: If the ticker or candles cannot be fetched
        """
        adapter = self.exchange_adapter
        ticker = adapter.fetch_ticker()
        candles = adapter.fetch_candles(self.config.candle_bar, self.config.candle_limit)
        if not candles:
            logger.warning(f"Empty candle feed for {self.config.instrument_id} {self.config.candle_bar}")

        return MarketData(
            ticker=ticker,
            candles=tuple(candles),
            funding_rate=adapter.fetch_funding_rate(),
            open_interest=adapter.fetch_open_interest(),
        )

    def fetch_account_data(self) -> AccountContext:
        """
        Fetch balance and positions.

        Raises:
            ExchangeError: If balance or positions cannot be fetched
        """
        balance = self.exchange_adapter.fetch_balance()
        positions = self.exchange_adapter.fetch_positions()
        return AccountContext(balance=balance, positions=tuple(positions))
