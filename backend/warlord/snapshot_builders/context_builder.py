"""Builds the feature bundle shared by the prompt builder and the reconciler."""

import logging
from typing import Any, Dict

from warlord.config import Config
from warlord.indicators.technical_indicators import (
    compute_indicators,
    describe_bollinger,
    describe_kdj,
    describe_macd,
)
from warlord.models import AccountContext, DecisionContext, IndicatorSnapshot, MarketData
from warlord.risk_analyzers.position_risk_analyzer import PositionRiskAnalyzer
from warlord.strategy_stages import classify

logger = logging.getLogger(__name__)


class DecisionContextBuilder:
    """Turns one market + account snapshot into a DecisionContext."""

    def __init__(self, config: Config, analyzer: PositionRiskAnalyzer = None):
        """
        Initialize context builder.

        Args:
            config: Configuration object
            analyzer: Optional position risk analyzer (built from config.risk if omitted)
        """
        self.config = config
        self.analyzer = analyzer or PositionRiskAnalyzer(config.risk)

    def build(self, market: MarketData, account: AccountContext) -> DecisionContext:
        """
        Build the decision context.

        Args:
            market: Market snapshot (candles oldest-first)
            account: Balance and positions

        Returns:
            DecisionContext

        Raises:
            ValueError: If there is no usable price
        """
        price = market.price
        if price <= 0:
            raise ValueError("No valid price in market data")

        total_equity = account.balance.total_equity
        available_equity = account.balance.available_equity
        stage = classify(total_equity)
        indicators = compute_indicators(market.candles)
        position = account.primary_position(self.config.instrument_id)

        analysis = None
        if position is not None:
            analysis = self.analyzer.analyze(
                position,
                price,
                indicators,
                stage,
                total_equity,
                self.config.contract_value,
            )

        return DecisionContext(
            instrument_id=self.config.instrument_id,
            contract_value=self.config.contract_value,
            current_price=price,
            total_equity=total_equity,
            available_equity=available_equity,
            stage=stage,
            indicators=indicators,
            position=position,
            analysis=analysis,
            market_features=self._market_features(market, indicators),
        )

    def _market_features(self, market: MarketData, indicators: IndicatorSnapshot) -> Dict[str, Any]:
        """Daily change, volume and turnover figures plus indicator labels."""
        price = market.price
        ticker = market.ticker
        open_24h = ticker.open_24h if ticker else 0.0
        volume_24h = ticker.volume_24h if ticker else 0.0

        daily_change_pct = (price - open_24h) / open_24h * 100 if open_24h > 0 else 0.0
        open_interest_value = market.open_interest * self.config.contract_value * price
        turnover_rate_pct = volume_24h / open_interest_value * 100 if open_interest_value > 0 else 0.0

        return {
            "daily_change_pct": daily_change_pct,
            "volume_24h_10k": volume_24h / 10000,
            "turnover_rate_pct": turnover_rate_pct,
            "volume_ratio": indicators.volume_ratio,
            "funding_rate": market.funding_rate,
            "open_interest": market.open_interest,
            "macd_label": describe_macd(indicators),
            "bollinger_label": describe_bollinger(indicators, price),
            "kdj_label": describe_kdj(indicators),
        }
