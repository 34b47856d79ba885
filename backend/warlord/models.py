"""Data models for the Warlord swap trading controller."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Action(str, Enum):
    """Closed set of trading actions that may reach the execution layer."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"
    CLOSE = "CLOSE"
    UPDATE_TPSL = "UPDATE_TPSL"

    @classmethod
    def parse(cls, value: Any) -> "Action":
        """
        Normalize a free-form model action into an Action.

        Unknown, empty or non-string values map to HOLD.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.HOLD
        normalized = value.strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError:
            return cls.HOLD

    @property
    def is_entry(self) -> bool:
        return self in (Action.BUY, Action.SELL)


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar."""

    timestamp: int  # Unix milliseconds
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Ticker:
    """Latest ticker snapshot."""

    instrument_id: str
    last: float
    open_24h: float
    high_24h: float
    low_24h: float
    volume_24h: float  # Quote currency (USDT) volume
    timestamp: int


@dataclass(frozen=True)
class AccountBalance:
    """Account equity in quote currency."""

    total_equity: float
    available_equity: float
    update_time: int


@dataclass(frozen=True)
class Position:
    """Open position on the traded instrument."""

    instrument_id: str
    side: str  # "long" | "short" | "net"
    size: float  # Contracts
    entry_price: float
    unrealized_pnl: float
    unrealized_pnl_ratio: float
    margin_mode: str
    margin: float
    liquidation_price: Optional[float] = None
    create_time: Optional[int] = None
    break_even_price: Optional[float] = None
    stop_loss_trigger_price: Optional[float] = None
    take_profit_trigger_price: Optional[float] = None
    net_direction: Optional[str] = None  # Sign of a net-mode position: "long" | "short"

    @property
    def is_open(self) -> bool:
        return self.size > 0

    @property
    def direction(self) -> str:
        """Effective long/short direction, resolving net mode from the position sign."""
        if self.side == "net":
            return self.net_direction or "net"
        return self.side

    @property
    def is_long(self) -> bool:
        return self.direction == "long"


@dataclass(frozen=True)
class MarketData:
    """Market snapshot for one poll cycle (candles oldest-first)."""

    ticker: Optional[Ticker]
    candles: Tuple[Candle, ...]
    funding_rate: float = 0.0
    open_interest: float = 0.0

    @property
    def price(self) -> float:
        return self.ticker.last if self.ticker else 0.0


@dataclass(frozen=True)
class AccountContext:
    """Balance plus positions for one poll cycle."""

    balance: AccountBalance
    positions: Tuple[Position, ...] = ()

    def primary_position(self, instrument_id: str) -> Optional[Position]:
        """First open position on ``instrument_id``, if any."""
        for position in self.positions:
            if position.instrument_id == instrument_id and position.is_open:
                return position
        return None


@dataclass(frozen=True)
class StrategyStage:
    """Risk configuration band selected by total equity."""

    key: str
    name: str
    min_equity: float
    max_equity: Optional[float]  # Exclusive upper bound, None for the open top band
    leverage: float
    risk_factor: float
    allow_dca: bool
    allow_pyramiding: bool
    max_position_ratio: float
    guidance: str


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values computed from the normalized candle feed."""

    ema20: float
    macd: float
    macd_signal: float
    macd_hist: float
    boll_upper: float
    boll_mid: float
    boll_lower: float
    rsi14: float
    kdj_k: float
    kdj_d: float
    kdj_j: float
    volume_sma5: float
    volume_ratio: float


@dataclass(frozen=True)
class PositionAnalysis:
    """Output of the position risk analyzer."""

    net_pnl: float
    net_roi: float  # Percent of margin
    break_even_price: float
    recommended_stop_loss: Optional[float]
    risk_stage: str
    action_hint: str
    allow_dca: bool = False
    allow_pyramiding: bool = False
    stop_overridden: bool = False


@dataclass(frozen=True)
class RawModelDecision:
    """Untrusted decision exactly as returned by the model."""

    action: str
    confidence: Any = None
    position_size: Any = None
    leverage: Any = None
    profit_target: Any = None
    stop_loss: Any = None
    invalidation_condition: str = ""
    stage_analysis: str = ""
    market_assessment: str = ""
    hot_events_overview: str = ""
    instrument_analysis: str = ""
    reasoning: str = ""


@dataclass(frozen=True)
class FinalDecision:
    """Execution-ready decision. Never mutated after creation."""

    action: Action
    size: str  # Contracts, 2 decimals, "0" when nothing is traded
    leverage: float
    confidence: float
    stop_loss: Optional[float]
    profit_target: Optional[float]
    invalidation_condition: str
    stage_analysis: str
    market_assessment: str
    hot_events_overview: str
    instrument_analysis: str
    reasoning: str
    corrections: Tuple[str, ...] = ()
    timestamp: int = 0  # Unix milliseconds
    raw: Optional[RawModelDecision] = None

    @property
    def size_contracts(self) -> float:
        return float(self.size)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view used by the status interface."""
        return {
            "action": self.action.value,
            "size": self.size,
            "leverage": self.leverage,
            "confidence": self.confidence,
            "stop_loss": self.stop_loss,
            "profit_target": self.profit_target,
            "invalidation_condition": self.invalidation_condition,
            "stage_analysis": self.stage_analysis,
            "market_assessment": self.market_assessment,
            "hot_events_overview": self.hot_events_overview,
            "instrument_analysis": self.instrument_analysis,
            "reasoning": self.reasoning,
            "corrections": list(self.corrections),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ExecutionResult:
    """Result of handing a decision to the exchange."""

    executed: bool
    order_id: Optional[str] = None
    message: str = ""
    error: Optional[str] = None


@dataclass(frozen=True)
class SystemLog:
    """Entry in the in-memory log buffer."""

    id: str
    timestamp: int  # Unix milliseconds
    type: str  # "INFO" | "SUCCESS" | "WARNING" | "ERROR" | "TRADE"
    message: str


@dataclass(frozen=True)
class DecisionContext:
    """Feature bundle shared by the prompt builder and the reconciler."""

    instrument_id: str
    contract_value: float
    current_price: float
    total_equity: float
    available_equity: float
    stage: StrategyStage
    indicators: IndicatorSnapshot
    position: Optional[Position] = None
    analysis: Optional[PositionAnalysis] = None
    market_features: Dict[str, Any] = field(default_factory=dict)
