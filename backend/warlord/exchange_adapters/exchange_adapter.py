"""Exchange capability interface, error type and OKX wire-format helpers."""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from warlord.models import AccountBalance, Candle, Position, Ticker

logger = logging.getLogger(__name__)


# Translated, actionable text for codes the controller hits in practice
KNOWN_ERROR_CODES = {
    "51008": "Insufficient balance: available margin cannot cover this order plus fees",
    "51000": "Parameter error: check size, price precision and leverage",
    "50011": "Rate limit reached: the next cycle will retry",
    "50111": "Authentication failed: invalid API key",
    "50112": "Authentication failed: invalid request timestamp",
    "50113": "Authentication failed: invalid signature",
}

_CODE_PATTERNS = (
    re.compile(r'"sCode"\s*:\s*"(\d+)"'),
    re.compile(r'"code"\s*:\s*"(\d+)"'),
)


class ExchangeError(RuntimeError):
    """Single execution-failure type raised at the exchange boundary."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        self.message = message
        translated = KNOWN_ERROR_CODES.get(code) if code else None
        self.translated = translated
        text = f"{translated} ({code}): {message}" if translated else (
            f"Code {code}: {message}" if code else message
        )
        super().__init__(text)


def extract_error_code(text: str) -> Optional[str]:
    """Pull an OKX error code out of a raw response/exception text."""
    for pattern in _CODE_PATTERNS:
        for match in pattern.finditer(text):
            if match.group(1) != "0":
                return match.group(1)
    return None


def to_float(value: Any, default: float = 0.0) -> float:
    """OKX sends numbers as strings, often empty; those become ``default``."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def to_optional_price(value: Any) -> Optional[float]:
    price = to_float(value, 0.0)
    return price if price > 0 else None


def format_price(value: Any) -> Optional[str]:
    """
    Format a price to the 2-decimal tick used for the instrument.

    Missing, malformed, zero or negative prices return None ("not set").
    """
    price = to_optional_price(value)
    if price is None:
        return None
    return f"{price:.2f}"


def parse_candles(rows: Iterable[List[Any]]) -> List[Candle]:
    """
    Convert raw OKX candle rows into Candles ordered oldest-first.

    The feed is newest-first; rows are sorted by timestamp so either input
    order normalizes the same way.
    """
    candles = []
    for row in rows or []:
        if len(row) < 6:
            continue
        candles.append(
            Candle(
                timestamp=int(to_float(row[0])),
                open=to_float(row[1]),
                high=to_float(row[2]),
                low=to_float(row[3]),
                close=to_float(row[4]),
                volume=to_float(row[5]),
            )
        )
    candles.sort(key=lambda c: c.timestamp)
    return candles


def parse_ticker(raw: Dict[str, Any]) -> Ticker:
    return Ticker(
        instrument_id=raw.get("instId", ""),
        last=to_float(raw.get("last")),
        open_24h=to_float(raw.get("open24h")),
        high_24h=to_float(raw.get("high24h")),
        low_24h=to_float(raw.get("low24h")),
        volume_24h=to_float(raw.get("volCcy24h")),
        timestamp=int(to_float(raw.get("ts"))),
    )


def parse_position(raw: Dict[str, Any], algo_orders: List[Dict[str, Any]] = ()) -> Position:
    """
    Map a raw OKX position onto Position, attaching matching pending stops.

    Conditional orders match on instrument + side; only positive trigger
    prices count as set.
    """
    instrument_id = raw.get("instId", "")
    side = raw.get("posSide") or "net"

    stop_loss = None
    take_profit = None
    for order in algo_orders:
        if order.get("instId") != instrument_id or order.get("posSide") != side:
            continue
        if stop_loss is None:
            stop_loss = to_optional_price(order.get("slTriggerPx"))
        if take_profit is None:
            take_profit = to_optional_price(order.get("tpTriggerPx"))

    signed_size = to_float(raw.get("pos"))
    net_direction = None
    if side == "net" and signed_size:
        net_direction = "long" if signed_size > 0 else "short"

    create_time = raw.get("cTime")
    return Position(
        instrument_id=instrument_id,
        side=side,
        size=abs(signed_size),
        entry_price=to_float(raw.get("avgPx")),
        unrealized_pnl=to_float(raw.get("upl")),
        unrealized_pnl_ratio=to_float(raw.get("uplRatio")),
        margin_mode=raw.get("mgnMode", ""),
        margin=to_float(raw.get("margin")) or to_float(raw.get("imr")),
        liquidation_price=to_optional_price(raw.get("liqPx")),
        create_time=int(to_float(create_time)) if create_time else None,
        break_even_price=to_optional_price(raw.get("bePx")),
        stop_loss_trigger_price=stop_loss,
        take_profit_trigger_price=take_profit,
        net_direction=net_direction,
    )


class ExchangeAdapter(ABC):
    """Capabilities the controller consumes from an exchange."""

    instrument_id: str

    @abstractmethod
    def fetch_ticker(self) -> Ticker:
        """Latest ticker for the configured instrument."""

    @abstractmethod
    def fetch_candles(self, bar: str, limit: int) -> List[Candle]:
        """Candles ordered oldest-first."""

    @abstractmethod
    def fetch_funding_rate(self) -> float:
        """Current funding rate (0.0 when unavailable)."""

    @abstractmethod
    def fetch_open_interest(self) -> float:
        """Open interest in contracts (0.0 when unavailable)."""

    @abstractmethod
    def fetch_balance(self) -> AccountBalance:
        """USDT equity figures."""

    @abstractmethod
    def fetch_positions(self) -> List[Position]:
        """Positions on the instrument enriched with pending stop/target prices."""

    @abstractmethod
    def set_leverage(self, leverage: float, pos_side: str) -> None:
        """Set isolated leverage for one side."""

    @abstractmethod
    def ensure_long_short_mode(self) -> None:
        """Switch the account to hedge (long/short) position mode if needed."""

    @abstractmethod
    def place_market_order(
        self,
        side: str,
        pos_side: str,
        size: str,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> str:
        """Place a market order, returning its order id."""

    @abstractmethod
    def close_position(self, pos_side: str) -> None:
        """Market-close one side of the position."""

    @abstractmethod
    def update_tpsl(
        self,
        pos_side: str,
        size: str,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> str:
        """Replace pending stop/target orders; returns a status message."""

    @abstractmethod
    def add_margin(self, pos_side: str, amount: float) -> None:
        """Add isolated margin to one side."""

    @abstractmethod
    def test_connection(self) -> bool:
        """Check that the exchange answers."""
