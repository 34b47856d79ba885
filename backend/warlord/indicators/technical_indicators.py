"""Technical indicator calculations over oldest-first price sequences."""

import logging
import math
from typing import List, Sequence, Tuple

from warlord.models import Candle, IndicatorSnapshot

logger = logging.getLogger(__name__)

MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9


def sma(series: Sequence[float], period: int) -> float:
    """
    Arithmetic mean of the last ``period`` values.

    Returns 0.0 when fewer than ``period`` values are available; callers
    must treat that as "insufficient data", not as a real zero.
    """
    if period <= 0 or len(series) < period:
        return 0.0
    window = series[len(series) - period:]
    return sum(window) / period


def std_dev(series: Sequence[float], period: int) -> float:
    """Population standard deviation of the last ``period`` values (0.0 if insufficient)."""
    if period <= 0 or len(series) < period:
        return 0.0
    mean = sma(series, period)
    window = series[len(series) - period:]
    variance = sum((x - mean) ** 2 for x in window) / period
    return math.sqrt(variance)


def rsi(prices: Sequence[float], period: int = 14) -> float:
    """
    Wilder-smoothed RSI.

    The first ``period`` changes seed simple averages, every later change is
    folded in with ``avg = (avg * (period - 1) + value) / period``.

    Returns:
        50.0 with insufficient data, 100.0 when the average loss is zero
    """
    if period <= 0 or len(prices) < period + 1:
        return 50.0

    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        change = prices[i] - prices[i - 1]
        if change > 0:
            gains += change
        else:
            losses -= change
    avg_gain = gains / period
    avg_loss = losses / period

    for i in range(period + 1, len(prices)):
        change = prices[i] - prices[i - 1]
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def ema_series(prices: Sequence[float], period: int) -> List[float]:
    """EMA value after each element, seeded by the first element."""
    if not prices:
        return []
    k = 2.0 / (period + 1)
    values = [float(prices[0])]
    for price in prices[1:]:
        values.append(price * k + values[-1] * (1 - k))
    return values


def ema(prices: Sequence[float], period: int) -> float:
    """
    Exponential moving average with ``k = 2 / (period + 1)``.

    With fewer than ``period`` values the last price is returned unchanged
    (0.0 for an empty sequence).
    """
    if not prices:
        return 0.0
    if len(prices) < period:
        return float(prices[-1])
    return ema_series(prices, period)[-1]


def macd(prices: Sequence[float]) -> Tuple[float, float, float]:
    """
    MACD(12, 26, 9).

    The signal line is a real 9-period EMA folded over the MACD line history
    (from the first bar where the slow EMA has a full window).

    Returns:
        Tuple of (macd_line, signal_line, histogram); zeros with insufficient data
    """
    if len(prices) < MACD_SLOW:
        return 0.0, 0.0, 0.0

    fast = ema_series(prices, MACD_FAST)
    slow = ema_series(prices, MACD_SLOW)
    macd_line = [f - s for f, s in zip(fast[MACD_SLOW - 1:], slow[MACD_SLOW - 1:])]

    signal = ema(macd_line, MACD_SIGNAL)
    current = macd_line[-1]
    return current, signal, current - signal


def bollinger(prices: Sequence[float], period: int = 20, multiplier: float = 2.0) -> Tuple[float, float, float]:
    """
    Bollinger bands.

    Returns:
        Tuple of (upper, mid, lower); all 0.0 with insufficient data
    """
    mid = sma(prices, period)
    if period <= 0 or len(prices) < period:
        return 0.0, 0.0, 0.0
    deviation = std_dev(prices, period)
    return mid + multiplier * deviation, mid, mid - multiplier * deviation


def kdj(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], period: int = 9) -> Tuple[float, float, float]:
    """
    KDJ oscillator.

    K and D start at 50 and are smoothed bar by bar (2/3 old + 1/3 new) from
    the first full window, so the whole history is walked; J = 3K - 2D.

    Returns:
        Tuple of (k, d, j); (50, 50, 50) with insufficient data
    """
    k = d = j = 50.0
    length = min(len(highs), len(lows), len(closes))

    for i in range(period - 1, length):
        window_low = min(lows[i - period + 1:i + 1])
        window_high = max(highs[i - period + 1:i + 1])
        if window_high == window_low:
            rsv = 50.0
        else:
            rsv = (closes[i] - window_low) / (window_high - window_low) * 100.0

        k = (2.0 / 3.0) * k + (1.0 / 3.0) * rsv
        d = (2.0 / 3.0) * d + (1.0 / 3.0) * k
        j = 3.0 * k - 2.0 * d

    return k, d, j


def compute_indicators(candles: Sequence[Candle]) -> IndicatorSnapshot:
    """
    Compute the full indicator set used by the decision pipeline.

    Args:
        candles: Candles ordered oldest-first

    Returns:
        IndicatorSnapshot (neutral values when the feed is short or empty)
    """
    closes = [c.close for c in candles]
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]
    volumes = [c.volume for c in candles]

    if len(closes) < MACD_SLOW:
        logger.warning(f"Only {len(closes)} candles available, indicators fall back to neutral values")

    macd_line, macd_signal, macd_hist = macd(closes)
    upper, mid, lower = bollinger(closes, 20, 2.0)
    k, d, j = kdj(highs, lows, closes, 9)
    volume_sma5 = sma(volumes, 5)
    volume_ratio = volumes[-1] / volume_sma5 if volume_sma5 > 0 else 1.0

    return IndicatorSnapshot(
        ema20=ema(closes, 20),
        macd=macd_line,
        macd_signal=macd_signal,
        macd_hist=macd_hist,
        boll_upper=upper,
        boll_mid=mid,
        boll_lower=lower,
        rsi14=rsi(closes, 14),
        kdj_k=k,
        kdj_d=d,
        kdj_j=j,
        volume_sma5=volume_sma5,
        volume_ratio=volume_ratio,
    )


def describe_macd(indicators: IndicatorSnapshot) -> str:
    """Trend label from the MACD histogram."""
    if indicators.macd_hist > 0:
        return "bullish (MACD > signal)"
    return "bearish (MACD < signal)"


def describe_bollinger(indicators: IndicatorSnapshot, price: float) -> str:
    """Where price sits relative to the Bollinger bands."""
    if indicators.boll_mid == 0:
        return "insufficient data"
    if price > indicators.boll_upper:
        return "above upper band (overbought/strong)"
    if price < indicators.boll_lower:
        return "below lower band (oversold/weak)"
    if price > indicators.boll_mid:
        return "above mid band (leaning long)"
    return "below mid band (leaning short)"


def describe_kdj(indicators: IndicatorSnapshot) -> str:
    """Oscillator signal label from K and D."""
    k, d = indicators.kdj_k, indicators.kdj_d
    if k > 80 and d > 80:
        return "overbought (death-cross risk)"
    if k < 20 and d < 20:
        return "oversold (golden-cross setup)"
    if k > d:
        return "golden cross, pointing up"
    return "death cross, pointing down"
