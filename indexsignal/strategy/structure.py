"""Market-structure helpers — swing points, BOS, CHOCH, VWAP chop, ATR compression.

Pure functions over oldest-first candle lists.  Directions are returned
as ``"bullish"``, ``"bearish"`` or ``"neutral"``.
"""

from typing import Optional, Sequence

from indexsignal.strategy.indicators import calculate_vwap, rolling_atr
from indexsignal.strategy.models import BEARISH, BULLISH, NEUTRAL, Candle


def is_swing_high(candles: Sequence[Candle], index: int, lookback: int = 2) -> bool:
    """True when ``candles[index].high`` is strictly above *lookback* bars on each side."""
    if index < lookback or index + lookback >= len(candles):
        return False
    current = candles[index].high
    left = max(c.high for c in candles[index - lookback:index])
    right = max(c.high for c in candles[index + 1:index + lookback + 1])
    return current > left and current > right


def is_swing_low(candles: Sequence[Candle], index: int, lookback: int = 2) -> bool:
    """True when ``candles[index].low`` is strictly below *lookback* bars on each side."""
    if index < lookback or index + lookback >= len(candles):
        return False
    current = candles[index].low
    left = min(c.low for c in candles[index - lookback:index])
    right = min(c.low for c in candles[index + 1:index + lookback + 1])
    return current < left and current < right


def last_swing_high(candles: Sequence[Candle], lookback: int = 1) -> Optional[float]:
    """High of the most recent confirmed swing high, or ``None``."""
    for i in range(len(candles) - 1 - lookback, lookback - 1, -1):
        if is_swing_high(candles, i, lookback):
            return candles[i].high
    return None


def last_swing_low(candles: Sequence[Candle], lookback: int = 1) -> Optional[float]:
    """Low of the most recent confirmed swing low, or ``None``."""
    for i in range(len(candles) - 1 - lookback, lookback - 1, -1):
        if is_swing_low(candles, i, lookback):
            return candles[i].low
    return None


# ── Structure breaks ─────────────────────────────────────────────────────


def bos_direction(candles: Sequence[Candle], lookback: int = 10) -> str:
    """Break of structure over the last *lookback* bars.

    Bullish when the last close clears the highest high of the preceding
    bars in the window, bearish when it undercuts their lowest low.
    """
    window = list(candles[-lookback:])
    if len(window) < 3:
        return NEUTRAL
    current = window[-1]
    previous = window[:-1]
    if current.close > max(c.high for c in previous):
        return BULLISH
    if current.close < min(c.low for c in previous):
        return BEARISH
    return NEUTRAL


def choch_direction(candles: Sequence[Candle], lookback: int = 15) -> str:
    """Change of character over the last *lookback* bars.

    The leg before the last bar sets the prior trend.  A close above the
    most recent swing high after a falling leg is a bullish CHOCH; a close
    below the most recent swing low after a rising leg is bearish.
    """
    window = list(candles[-lookback:])
    if len(window) < 5:
        return NEUTRAL
    current = window[-1]
    previous = window[:-1]

    prior_move = previous[-1].close - previous[0].close
    if prior_move < 0:
        swing = last_swing_high(previous, lookback=1)
        if swing is not None and current.close > swing:
            return BULLISH
    elif prior_move > 0:
        swing = last_swing_low(previous, lookback=1)
        if swing is not None and current.close < swing:
            return BEARISH
    return NEUTRAL


# ── Chop / compression ───────────────────────────────────────────────────


def vwap_chop(
    candles: Sequence[Candle],
    threshold_pct: float = 0.08,
    min_candles: int = 2,
) -> bool:
    """True when the last *min_candles* closes all hug VWAP within *threshold_pct* %."""
    if len(candles) < min_candles or not candles:
        return False
    vwap = calculate_vwap(candles)
    if vwap <= 0:
        return False
    for candle in candles[-min_candles:]:
        if candle.close <= 0:
            return False
        if abs(candle.close - vwap) / vwap * 100.0 > threshold_pct:
            return False
    return True


def atr_downtrend(
    candles: Sequence[Candle],
    period: int = 14,
    min_declines: int = 4,
) -> bool:
    """True when rolling ATR fell on each of the last *min_declines* bars."""
    if len(candles) < period + 1:
        return False
    atrs = rolling_atr(candles, period)
    if len(atrs) < min_declines + 1:
        return False
    recent = atrs[-(min_declines + 1):]
    return all(b < a for a, b in zip(recent, recent[1:]))
