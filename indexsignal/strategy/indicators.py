"""Technical indicators — ATR, EMA, RSI, ADX, MACD, Supertrend, VWAP. Pure functions, no I/O.

Every function takes candles oldest-first and raises ``ValueError`` when
there is not enough history to produce a value.
"""

import math
from typing import Sequence

import numpy as np

from indexsignal.strategy.models import Candle, MacdResult, SupertrendResult


def _require(candles: Sequence[Candle], needed: int, label: str) -> None:
    if len(candles) < needed:
        raise ValueError(
            f"Need at least {needed} candles for {label}, got {len(candles)}"
        )


def true_ranges(candles: Sequence[Candle]) -> np.ndarray:
    """True range per bar.

    ``TR = max(high - low, |high - prev_close|, |low - prev_close|)``.
    The first bar has no previous close, so its TR is ``high - low``.
    """
    if not candles:
        return np.array([], dtype=float)
    highs = np.array([c.high for c in candles], dtype=float)
    lows = np.array([c.low for c in candles], dtype=float)
    closes = np.array([c.close for c in candles], dtype=float)

    tr = highs - lows
    if len(candles) > 1:
        prev_close = closes[:-1]
        tr[1:] = np.maximum.reduce([
            highs[1:] - lows[1:],
            np.abs(highs[1:] - prev_close),
            np.abs(lows[1:] - prev_close),
        ])
    return tr


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> float:
    """Simple average of the last *period* true ranges.

    Requires ``period + 1`` candles so every averaged TR has a previous close.
    """
    _require(candles, period + 1, f"ATR({period})")
    tr = true_ranges(candles)
    return float(tr[-period:].mean())


def window_atr(window: Sequence[Candle], prev_close: float | None = None) -> float:
    """Mean true range across *window*.

    When *prev_close* is given it seeds the first bar's TR, so adjacent
    windows cut from one series measure the same thing.
    """
    if not window:
        raise ValueError("Need at least 1 candle for window ATR, got 0")
    tr = true_ranges(window)
    if prev_close is not None:
        first = window[0]
        tr[0] = max(
            first.high - first.low,
            abs(first.high - prev_close),
            abs(first.low - prev_close),
        )
    return float(tr.mean())


def rolling_atr(candles: Sequence[Candle], period: int = 14) -> list[float]:
    """Rolling simple ATR; one value per bar from index ``period`` onward."""
    _require(candles, period + 1, f"rolling ATR({period})")
    tr = true_ranges(candles)[1:]
    kernel = np.ones(period) / period
    return [float(v) for v in np.convolve(tr, kernel, mode="valid")]


def _wilder_atr(candles: Sequence[Candle], period: int) -> np.ndarray:
    """Wilder-smoothed ATR series (NaN until the seed bar)."""
    tr = true_ranges(candles)
    atr = np.full(len(candles), np.nan)
    atr[period - 1] = tr[:period].mean()
    for i in range(period, len(candles)):
        atr[i] = (atr[i - 1] * (period - 1) + tr[i]) / period
    return atr


# ── EMA ──────────────────────────────────────────────────────────────────


def _ema_values(values: np.ndarray, period: int) -> np.ndarray:
    """EMA seeded with the SMA of the first *period* values."""
    k = 2.0 / (period + 1)
    ema = np.full(len(values), np.nan)
    ema[period - 1] = values[:period].mean()
    for i in range(period, len(values)):
        ema[i] = values[i] * k + ema[i - 1] * (1 - k)
    return ema


def calculate_ema(candles: Sequence[Candle], period: int) -> list[float]:
    """Exponential moving average of closes, same length as *candles*.

    Entries before the seed bar are ``nan``.
    """
    _require(candles, period, f"EMA({period})")
    closes = np.array([c.close for c in candles], dtype=float)
    return _ema_values(closes, period).tolist()


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(candles: Sequence[Candle], period: int = 14) -> list[float]:
    """Wilder's RSI, same length as *candles* (``nan`` before the seed)."""
    _require(candles, period + 1, f"RSI({period})")

    closes = np.array([c.close for c in candles], dtype=float)
    deltas = np.diff(closes)
    gains = np.clip(deltas, 0.0, None)
    losses = np.clip(-deltas, 0.0, None)

    def _rsi(avg_gain: float, avg_loss: float) -> float:
        if avg_loss == 0:
            return 100.0
        return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)

    rsi = [float("nan")] * len(candles)
    avg_gain = float(gains[:period].mean())
    avg_loss = float(losses[:period].mean())
    rsi[period] = _rsi(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        rsi[i + 1] = _rsi(avg_gain, avg_loss)

    return rsi


# ── ADX ──────────────────────────────────────────────────────────────────


def calculate_adx(candles: Sequence[Candle], period: int = 14) -> list[float]:
    """Average Directional Index, same length as *candles*.

    +DM/−DM and TR are Wilder-smoothed over *period*, DX is derived from
    the directional indicators, and ADX is the Wilder-smoothed DX.
    Requires ``2 × period + 1`` candles.
    """
    _require(candles, 2 * period + 1, f"ADX({period})")

    n = len(candles)
    highs = np.array([c.high for c in candles], dtype=float)
    lows = np.array([c.low for c in candles], dtype=float)

    up_move = np.diff(highs)
    down_move = -np.diff(lows)
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)
    tr = true_ranges(candles)[1:]

    def _dx(s_pdm: float, s_mdm: float, s_tr: float) -> float:
        if s_tr == 0:
            return 0.0
        plus_di = 100.0 * s_pdm / s_tr
        minus_di = 100.0 * s_mdm / s_tr
        di_sum = plus_di + minus_di
        if di_sum == 0:
            return 0.0
        return 100.0 * abs(plus_di - minus_di) / di_sum

    s_pdm = plus_dm[:period].sum()
    s_mdm = minus_dm[:period].sum()
    s_tr = tr[:period].sum()
    dx = [_dx(s_pdm, s_mdm, s_tr)]
    for i in range(period, n - 1):
        s_pdm = s_pdm - s_pdm / period + plus_dm[i]
        s_mdm = s_mdm - s_mdm / period + minus_dm[i]
        s_tr = s_tr - s_tr / period + tr[i]
        dx.append(_dx(s_pdm, s_mdm, s_tr))

    # dx[0] belongs to candle index *period*
    adx = [float("nan")] * n
    prev = sum(dx[:period]) / period
    adx[2 * period - 1] = prev
    for j in range(period, len(dx)):
        prev = (prev * (period - 1) + dx[j]) / period
        adx[period + j] = prev
    return adx


def latest_adx(candles: Sequence[Candle], period: int = 14) -> float:
    """Most recent ADX value."""
    value = calculate_adx(candles, period)[-1]
    if math.isnan(value):
        raise ValueError(f"ADX({period}) not ready")
    return value


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    candles: Sequence[Candle],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MacdResult:
    """Latest MACD line, signal line and histogram."""
    _require(candles, slow + signal - 1, f"MACD({fast},{slow},{signal})")
    closes = np.array([c.close for c in candles], dtype=float)
    macd_line = _ema_values(closes, fast) - _ema_values(closes, slow)
    ready = macd_line[slow - 1:]
    signal_line = _ema_values(ready, signal)
    macd_value = float(ready[-1])
    signal_value = float(signal_line[-1])
    return MacdResult(
        macd=macd_value,
        signal=signal_value,
        histogram=macd_value - signal_value,
    )


# ── Supertrend ───────────────────────────────────────────────────────────


def calculate_supertrend(
    candles: Sequence[Candle],
    period: int = 10,
    multiplier: float = 2.0,
) -> SupertrendResult:
    """ATR-band trend follower.

    Bands are ``hl2 ± multiplier × ATR`` (Wilder ATR).  The final upper
    band only ratchets down and the final lower band only ratchets up
    while price stays inside them; a close beyond the opposite band flips
    the trend.  ``last_value`` is the trailing band on the last bar.
    """
    _require(candles, period + 1, f"Supertrend({period})")

    n = len(candles)
    highs = np.array([c.high for c in candles], dtype=float)
    lows = np.array([c.low for c in candles], dtype=float)
    closes = np.array([c.close for c in candles], dtype=float)
    atr = _wilder_atr(candles, period)
    hl2 = (highs + lows) / 2.0

    upper = hl2 + multiplier * atr
    lower = hl2 - multiplier * atr
    start = period - 1
    final_upper = upper.copy()
    final_lower = lower.copy()
    bullish = closes[start] >= hl2[start]

    for i in range(start + 1, n):
        if upper[i] < final_upper[i - 1] or closes[i - 1] > final_upper[i - 1]:
            final_upper[i] = upper[i]
        else:
            final_upper[i] = final_upper[i - 1]
        if lower[i] > final_lower[i - 1] or closes[i - 1] < final_lower[i - 1]:
            final_lower[i] = lower[i]
        else:
            final_lower[i] = final_lower[i - 1]

        if bullish and closes[i] < final_lower[i]:
            bullish = False
        elif not bullish and closes[i] > final_upper[i]:
            bullish = True

    history = tuple(None if i < start else multiplier for i in range(n))
    return SupertrendResult(
        trend="bullish" if bullish else "bearish",
        last_value=float(final_lower[-1] if bullish else final_upper[-1]),
        adaptive_multiplier_history=history,
    )


# ── VWAP ─────────────────────────────────────────────────────────────────


def calculate_vwap(candles: Sequence[Candle]) -> float:
    """Mean typical price ``(H + L + C) / 3``.

    Index spot feeds carry no volume, so the typical price stands in for
    a volume-weighted average.
    """
    _require(candles, 1, "VWAP")
    return float(np.mean([c.typical_price for c in candles]))
