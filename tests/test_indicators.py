"""Deterministic tests for indicator math and market-structure helpers.

All tests use fixed candle data fixtures. Same input = same output, always.
"""

import math
from datetime import datetime, timedelta, timezone

import pytest

from indexsignal.strategy.indicators import (
    calculate_adx,
    calculate_atr,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
    calculate_supertrend,
    calculate_vwap,
    latest_adx,
    rolling_atr,
    true_ranges,
    window_atr,
)
from indexsignal.strategy.models import Candle
from indexsignal.strategy.structure import (
    atr_downtrend,
    bos_direction,
    choch_direction,
    is_swing_high,
    is_swing_low,
    last_swing_high,
    last_swing_low,
    vwap_chop,
)


# ── Candle fixtures ──────────────────────────────────────────────────────

_BASE = datetime(2025, 1, 6, 4, 0, tzinfo=timezone.utc)  # 09:30 IST


def _make_candle(i: int, o: float, h: float, l: float, c: float) -> Candle:
    return Candle(timestamp=_BASE + timedelta(minutes=5 * i), open=o, high=h, low=l, close=c)


def _flat(n: int, price: float = 100.0, spread: float = 1.0) -> list[Candle]:
    return [_make_candle(i, price, price + spread, price - spread, price) for i in range(n)]


def _rising(n: int, start: float = 100.0, step: float = 1.0) -> list[Candle]:
    candles = []
    for i in range(n):
        c = start + i * step
        candles.append(_make_candle(i, c - step / 2, c + 0.5, c - 0.5, c))
    return candles


def _falling(n: int, start: float = 200.0, step: float = 1.0) -> list[Candle]:
    candles = []
    for i in range(n):
        c = start - i * step
        candles.append(_make_candle(i, c + step / 2, c + 0.5, c - 0.5, c))
    return candles


def _from_closes(closes: list[float]) -> list[Candle]:
    return [_make_candle(i, c, c + 1, c - 1, c) for i, c in enumerate(closes)]


# ── ATR ──────────────────────────────────────────────────────────────────


class TestATR:
    def test_constant_range(self):
        """Flat bars with ±1 range → ATR of exactly 2."""
        assert calculate_atr(_flat(15), period=14) == pytest.approx(2.0)

    def test_insufficient_data_raises(self):
        with pytest.raises(ValueError, match="Need at least 15 candles"):
            calculate_atr(_flat(14), period=14)

    def test_first_true_range_is_high_minus_low(self):
        candles = [_make_candle(0, 100, 110, 95, 105), _make_candle(1, 105, 106, 80, 90)]
        tr = true_ranges(candles)
        assert tr[0] == pytest.approx(15.0)
        assert tr[1] == pytest.approx(26.0)  # 106 - 80

    def test_window_atr_seeded_with_prev_close(self):
        window = [_make_candle(0, 100, 105, 95, 100)]
        assert window_atr(window) == pytest.approx(10.0)
        assert window_atr(window, prev_close=120.0) == pytest.approx(25.0)

    def test_window_atr_empty_raises(self):
        with pytest.raises(ValueError):
            window_atr([])

    def test_rolling_atr_length(self):
        assert len(rolling_atr(_flat(20), period=14)) == 6


# ── EMA / RSI / MACD ─────────────────────────────────────────────────────


class TestMovingAverages:
    def test_ema_of_constant_is_constant(self):
        ema = calculate_ema(_flat(20, price=250.0), period=10)
        assert len(ema) == 20
        assert math.isnan(ema[8])
        assert ema[-1] == pytest.approx(250.0)

    def test_rsi_rising_is_100(self):
        rsi = calculate_rsi(_rising(20), period=14)
        assert len(rsi) == 20
        assert rsi[-1] == pytest.approx(100.0)

    def test_rsi_falling_is_0(self):
        assert calculate_rsi(_falling(20), period=14)[-1] == pytest.approx(0.0)

    def test_rsi_insufficient_data(self):
        with pytest.raises(ValueError, match="RSI"):
            calculate_rsi(_rising(14), period=14)

    def test_macd_positive_in_uptrend(self):
        result = calculate_macd(_rising(40))
        assert result.macd > 0
        assert result.histogram == pytest.approx(result.macd - result.signal)

    def test_macd_insufficient_data(self):
        with pytest.raises(ValueError, match="MACD"):
            calculate_macd(_rising(33))


# ── ADX ──────────────────────────────────────────────────────────────────


class TestADX:
    def test_steady_uptrend_has_high_adx(self):
        """Every bar moves up by 1 → +DM only → DX 100 → ADX 100."""
        assert latest_adx(_rising(40)) == pytest.approx(100.0)

    def test_flat_market_has_zero_adx(self):
        assert latest_adx(_flat(40)) == pytest.approx(0.0)

    def test_adx_needs_two_periods_plus_one(self):
        with pytest.raises(ValueError, match="Need at least 29 candles"):
            calculate_adx(_rising(28), period=14)
        values = calculate_adx(_rising(29), period=14)
        assert len(values) == 29
        assert not math.isnan(values[-1])


# ── Supertrend ───────────────────────────────────────────────────────────


class TestSupertrend:
    def test_uptrend_is_bullish(self):
        candles = _rising(40)
        result = calculate_supertrend(candles, period=10, multiplier=2.0)
        assert result.trend == "bullish"
        assert result.last_value < candles[-1].close

    def test_downtrend_is_bearish(self):
        candles = _falling(40)
        result = calculate_supertrend(candles, period=10, multiplier=2.0)
        assert result.trend == "bearish"
        assert result.last_value > candles[-1].close

    def test_multiplier_history_aligned_with_candles(self):
        result = calculate_supertrend(_rising(20), period=10, multiplier=3.0)
        history = result.adaptive_multiplier_history
        assert len(history) == 20
        assert history[8] is None
        assert history[9] == 3.0

    def test_insufficient_data(self):
        with pytest.raises(ValueError, match="Supertrend"):
            calculate_supertrend(_rising(10), period=10)


class TestVWAP:
    def test_vwap_is_mean_typical_price(self):
        candles = [_make_candle(0, 10, 12, 9, 12), _make_candle(1, 12, 15, 12, 15)]
        assert calculate_vwap(candles) == pytest.approx((11.0 + 14.0) / 2)

    def test_vwap_empty_raises(self):
        with pytest.raises(ValueError):
            calculate_vwap([])


# ── Market structure ─────────────────────────────────────────────────────


class TestSwingPoints:
    def test_swing_high_detected(self):
        candles = _from_closes([100, 101, 105, 102, 101])
        assert is_swing_high(candles, 2, lookback=2)
        assert not is_swing_high(candles, 1, lookback=1)

    def test_swing_requires_strict_comparison(self):
        candles = _from_closes([100, 105, 105, 100])
        assert not is_swing_high(candles, 1, lookback=1)
        assert not is_swing_high(candles, 2, lookback=1)

    def test_edges_are_never_swings(self):
        candles = _from_closes([110, 100, 90])
        assert not is_swing_high(candles, 0, lookback=1)
        assert not is_swing_low(candles, 2, lookback=1)

    def test_last_swing_points(self):
        candles = _from_closes([100, 104, 101, 97, 99, 103, 102])
        assert last_swing_high(candles) == pytest.approx(103 + 1)
        assert last_swing_low(candles) == pytest.approx(97 - 1)

    def test_no_swing_returns_none(self):
        assert last_swing_high(_rising(8)) is None


class TestStructureBreaks:
    def test_bos_bullish(self):
        candles = _flat(9) + [_make_candle(9, 100, 103, 99, 102)]
        assert bos_direction(candles, lookback=10) == "bullish"

    def test_bos_bearish(self):
        candles = _flat(9) + [_make_candle(9, 100, 101, 97, 98)]
        assert bos_direction(candles, lookback=10) == "bearish"

    def test_bos_neutral_inside_range(self):
        assert bos_direction(_flat(10), lookback=10) == "neutral"

    def test_bos_too_few_bars(self):
        assert bos_direction(_flat(2)) == "neutral"

    def test_choch_bullish_after_falling_leg(self):
        candles = _from_closes([110, 108, 106, 107, 104, 102, 100, 109])
        assert choch_direction(candles, lookback=15) == "bullish"

    def test_choch_bearish_after_rising_leg(self):
        candles = _from_closes([100, 102, 104, 103, 106, 108, 110, 101])
        assert choch_direction(candles, lookback=15) == "bearish"

    def test_choch_neutral_without_break(self):
        candles = _from_closes([110, 108, 106, 107, 104, 102, 100, 101])
        assert choch_direction(candles) == "neutral"

    def test_choch_too_few_bars(self):
        assert choch_direction(_from_closes([100, 99, 98, 101])) == "neutral"


class TestChopAndCompression:
    def test_flat_closes_hug_vwap(self):
        assert vwap_chop(_flat(10)) is True

    def test_breakout_is_not_chop(self):
        candles = _flat(8) + [_make_candle(8, 100, 103, 99, 102), _make_candle(9, 102, 104, 101, 103)]
        assert vwap_chop(candles) is False

    def test_chop_needs_min_candles(self):
        assert vwap_chop(_flat(1), min_candles=2) is False

    def test_shrinking_ranges_are_compression(self):
        candles = [
            _make_candle(i, 100, 100 + (30 - i) * 0.5, 100 - (30 - i) * 0.5, 100)
            for i in range(30)
        ]
        assert atr_downtrend(candles, period=14, min_declines=4) is True

    def test_expanding_ranges_are_not_compression(self):
        candles = [
            _make_candle(i, 100, 100 + (i + 1) * 0.5, 100 - (i + 1) * 0.5, 100)
            for i in range(30)
        ]
        assert atr_downtrend(candles, period=14, min_declines=4) is False

    def test_compression_short_series(self):
        assert atr_downtrend(_flat(10), period=14) is False
