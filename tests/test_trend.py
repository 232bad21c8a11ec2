"""Tests for per-timeframe trend verdicts and the multi-timeframe combiner."""

from datetime import datetime, timedelta, timezone
from itertools import product

import pytest

from indexsignal.config import SupertrendParams
from indexsignal.feeds.base import FeedError
from indexsignal.strategy.models import Candle, CandleSeries, SupertrendResult
from indexsignal.strategy.trend import (
    TimeframeAnalyzer,
    combine_directions,
    decide_direction,
    normalize_timeframe,
)

_BASE = datetime(2025, 1, 6, 4, 0, tzinfo=timezone.utc)


def _make_series(interval: str, n: int = 30, index_key: str = "NIFTY") -> CandleSeries:
    candles = tuple(
        Candle(_BASE + timedelta(minutes=i), 100 + i, 101 + i, 99 + i, 100.5 + i)
        for i in range(n)
    )
    return CandleSeries(index_key, interval, candles)


class MockSource:
    """IndicatorSource stand-in with canned per-interval values."""

    def __init__(self, series=None, trends=None, adx=None, failing=()):
        self.series = series or {}
        self.trends = trends or {}
        self.adx = adx or {}
        self.failing = set(failing)
        self.fetch_calls: list[tuple[str, str]] = []

    async def fetch_candles(self, index_key, timeframe):
        self.fetch_calls.append((index_key, timeframe))
        if timeframe in self.failing:
            raise FeedError("feed unreachable")
        return self.series.get(timeframe)

    def compute_supertrend(self, series, period=10, multiplier=2.0):
        return SupertrendResult(trend=self.trends.get(series.interval, "neutral"), last_value=120.0)

    def compute_adx(self, series, period=14):
        return self.adx.get(series.interval)


# ── Pure helpers ─────────────────────────────────────────────────────────


class TestNormalizeTimeframe:
    @pytest.mark.parametrize("raw,expected", [("15m", "15"), ("5", "5"), ("1M", "1"), (" 60min ", "60")])
    def test_strips_non_digits(self, raw, expected):
        assert normalize_timeframe(raw) == expected

    @pytest.mark.parametrize("raw", ["", "m", None])
    def test_empty_is_error(self, raw):
        with pytest.raises(ValueError, match="Invalid timeframe"):
            normalize_timeframe(raw)


class TestDecideDirection:
    def test_weak_adx_avoids(self):
        assert decide_direction("bullish", 12.0, min_strength=18.0) == "avoid"

    def test_missing_adx_avoids_when_filter_on(self):
        assert decide_direction("bullish", None, min_strength=18.0) == "avoid"

    def test_filter_disabled_ignores_adx(self):
        assert decide_direction("bearish", None, min_strength=0) == "bearish"

    def test_strong_adx_follows_supertrend(self):
        assert decide_direction("bullish", 25.0, min_strength=18.0) == "bullish"
        assert decide_direction("bearish", 18.0, min_strength=18.0) == "bearish"

    def test_neutral_supertrend_avoids(self):
        assert decide_direction("neutral", 40.0, min_strength=18.0) == "avoid"


class TestCombineDirections:
    def test_no_confirmation_returns_primary(self):
        for primary in ("bullish", "bearish", "avoid"):
            assert combine_directions(primary, None) == primary

    def test_total_over_all_pairs(self):
        """Agreement keeps the direction; anything else is avoid."""
        values = ("bullish", "bearish", "avoid")
        for primary, confirmation in product(values, values):
            result = combine_directions(primary, confirmation)
            if primary == confirmation and primary != "avoid":
                assert result == primary
            else:
                assert result == "avoid"


# ── TimeframeAnalyzer ────────────────────────────────────────────────────


class TestTimeframeAnalyzer:
    @pytest.mark.asyncio
    async def test_ok_verdict(self):
        source = MockSource(
            series={"5": _make_series("5")},
            trends={"5": "bullish"},
            adx={"5": 27.5},
        )
        analyzer = TimeframeAnalyzer(source, SupertrendParams(10, 2.0))
        verdict = await analyzer.analyze_timeframe("NIFTY", "5m", min_strength=18.0)

        assert verdict.ok
        assert verdict.timeframe == "5"
        assert verdict.direction == "bullish"
        assert verdict.adx == 27.5
        assert verdict.supertrend.last_value == 120.0
        assert source.fetch_calls == [("NIFTY", "5")]

    @pytest.mark.asyncio
    async def test_no_data_is_not_an_error(self):
        analyzer = TimeframeAnalyzer(MockSource())
        verdict = await analyzer.analyze_timeframe("NIFTY", "5m", min_strength=18.0)
        assert verdict.status == "no_data"
        assert "No candle data" in verdict.reason

    @pytest.mark.asyncio
    async def test_empty_series_is_no_data(self):
        source = MockSource(series={"5": CandleSeries("NIFTY", "5", ())})
        verdict = await TimeframeAnalyzer(source).analyze_timeframe("NIFTY", "5", 0)
        assert verdict.status == "no_data"

    @pytest.mark.asyncio
    async def test_fetch_failure_is_error(self):
        source = MockSource(failing={"5"})
        verdict = await TimeframeAnalyzer(source).analyze_timeframe("NIFTY", "5m", 18.0)
        assert verdict.status == "error"
        assert "feed unreachable" in verdict.reason

    @pytest.mark.asyncio
    async def test_bad_timeframe_is_error_without_fetch(self):
        source = MockSource()
        verdict = await TimeframeAnalyzer(source).analyze_timeframe("NIFTY", "m", 18.0)
        assert verdict.status == "error"
        assert source.fetch_calls == []

    @pytest.mark.asyncio
    async def test_weak_adx_avoids(self):
        source = MockSource(
            series={"15": _make_series("15")},
            trends={"15": "bearish"},
            adx={"15": 10.0},
        )
        verdict = await TimeframeAnalyzer(source).analyze_timeframe("NIFTY", "15m", 18.0)
        assert verdict.ok
        assert verdict.direction == "avoid"
