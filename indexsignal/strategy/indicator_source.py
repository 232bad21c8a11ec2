"""IndicatorSource — pairs a candle feed with the indicator math.

Fetching is async (it may hit the network); every compute method is a
synchronous pure call that returns ``None`` (or a neutral Supertrend)
instead of raising when the series is too short.
"""

import logging
from typing import Optional, Protocol, Sequence, runtime_checkable

from indexsignal.feeds.base import CandleFeed
from indexsignal.strategy import indicators, structure
from indexsignal.strategy.models import (
    NEUTRAL,
    Candle,
    CandleSeries,
    MacdResult,
    SupertrendResult,
)

logger = logging.getLogger("indexsignal.indicators")


@runtime_checkable
class IndicatorSource(Protocol):
    """What the decision pipeline needs from its data collaborator."""

    async def fetch_candles(
        self, index_key: str, timeframe: str
    ) -> Optional[CandleSeries]: ...

    def compute_supertrend(
        self, series: CandleSeries, period: int, multiplier: float
    ) -> SupertrendResult: ...

    def compute_adx(self, series: CandleSeries, period: int = 14) -> Optional[float]: ...

    def compute_rsi(self, series: CandleSeries, period: int = 14) -> Optional[float]: ...

    def compute_macd(
        self, series: CandleSeries, fast: int = 12, slow: int = 26, signal: int = 9
    ) -> Optional[MacdResult]: ...

    def bos_direction(self, candles: Sequence[Candle], lookback: int = 10) -> str: ...

    def choch(self, candles: Sequence[Candle], lookback: int = 15) -> str: ...


class FeedIndicatorSource:
    """Default ``IndicatorSource``: candles from a ``CandleFeed``, math from this package."""

    def __init__(self, feed: CandleFeed) -> None:
        self._feed = feed

    async def fetch_candles(
        self, index_key: str, timeframe: str
    ) -> Optional[CandleSeries]:
        return await self._feed.fetch_candles(index_key, timeframe)

    def compute_supertrend(
        self, series: CandleSeries, period: int = 10, multiplier: float = 2.0
    ) -> SupertrendResult:
        try:
            return indicators.calculate_supertrend(series.candles, period, multiplier)
        except ValueError as exc:
            logger.debug("Supertrend unavailable for %s: %s", series.index_key, exc)
            return SupertrendResult(trend=NEUTRAL, last_value=0.0)

    def compute_adx(self, series: CandleSeries, period: int = 14) -> Optional[float]:
        try:
            return indicators.latest_adx(series.candles, period)
        except ValueError as exc:
            logger.debug("ADX unavailable for %s: %s", series.index_key, exc)
            return None

    def compute_rsi(self, series: CandleSeries, period: int = 14) -> Optional[float]:
        try:
            return indicators.calculate_rsi(series.candles, period)[-1]
        except ValueError as exc:
            logger.debug("RSI unavailable for %s: %s", series.index_key, exc)
            return None

    def compute_macd(
        self, series: CandleSeries, fast: int = 12, slow: int = 26, signal: int = 9
    ) -> Optional[MacdResult]:
        try:
            return indicators.calculate_macd(series.candles, fast, slow, signal)
        except ValueError as exc:
            logger.debug("MACD unavailable for %s: %s", series.index_key, exc)
            return None

    def bos_direction(self, candles: Sequence[Candle], lookback: int = 10) -> str:
        return structure.bos_direction(candles, lookback)

    def choch(self, candles: Sequence[Candle], lookback: int = 15) -> str:
        return structure.choch_direction(candles, lookback)
