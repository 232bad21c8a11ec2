"""Trend detection — per-timeframe Supertrend+ADX verdicts and their combination.

Provides:
- ``normalize_timeframe()``: ``"15m"`` → ``"15"``.
- ``decide_direction()``: one timeframe's direction from Supertrend trend + ADX.
- ``TimeframeAnalyzer``: fetches a series and produces a ``TimeframeVerdict``.
- ``combine_directions()``: primary + optional confirmation → final direction.
"""

import logging
import re
from typing import Optional

from indexsignal.config import SupertrendParams
from indexsignal.strategy.indicator_source import IndicatorSource
from indexsignal.strategy.models import (
    ACTIONABLE_DIRECTIONS,
    AVOID,
    TimeframeVerdict,
)

logger = logging.getLogger("indexsignal.trend")


def normalize_timeframe(timeframe: str) -> str:
    """Strip everything but digits.  Raises ``ValueError`` if nothing is left."""
    digits = re.sub(r"\D", "", str(timeframe or ""))
    if not digits:
        raise ValueError(f"Invalid timeframe: {timeframe!r}")
    return digits


def decide_direction(
    supertrend_trend: str,
    adx_value: Optional[float],
    min_strength: float,
) -> str:
    """Direction for one timeframe.

    Rules:
        - ADX filter on (``min_strength > 0``) and ADX below it → ``avoid``.
          A missing ADX counts as below.
        - Supertrend bullish/bearish → that direction.
        - Anything else → ``avoid``.
    """
    if min_strength > 0 and (adx_value is None or adx_value < min_strength):
        return AVOID
    if supertrend_trend in ACTIONABLE_DIRECTIONS:
        return supertrend_trend
    return AVOID


def combine_directions(primary: str, confirmation: Optional[str]) -> str:
    """Merge a primary verdict with an optional confirmation verdict.

    No confirmation → primary.  Either side ``avoid`` → ``avoid``.
    Agreement → the shared direction.  Disagreement → ``avoid``.
    """
    if confirmation is None:
        return primary
    if primary == AVOID or confirmation == AVOID:
        return AVOID
    if primary == confirmation:
        return primary
    return AVOID


class TimeframeAnalyzer:
    """Analyses one index on one timeframe.

    Args:
        source: ``IndicatorSource`` used to fetch candles and compute indicators.
        supertrend: Supertrend period/multiplier.
        adx_period: ADX lookback.
    """

    def __init__(
        self,
        source: IndicatorSource,
        supertrend: SupertrendParams = SupertrendParams(),
        adx_period: int = 14,
    ) -> None:
        self._source = source
        self._supertrend = supertrend
        self._adx_period = adx_period

    async def analyze_timeframe(
        self,
        index_key: str,
        timeframe: str,
        min_strength: float,
    ) -> TimeframeVerdict:
        """Fetch *timeframe* candles for *index_key* and decide a direction.

        Returns ``status="no_data"`` when the feed has nothing, and
        ``status="error"`` for an unparseable timeframe or a failing fetch.
        """
        try:
            interval = normalize_timeframe(timeframe)
        except ValueError as exc:
            return TimeframeVerdict(status="error", timeframe=str(timeframe), reason=str(exc))

        try:
            series = await self._source.fetch_candles(index_key, interval)
        except Exception as exc:
            logger.warning("%s@%s fetch failed: %s", index_key, interval, exc)
            return TimeframeVerdict(status="error", timeframe=interval, reason=str(exc))

        if not series:
            logger.warning("%s@%s — no candle data", index_key, interval)
            return TimeframeVerdict(
                status="no_data",
                timeframe=interval,
                reason=f"No candle data for {index_key}@{interval}",
            )

        st = self._source.compute_supertrend(
            series, self._supertrend.period, self._supertrend.multiplier
        )
        adx = self._source.compute_adx(series, self._adx_period)
        direction = decide_direction(st.trend, adx, min_strength)

        logger.info(
            "%s@%s — supertrend=%s adx=%s → %s",
            index_key, interval, st.trend,
            f"{adx:.1f}" if adx is not None else "n/a", direction,
        )
        return TimeframeVerdict(
            status="ok",
            timeframe=interval,
            direction=direction,
            supertrend=st,
            adx=adx,
            series=series,
        )
