"""Composite trend score (0–21) for an index.

The score is the sum of three components, each clamped to [0, 7] and
rounded to one decimal:

- **PA** — price action: momentum, structure, candle shape, consistency.
- **IND** — indicators: RSI, MACD, ADX and Supertrend on the primary series.
- **MTF** — multi-timeframe alignment between primary and confirmation series.

Volume is always zero for index spot data, so the ``vol`` slot stays 0.0.
"""

import logging
from typing import Optional

import numpy as np

from indexsignal.config import SupertrendParams
from indexsignal.strategy.indicator_source import IndicatorSource
from indexsignal.strategy.models import (
    BEARISH,
    BULLISH,
    CandleSeries,
    TrendScoreBreakdown,
    TrendScoreResult,
)
from indexsignal.strategy.structure import is_swing_high, is_swing_low
from indexsignal.strategy.trend import normalize_timeframe

logger = logging.getLogger("indexsignal.trend_scorer")

_COMPONENT_MAX = 7.0


def _clamp(score: float) -> float:
    return round(min(max(score, 0.0), _COMPONENT_MAX), 1)


def _momentum_pct(closes: np.ndarray) -> float:
    """Average of the last 3 closes vs the 3 before them, in percent."""
    recent = closes[-3:].mean()
    previous = closes[-6:-3].mean()
    if previous <= 0:
        return 0.0
    return float((recent - previous) / previous * 100.0)


def _trending_up(closes: np.ndarray) -> bool:
    return bool(closes[-3:].mean() > closes[-6:-3].mean())


def direction_from_score(
    score: float,
    bullish_threshold: float = 14.0,
    bearish_threshold: float = 7.0,
) -> Optional[str]:
    """``bullish`` at or above the bullish threshold, ``bearish`` at or below
    the bearish threshold, otherwise ``None`` (no edge either way)."""
    if score >= bullish_threshold:
        return BULLISH
    if score <= bearish_threshold:
        return BEARISH
    return None


class TrendScorer:
    """Scores one index from its primary and confirmation candle series.

    Args:
        source: ``IndicatorSource`` for candles and indicator values.
        primary_tf: Primary timeframe (e.g. ``"1m"``).
        confirmation_tf: Confirmation timeframe; ``None`` or equal to the
            primary disables the MTF comparison.
        supertrend: Supertrend parameters used by the IND and MTF scores.
    """

    def __init__(
        self,
        source: IndicatorSource,
        primary_tf: str = "1m",
        confirmation_tf: Optional[str] = "5m",
        supertrend: SupertrendParams = SupertrendParams(period=10, multiplier=2.0),
    ) -> None:
        self._source = source
        self._primary_tf = normalize_timeframe(primary_tf)
        self._confirmation_tf = (
            normalize_timeframe(confirmation_tf) if confirmation_tf else None
        )
        if self._confirmation_tf == self._primary_tf:
            self._confirmation_tf = None
        self._supertrend = supertrend

    # ── Components ───────────────────────────────────────────────────────

    def pa_score(self, series: Optional[CandleSeries]) -> float:
        """Price-action score (0–7)."""
        if not series or len(series) < 3:
            return 0.0

        candles = series.candles
        closes = series.closes
        score = 0.0

        # Momentum
        if len(closes) >= 6:
            momentum = _momentum_pct(closes)
            if momentum > 1.0:
                score += 2.0
            elif momentum > 0.3:
                score += 1.0

        # Structure
        last_index = len(candles) - 1
        if is_swing_high(candles, last_index, lookback=2):
            score += 1.0
        if last_index >= 5 and is_swing_low(candles, last_index - 3, lookback=2):
            score += 0.5

        # Candle shape
        last = candles[-1]
        if last.bullish and last.close > last.open * 1.01:
            score += 1.0
        elif last.bullish:
            score += 0.5
        if len(candles) >= 2 and last.high > candles[-2].high:
            score += 0.5

        # Consistency
        if len(closes) >= 5:
            increasing = int(np.sum(np.diff(closes[-5:]) > 0))
            if increasing >= 4:
                score += 1.0
            elif increasing >= 3:
                score += 0.5

        return _clamp(score)

    def ind_score(self, series: Optional[CandleSeries]) -> float:
        """Indicator score (0–7).  An indicator that cannot be computed adds 0."""
        if not series:
            return 0.0

        score = 0.0

        rsi = self._source.compute_rsi(series, 14)
        if rsi is not None:
            if 50 < rsi < 70:
                score += 2.0
            elif 40 < rsi < 80:
                score += 1.0
            elif rsi > 30:
                score += 0.5

        macd = self._source.compute_macd(series, 12, 26, 9)
        if macd is not None:
            if macd.macd > macd.signal and macd.histogram > 0:
                score += 2.0
            elif macd.macd > macd.signal:
                score += 1.0
            elif macd.histogram > 0:
                score += 0.5

        adx = self._source.compute_adx(series, 14)
        if adx is not None:
            if adx > 25:
                score += 2.0
            elif adx > 20:
                score += 1.0
            elif adx > 15:
                score += 0.5

        st = self._source.compute_supertrend(
            series, self._supertrend.period, self._supertrend.multiplier
        )
        if st.trend == BULLISH:
            score += 1.0

        return _clamp(score)

    def mtf_score(
        self,
        primary: Optional[CandleSeries],
        confirmation: Optional[CandleSeries],
    ) -> float:
        """Multi-timeframe alignment score (0–7).

        Without a confirmation series this is a data-sufficiency proxy:
        3.5 when the primary holds at least 20 candles, else 1.5.
        """
        if not primary:
            return 0.0
        if not confirmation:
            return 3.5 if len(primary) >= 20 else 1.5

        score = 0.0

        primary_rsi = self._source.compute_rsi(primary, 14)
        confirmation_rsi = self._source.compute_rsi(confirmation, 14)
        if primary_rsi is not None and confirmation_rsi is not None:
            if primary_rsi > 50 and confirmation_rsi > 50:
                score += 2.0
            elif primary_rsi > 50 or confirmation_rsi > 50:
                score += 1.0

        primary_bull = self._source.compute_supertrend(
            primary, self._supertrend.period, self._supertrend.multiplier
        ).trend == BULLISH
        confirmation_bull = self._source.compute_supertrend(
            confirmation, self._supertrend.period, self._supertrend.multiplier
        ).trend == BULLISH
        if primary_bull and confirmation_bull:
            score += 3.0
        elif primary_bull or confirmation_bull:
            score += 1.5

        if len(primary) >= 6 and len(confirmation) >= 6:
            primary_up = _trending_up(primary.closes)
            confirmation_up = _trending_up(confirmation.closes)
            if primary_up and confirmation_up:
                score += 2.0
            elif primary_up or confirmation_up:
                score += 1.0

        return _clamp(score)

    # ── Composite ────────────────────────────────────────────────────────

    def compute_trend_score(
        self,
        primary: Optional[CandleSeries],
        confirmation: Optional[CandleSeries] = None,
    ) -> TrendScoreResult:
        """Sum the three component scores for already-fetched series."""
        breakdown = TrendScoreBreakdown(
            pa=self.pa_score(primary),
            ind=self.ind_score(primary),
            mtf=self.mtf_score(primary, confirmation),
        )
        return TrendScoreResult(trend_score=breakdown.total, breakdown=breakdown)

    async def score_index(self, index_key: str) -> TrendScoreResult:
        """Fetch the primary (and confirmation) series and score them.

        Fetch errors propagate; callers decide whether to skip the index.
        """
        primary = await self._source.fetch_candles(index_key, self._primary_tf)
        confirmation = None
        if self._confirmation_tf is not None:
            confirmation = await self._source.fetch_candles(index_key, self._confirmation_tf)
        return self.compute_trend_score(primary, confirmation)

    async def compute_direction(
        self,
        index_key: str,
        bullish_threshold: float = 14.0,
        bearish_threshold: float = 7.0,
    ) -> tuple[Optional[str], Optional[float]]:
        """Return ``(direction, trend_score)``.

        Direction is ``None`` when the score sits between the thresholds or
        the score could not be computed.
        """
        try:
            result = await self.score_index(index_key)
        except Exception as exc:
            logger.error("%s — trend score failed: %s", index_key, exc)
            return None, None

        direction = direction_from_score(
            result.trend_score, bullish_threshold, bearish_threshold
        )
        return direction, result.trend_score
