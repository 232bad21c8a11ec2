"""Direction validator — six independent directional-agreement checks.

Each check yields a ``FactorResult``; the score is the number of checks
that agree with the primary Supertrend direction.  A check that raises is
recorded as a failing factor and never stops the others.
"""

import logging
from typing import Callable, Mapping, Optional

from indexsignal.config import SupertrendParams
from indexsignal.strategy.indicator_source import IndicatorSource
from indexsignal.strategy.indicators import calculate_vwap
from indexsignal.strategy.models import (
    ACTIONABLE_DIRECTIONS,
    AVOID,
    BEARISH,
    BULLISH,
    NEUTRAL,
    CandleSeries,
    DirectionResult,
    FactorResult,
    IndexThresholds,
    SupertrendResult,
    thresholds_for,
)

logger = logging.getLogger("indexsignal.validators")

FACTOR_COUNT = 6


def int_in_range(value, low: int, high: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and low <= value <= high


def _run_check(name: str, check: Callable[[], FactorResult]) -> FactorResult:
    try:
        return check()
    except Exception as exc:
        logger.debug("Direction check %s failed: %s", name, exc)
        return FactorResult(False, f"{name} check error: {exc}")


class DirectionValidator:
    """Multi-factor direction confirmation.

    Args:
        source: ``IndicatorSource`` used for HTF Supertrend/ADX and BOS/CHOCH.
        supertrend: Supertrend parameters for the HTF recomputation.
        adx_period: ADX period for the HTF check.
        thresholds: Optional per-index threshold table override.
        bos_lookback: Bars inspected for break of structure.
        choch_lookback: Bars inspected for change of character.
    """

    def __init__(
        self,
        source: IndicatorSource,
        supertrend: SupertrendParams = SupertrendParams(),
        adx_period: int = 14,
        thresholds: Optional[Mapping[str, IndexThresholds]] = None,
        bos_lookback: int = 10,
        choch_lookback: int = 15,
    ) -> None:
        self._source = source
        self._supertrend = supertrend
        self._adx_period = adx_period
        self._thresholds = thresholds
        self._bos_lookback = bos_lookback
        self._choch_lookback = choch_lookback

    def validate(
        self,
        index_key: str,
        primary_series: Optional[CandleSeries],
        primary_supertrend: Optional[SupertrendResult],
        primary_adx: Optional[float],
        htf_series: Optional[CandleSeries] = None,
        min_agreement: int = 2,
    ) -> DirectionResult:
        """Run all six checks against the primary Supertrend direction."""
        if not int_in_range(min_agreement, 1, FACTOR_COUNT):
            return self._invalid(f"Invalid min_agreement (must be 1-{FACTOR_COUNT})")
        if primary_series is None:
            return self._invalid("Missing primary_series")
        if not isinstance(primary_supertrend, SupertrendResult):
            return self._invalid("Invalid primary_supertrend")
        if primary_adx is not None and (
            isinstance(primary_adx, bool) or not isinstance(primary_adx, (int, float))
        ):
            return self._invalid("Invalid primary_adx")

        thresholds = thresholds_for(index_key, self._thresholds)
        direction = primary_supertrend.trend

        factors = {
            "htf_supertrend": _run_check("HTF", lambda: self.check_htf_supertrend(
                htf_series, direction, thresholds.min_htf_adx)),
            "adx": _run_check("ADX", lambda: self.check_adx_strength(
                primary_adx, thresholds.min_adx)),
            "vwap": _run_check("VWAP", lambda: self.check_vwap_position(
                primary_series, direction)),
            "bos": _run_check("BOS", lambda: self.check_bos_alignment(
                primary_series, direction)),
            "choch": _run_check("CHOCH", lambda: self.check_choch_alignment(
                primary_series, direction)),
            "structure": _run_check("Structure", lambda: self.check_candle_structure(
                primary_series, direction)),
        }
        score = sum(1 for f in factors.values() if f.passed)
        valid = score >= min_agreement and direction in ACTIONABLE_DIRECTIONS

        reasons: list[str] = []
        if not valid:
            reasons.append(
                f"Insufficient directional agreement: {score}/{FACTOR_COUNT} factors agree "
                f"(minimum: {min_agreement})"
            )
            reasons.extend(f.reason for f in factors.values() if not f.passed)

        return DirectionResult(
            valid=valid,
            direction=direction if valid else AVOID,
            score=score,
            factors=factors,
            reasons=tuple(reasons),
        )

    # ── Checks ───────────────────────────────────────────────────────────

    def check_htf_supertrend(
        self,
        htf_series: Optional[CandleSeries],
        direction: str,
        min_htf_adx: float,
    ) -> FactorResult:
        """HTF Supertrend must match *direction* and HTF ADX must reach *min_htf_adx*."""
        if not htf_series:
            return FactorResult(False, "HTF data unavailable")

        htf_st = self._source.compute_supertrend(
            htf_series, self._supertrend.period, self._supertrend.multiplier
        )
        htf_adx = self._source.compute_adx(htf_series, self._adx_period)

        if htf_st.trend != direction:
            return FactorResult(
                False, f"HTF Supertrend ({htf_st.trend}) does not align with primary"
            )
        if htf_st.trend not in ACTIONABLE_DIRECTIONS:
            return FactorResult(False, f"HTF Supertrend ({htf_st.trend}) has no direction")
        if htf_adx is None:
            return FactorResult(False, "HTF ADX unavailable")
        if htf_adx < min_htf_adx:
            return FactorResult(
                False, f"HTF ADX {htf_adx:.1f} < {min_htf_adx:g} (weak trend)", htf_adx
            )
        return FactorResult(
            True, f"HTF Supertrend ({htf_st.trend}) aligns with ADX {htf_adx:.1f}", htf_adx
        )

    def check_adx_strength(self, adx: Optional[float], min_adx: float) -> FactorResult:
        if adx is None:
            return FactorResult(False, "ADX unavailable")
        if adx >= min_adx:
            return FactorResult(True, f"ADX {adx:.1f} >= {min_adx:g}", adx)
        return FactorResult(False, f"ADX {adx:.1f} < {min_adx:g}", adx)

    def check_vwap_position(self, series: CandleSeries, direction: str) -> FactorResult:
        """Last close vs VWAP of the last ≤20 bars (at least 10)."""
        if not series:
            return FactorResult(False, "Series unavailable")
        bars = series.last(20)
        if len(bars) < 10:
            return FactorResult(False, "Insufficient candles")

        vwap = calculate_vwap(bars)
        if vwap <= 0:
            return FactorResult(False, "VWAP calculation failed")
        price = bars[-1].close

        if direction == BULLISH:
            if price > vwap:
                return FactorResult(True, f"Price above VWAP ({price:.2f} > {vwap:.2f})", vwap)
            return FactorResult(False, f"Price not above VWAP ({price:.2f} <= {vwap:.2f})", vwap)
        if direction == BEARISH:
            if price < vwap:
                return FactorResult(True, f"Price below VWAP ({price:.2f} < {vwap:.2f})", vwap)
            return FactorResult(False, f"Price not below VWAP ({price:.2f} >= {vwap:.2f})", vwap)
        return FactorResult(False, f"Invalid direction: {direction}")

    def check_bos_alignment(self, series: CandleSeries, direction: str) -> FactorResult:
        if not series:
            return FactorResult(False, "Series unavailable")
        bos = self._source.bos_direction(series.candles, self._bos_lookback)
        if bos == NEUTRAL:
            return FactorResult(False, "No BOS detected")
        if bos == direction:
            return FactorResult(True, f"BOS direction ({bos}) aligns")
        return FactorResult(False, f"BOS direction ({bos}) does not align")

    def check_choch_alignment(self, series: CandleSeries, direction: str) -> FactorResult:
        if not series:
            return FactorResult(False, "Series unavailable")
        choch = self._source.choch(series.candles, self._choch_lookback)
        if choch == NEUTRAL:
            return FactorResult(False, "No CHOCH detected")
        if choch == direction:
            return FactorResult(True, f"CHOCH direction ({choch}) aligns")
        return FactorResult(False, f"CHOCH direction ({choch}) does not align")

    def check_candle_structure(self, series: CandleSeries, direction: str) -> FactorResult:
        """≥80 % of consecutive pairs in the last 5 bars make strictly higher
        highs (bullish) or strictly lower lows (bearish)."""
        if not series:
            return FactorResult(False, "Series unavailable")
        bars = series.last(5)
        if len(bars) < 3:
            return FactorResult(False, "Insufficient candles")

        pairs = max(len(bars) - 1, 1)
        if direction == BULLISH:
            count = sum(1 for a, b in zip(bars, bars[1:]) if b.high > a.high)
            label = "higher highs"
        elif direction == BEARISH:
            count = sum(1 for a, b in zip(bars, bars[1:]) if b.low < a.low)
            label = "lower lows"
        else:
            return FactorResult(False, f"Invalid direction: {direction}")

        ratio = count / pairs
        pct = round(ratio * 100)
        if ratio >= 0.8:
            return FactorResult(True, f"{label.capitalize()} pattern detected ({pct}%)", ratio)
        return FactorResult(False, f"No {label} pattern ({pct}% < 80%)", ratio)

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _invalid(reason: str) -> DirectionResult:
        return DirectionResult(
            valid=False, direction=AVOID, score=0, factors={}, reasons=(reason,)
        )
