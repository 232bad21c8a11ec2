"""Momentum validator — swing break, body expansion and short-term price speed."""

import logging
from typing import Callable, Mapping, Optional

from indexsignal.strategy.direction_validator import int_in_range
from indexsignal.strategy.models import (
    BEARISH,
    BULLISH,
    CandleSeries,
    FactorResult,
    IndexThresholds,
    MomentumResult,
    thresholds_for,
)
from indexsignal.strategy.structure import last_swing_high, last_swing_low

logger = logging.getLogger("indexsignal.validators")

CHECK_COUNT = 3


class MomentumValidator:
    """Confirms that price is actually moving in the claimed direction.

    Args:
        body_expansion_threshold: Minimum ratio of the last body to the
            average prior body (default 0.8).
        swing_window: Bars searched for the most recent swing point.
        thresholds: Optional per-index threshold table override.
    """

    def __init__(
        self,
        body_expansion_threshold: float = 0.8,
        swing_window: int = 20,
        thresholds: Optional[Mapping[str, IndexThresholds]] = None,
    ) -> None:
        self._body_threshold = body_expansion_threshold
        self._swing_window = swing_window
        self._thresholds = thresholds

    def validate(
        self,
        index_key: str,
        series: Optional[CandleSeries],
        direction: str,
        min_confirmations: int = 1,
    ) -> MomentumResult:
        if not int_in_range(min_confirmations, 1, CHECK_COUNT):
            return self._invalid(f"Invalid min_confirmations (must be 1-{CHECK_COUNT})")
        if series is None:
            return self._invalid("Missing series")

        speed_pct = thresholds_for(index_key, self._thresholds).premium_speed_pct
        checks: dict[str, Callable[[], FactorResult]] = {
            "ltp_swing": lambda: self.check_ltp_vs_swing(series, direction),
            "body_expansion": lambda: self.check_body_expansion(series, direction),
            "premium_speed": lambda: self.check_premium_speed(series, direction, speed_pct),
        }
        factors: dict[str, FactorResult] = {}
        for name, check in checks.items():
            try:
                factors[name] = check()
            except Exception as exc:
                logger.debug("Momentum check %s failed: %s", name, exc)
                factors[name] = FactorResult(False, f"{name} check error: {exc}")

        score = sum(1 for f in factors.values() if f.passed)
        valid = score >= min_confirmations

        reasons: list[str] = []
        if not valid:
            reasons.append(
                f"Insufficient momentum confirmation: {score}/{CHECK_COUNT} checks confirm "
                f"(minimum: {min_confirmations})"
            )
            reasons.extend(f.reason for f in factors.values() if not f.passed)

        return MomentumResult(valid=valid, score=score, factors=factors, reasons=tuple(reasons))

    # ── Checks ───────────────────────────────────────────────────────────

    def check_ltp_vs_swing(self, series: CandleSeries, direction: str) -> FactorResult:
        """Last close beyond the most recent swing high (bullish) / low (bearish)."""
        if not series:
            return FactorResult(False, "Series unavailable")
        bars = series.last(self._swing_window)
        if len(bars) < 5:
            return FactorResult(False, "Insufficient candles")

        price = bars[-1].close
        if price <= 0:
            return FactorResult(False, "Current price unavailable")

        if direction == BULLISH:
            swing = last_swing_high(bars, lookback=1)
            if swing is None:
                return FactorResult(False, "No swing high in window")
            if price > swing:
                return FactorResult(True, f"LTP {price:.2f} > swing high {swing:.2f}", swing)
            return FactorResult(False, f"LTP {price:.2f} not above swing high {swing:.2f}", swing)
        if direction == BEARISH:
            swing = last_swing_low(bars, lookback=1)
            if swing is None:
                return FactorResult(False, "No swing low in window")
            if price < swing:
                return FactorResult(True, f"LTP {price:.2f} < swing low {swing:.2f}", swing)
            return FactorResult(False, f"LTP {price:.2f} not below swing low {swing:.2f}", swing)
        return FactorResult(False, f"Invalid direction: {direction}")

    def check_body_expansion(self, series: CandleSeries, direction: str) -> FactorResult:
        """Last body vs the average of up to 4 prior bodies, with matching colour."""
        if not series:
            return FactorResult(False, "Series unavailable")
        bars = series.last(5)
        if len(bars) < 4:
            return FactorResult(False, "Insufficient candles")

        last = bars[-1]
        prior = bars[:-1]
        avg_body = sum(c.body for c in prior) / len(prior)
        if avg_body == 0:
            return FactorResult(False, "Average body size is zero")

        ratio = last.body / avg_body
        if ratio < self._body_threshold:
            return FactorResult(
                False, f"Body expansion {ratio:.2f}x < {self._body_threshold}x threshold", ratio
            )
        if direction == BULLISH:
            if last.bullish:
                return FactorResult(True, f"Body expansion {ratio:.2f}x (bullish)", ratio)
            return FactorResult(False, "Body expansion but candle is not bullish", ratio)
        if direction == BEARISH:
            if last.bearish:
                return FactorResult(True, f"Body expansion {ratio:.2f}x (bearish)", ratio)
            return FactorResult(False, "Body expansion but candle is not bearish", ratio)
        return FactorResult(False, f"Invalid direction: {direction}")

    def check_premium_speed(
        self, series: CandleSeries, direction: str, threshold_pct: float
    ) -> FactorResult:
        """Percent move between the last two closes, in the claimed direction."""
        if not series:
            return FactorResult(False, "Series unavailable")
        bars = series.last(2)
        if len(bars) < 2:
            return FactorResult(False, "Insufficient candles")

        prev_close = bars[0].close
        current = bars[1].close
        if prev_close <= 0:
            return FactorResult(False, "Price data unavailable")

        change_pct = abs(current - prev_close) / prev_close * 100.0
        if change_pct < threshold_pct:
            return FactorResult(
                False, f"Premium speed {change_pct:.3f}% < {threshold_pct}% threshold", change_pct
            )
        if direction == BULLISH:
            if current > prev_close:
                return FactorResult(True, f"Premium speed {change_pct:.3f}% (bullish)", change_pct)
            return FactorResult(False, "Price moving down despite bullish direction", change_pct)
        if direction == BEARISH:
            if current < prev_close:
                return FactorResult(True, f"Premium speed {change_pct:.3f}% (bearish)", change_pct)
            return FactorResult(False, "Price moving up despite bearish direction", change_pct)
        return FactorResult(False, f"Invalid direction: {direction}")

    @staticmethod
    def _invalid(reason: str) -> MomentumResult:
        return MomentumResult(valid=False, score=0, factors={}, reasons=(reason,))
