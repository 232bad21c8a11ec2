"""Volatility validator — ATR ratio gate with compression and chop-window vetoes."""

import logging
from datetime import time
from typing import Optional

from indexsignal.strategy.indicators import window_atr
from indexsignal.strategy.models import CandleSeries, FactorResult, VolatilityResult
from indexsignal.strategy.session_filter import (
    MARKET_TIMEZONE,
    in_time_window,
    to_market_time,
)
from indexsignal.strategy.structure import atr_downtrend, vwap_chop

logger = logging.getLogger("indexsignal.validators")

ATR_WINDOW = 14
MIN_RATIO_CANDLES = 42
MIN_COMPRESSION_CANDLES = 20


class VolatilityValidator:
    """Rejects entries when volatility is too thin to pay for the trade.

    Args:
        chop_start: Local start of the low-quality chop window.
        chop_end: Local end of the chop window (inclusive, minute resolution).
        market_timezone: Timezone the chop window is expressed in.
        chop_threshold_pct: Max close/VWAP deviation that counts as chop.
        chop_min_candles: Consecutive hugging closes needed for chop.
    """

    def __init__(
        self,
        chop_start: time = time(11, 20),
        chop_end: time = time(13, 30),
        market_timezone: str = MARKET_TIMEZONE,
        chop_threshold_pct: float = 0.08,
        chop_min_candles: int = 2,
    ) -> None:
        self._chop_start = chop_start
        self._chop_end = chop_end
        self._tz = market_timezone
        self._chop_threshold_pct = chop_threshold_pct
        self._chop_min_candles = chop_min_candles

    def validate(
        self,
        series: Optional[CandleSeries],
        min_atr_ratio: float = 0.65,
    ) -> VolatilityResult:
        if not series:
            return self._invalid("Series unavailable")
        if (
            isinstance(min_atr_ratio, bool)
            or not isinstance(min_atr_ratio, (int, float))
            or not 0.0 <= min_atr_ratio <= 2.0
        ):
            return self._invalid("Invalid min_atr_ratio (must be 0.0-2.0)")

        atr_factor = self._guard("ATR ratio", lambda: self.check_atr_ratio(series, min_atr_ratio))
        compression = self._guard(
            "Compression", lambda: self.check_compression(series), pass_on_error=True
        )
        chop = self._guard("Chop window", lambda: self.check_chop_window(series), pass_on_error=True)

        # compression/chop factors "pass" when no veto applies
        factors = {
            "atr_ratio": atr_factor,
            "compression": compression,
            "chop_window": chop,
        }
        valid = atr_factor.passed and compression.passed and chop.passed

        reasons: list[str] = []
        if not valid:
            reasons.append("Volatility health check failed")
            reasons.extend(f.reason for f in factors.values() if not f.passed)

        ratio = atr_factor.value
        return VolatilityResult(
            valid=valid,
            atr_ratio=ratio,
            factors=factors,
            reasons=tuple(reasons),
        )

    # ── Checks ───────────────────────────────────────────────────────────

    def check_atr_ratio(self, series: CandleSeries, min_ratio: float) -> FactorResult:
        """Current 14-bar ATR over the 14 bars before it."""
        bars = list(series.candles)
        if len(bars) < MIN_RATIO_CANDLES:
            return FactorResult(False, "Insufficient candles")

        current_window = bars[-ATR_WINDOW:]
        historical_window = bars[-2 * ATR_WINDOW:-ATR_WINDOW]
        current_atr = window_atr(current_window, prev_close=bars[-ATR_WINDOW - 1].close)
        historical_atr = window_atr(
            historical_window, prev_close=bars[-2 * ATR_WINDOW - 1].close
        )
        if historical_atr <= 0:
            return FactorResult(False, "ATR calculation failed")

        ratio = current_atr / historical_atr
        if ratio >= min_ratio:
            return FactorResult(True, f"ATR ratio {ratio:.2f} >= {min_ratio}", ratio)
        return FactorResult(
            False, f"ATR ratio {ratio:.2f} < {min_ratio} (volatility too low)", ratio
        )

    def check_compression(self, series: CandleSeries) -> FactorResult:
        """Veto when rolling ATR has fallen for 4 straight bars."""
        if len(series) < MIN_COMPRESSION_CANDLES:
            return FactorResult(True, "Insufficient candles for compression check")
        if atr_downtrend(series.candles, period=ATR_WINDOW, min_declines=4):
            return FactorResult(False, "ATR declining (volatility compression detected)")
        return FactorResult(True, "No compression detected")

    def check_chop_window(self, series: CandleSeries) -> FactorResult:
        """Veto VWAP chop inside the midday chop window."""
        last = series.candles[-1]
        local = to_market_time(last.timestamp, self._tz).time().replace(second=0, microsecond=0)
        if not in_time_window(local, self._chop_start, self._chop_end):
            return FactorResult(True, "Not in chop window")
        if vwap_chop(
            series.last(10),
            threshold_pct=self._chop_threshold_pct,
            min_candles=self._chop_min_candles,
        ):
            return FactorResult(False, "Midday VWAP chop detected")
        return FactorResult(True, "No midday chop detected")

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _guard(name: str, check, pass_on_error: bool = False) -> FactorResult:
        """Run *check*; a broken veto check never vetoes."""
        try:
            return check()
        except Exception as exc:
            logger.debug("Volatility check %s failed: %s", name, exc)
            return FactorResult(pass_on_error, f"{name} check error: {exc}")

    @staticmethod
    def _invalid(reason: str) -> VolatilityResult:
        return VolatilityResult(valid=False, atr_ratio=None, factors={}, reasons=(reason,))
