"""Comprehensive validation gate — mode-driven final checks before a signal.

Runs IV-rank proxy, theta risk, ADX strength, trend confirmation and
market timing under a named validation mode (conservative / balanced /
aggressive).  Every enabled check must pass.
"""

import logging
from datetime import date, datetime, time
from typing import Iterable, Optional

from indexsignal.config import SignalsConfig, ValidationModeConfig
from indexsignal.strategy.models import (
    BEARISH,
    BULLISH,
    CandleSeries,
    GateCheck,
    GateResult,
)
from indexsignal.strategy.session_filter import (
    MARKET_OPEN,
    is_in_session,
    is_trading_day,
    to_market_time,
)

logger = logging.getLogger("indexsignal.gate")

IV_RANK = "IV Rank"
THETA_RISK = "Theta Risk"
ADX_STRENGTH = "ADX Strength"
TREND_CONFIRMATION = "Trend Confirmation"
MARKET_TIMING = "Market Timing"

_EARLY_MARKET_END = time(9, 30)
_LATE_MARKET_START = time(14, 30)
_AFTERNOON_START = time(14, 0)


class ValidationGate:
    """Final go / no-go gate.

    Args:
        signals: Signal settings (validation modes, ADX settings, timezone).
        holidays: Market holidays; defaults to ``signals.holidays``.
            Weekends are always closed.
    """

    def __init__(
        self,
        signals: SignalsConfig,
        holidays: Optional[Iterable[date]] = None,
    ) -> None:
        self._signals = signals
        if holidays is None:
            holidays = [date.fromisoformat(d) for d in signals.holidays]
        self._holidays = frozenset(holidays)

    # ── Mode resolution ──────────────────────────────────────────────────

    def mode_config(self) -> tuple[str, ValidationModeConfig]:
        """Active ``(mode_name, config)``; unknown names fall back to ``balanced``."""
        name = self._signals.validation_mode or "balanced"
        modes = self._signals.validation_modes
        if name not in modes:
            logger.warning("Unknown validation mode '%s' — using balanced", name)
            name = "balanced"
        return name, modes.get(name, ValidationModeConfig())

    def primary_adx_min(self) -> float:
        """ADX floor for the primary timeframe (0 disables the filter)."""
        if not self._signals.enable_adx_filter:
            return 0.0
        return float(self._signals.adx.min_strength)

    def confirmation_adx_min(self) -> float:
        """ADX floor for the confirmation timeframe.

        Mode override, else ``adx.confirmation_min_strength``, else the
        primary minimum.  0 when the ADX filter is disabled.
        """
        if not self._signals.enable_adx_filter:
            return 0.0
        _, mode = self.mode_config()
        for candidate in (
            mode.adx_confirmation_min_strength,
            self._signals.adx.confirmation_min_strength,
            self._signals.adx.min_strength,
        ):
            if candidate is not None:
                return float(candidate)
        return 0.0

    # ── Gate ─────────────────────────────────────────────────────────────

    def validate(
        self,
        index_key: str,
        direction: str,
        series: Optional[CandleSeries],
        adx_value: Optional[float],
        now: datetime,
    ) -> GateResult:
        """Run every check the active mode enables.  *now* may be any aware datetime."""
        mode_name, mode = self.mode_config()
        local_now = to_market_time(now, self._signals.market_timezone)

        checks: list[GateCheck] = []
        if mode.require_iv_rank_check:
            checks.append(self.validate_iv_rank(series, mode))
        if mode.require_theta_risk_check:
            checks.append(self.validate_theta_risk(local_now, mode))
        checks.append(self.validate_adx_strength(adx_value, mode))
        if mode.require_trend_confirmation:
            checks.append(self.validate_trend_confirmation(direction, series))
        checks.append(self.validate_market_timing(local_now))

        failed = [c.name for c in checks if not c.passed]
        if failed:
            reason = f"Failed checks: {', '.join(failed)}"
            logger.info("%s gate (%s mode): %s", index_key, mode_name, reason)
            return GateResult(valid=False, checks=tuple(checks), reason=reason)

        logger.info("%s gate (%s mode): all checks passed", index_key, mode_name)
        return GateResult(valid=True, checks=tuple(checks), reason="All checks passed")

    # ── Checks ───────────────────────────────────────────────────────────

    def validate_iv_rank(
        self, series: Optional[CandleSeries], mode: ValidationModeConfig
    ) -> GateCheck:
        """Volatility proxy: mean |Δclose|/close over the last 5 bars × 1000, capped at 1."""
        if not series or len(series) < 5:
            return GateCheck(IV_RANK, False, "Insufficient data for volatility assessment")

        closes = [c.close for c in series.last(5)]
        changes = [abs(b - a) / a for a, b in zip(closes, closes[1:]) if a]
        if not changes:
            return GateCheck(IV_RANK, False, "Insufficient recent candles")

        proxy = min(sum(changes) / len(changes) * 1000, 1.0)
        if proxy > mode.iv_rank_max:
            return GateCheck(
                IV_RANK, False,
                f"Extreme volatility detected ({proxy * 100:.1f}% > {mode.iv_rank_max * 100:.1f}%)",
            )
        if proxy < mode.iv_rank_min:
            return GateCheck(
                IV_RANK, False,
                f"Very low volatility ({proxy * 100:.1f}% < {mode.iv_rank_min * 100:.1f}%)",
            )
        return GateCheck(IV_RANK, True, f"Volatility within acceptable range ({proxy * 100:.1f}%)")

    def validate_theta_risk(
        self, local_now: datetime, mode: ValidationModeConfig
    ) -> GateCheck:
        cutoff = time(mode.theta_risk_cutoff_hour, mode.theta_risk_cutoff_minute)
        now_t = local_now.time().replace(second=0, microsecond=0)
        if now_t >= cutoff:
            return GateCheck(
                THETA_RISK, False,
                f"High theta decay risk - too close to market close (after {cutoff:%H:%M})",
            )
        if now_t >= _AFTERNOON_START:
            return GateCheck(THETA_RISK, True, "Moderate theta risk - afternoon trading")
        return GateCheck(THETA_RISK, True, "Low theta risk - early/midday trading")

    def validate_adx_strength(
        self, adx_value: Optional[float], mode: ValidationModeConfig
    ) -> GateCheck:
        if not self._signals.enable_adx_filter:
            return GateCheck(ADX_STRENGTH, True, "ADX filter disabled")
        if adx_value is None:
            return GateCheck(ADX_STRENGTH, False, "ADX unavailable")

        min_strength = (
            mode.adx_min_strength
            if mode.adx_min_strength is not None
            else self._signals.adx.min_strength
        )
        if adx_value < min_strength:
            return GateCheck(
                ADX_STRENGTH, False, f"Weak trend strength ({adx_value:.1f} < {min_strength:g})"
            )
        if adx_value >= 40:
            return GateCheck(ADX_STRENGTH, True, f"Very strong trend ({adx_value:.1f})")
        if adx_value >= 25:
            return GateCheck(ADX_STRENGTH, True, f"Strong trend ({adx_value:.1f})")
        return GateCheck(ADX_STRENGTH, True, f"Moderate trend ({adx_value:.1f})")

    def validate_trend_confirmation(
        self, direction: str, series: Optional[CandleSeries]
    ) -> GateCheck:
        """The close three bars back must be worse than the last close for the trend."""
        if direction not in (BULLISH, BEARISH):
            return GateCheck(TREND_CONFIRMATION, False, "No trend signal")
        if not series or len(series) < 3:
            return GateCheck(
                TREND_CONFIRMATION, False, "Insufficient data for trend confirmation"
            )

        first, last = series.last(3)[0].close, series.last(1)[0].close
        if direction == BULLISH:
            if last > first:
                return GateCheck(TREND_CONFIRMATION, True, "Bullish trend confirmed by price action")
            return GateCheck(
                TREND_CONFIRMATION, False, "Bullish signal not confirmed by recent price action"
            )
        if last < first:
            return GateCheck(TREND_CONFIRMATION, True, "Bearish trend confirmed by price action")
        return GateCheck(
            TREND_CONFIRMATION, False, "Bearish signal not confirmed by recent price action"
        )

    def validate_market_timing(self, local_now: datetime) -> GateCheck:
        if not is_trading_day(local_now.date(), self._holidays):
            return GateCheck(MARKET_TIMING, False, "Not a trading day (weekend/holiday)")

        now_t = local_now.time().replace(second=0, microsecond=0)
        if not is_in_session(now_t):
            message = "Market not yet open" if now_t < MARKET_OPEN else "Market closed"
            return GateCheck(MARKET_TIMING, False, message)
        if now_t < _EARLY_MARKET_END:
            return GateCheck(MARKET_TIMING, True, "Early market - high volatility period")
        if now_t >= _LATE_MARKET_START:
            return GateCheck(MARKET_TIMING, True, "Late market - theta decay risk")
        return GateCheck(MARKET_TIMING, True, "Normal trading hours")
