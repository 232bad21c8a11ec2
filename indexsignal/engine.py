"""IndexSignal — Signal engine (one evaluation cycle per index).

Primary timeframe → optional confirmation timeframe → combine → optional
multi-factor validators or trend-score agreement → validation gate →
scaling state.  Every outcome that is not a signal clears the index's
scaling state.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from indexsignal.config import IndexConfig, SignalSettings
from indexsignal.state.state_tracker import StateTracker
from indexsignal.strategy.direction_validator import DirectionValidator
from indexsignal.strategy.indicator_source import IndicatorSource
from indexsignal.strategy.models import (
    AVOID,
    CandleSeries,
    GateResult,
    TimeframeVerdict,
    TradeDecision,
)
from indexsignal.strategy.momentum_validator import MomentumValidator
from indexsignal.strategy.session_filter import parse_hhmm
from indexsignal.strategy.trend import TimeframeAnalyzer, combine_directions, normalize_timeframe
from indexsignal.strategy.trend_scorer import TrendScorer
from indexsignal.strategy.validation_gate import ValidationGate
from indexsignal.strategy.volatility_validator import VolatilityValidator

logger = logging.getLogger("indexsignal")

SIGNAL_PATHS = ("supertrend_adx", "multi_factor", "trend_score")


def calculate_confidence_score(
    primary: TimeframeVerdict,
    confirmation: Optional[TimeframeVerdict],
    gate_valid: bool,
) -> float:
    """Confidence in [0.5, 1.0] from ADX, timeframe agreement, gate and Supertrend."""
    confidence = 0.5

    if primary.adx is not None:
        if primary.adx >= 30:
            confidence += 0.3
        elif primary.adx >= 20:
            confidence += 0.2
        elif primary.adx >= 15:
            confidence += 0.1

    if confirmation is not None and confirmation.direction == primary.direction:
        confidence += 0.2

    if gate_valid:
        confidence += 0.1

    if primary.supertrend is not None:
        confidence += min(primary.supertrend.last_value / 1000.0, 0.1)

    return min(confidence, 1.0)


# ── Breakdown helpers (JSON-friendly) ────────────────────────────────────


def _verdict_summary(verdict: Optional[TimeframeVerdict]) -> Optional[dict]:
    if verdict is None:
        return None
    return {
        "timeframe": verdict.timeframe,
        "status": verdict.status,
        "direction": verdict.direction,
        "adx": round(verdict.adx, 2) if verdict.adx is not None else None,
        "supertrend": verdict.supertrend.trend if verdict.supertrend else None,
        "supertrend_value": verdict.supertrend.last_value if verdict.supertrend else None,
    }


def _factors_summary(factors) -> dict:
    return {
        name: {"passed": f.passed, "reason": f.reason}
        for name, f in factors.items()
    }


def _gate_summary(gate: GateResult) -> dict:
    return {
        "valid": gate.valid,
        "reason": gate.reason,
        "checks": [
            {"name": c.name, "passed": c.passed, "message": c.message}
            for c in gate.checks
        ],
    }


class SignalEngine:
    """Runs one decision cycle for one index per call.

    Args:
        settings: Full signal settings (timeframes, validators, gate, scaling).
        source: ``IndicatorSource`` for candles and indicator values.
        state_tracker: Owner of the per-index scaling streaks.
        gate: Optional pre-built ``ValidationGate`` (tests inject a fixed
            holiday list this way).
    """

    def __init__(
        self,
        settings: SignalSettings,
        source: IndicatorSource,
        state_tracker: StateTracker,
        gate: Optional[ValidationGate] = None,
    ) -> None:
        self._settings = settings
        self._signals = settings.signals
        self._source = source
        self._state = state_tracker
        self._gate = gate or ValidationGate(self._signals)

        self._signal_path = self._signals.signal_path
        if self._signal_path not in SIGNAL_PATHS:
            logger.warning(
                "Unknown signal_path '%s' — using supertrend_adx", self._signal_path
            )
            self._signal_path = "supertrend_adx"

        self._analyzer = TimeframeAnalyzer(
            source, supertrend=self._signals.supertrend, adx_period=self._signals.adx.period
        )
        self._direction_validator = DirectionValidator(
            source, supertrend=self._signals.supertrend, adx_period=self._signals.adx.period
        )
        self._momentum_validator = MomentumValidator(
            body_expansion_threshold=self._signals.body_expansion_threshold
        )
        self._volatility_validator = VolatilityValidator(
            chop_start=parse_hhmm(self._signals.chop_window_start),
            chop_end=parse_hhmm(self._signals.chop_window_end),
            market_timezone=self._signals.market_timezone,
        )

    @property
    def signal_path(self) -> str:
        return self._signal_path

    @property
    def confirmation_timeframe(self) -> Optional[str]:
        if not self._signals.enable_confirmation_timeframe:
            return None
        return self._signals.confirmation_timeframe or None

    # ── Single cycle ─────────────────────────────────────────────────────

    async def run_once(
        self, index_cfg: IndexConfig, now: Optional[datetime] = None
    ) -> TradeDecision:
        """Evaluate *index_cfg* and return its ``TradeDecision``.

        Args:
            index_cfg: The index to evaluate.
            now: Current time (any aware datetime).  Defaults to
                 ``datetime.now(UTC)``; injectable for tests.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        key = index_cfg.key
        breakdown: dict = {"signal_path": self._signal_path}

        # 1 ── Primary timeframe
        primary = await self._analyzer.analyze_timeframe(
            key, self._signals.primary_timeframe, self._gate.primary_adx_min()
        )
        breakdown["primary"] = _verdict_summary(primary)
        if not primary.ok:
            logger.warning("%s primary timeframe unavailable: %s", key, primary.reason)
            return self._reject(key, primary.status, primary.reason, breakdown, now)

        # 2 ── Confirmation timeframe (strictly after the primary)
        confirmation: Optional[TimeframeVerdict] = None
        final_direction = primary.direction
        if self.confirmation_timeframe:
            confirmation = await self._analyzer.analyze_timeframe(
                key, self.confirmation_timeframe, self._gate.confirmation_adx_min()
            )
            breakdown["confirmation"] = _verdict_summary(confirmation)
            if not confirmation.ok:
                logger.warning(
                    "%s confirmation timeframe unavailable: %s", key, confirmation.reason
                )
                return self._reject(key, confirmation.status, confirmation.reason, breakdown, now)
            final_direction = combine_directions(primary.direction, confirmation.direction)
            logger.info(
                "%s multi-timeframe: primary=%s confirmation=%s final=%s",
                key, primary.direction, confirmation.direction, final_direction,
            )

        breakdown["final_direction"] = final_direction
        if final_direction == AVOID:
            return self._reject(
                key, "no_trade", "Multi-timeframe bias mismatch or weak trend", breakdown, now
            )

        series = primary.series

        # 3 ── Signal-path extras
        trend_score: Optional[float] = None
        if self._signal_path == "multi_factor":
            failure = await self._run_validators(key, primary, final_direction, breakdown)
            if failure:
                return self._reject(key, "no_trade", failure, breakdown, now)
        elif self._signal_path == "trend_score":
            scorer = TrendScorer(
                self._source,
                primary_tf=self._signals.primary_timeframe,
                confirmation_tf=self.confirmation_timeframe,
                supertrend=self._signals.supertrend,
            )
            score_direction, trend_score = await scorer.compute_direction(
                key, self._signals.bullish_threshold, self._signals.bearish_threshold
            )
            breakdown["trend_score"] = {"direction": score_direction, "score": trend_score}
            if score_direction is None:
                return self._reject(
                    key, "no_trade", f"Trend score {trend_score} unresolved", breakdown, now,
                    trend_score=trend_score,
                )
            if score_direction != final_direction:
                return self._reject(
                    key, "no_trade",
                    f"Trend score direction {score_direction} disagrees with {final_direction}",
                    breakdown, now, trend_score=trend_score,
                )

        # 4 ── Validation gate
        gate = self._gate.validate(key, final_direction, series, primary.adx, now)
        breakdown["gate"] = _gate_summary(gate)
        if not gate.valid:
            logger.warning("%s validation gate failed: %s", key, gate.reason)
            return self._reject(key, "no_trade", gate.reason, breakdown, now, trend_score=trend_score)

        # 5 ── Scaling state (only after the gate has passed)
        snapshot = self._state.record(
            key,
            final_direction,
            series.last_timestamp if series else None,
            self._settings.scaling_for(index_cfg),
            now=now,
        )
        confidence = calculate_confidence_score(primary, confirmation, gate.valid)

        logger.info(
            "%s SIGNAL %s confidence=%.2f count=%d multiplier=%d",
            key, final_direction, confidence, snapshot.count, snapshot.multiplier,
        )
        return TradeDecision(
            index=key,
            status="signal",
            direction=final_direction,
            confidence=confidence,
            trend_score=trend_score,
            scaling_count=snapshot.count,
            scaling_multiplier=snapshot.multiplier,
            validation_breakdown=breakdown,
            reason=f"{final_direction} signal confirmed",
            evaluated_at=now.isoformat(),
        )

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _run_validators(
        self,
        key: str,
        primary: TimeframeVerdict,
        direction: str,
        breakdown: dict,
    ) -> Optional[str]:
        """Direction, momentum and volatility validators; returns a failure reason or ``None``."""
        htf_series = await self._fetch_htf(key)

        direction_result = self._direction_validator.validate(
            key,
            primary.series,
            primary.supertrend,
            primary.adx,
            htf_series=htf_series,
            min_agreement=self._signals.direction_min_agreement,
        )
        momentum_result = self._momentum_validator.validate(
            key, primary.series, direction,
            min_confirmations=self._signals.momentum_min_confirmations,
        )
        volatility_result = self._volatility_validator.validate(
            primary.series, min_atr_ratio=self._signals.min_atr_ratio
        )

        breakdown["direction"] = {
            "valid": direction_result.valid,
            "score": direction_result.score,
            "factors": _factors_summary(direction_result.factors),
        }
        breakdown["momentum"] = {
            "valid": momentum_result.valid,
            "score": momentum_result.score,
            "factors": _factors_summary(momentum_result.factors),
        }
        breakdown["volatility"] = {
            "valid": volatility_result.valid,
            "atr_ratio": volatility_result.atr_ratio,
            "factors": _factors_summary(volatility_result.factors),
        }

        for name, result in (
            ("Direction", direction_result),
            ("Momentum", momentum_result),
            ("Volatility", volatility_result),
        ):
            if not result.valid:
                logger.warning("%s %s validation failed: %s", key, name, "; ".join(result.reasons))
                return result.reasons[0]
        if direction_result.direction != direction:
            return (
                f"Direction validator resolved {direction_result.direction}, "
                f"timeframes resolved {direction}"
            )
        return None

    async def _fetch_htf(self, key: str) -> Optional[CandleSeries]:
        try:
            return await self._source.fetch_candles(
                key, normalize_timeframe(self._signals.htf_timeframe)
            )
        except Exception as exc:
            # the HTF factor then fails on its own
            logger.debug("%s HTF fetch failed: %s", key, exc)
            return None

    def _reject(
        self,
        key: str,
        status: str,
        reason: str,
        breakdown: dict,
        now: datetime,
        trend_score: Optional[float] = None,
    ) -> TradeDecision:
        self._state.reset(key)
        return TradeDecision(
            index=key,
            status=status,
            trend_score=trend_score,
            validation_breakdown=breakdown,
            reason=reason,
            evaluated_at=now.isoformat(),
        )
