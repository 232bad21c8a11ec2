"""Strategy data models — typed representations for candles and signal outputs."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Mapping, Optional

import numpy as np

Direction = Literal["bullish", "bearish", "neutral", "avoid"]

BULLISH = "bullish"
BEARISH = "bearish"
NEUTRAL = "neutral"
AVOID = "avoid"
ACTIONABLE_DIRECTIONS = (BULLISH, BEARISH)


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar.  ``timestamp`` is timezone-aware."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def bullish(self) -> bool:
        return self.close > self.open

    @property
    def bearish(self) -> bool:
        return self.close < self.open

    @property
    def body(self) -> float:
        """Absolute body size (|close − open|)."""
        return abs(self.close - self.open)

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0


@dataclass(frozen=True)
class CandleSeries:
    """Ordered candles for one (index, timeframe) pair, oldest-first."""

    index_key: str
    interval: str
    candles: tuple[Candle, ...] = ()

    def __len__(self) -> int:
        return len(self.candles)

    def __bool__(self) -> bool:
        return len(self.candles) > 0

    def last(self, n: int) -> list[Candle]:
        """Return the last *n* candles (fewer if the series is shorter)."""
        if n <= 0:
            return []
        return list(self.candles[-n:])

    @property
    def closes(self) -> np.ndarray:
        return np.array([c.close for c in self.candles], dtype=float)

    @property
    def highs(self) -> np.ndarray:
        return np.array([c.high for c in self.candles], dtype=float)

    @property
    def lows(self) -> np.ndarray:
        return np.array([c.low for c in self.candles], dtype=float)

    @property
    def opens(self) -> np.ndarray:
        return np.array([c.open for c in self.candles], dtype=float)

    @property
    def last_timestamp(self) -> Optional[datetime]:
        if not self.candles:
            return None
        return self.candles[-1].timestamp


@dataclass(frozen=True)
class SupertrendResult:
    """Supertrend verdict for the most recent bar."""

    trend: str  # "bullish", "bearish" or "neutral"
    last_value: float
    adaptive_multiplier_history: tuple[Optional[float], ...] = ()


@dataclass(frozen=True)
class MacdResult:
    """Latest MACD line, signal line and histogram values."""

    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class FactorResult:
    """Outcome of one validator sub-check.  ``reason`` is never empty."""

    passed: bool
    reason: str
    value: Optional[float] = None


# ── Validator results ────────────────────────────────────────────────────


@dataclass(frozen=True)
class DirectionResult:
    """Six-factor directional agreement result."""

    valid: bool
    direction: str
    score: int
    factors: Mapping[str, FactorResult] = field(default_factory=dict)
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class MomentumResult:
    """Three-check momentum confirmation result."""

    valid: bool
    score: int
    factors: Mapping[str, FactorResult] = field(default_factory=dict)
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class VolatilityResult:
    """Volatility health result with the current/historical ATR ratio."""

    valid: bool
    atr_ratio: Optional[float]
    factors: Mapping[str, FactorResult] = field(default_factory=dict)
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class GateCheck:
    """A named validation-gate check."""

    name: str
    passed: bool
    message: str


@dataclass(frozen=True)
class GateResult:
    valid: bool
    checks: tuple[GateCheck, ...]
    reason: str

    @property
    def failed_checks(self) -> list[str]:
        return [c.name for c in self.checks if not c.passed]


# ── Trend scoring ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TrendScoreBreakdown:
    """Component scores, each clamped to [0, 7].  ``vol`` is reserved."""

    pa: float
    ind: float
    mtf: float
    vol: float = 0.0

    @property
    def total(self) -> float:
        return self.pa + self.ind + self.mtf


@dataclass(frozen=True)
class TrendScoreResult:
    trend_score: float
    breakdown: TrendScoreBreakdown


@dataclass(frozen=True)
class IndexScoreCandidate:
    """One index's standing in a cross-index selection pass."""

    index_key: str
    trend_score: float
    breakdown: TrendScoreBreakdown
    reason: str = ""


# ── Timeframe analysis ───────────────────────────────────────────────────


@dataclass(frozen=True)
class TimeframeVerdict:
    """Per-timeframe direction decision (or a ``no_data`` / ``error`` status)."""

    status: str  # "ok", "no_data" or "error"
    timeframe: str
    direction: str = AVOID
    supertrend: Optional[SupertrendResult] = None
    adx: Optional[float] = None
    series: Optional[CandleSeries] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "ok"


# ── Index thresholds ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class IndexThresholds:
    """Per-index minimums used by the direction and momentum validators."""

    min_adx: float = 5.0
    min_htf_adx: float = 5.0
    premium_speed_pct: float = 0.01


DEFAULT_INDEX_THRESHOLDS = IndexThresholds()

INDEX_THRESHOLDS: dict[str, IndexThresholds] = {
    "NIFTY": IndexThresholds(min_adx=5.0, min_htf_adx=5.0),
    "BANKNIFTY": IndexThresholds(min_adx=6.0, min_htf_adx=6.0),
    "SENSEX": IndexThresholds(min_adx=5.0, min_htf_adx=5.0),
}


def thresholds_for(
    index_key: str,
    table: Optional[Mapping[str, IndexThresholds]] = None,
) -> IndexThresholds:
    """Look up an index's thresholds, falling back to the default entry."""
    lookup = INDEX_THRESHOLDS if table is None else table
    return lookup.get(str(index_key).upper(), DEFAULT_INDEX_THRESHOLDS)


# ── Decisions ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ScalingSnapshot:
    """What ``StateTracker.record`` reports back for one cycle."""

    index_key: str
    direction: Optional[str]
    count: int
    multiplier: int


@dataclass(frozen=True)
class TradeDecision:
    """One evaluation outcome for one index, consumed by downstream layers."""

    index: str
    status: str  # "signal", "no_trade", "no_data", "error", "halted"
    direction: Optional[str] = None
    confidence: float = 0.0
    trend_score: Optional[float] = None
    scaling_count: int = 0
    scaling_multiplier: int = 1
    validation_breakdown: Mapping[str, object] = field(default_factory=dict)
    reason: str = ""
    evaluated_at: str = ""

    @property
    def actionable(self) -> bool:
        return self.status == "signal" and self.direction in ACTIONABLE_DIRECTIONS

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "status": self.status,
            "direction": self.direction,
            "confidence": round(self.confidence, 4),
            "trend_score": self.trend_score,
            "scaling_count": self.scaling_count,
            "scaling_multiplier": self.scaling_multiplier,
            "validation_breakdown": dict(self.validation_breakdown),
            "reason": self.reason,
            "evaluated_at": self.evaluated_at,
        }
