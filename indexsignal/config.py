"""IndexSignal — application configuration.

Loads ``.env`` variables into a typed ``Config`` and the structured
per-index / per-signal settings from a JSON file into ``SignalSettings``.
Validates required variables on startup.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

logger = logging.getLogger("indexsignal")

_REQUIRED_VARS = [
    "CANDLE_FEED_URL",
]


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    candle_feed_url: str
    candle_feed_token: str
    settings_path: str
    log_level: str
    health_port: int

    @property
    def feed_is_http(self) -> bool:
        """True when the feed URL points at an HTTP endpoint rather than a directory."""
        return self.candle_feed_url.lower().startswith(("http://", "https://"))


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing variable when a
    required variable is absent.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    return Config(
        candle_feed_url=os.environ["CANDLE_FEED_URL"],
        candle_feed_token=os.environ.get("CANDLE_FEED_TOKEN", ""),
        settings_path=os.environ.get("SETTINGS_PATH", "indexsignal.json"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=int(os.environ.get("HEALTH_PORT", "8080")),
    )


# ── Signal settings ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class ScalingConfig:
    enabled: bool = False
    decay_seconds: int = 900
    max_multiplier: int = 1


@dataclass(frozen=True)
class IndexConfig:
    """One tradable index."""

    key: str
    segment: str = "IDX_I"
    security_id: str = ""
    enabled: bool = True
    scaling: Optional[ScalingConfig] = None


@dataclass(frozen=True)
class SupertrendParams:
    period: int = 10
    multiplier: float = 2.0


@dataclass(frozen=True)
class AdxParams:
    period: int = 14
    min_strength: float = 18.0
    confirmation_min_strength: Optional[float] = None


@dataclass(frozen=True)
class ValidationModeConfig:
    """Which gate checks run, and their thresholds, for one validation mode."""

    require_iv_rank_check: bool = False
    require_theta_risk_check: bool = True
    require_trend_confirmation: bool = True
    adx_min_strength: Optional[float] = None
    adx_confirmation_min_strength: Optional[float] = None
    iv_rank_min: float = 0.1
    iv_rank_max: float = 0.8
    theta_risk_cutoff_hour: int = 14
    theta_risk_cutoff_minute: int = 30


DEFAULT_VALIDATION_MODES: dict[str, ValidationModeConfig] = {
    "conservative": ValidationModeConfig(
        require_iv_rank_check=True,
        require_theta_risk_check=True,
        require_trend_confirmation=True,
        adx_min_strength=20.0,
        theta_risk_cutoff_hour=14,
        theta_risk_cutoff_minute=0,
    ),
    "balanced": ValidationModeConfig(
        require_iv_rank_check=False,
        require_theta_risk_check=True,
        require_trend_confirmation=True,
        adx_min_strength=18.0,
        theta_risk_cutoff_hour=14,
        theta_risk_cutoff_minute=30,
    ),
    "aggressive": ValidationModeConfig(
        require_iv_rank_check=False,
        require_theta_risk_check=False,
        require_trend_confirmation=False,
        adx_min_strength=15.0,
        theta_risk_cutoff_hour=15,
        theta_risk_cutoff_minute=0,
    ),
}


@dataclass(frozen=True)
class SignalsConfig:
    primary_timeframe: str = "5m"
    confirmation_timeframe: Optional[str] = "15m"
    enable_confirmation_timeframe: bool = True
    htf_timeframe: str = "15"
    supertrend: SupertrendParams = field(default_factory=SupertrendParams)
    adx: AdxParams = field(default_factory=AdxParams)
    enable_adx_filter: bool = True
    signal_path: str = "supertrend_adx"  # "supertrend_adx", "multi_factor", "trend_score"
    direction_min_agreement: int = 2
    momentum_min_confirmations: int = 1
    min_atr_ratio: float = 0.65
    body_expansion_threshold: float = 0.8
    bullish_threshold: float = 14.0
    bearish_threshold: float = 7.0
    validation_mode: str = "balanced"
    validation_modes: dict[str, ValidationModeConfig] = field(
        default_factory=lambda: dict(DEFAULT_VALIDATION_MODES)
    )
    scaling: ScalingConfig = field(default_factory=ScalingConfig)
    chop_window_start: str = "11:20"
    chop_window_end: str = "13:30"
    market_timezone: str = "Asia/Kolkata"
    holidays: tuple[str, ...] = ()


@dataclass(frozen=True)
class SelectorConfig:
    min_trend_score: float = 15.0
    primary_tf: str = "1m"
    confirmation_tf: Optional[str] = "5m"
    enabled: bool = False


@dataclass(frozen=True)
class SchedulerConfig:
    period_seconds: int = 30
    inter_index_delay_seconds: int = 5
    index_timeout_seconds: Optional[float] = None


def _default_indices() -> list[IndexConfig]:
    return [
        IndexConfig(key="NIFTY", segment="IDX_I", security_id="13"),
        IndexConfig(key="BANKNIFTY", segment="IDX_I", security_id="25"),
        IndexConfig(key="SENSEX", segment="IDX_I", security_id="51"),
    ]


@dataclass(frozen=True)
class SignalSettings:
    """Everything the pipeline needs, passed explicitly into each component."""

    indices: list[IndexConfig] = field(default_factory=_default_indices)
    signals: SignalsConfig = field(default_factory=SignalsConfig)
    selector: SelectorConfig = field(default_factory=SelectorConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    @property
    def enabled_indices(self) -> list[IndexConfig]:
        return [i for i in self.indices if i.enabled]

    def scaling_for(self, index_cfg: IndexConfig) -> ScalingConfig:
        """Per-index scaling override, else the global scaling settings."""
        return index_cfg.scaling or self.signals.scaling


# ── JSON loading ─────────────────────────────────────────────────────────


def _build(cls, data: Optional[dict]):
    """Instantiate dataclass *cls* from *data*, ignoring unknown keys."""
    if not data:
        return cls()
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        logger.warning("Ignoring unknown %s keys: %s", cls.__name__, ", ".join(sorted(unknown)))
    return cls(**{k: v for k, v in data.items() if k in known})


def _parse_signals(raw: dict) -> SignalsConfig:
    raw = dict(raw)
    supertrend = _build(SupertrendParams, raw.pop("supertrend", None))
    adx = _build(AdxParams, raw.pop("adx", None))
    scaling = _build(ScalingConfig, raw.pop("scaling", None))

    modes = dict(DEFAULT_VALIDATION_MODES)
    for name, mode_raw in (raw.pop("validation_modes", None) or {}).items():
        base = modes.get(name, ValidationModeConfig())
        modes[name] = replace(base, **{
            k: v for k, v in mode_raw.items()
            if k in {f.name for f in fields(ValidationModeConfig)}
        })

    chop = raw.pop("chop_window", None)
    if chop:
        raw.setdefault("chop_window_start", chop.get("start", "11:20"))
        raw.setdefault("chop_window_end", chop.get("end", "13:30"))
    if "holidays" in raw:
        raw["holidays"] = tuple(raw["holidays"])

    base = _build(SignalsConfig, raw)
    return replace(
        base,
        supertrend=supertrend,
        adx=adx,
        scaling=scaling,
        validation_modes=modes,
    )


def _parse_index(raw: Any) -> IndexConfig:
    if isinstance(raw, str):
        return IndexConfig(key=raw.upper())
    raw = dict(raw)
    scaling = raw.pop("scaling", None)
    cfg = _build(IndexConfig, raw)
    return replace(
        cfg,
        key=str(cfg.key).upper(),
        scaling=_build(ScalingConfig, scaling) if scaling else None,
    )


def load_settings(path: str | Path | None = None) -> SignalSettings:
    """Load ``SignalSettings`` from a JSON file.

    A missing file yields the defaults.  Malformed JSON raises ``ValueError``.
    """
    if path is None:
        return SignalSettings()
    p = Path(path)
    if not p.is_file():
        logger.info("Settings file %s not found — using defaults.", p)
        return SignalSettings()

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid settings file {p}: {exc}") from exc

    indices_raw = data.get("indices")
    indices = (
        [_parse_index(i) for i in indices_raw]
        if indices_raw else _default_indices()
    )
    return SignalSettings(
        indices=indices,
        signals=_parse_signals(data.get("signals") or {}),
        selector=_build(SelectorConfig, data.get("selector")),
        scheduler=_build(SchedulerConfig, data.get("scheduler")),
    )
