"""Tests for indexsignal.config — environment loading and JSON settings."""

import json
from pathlib import Path

import pytest

from indexsignal.config import (
    DEFAULT_VALIDATION_MODES,
    Config,
    IndexConfig,
    ScalingConfig,
    SignalSettings,
    load_config,
    load_settings,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Ensure feed env vars are cleared between tests."""
    for var in [
        "CANDLE_FEED_URL",
        "CANDLE_FEED_TOKEN",
        "SETTINGS_PATH",
        "LOG_LEVEL",
        "HEALTH_PORT",
    ]:
        # setenv first so teardown also removes values loaded from a .env
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)


def _no_dotenv(tmp_path) -> str:
    """A non-existent env path so load_dotenv doesn't pick up a real .env."""
    return str(tmp_path / "missing.env")


class TestLoadConfig:
    def test_loads_required_vars(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CANDLE_FEED_URL", "https://feed.test")
        cfg = load_config(_no_dotenv(tmp_path))
        assert cfg.candle_feed_url == "https://feed.test"
        assert cfg.feed_is_http

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CANDLE_FEED_URL", "data/candles")
        cfg = load_config(_no_dotenv(tmp_path))
        assert cfg.candle_feed_token == ""
        assert cfg.settings_path == "indexsignal.json"
        assert cfg.log_level == "INFO"
        assert cfg.health_port == 8080
        assert not cfg.feed_is_http

    def test_config_missing_var(self, tmp_path):
        with pytest.raises(ValueError, match="CANDLE_FEED_URL"):
            load_config(_no_dotenv(tmp_path))

    def test_reads_dotenv_file(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("CANDLE_FEED_URL=https://from-dotenv.test\nHEALTH_PORT=9090\n")
        cfg = load_config(str(env))
        assert cfg.candle_feed_url == "https://from-dotenv.test"
        assert cfg.health_port == 9090

    def test_config_is_frozen(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CANDLE_FEED_URL", "https://feed.test")
        cfg = load_config(_no_dotenv(tmp_path))
        assert isinstance(cfg, Config)
        with pytest.raises(AttributeError):
            cfg.log_level = "DEBUG"


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "nope.json")
        assert settings == SignalSettings()
        assert [i.key for i in settings.indices] == ["NIFTY", "BANKNIFTY", "SENSEX"]

    def test_none_gives_defaults(self):
        settings = load_settings(None)
        assert settings.signals.primary_timeframe == "5m"
        assert settings.signals.validation_mode == "balanced"
        assert settings.scheduler.period_seconds == 30
        assert settings.scheduler.index_timeout_seconds is None
        assert settings.selector.min_trend_score == 15.0

    def test_bad_json_raises(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="Invalid settings file"):
            load_settings(path)

    def test_parses_nested_sections(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({
            "indices": [
                "nifty",
                {"key": "banknifty", "enabled": False},
                {"key": "SENSEX", "scaling": {"enabled": True, "max_multiplier": 4}},
            ],
            "signals": {
                "signal_path": "multi_factor",
                "supertrend": {"period": 7, "multiplier": 3.0},
                "adx": {"min_strength": 22, "confirmation_min_strength": 16},
                "scaling": {"enabled": True, "decay_seconds": 600, "max_multiplier": 2},
                "validation_modes": {"balanced": {"adx_min_strength": 25.0}},
                "chop_window": {"start": "11:00", "end": "13:00"},
                "holidays": ["2025-01-26"],
                "mystery_knob": 1,
            },
            "selector": {"enabled": True, "min_trend_score": 12.5},
            "scheduler": {"period_seconds": 60, "index_timeout_seconds": 20},
        }))

        settings = load_settings(path)

        assert [i.key for i in settings.indices] == ["NIFTY", "BANKNIFTY", "SENSEX"]
        assert [i.key for i in settings.enabled_indices] == ["NIFTY", "SENSEX"]

        signals = settings.signals
        assert signals.signal_path == "multi_factor"
        assert signals.supertrend.period == 7
        assert signals.adx.confirmation_min_strength == 16
        assert signals.adx.period == 14
        assert signals.chop_window_start == "11:00"
        assert signals.holidays == ("2025-01-26",)

        balanced = signals.validation_modes["balanced"]
        assert balanced.adx_min_strength == 25.0
        assert balanced.theta_risk_cutoff_minute == 30
        assert signals.validation_modes["aggressive"] == DEFAULT_VALIDATION_MODES["aggressive"]

        assert settings.selector.enabled
        assert settings.selector.min_trend_score == 12.5
        assert settings.scheduler.index_timeout_seconds == 20

    def test_per_index_scaling_override(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({
            "indices": [
                {"key": "NIFTY"},
                {"key": "SENSEX", "scaling": {"enabled": True, "max_multiplier": 4}},
            ],
            "signals": {"scaling": {"enabled": True, "max_multiplier": 2}},
        }))
        settings = load_settings(path)
        nifty, sensex = settings.indices
        assert settings.scaling_for(nifty) == ScalingConfig(enabled=True, max_multiplier=2)
        assert settings.scaling_for(sensex).max_multiplier == 4

    def test_example_settings_file_loads(self):
        example = Path(__file__).resolve().parent.parent / "indexsignal.json"
        settings = load_settings(example)
        assert len(settings.enabled_indices) == 3
        assert settings.indices[2] == IndexConfig(
            key="SENSEX", segment="BSE_IDX", security_id="51"
        )
