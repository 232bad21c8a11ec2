"""Tests for the polling scheduler: pacing, isolation, halting and selection."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from indexsignal.api import routers
from indexsignal.config import ScalingConfig, SchedulerConfig, SignalSettings
from indexsignal.risk.circuit_breaker import CircuitBreaker
from indexsignal.scheduler import Scheduler
from indexsignal.state.state_tracker import StateTracker
from indexsignal.state.store import InMemoryTTLStore
from indexsignal.strategy.models import IndexScoreCandidate, TradeDecision, TrendScoreBreakdown

_NOW = datetime(2025, 1, 6, 4, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _clean_routers():
    routers.reset_routers()
    yield
    routers.reset_routers()


class FakeEngine:
    """Records evaluated indices; behaviour per index is scripted."""

    signal_path = "supertrend_adx"

    def __init__(self, failing=(), hanging=(), on_call=None):
        self.failing = set(failing)
        self.hanging = set(hanging)
        self.on_call = on_call
        self.calls: list[str] = []

    async def run_once(self, index_cfg, now=None):
        self.calls.append(index_cfg.key)
        if self.on_call:
            self.on_call(index_cfg.key)
        if index_cfg.key in self.failing:
            raise RuntimeError("boom")
        if index_cfg.key in self.hanging:
            await asyncio.sleep(10)
        return TradeDecision(index=index_cfg.key, status="no_trade", reason="quiet")


class FakeSelector:
    def __init__(self, winner):
        self.winner = winner

    async def select_best_index(self, indices):
        if self.winner is None:
            return None
        return IndexScoreCandidate(
            index_key=self.winner,
            trend_score=17.0,
            breakdown=TrendScoreBreakdown(pa=6.0, ind=6.0, mtf=5.0),
            reason="only_qualified_index",
        )


def _make_scheduler(engine=None, breaker=None, selector=None, **pacing):
    pacing.setdefault("period_seconds", 0)
    pacing.setdefault("inter_index_delay_seconds", 0)
    settings = SignalSettings(scheduler=SchedulerConfig(**pacing))
    tracker = StateTracker(InMemoryTTLStore())
    scheduler = Scheduler(
        engine or FakeEngine(), settings, tracker, breaker=breaker, selector=selector
    )
    return scheduler, tracker


def _seed(tracker, key):
    tracker.record(key, "bullish", _NOW, ScalingConfig(enabled=True))


# ── Single pass ──────────────────────────────────────────────────────────


class TestRunPass:
    @pytest.mark.asyncio
    async def test_evaluates_indices_in_order(self):
        engine = FakeEngine()
        scheduler, _ = _make_scheduler(engine)
        decisions = await scheduler.run_pass(now=_NOW)
        assert engine.calls == ["NIFTY", "BANKNIFTY", "SENSEX"]
        assert [d.index for d in decisions] == ["NIFTY", "BANKNIFTY", "SENSEX"]
        assert scheduler.pass_count == 1
        assert routers._status["pass_count"] == 1

    @pytest.mark.asyncio
    async def test_inter_index_delay(self):
        scheduler, _ = _make_scheduler(inter_index_delay_seconds=5)
        with patch("indexsignal.scheduler.asyncio.sleep", new=AsyncMock()) as sleep:
            await scheduler.run_pass(now=_NOW)
        assert [c.args[0] for c in sleep.await_args_list] == [0, 5, 5]

    @pytest.mark.asyncio
    async def test_exception_is_isolated(self):
        engine = FakeEngine(failing={"BANKNIFTY"})
        scheduler, tracker = _make_scheduler(engine)
        _seed(tracker, "BANKNIFTY")

        decisions = await scheduler.run_pass(now=_NOW)

        statuses = {d.index: d.status for d in decisions}
        assert statuses == {"NIFTY": "no_trade", "BANKNIFTY": "error", "SENSEX": "no_trade"}
        failed = decisions[1]
        assert failed.reason == "RuntimeError: boom"
        assert tracker.peek("BANKNIFTY") is None
        assert routers._latest_decisions["BANKNIFTY"]["status"] == "error"

    @pytest.mark.asyncio
    async def test_timeout_becomes_error(self):
        engine = FakeEngine(hanging={"NIFTY"})
        scheduler, _ = _make_scheduler(engine, index_timeout_seconds=0.05)
        decision = await scheduler.process_index(scheduler.indices[0], now=_NOW)
        assert decision.status == "error"
        assert decision.reason == "Evaluation timed out after 0.05s"

    @pytest.mark.asyncio
    async def test_breaker_tripped_mid_pass_stops_remaining(self):
        breaker = CircuitBreaker()
        engine = FakeEngine(on_call=lambda key: breaker.trip("feed auth revoked"))
        scheduler, _ = _make_scheduler(engine, breaker=breaker)
        decisions = await scheduler.run_pass(now=_NOW)
        assert [d.index for d in decisions] == ["NIFTY"]

    @pytest.mark.asyncio
    async def test_history_is_capped(self):
        scheduler, _ = _make_scheduler()
        for _ in range(20):
            await scheduler.run_pass(now=_NOW)
        assert len(routers._decision_history) == 50


# ── Selection ────────────────────────────────────────────────────────────


class TestSelectionMode:
    @pytest.mark.asyncio
    async def test_only_winner_is_evaluated(self):
        engine = FakeEngine()
        scheduler, _ = _make_scheduler(engine, selector=FakeSelector("SENSEX"))
        decisions = await scheduler.run_pass(now=_NOW)
        assert engine.calls == ["SENSEX"]
        assert [d.index for d in decisions] == ["SENSEX"]
        assert routers._last_selection["selected"] == "SENSEX"
        assert routers._last_selection["breakdown"]["mtf"] == 5.0

    @pytest.mark.asyncio
    async def test_losing_indices_lose_their_streak(self):
        engine = FakeEngine()
        scheduler, tracker = _make_scheduler(engine, selector=FakeSelector("SENSEX"))
        _seed(tracker, "NIFTY")
        _seed(tracker, "SENSEX")

        await scheduler.run_pass(now=_NOW)

        assert tracker.peek("NIFTY") is None
        assert tracker.peek("SENSEX") is not None

        # a later NIFTY signal starts a fresh streak
        scaling = ScalingConfig(enabled=True, max_multiplier=3)
        snapshot = tracker.record("NIFTY", "bullish", _NOW.timestamp() + 300, scaling)
        assert snapshot.count == 1
        assert snapshot.multiplier == 1

    @pytest.mark.asyncio
    async def test_no_winner_resets_everything(self):
        engine = FakeEngine()
        scheduler, tracker = _make_scheduler(engine, selector=FakeSelector(None))
        _seed(tracker, "NIFTY")
        decisions = await scheduler.run_pass(now=_NOW)
        assert decisions == []
        assert engine.calls == []
        assert tracker.peek("NIFTY") is None
        assert routers._last_selection["selected"] is None


# ── Polling loop ─────────────────────────────────────────────────────────


class TestRunLoop:
    @pytest.mark.asyncio
    async def test_max_passes(self):
        engine = FakeEngine()
        scheduler, _ = _make_scheduler(engine)
        results = await scheduler.run(max_passes=3)
        assert len(results) == 9
        assert scheduler.pass_count == 3
        assert not scheduler.running
        assert routers._status["running"] is False
        assert routers._status["indices"] == ["NIFTY", "BANKNIFTY", "SENSEX"]

    @pytest.mark.asyncio
    async def test_tripped_breaker_halts_before_first_pass(self):
        breaker = CircuitBreaker()
        breaker.trip("daily loss limit")
        engine = FakeEngine()
        scheduler, _ = _make_scheduler(engine, breaker=breaker)

        results = await scheduler.run(max_passes=5)

        assert results == []
        assert engine.calls == []
        assert routers._status["halted"] is True
        assert routers._status["halt_reason"] == "daily loss limit"

    @pytest.mark.asyncio
    async def test_breaker_halts_next_pass(self):
        breaker = CircuitBreaker()
        engine = FakeEngine(on_call=lambda key: key == "SENSEX" and breaker.trip("manual"))
        scheduler, _ = _make_scheduler(engine, breaker=breaker)
        await scheduler.run(max_passes=5)
        assert scheduler.pass_count == 1
        assert engine.calls == ["NIFTY", "BANKNIFTY", "SENSEX"]

    @pytest.mark.asyncio
    async def test_period_sleep_is_interruptible(self):
        scheduler, _ = _make_scheduler(period_seconds=30)
        with patch("indexsignal.scheduler.asyncio.sleep", new=AsyncMock()) as sleep:
            sleep.side_effect = lambda seconds: scheduler.stop() if seconds == 1 else None
            await scheduler.run()
        assert scheduler.pass_count == 1
        period_sleeps = [c for c in sleep.await_args_list if c.args[0] == 1]
        assert len(period_sleeps) == 1

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_stop_ends_task(self):
        holder = {}
        engine = FakeEngine(on_call=lambda key: holder["scheduler"].stop())
        scheduler, _ = _make_scheduler(engine)
        holder["scheduler"] = scheduler

        task = scheduler.start()
        assert scheduler.start() is task
        await asyncio.wait_for(task, timeout=2)

        assert engine.calls == ["NIFTY"]
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_stop_before_first_step_is_honoured(self):
        engine = FakeEngine()
        scheduler, _ = _make_scheduler(engine)

        task = scheduler.start()
        scheduler.stop()
        results = await asyncio.wait_for(task, timeout=2)

        assert results == []
        assert engine.calls == []
        assert scheduler.pass_count == 0

        # the pending stop is consumed, so a later run proceeds normally
        await scheduler.run(max_passes=1)
        assert engine.calls == ["NIFTY", "BANKNIFTY", "SENSEX"]
