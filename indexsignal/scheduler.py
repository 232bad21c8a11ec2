"""Scheduler — the single-worker polling loop over the configured indices.

Indices are evaluated one after another (never in parallel) with a fixed
delay between them, then the loop sleeps for the cycle period.  The
circuit breaker is checked at the start of every pass; once tripped the
loop exits for good.  This is the only place unexpected exceptions from
an index evaluation are caught.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from indexsignal.api.routers import update_decision, update_selection, update_status
from indexsignal.config import IndexConfig, SignalSettings
from indexsignal.engine import SignalEngine
from indexsignal.risk.circuit_breaker import CircuitBreaker
from indexsignal.state.state_tracker import StateTracker
from indexsignal.strategy.index_selector import IndexSelector
from indexsignal.strategy.models import TradeDecision

logger = logging.getLogger("indexsignal.scheduler")


class Scheduler:
    """Drives ``SignalEngine.run_once`` for every enabled index.

    Args:
        engine: The per-index signal engine.
        settings: Signal settings (indices and scheduler pacing).
        state_tracker: Scaling state owner, reset when an index fails.
        breaker: Global halt switch; a fresh one is created if omitted.
        selector: Optional ``IndexSelector``; when given, each pass
            evaluates only the selected index.
    """

    def __init__(
        self,
        engine: SignalEngine,
        settings: SignalSettings,
        state_tracker: StateTracker,
        breaker: Optional[CircuitBreaker] = None,
        selector: Optional[IndexSelector] = None,
    ) -> None:
        self._engine = engine
        self._settings = settings
        self._pacing = settings.scheduler
        self._state = state_tracker
        self._breaker = breaker or CircuitBreaker()
        self._selector = selector
        self._running: bool = False
        self._stop_requested: bool = False
        self._pass_count: int = 0
        self._task: Optional[asyncio.Task] = None

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pass_count(self) -> int:
        return self._pass_count

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def indices(self) -> list[IndexConfig]:
        return self._settings.enabled_indices

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> asyncio.Task:
        """Launch :meth:`run` as a background task (idempotent).

        Must be called from inside a running event loop.
        """
        if self._task is not None and not self._task.done():
            return self._task
        self._stop_requested = False
        self._task = asyncio.create_task(self.run(), name="signal-scheduler")
        return self._task

    def stop(self) -> None:
        """Signal the loop to stop after the current index."""
        self._stop_requested = True
        self._running = False

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(
        self,
        period_seconds: Optional[int] = None,
        max_passes: int = 0,
    ) -> list[TradeDecision]:
        """Run passes until stopped, halted, or *max_passes* is reached.

        Args:
            period_seconds: Sleep between passes.  Defaults to the
                            scheduler settings (30 s).
            max_passes: Stop after this many passes (0 = unlimited).

        Returns:
            Every decision produced, in order.
        """
        if period_seconds is None:
            period_seconds = self._pacing.period_seconds
        if self._stop_requested:
            logger.info("Stop requested before the first pass — scheduler not started")
            self._stop_requested = False
            return []
        self._running = True
        update_status(
            running=True,
            halted=False,
            started_at=datetime.now(timezone.utc).isoformat(),
            signal_path=self._engine.signal_path,
            indices=[i.key for i in self.indices],
        )

        results: list[TradeDecision] = []
        passes = 0
        while self._running:
            # Circuit breaker gates every pass
            if self._breaker.active:
                logger.warning(
                    "Circuit breaker active (%s) — scheduler halting", self._breaker.reason
                )
                update_status(halted=True, halt_reason=self._breaker.reason)
                break

            passes += 1
            try:
                results.extend(await self.run_pass())
            except Exception as exc:
                logger.error("Pass %d error: %s", passes, exc)

            if max_passes > 0 and passes >= max_passes:
                break

            # Interruptible sleep — checks _running every second
            for _ in range(int(period_seconds)):
                if not self._running:
                    break
                await asyncio.sleep(1)

        self._running = False
        self._stop_requested = False
        update_status(running=False)
        return results

    # ── Single pass ──────────────────────────────────────────────────────

    async def run_pass(self, now: Optional[datetime] = None) -> list[TradeDecision]:
        """Evaluate every enabled index once (or only the selected one).

        Args:
            now: Evaluation time handed to the engine.  Defaults to the
                 current time at each index.
        """
        indices = self.indices
        if self._selector is not None:
            indices = await self._select(indices)

        decisions: list[TradeDecision] = []
        for position, index_cfg in enumerate(indices):
            if self._stop_requested or self._breaker.active:
                break
            await asyncio.sleep(0 if position == 0 else self._pacing.inter_index_delay_seconds)
            decisions.append(await self.process_index(index_cfg, now=now))

        self._pass_count += 1
        update_status(
            pass_count=self._pass_count,
            last_pass_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info(
            "Pass %d complete: %s",
            self._pass_count,
            ", ".join(f"{d.index}={d.status}" for d in decisions) or "no indices evaluated",
        )
        return decisions

    async def process_index(
        self, index_cfg: IndexConfig, now: Optional[datetime] = None
    ) -> TradeDecision:
        """Evaluate one index behind the exception (and optional timeout) boundary."""
        key = index_cfg.key
        timeout = self._pacing.index_timeout_seconds
        try:
            if timeout:
                decision = await asyncio.wait_for(
                    self._engine.run_once(index_cfg, now=now), timeout=timeout
                )
            else:
                decision = await self._engine.run_once(index_cfg, now=now)
        except asyncio.TimeoutError:
            logger.error("%s evaluation timed out after %ss", key, timeout)
            decision = self._failed(key, f"Evaluation timed out after {timeout}s")
        except Exception as exc:
            logger.error("%s evaluation error: %s", key, exc)
            decision = self._failed(key, f"{type(exc).__name__}: {exc}")

        update_decision(decision)
        return decision

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _select(self, indices: list[IndexConfig]) -> list[IndexConfig]:
        winner = await self._selector.select_best_index(indices)
        update_selection(winner, datetime.now(timezone.utc).isoformat())
        # indices that lost the selection produce no signal this cycle
        for index_cfg in indices:
            if winner is None or index_cfg.key != winner.index_key:
                self._state.reset(index_cfg.key)
        if winner is None:
            return []
        return [i for i in indices if i.key == winner.index_key]

    def _failed(self, key: str, reason: str) -> TradeDecision:
        self._state.reset(key)
        return TradeDecision(
            index=key,
            status="error",
            reason=reason,
            evaluated_at=datetime.now(timezone.utc).isoformat(),
        )
