"""Internal API routers — /status, /decisions, /selection, /scaling endpoints.

Read-only.  No business logic; the scheduler pushes its outcomes in via
the ``update_*`` functions and ``/scaling`` reads the state tracker.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from indexsignal.strategy.models import IndexScoreCandidate, TradeDecision

logger = logging.getLogger("indexsignal.api")
router = APIRouter()

_HISTORY_LIMIT = 50

# ── Shared state (set during app startup) ────────────────────────────────

_DEFAULT_STATUS: dict = {
    "running": False,
    "halted": False,
    "halt_reason": None,
    "pass_count": 0,
    "last_pass_at": None,
    "started_at": None,
    "signal_path": None,
    "indices": [],
}

_status: dict = {**_DEFAULT_STATUS}
_latest_decisions: dict[str, dict] = {}  # index key → latest decision
_decision_history: list[dict] = []  # max 50 entries
_last_selection: Optional[dict] = None
_state_tracker = None  # Set via configure_routers()


def configure_routers(state_tracker=None, status: Optional[dict] = None) -> None:
    """Inject dependencies from the application startup.

    Args:
        state_tracker: ``StateTracker`` read by ``/scaling/{index_key}``.
        status: Optional initial fields for ``/status``.
    """
    global _state_tracker  # noqa: PLW0603
    _state_tracker = state_tracker
    if status:
        _status.update(status)


def reset_routers() -> None:
    """Forget all pushed state (used between test cases)."""
    global _state_tracker, _last_selection  # noqa: PLW0603
    _status.clear()
    _status.update(_DEFAULT_STATUS)
    _latest_decisions.clear()
    _decision_history.clear()
    _last_selection = None
    _state_tracker = None


def update_status(**fields) -> None:
    """Update individual fields of the scheduler status dict."""
    _status.update(fields)


def update_decision(decision: TradeDecision) -> None:
    """Record the latest decision for its index and append it to history."""
    entry = decision.to_dict()
    _latest_decisions[decision.index] = entry
    _decision_history.append(entry)
    if len(_decision_history) > _HISTORY_LIMIT:
        del _decision_history[0]


def update_selection(candidate: Optional[IndexScoreCandidate], evaluated_at: str) -> None:
    """Store the latest index-selection outcome (``None`` = nothing qualified)."""
    global _last_selection  # noqa: PLW0603
    if candidate is None:
        _last_selection = {"selected": None, "evaluated_at": evaluated_at}
        return
    _last_selection = {
        "selected": candidate.index_key,
        "trend_score": candidate.trend_score,
        "breakdown": {
            "pa": candidate.breakdown.pa,
            "ind": candidate.breakdown.ind,
            "mtf": candidate.breakdown.mtf,
            "vol": candidate.breakdown.vol,
        },
        "reason": candidate.reason,
        "evaluated_at": evaluated_at,
    }


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Scheduler state: running / halted, pass count, last pass time."""
    return dict(_status)


@router.get("/decisions")
async def get_decisions():
    """Latest decision per index."""
    return {"decisions": dict(_latest_decisions)}


@router.get("/decisions/history")
async def get_decision_history(limit: int = Query(default=20, ge=1, le=_HISTORY_LIMIT)):
    """Most recent decisions, newest first."""
    recent = list(reversed(_decision_history))[:limit]
    return {"decisions": recent, "total": len(_decision_history)}


@router.get("/selection")
async def get_selection():
    """Last index-selection outcome, or ``null`` before the first selection pass."""
    return {"selection": _last_selection}


@router.get("/scaling/{index_key}")
async def get_scaling(index_key: str):
    """Current consecutive-signal state for one index."""
    if _state_tracker is None:
        raise HTTPException(status_code=503, detail="State tracker not configured")
    state = _state_tracker.peek(index_key)
    if state is None:
        return {"index": index_key.upper(), "active": False, "state": None}
    return {
        "index": index_key.upper(),
        "active": True,
        "state": {
            "direction": state.direction,
            "count": state.count,
            "last_candle_timestamp": state.last_candle_timestamp,
            "last_seen_at": state.last_seen_at,
        },
    }
