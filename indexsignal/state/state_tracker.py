"""Consecutive-signal tracker — drives the position-scaling multiplier.

State lives in an injected ``KeyValueStore`` under ``signal:state:<INDEX>``
with a TTL equal to the configured decay, so a streak that goes quiet
expires on its own.  ``record`` and ``reset`` are the only writers.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from indexsignal.config import ScalingConfig
from indexsignal.state.store import KeyValueStore
from indexsignal.strategy.models import ACTIONABLE_DIRECTIONS, ScalingSnapshot

logger = logging.getLogger("indexsignal.state")

CACHE_PREFIX = "signal:state"

TimestampLike = Union[datetime, int, float, str, None]


@dataclass(frozen=True)
class ScalingState:
    """Stored streak for one index."""

    direction: str
    count: int
    last_candle_timestamp: Optional[int]
    last_seen_at: str


def normalize_timestamp(value: TimestampLike) -> Optional[int]:
    """Epoch seconds for a datetime / number / numeric or ISO string; ``None`` if blank."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    try:
        return int(float(text))
    except ValueError:
        return normalize_timestamp(datetime.fromisoformat(text.replace("Z", "+00:00")))


class StateTracker:
    """Counts same-direction signals per index.

    Args:
        store: Backing key-value store (shared with any read-only observers).
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @staticmethod
    def cache_key(index_key: str) -> str:
        return f"{CACHE_PREFIX}:{index_key.upper()}"

    def record(
        self,
        index_key: str,
        direction: Optional[str],
        candle_timestamp: TimestampLike,
        scaling: ScalingConfig,
        now: Optional[datetime] = None,
    ) -> ScalingSnapshot:
        """Record a validated signal and return the streak count and multiplier.

        Same direction on a newer candle increments the count; same
        direction on the same candle holds it; a new direction restarts at 1.
        With scaling disabled nothing is stored.
        """
        if not scaling.enabled:
            count = 1 if direction in ACTIONABLE_DIRECTIONS else 0
            return ScalingSnapshot(index_key, direction, count=count, multiplier=1)

        key = self.cache_key(index_key)
        previous, found = self._store.get(key)
        current_ts = normalize_timestamp(candle_timestamp)

        if found and previous.direction == direction:
            last_ts = previous.last_candle_timestamp
            advanced = current_ts is not None and (last_ts is None or current_ts > last_ts)
            count = previous.count + 1 if advanced else max(previous.count, 1)
            if not advanced and last_ts is not None:
                current_ts = max(current_ts or last_ts, last_ts)
        else:
            count = 1

        if now is None:
            now = datetime.now(timezone.utc)
        state = ScalingState(
            direction=direction,
            count=count,
            last_candle_timestamp=current_ts,
            last_seen_at=now.isoformat(),
        )
        self._store.set(key, state, max(int(scaling.decay_seconds), 0))

        multiplier = min(max(count, 1), max(int(scaling.max_multiplier), 1))
        logger.info(
            "%s scaling state: direction=%s count=%d multiplier=%d",
            index_key, direction, count, multiplier,
        )
        return ScalingSnapshot(index_key, direction, count=count, multiplier=multiplier)

    def reset(self, index_key: str) -> None:
        """Forget the streak for *index_key*."""
        self._store.delete(self.cache_key(index_key))

    def peek(self, index_key: str) -> Optional[ScalingState]:
        """Read-only view of the stored streak, or ``None``."""
        state, found = self._store.get(self.cache_key(index_key))
        return state if found else None
