"""Global circuit breaker — the scheduler's halt switch.

Once tripped the breaker stays tripped; the polling loop checks it at the
start of every pass and exits.  There is no automatic reset.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("indexsignal.risk")


class CircuitBreaker:
    """Latching halt flag, safe to trip from any thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reason: Optional[str] = None
        self._tripped_at: Optional[datetime] = None

    # ── Mutation ─────────────────────────────────────────────────────────

    def trip(self, reason: str) -> None:
        """Activate the breaker.  The first reason wins."""
        with self._lock:
            if self._reason is not None:
                return
            self._reason = reason or "unspecified"
            self._tripped_at = datetime.now(timezone.utc)
        logger.warning("Circuit breaker tripped: %s", self._reason)

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def active(self) -> bool:
        """``True`` once the breaker has been tripped."""
        return self._reason is not None

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    @property
    def tripped_at(self) -> Optional[datetime]:
        return self._tripped_at
