"""Key-value store with per-entry TTL.

``KeyValueStore`` is the contract the state tracker depends on;
``InMemoryTTLStore`` is the process-local implementation.  The clock is
injectable so tests can move time forward without sleeping.
"""

import threading
import time
from typing import Any, Callable, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> tuple[Any, bool]:
        """Return ``(value, found)``."""
        ...

    def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryTTLStore:
    """Thread-safe dict with lazy expiry.

    An entry set with ``ttl_seconds <= 0`` expires immediately.

    Args:
        clock: Monotonic seconds source (defaults to ``time.monotonic``).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[Any, bool]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None, False
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._data[key]
                return None, False
            return value, True

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + max(ttl_seconds, 0))

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        """Live (unexpired) keys."""
        now = self._clock()
        with self._lock:
            return [k for k, (_, exp) in self._data.items() if now < exp]

