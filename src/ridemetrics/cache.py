"""Time-to-live cache with an injected clock.

Construct one per process and pass it to whatever needs memoization;
nothing in ridemetrics keeps a module-level cache.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, TypeVar

_V = TypeVar("_V")


@dataclass
class _Entry(Generic[_V]):
    value: _V
    expires_at: float


class TTLCache(Generic[_V]):
    """Values expire ``ttl_seconds`` after they were computed.

    ``clock`` must be monotonic and return seconds; tests pass a fake.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[Hashable, _Entry[_V]] = {}
        self._lock = threading.RLock()

    def get(self, key: Hashable) -> _V | None:
        """Return the live value for *key*, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                return None
            return entry.value

    def get_or_compute(self, key: Hashable, ttl_seconds: float, factory: Callable[[], _V]) -> _V:
        """Return the cached value for *key* or materialise it via *factory*.

        A non-positive TTL disables caching for the call.  Exceptions from
        *factory* propagate and nothing is stored.
        """
        if ttl_seconds <= 0:
            return factory()
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is not None and now < entry.expires_at:
                return entry.value
            value = factory()
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)
            return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
