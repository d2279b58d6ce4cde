"""Counter store abstraction + in-process implementation."""

import math
import time
from abc import ABC, abstractmethod


class CounterStore(ABC):
    """Shared key-value store of expiring integer counters.

    Implementations own per-key atomicity and expiry; callers never delete
    counters explicitly.
    """

    @abstractmethod
    async def get_count(self, key: str) -> int:
        """Current value of ``key``, 0 if absent or expired.

        Raises:
            CounterStoreUnavailable: the backing store failed.
        """
        ...

    @abstractmethod
    async def increment(self, key: str, ttl_seconds: int) -> int:
        """Add one to ``key`` and return the new value.

        The counter expires ``ttl_seconds`` after it is first created.

        Raises:
            CounterStoreUnavailable: the backing store failed.
        """
        ...


class MemoryCounterStore(CounterStore):
    """Process-local counters. Exact only while a single worker serves traffic.

    Window keys are never read again once their window ends, so expired
    entries are swept on write rather than waiting for a lookup.
    """

    def __init__(self):
        # key -> (count, expires_at epoch seconds)
        self._counters: dict[str, tuple[int, float]] = {}
        # Earliest expires_at still in the map
        self._next_expiry = math.inf

    def _live(self, key: str) -> tuple[int, float] | None:
        entry = self._counters.get(key)
        if entry is None:
            return None
        if time.time() >= entry[1]:
            del self._counters[key]
            return None
        return entry

    async def get_count(self, key: str) -> int:
        entry = self._live(key)
        return entry[0] if entry else 0

    def _sweep(self, now: float) -> None:
        if now < self._next_expiry:
            return
        self._counters = {k: v for k, v in self._counters.items() if v[1] > now}
        self._next_expiry = min((v[1] for v in self._counters.values()), default=math.inf)

    async def increment(self, key: str, ttl_seconds: int) -> int:
        now = time.time()
        self._sweep(now)
        entry = self._live(key)
        if entry is None:
            entry = (0, now + ttl_seconds)
            self._next_expiry = min(self._next_expiry, entry[1])
        count = entry[0] + 1
        self._counters[key] = (count, entry[1])
        return count

    def clear(self) -> None:
        """Drop all counters. Useful for testing."""
        self._counters.clear()
        self._next_expiry = math.inf
