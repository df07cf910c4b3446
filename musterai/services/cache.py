from __future__ import annotations

import asyncio
from collections import OrderedDict
import time
from typing import Callable, Generic, TypeVar


V = TypeVar("V")


class TtlCache(Generic[V]):
    """Bounded time-to-live map owned by whoever constructs it.

    Entries expire ``ttl_s`` seconds after insertion; when full, the least
    recently written entry is evicted first.
    """

    def __init__(
        self,
        *,
        ttl_s: float,
        max_entries: int,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        self._ttl_s = ttl_s
        self._max_entries = max(1, max_entries)
        self._time_provider = time_provider or time.monotonic
        self._entries: OrderedDict[str, tuple[float, V]] = OrderedDict()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self._ttl_s > 0

    async def get(self, key: str) -> V | None:
        if not self.enabled:
            return None
        now = self._time_provider()
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                self._entries.pop(key, None)
                return None
            return value

    async def set(self, key: str, value: V) -> None:
        if not self.enabled:
            return
        now = self._time_provider()
        async with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (now + self._ttl_s, value)
            self._evict(now)

    def _evict(self, now: float) -> None:
        # Drop expired entries first, then the oldest writes beyond capacity.
        expired = [key for key, (expires_at, _value) in self._entries.items() if expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)
