import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from loguru import logger

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Supplier = Callable[[K], Awaitable[Optional[V]]]


class TTLCache(Generic[K, V]):
    """Memoizes an expensive async lookup per key for ``ttl``.

    Entries are only replaced lazily on the first access after they expire.
    A lookup that finds nothing, or that raises, is never stored. Concurrent
    refreshes of the same key share one supplier call.
    """

    def __init__(self, ttl: timedelta):
        if isinstance(ttl, (int, float)):
            ttl = timedelta(seconds=ttl)
        self.ttl = ttl
        self._entries: Dict[K, Tuple[V, datetime]] = {}
        self._locks: Dict[K, asyncio.Lock] = {}
        self.logger = logger

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Any) -> bool:
        return key in self._entries

    def _live_value(self, key: K, now: datetime) -> Tuple[bool, Optional[V]]:
        entry = self._entries.get(key)
        if entry is not None and now < entry[1]:
            return True, entry[0]
        return False, None

    async def get(
        self, key: K, supplier: Supplier, now: Optional[datetime] = None
    ) -> Optional[V]:
        if now is None:
            current = datetime.now(timezone.utc)
        else:
            # naive times are taken as local time
            current = now.astimezone(timezone.utc)

        hit, value = self._live_value(key, current)
        if hit:
            return value

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # another caller may have refreshed the key while we waited
            hit, value = self._live_value(key, current)
            if hit:
                return value

            value = await supplier(key)
            if value is None:
                self.logger.debug(f"No value found for {key!r}, not caching")
                return None

            self._entries[key] = (value, current + self.ttl)
            self.logger.debug(f"Cached {key!r} until {current + self.ttl}")
            return value

    def invalidate(self, key: K) -> None:
        self._entries.pop(key, None)
        self._drop_lock(key)

    def clear(self) -> None:
        self._entries.clear()
        for key in list(self._locks):
            self._drop_lock(key)

    def _drop_lock(self, key: K) -> None:
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]
