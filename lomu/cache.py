import time
import asyncio
from collections import OrderedDict
from typing import Any, Optional


class TTLCache:
    """In-process cache with per-entry expiry and a size bound.

    Eviction is time-based; when the bound is hit the entry closest to expiry goes first.
    """

    def __init__(self, max_entries: int = 5000, default_ttl: int = 86400):
        # key -> (value, expires_at), kept in insertion order
        self._store: "OrderedDict[str, tuple[Any, float]]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._max_entries = max(1, int(max_entries))
        self._default_ttl = int(default_ttl)

    async def get(self, key: str) -> Optional[Any]:
        now = time.time()
        async with self._lock:
            item = self._store.get(key)
            if not item:
                return None
            value, exp = item
            if exp < now:
                self._store.pop(key, None)
                return None
            return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else max(0, int(ttl_seconds))
        exp = time.time() + ttl
        async with self._lock:
            self._store.pop(key, None)
            self._store[key] = (value, exp)
            if len(self._store) > self._max_entries:
                self._evict(time.time())

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def _evict(self, now: float) -> None:
        for key in [k for k, (_, exp) in self._store.items() if exp < now]:
            self._store.pop(key, None)
        while len(self._store) > self._max_entries:
            oldest = min(self._store, key=lambda k: self._store[k][1])
            self._store.pop(oldest, None)
