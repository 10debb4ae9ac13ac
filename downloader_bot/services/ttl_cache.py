# downloader_bot/services/ttl_cache.py

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Hashable


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """Simple TTL-based LRU cache shared by adapters, search and artifacts."""

    MISS = object()

    def __init__(
        self,
        *,
        ttl: float,
        max_entries: int | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max(1, max_entries) if max_entries else None
        self._clock = clock or time.monotonic
        self._entries: OrderedDict[Hashable, _CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if not entry:
                return TTLCache.MISS
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return TTLCache.MISS
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: Hashable, value: Any, *, ttl: float | None = None) -> None:
        expires_at = self._clock() + (ttl if ttl is not None else self.ttl)
        with self._lock:
            self._entries[key] = _CacheEntry(value=value, expires_at=expires_at)
            self._entries.move_to_end(key)
            self._evict_if_needed()

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def items(self) -> list[tuple[Hashable, Any]]:
        """Returns a snapshot of live entries, dropping the expired ones."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
            return [(k, e.value) for k, e in self._entries.items()]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_if_needed(self) -> None:
        if self.max_entries is None:
            return
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
