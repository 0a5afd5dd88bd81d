"""
Resilience - TTL Cache.

============================================================
PURPOSE
============================================================
Keyed in-memory cache with per-entry time-to-live.

- Entry is fresh while age < ttl
- Expiry is lazy: stale entries are dropped on read
- No background sweep
- Last write wins per key

============================================================
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Generic, Hashable, Optional, TypeVar

from core.clock import ClockProtocol, SystemClock


logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """Cached value plus insertion time (monotonic seconds)."""
    value: V
    inserted_at: float

    def age(self, now: float) -> float:
        return now - self.inserted_at


class TTLCache(Generic[V]):
    """
    Thread-safe TTL cache.

    Usage:
        cache = TTLCache(ttl_seconds=60)
        cache.set("SOL", quote)
        quote = cache.get("SOL")  # None once 60s have elapsed
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        clock: Optional[ClockProtocol] = None,
        name: str = "cache",
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = ttl_seconds
        self._clock = clock or SystemClock()
        self._name = name
        self._entries: Dict[Hashable, CacheEntry[V]] = {}
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: Hashable) -> Optional[V]:
        """Return the fresh value for key, or None (expired entries are evicted)."""
        entry = self._get_fresh_entry(key)
        return entry.value if entry is not None else None

    def get_entry(self, key: Hashable) -> Optional[CacheEntry[V]]:
        """Like get() but returns the entry with its insertion time."""
        return self._get_fresh_entry(key)

    def peek(self, key: Hashable) -> Optional[V]:
        """Return the stored value even if stale, without evicting or counting."""
        with self._lock:
            entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def has(self, key: Hashable) -> bool:
        return self._get_fresh_entry(key, count=False) is not None

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, inserted_at=self._clock.monotonic())

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug(f"[{self._name}] cleared")

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"entries": len(self._entries), "hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _get_fresh_entry(self, key: Hashable, count: bool = True) -> Optional[CacheEntry[V]]:
        now = self._clock.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.age(now) >= self._ttl:
                del self._entries[key]
                entry = None
            if count:
                if entry is None:
                    self._misses += 1
                else:
                    self._hits += 1
            return entry
