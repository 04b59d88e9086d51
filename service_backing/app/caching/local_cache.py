"""
In-process TTL cache used when the remote cache is not reachable.
"""

import asyncio
import fnmatch
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from shared.errors import CacheFullError
from shared.logging import get_logger
from .base import Cache


DEFAULT_TTL = 600
DEFAULT_CHECK_PERIOD = 120.0
DEFAULT_MAX_KEYS = 1000


@dataclass
class CacheEntry:
    """A stored payload and its absolute expiry on the cache clock."""
    key: str
    value: str
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class LocalCache(Cache):
    """Bounded in-memory cache with lazy and periodic expiry.

    Every access to the entry table holds one lock. The synchronous members
    (``prune_expired``, ``flush_all``, ``stats`` and ``len()``) may be called
    from worker threads; the async operations belong to the event loop.
    """

    name = "local"

    def __init__(
        self,
        default_ttl: int = DEFAULT_TTL,
        check_period: float = DEFAULT_CHECK_PERIOD,
        max_keys: int = DEFAULT_MAX_KEYS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.check_period = check_period
        self.max_keys = max_keys
        self.logger = get_logger("backing.cache.local")

        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

        self._sweep_task: Optional[asyncio.Task] = None

    async def start(self):
        """Start the periodic expiry sweep."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        self.logger.info("Local cache started", check_period=self.check_period, max_keys=self.max_keys)

    async def stop(self):
        """Stop the periodic expiry sweep."""
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
        self.logger.info("Local cache stopped")

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.check_period)
            removed = self.prune_expired()
            if removed:
                self.logger.debug("Swept expired entries", removed=removed)

    def prune_expired(self) -> int:
        """Drop every expired entry, returning how many were removed."""
        with self._lock:
            return self._prune_locked(self._clock())

    def _prune_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self.max_keys:
                # Reclaim expired slots before refusing the write.
                self._prune_locked(now)
                if len(self._entries) >= self.max_keys:
                    raise CacheFullError(self.max_keys, {"key": key})
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=now + ttl)

    async def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
        return removed

    async def keys(self, pattern: str = "*") -> List[str]:
        with self._lock:
            now = self._clock()
            return [
                key for key, entry in self._entries.items()
                if not entry.expired(now) and fnmatch.fnmatchcase(key, pattern)
            ]

    async def delete_pattern(self, pattern: str) -> int:
        removed = 0
        for key in await self.keys(pattern):
            removed += await self.delete(key)
        return removed

    def flush_all(self) -> None:
        """Remove every entry and reset statistics."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "keys": len(self._entries),
                "max_keys": self.max_keys,
            }
