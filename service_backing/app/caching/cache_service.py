"""
Fail-open cache facade over the remote and local backends.
"""

import json
from typing import Any, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger
from .base import Cache
from .local_cache import LocalCache
from .remote_cache import EVENT_READY, RemoteCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TTL = 600

_RESULT_COUNTERS = {"hit": "hits", "miss": "misses", "error": "errors"}


class CacheService:
    """Backend-agnostic cache that never raises to its callers.

    Redis serves requests while its connection reports ready; otherwise the
    local cache does. The active backend is swapped from the remote cache's
    status events, so requests never wait on a health probe.
    """

    def __init__(
        self,
        local_cache: LocalCache,
        remote_cache: Optional[RemoteCache] = None,
        *,
        default_ttl: int = DEFAULT_TTL,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.local_cache = local_cache
        self.remote_cache = remote_cache
        self.default_ttl = default_ttl
        self.metrics = metrics
        self.logger = get_logger("backing.cache.service")

        self._remote_healthy = False
        self._active: Cache = local_cache
        self._counters = {"hits": 0, "misses": 0, "errors": 0}

        if remote_cache is not None:
            remote_cache.add_listener(self._on_remote_status)
            self._set_remote_healthy(remote_cache.is_ready)
        elif self.metrics:
            self.metrics.set_active_backend(self._active.name)

    @property
    def remote_healthy(self) -> bool:
        return self._remote_healthy

    @property
    def active_backend(self) -> Cache:
        return self._active

    def _on_remote_status(self, event: str, error: Optional[BaseException]) -> None:
        self._set_remote_healthy(event == EVENT_READY)

    def _set_remote_healthy(self, healthy: bool) -> None:
        healthy = healthy and self.remote_cache is not None
        previous = self._active
        self._remote_healthy = healthy
        self._active = self.remote_cache if healthy else self.local_cache

        if previous is not self._active:
            self.logger.info("Cache backend switched", backend=self._active.name, previous=previous.name)
        if self.metrics:
            self.metrics.set_active_backend(self._active.name)

    def _record(self, operation: str, backend: Cache, result: str) -> None:
        counter = _RESULT_COUNTERS.get(result)
        if counter:
            self._counters[counter] += 1
        if self.metrics:
            self.metrics.record_cache_operation(operation, backend.name, result)

    async def get(self, key: str) -> Optional[Any]:
        """Get a cached value, or None on miss or any cache failure."""
        backend = self._active
        try:
            raw = await backend.get(key)
            if raw is None:
                self._record("get", backend, "miss")
                return None
            value = json.loads(raw)
        except Exception as exc:
            self._record("get", backend, "error")
            self.logger.error("Cache read error", key=key, backend=backend.name, error=str(exc))
            return None

        self._record("get", backend, "hit")
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Cache a JSON-serializable value for ``ttl`` seconds (default 600)."""
        ttl = self.default_ttl if ttl is None else ttl
        backend = self._active
        if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
            self.logger.warning("Cache write skipped, ttl must be a positive integer", key=key, ttl=ttl)
            return

        try:
            payload = json.dumps(value)
            await backend.set(key, payload, ttl)
        except Exception as exc:
            self._record("set", backend, "error")
            self.logger.error("Cache write error", key=key, backend=backend.name, error=str(exc))
            return

        self._record("set", backend, "ok")

    async def delete(self, key: str) -> None:
        """Remove a key from the active backend."""
        backend = self._active
        try:
            await backend.delete(key)
        except Exception as exc:
            self._record("delete", backend, "error")
            self.logger.error("Cache delete error", key=key, backend=backend.name, error=str(exc))
            return

        self._record("delete", backend, "ok")

    async def delete_by_pattern(self, pattern: str) -> None:
        """Remove every key matching a glob pattern such as ``user:*``."""
        backend = self._active
        try:
            removed = await backend.delete_pattern(pattern)
        except Exception as exc:
            self._record("delete_pattern", backend, "error")
            self.logger.error("Cache pattern delete error", pattern=pattern, backend=backend.name, error=str(exc))
            return

        self._record("delete_pattern", backend, "ok")
        if removed:
            self.logger.info("Cleared cache pattern", pattern=pattern, backend=backend.name, keys_count=removed)

    def get_stats(self) -> Dict[str, Any]:
        """Summarize backend selection and hit/miss counters."""
        total = self._counters["hits"] + self._counters["misses"]
        return {
            "active_backend": self._active.name,
            "remote_configured": self.remote_cache is not None,
            "remote_healthy": self._remote_healthy,
            "hits": self._counters["hits"],
            "misses": self._counters["misses"],
            "errors": self._counters["errors"],
            "hit_rate": round(self._counters["hits"] / total, 4) if total > 0 else 0.0,
            "local_entries": len(self.local_cache),
        }
