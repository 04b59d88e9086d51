"""
Redis-backed cache shared across processes.
"""

import asyncio
from typing import Any, Callable, List, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from shared.errors import CacheError, CacheUnavailableError
from shared.logging import get_logger
from .base import Cache


EVENT_READY = "ready"
EVENT_ERROR = "error"

StatusListener = Callable[[str, Optional[BaseException]], Any]


class RemoteCache(Cache):
    """Redis cache client with connection health events.

    ``start`` connects lazily: if Redis is down the cache reports an ``error``
    event and keeps probing in the background. Listeners are told about every
    transition between ``ready`` and ``error``.
    """

    name = "remote"

    def __init__(
        self,
        redis_url: str,
        *,
        connect_timeout: float = 10.0,
        socket_timeout: float = 5.0,
        health_check_interval: float = 30.0,
        client: Optional[redis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.connect_timeout = connect_timeout
        self.socket_timeout = socket_timeout
        self.health_check_interval = health_check_interval
        self.logger = get_logger("backing.cache.remote")

        self.redis: Optional[redis.Redis] = client
        self._status: Optional[str] = None
        self._listeners: List[StatusListener] = []
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def status(self) -> Optional[str]:
        """Last observed connection state, None before the first probe."""
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status == EVENT_READY

    def add_listener(self, listener: StatusListener) -> None:
        """Register a callback invoked as ``listener(event, error)``."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def start(self):
        """Connect to Redis and start the health monitor."""
        if self.redis is None:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.connect_timeout,
                socket_timeout=self.socket_timeout,
                retry_on_timeout=True,
            )

        if not await self.ping():
            self.logger.warning(
                "Redis unavailable at startup, continuing on local cache",
                redis_url=self.redis_url,
            )

        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.create_task(self._monitor_loop())

    async def stop(self):
        """Stop the health monitor and close the connection pool."""
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

        if self.redis is not None:
            try:
                await self.redis.aclose()
            except RedisError as exc:
                self.logger.warning("Error closing Redis connection", error=str(exc))
            self.redis = None
            self.logger.info("Remote cache stopped")
            self._transition(EVENT_ERROR, CacheUnavailableError())

    async def ping(self) -> bool:
        """Probe Redis once and publish the resulting state."""
        if self.redis is None:
            self._transition(EVENT_ERROR, CacheUnavailableError())
            return False
        try:
            await self.redis.ping()
        except (RedisError, OSError) as exc:
            self._transition(EVENT_ERROR, exc)
            return False
        self._transition(EVENT_READY, None)
        return True

    async def _monitor_loop(self):
        while True:
            await asyncio.sleep(self.health_check_interval)
            try:
                await self.ping()
            except Exception as exc:
                self.logger.error("Redis health check failed", redis_url=self.redis_url, error=str(exc))

    def _transition(self, event: str, error: Optional[BaseException]) -> None:
        if event == self._status:
            return
        self._status = event
        if event == EVENT_READY:
            self.logger.info("Redis connection ready", redis_url=self.redis_url)
        else:
            self.logger.error("Redis connection error", redis_url=self.redis_url, error=str(error))

        for listener in list(self._listeners):
            try:
                listener(event, error)
            except Exception as exc:
                self.logger.error("Cache status listener failed", cache_event=event, error=str(exc))

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise CacheUnavailableError()
        return self.redis

    def _wrap(self, operation: str, exc: Exception) -> CacheError:
        if isinstance(exc, (RedisConnectionError, RedisTimeoutError, OSError)):
            self._transition(EVENT_ERROR, exc)
        return CacheError("remote", f"{operation} failed: {exc}", {"operation": operation})

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self._client().get(key)
        except (RedisError, OSError) as exc:
            raise self._wrap("get", exc) from exc
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            await self._client().set(key, value, ex=ttl)
        except (RedisError, OSError) as exc:
            raise self._wrap("set", exc) from exc

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self._client().delete(*keys))
        except (RedisError, OSError) as exc:
            raise self._wrap("delete", exc) from exc

    async def keys(self, pattern: str = "*") -> List[str]:
        try:
            found = await self._client().keys(pattern)
        except (RedisError, OSError) as exc:
            raise self._wrap("keys", exc) from exc
        return [k.decode("utf-8") if isinstance(k, bytes) else k for k in found]
