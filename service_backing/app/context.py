"""
Application context owning the cache and concurrency components.
"""

from typing import Any, Dict, Optional

from shared.config import BackingConfig, get_config
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from .caching import CacheService, LocalCache, RemoteCache
from .concurrency import GateRegistry


class BackingServices:
    """Builds one CacheService and the four gates, and manages their lifecycle.

    Create a single instance at process start and pass its members to the
    code that needs them.

    Usage:
        services = BackingServices()
        await services.start()

        user = await services.cache.get("user:42")
        rows = await services.gates.db_read.run(fetch_rows, query)

        await services.stop()
    """

    def __init__(
        self,
        config: Optional[BackingConfig] = None,
        *,
        metrics: Optional[MetricsCollector] = None,
        remote_cache: Optional[RemoteCache] = None,
        setup_logging: bool = False,
    ):
        self.config = config or get_config()
        if setup_logging:
            configure_logging(self.config.service_name, self.config.log_level)
        self.logger = get_logger("backing.context")
        self.metrics = metrics or get_metrics_collector(self.config.service_name)

        self.local_cache = LocalCache(
            default_ttl=self.config.local_cache_default_ttl,
            check_period=self.config.local_cache_check_period,
            max_keys=self.config.local_cache_max_keys,
        )

        if remote_cache is None and self.config.redis_enabled:
            remote_cache = RemoteCache(
                self.config.redis_url,
                connect_timeout=self.config.redis_connect_timeout,
                socket_timeout=self.config.redis_socket_timeout,
                health_check_interval=self.config.redis_health_check_interval,
            )
        self.remote_cache = remote_cache

        self.cache = CacheService(
            self.local_cache,
            self.remote_cache,
            default_ttl=self.config.cache_default_ttl,
            metrics=self.metrics,
        )
        self.gates = GateRegistry.from_config(self.config, metrics=self.metrics)
        self._started = False

    async def start(self):
        """Start the local sweep and connect the remote cache."""
        if self._started:
            return
        await self.local_cache.start()
        if self.remote_cache is not None:
            await self.remote_cache.start()
        else:
            self.logger.info("Remote cache disabled, using local cache only")
        self._started = True
        self.logger.info("Backing services started", cache_backend=self.cache.active_backend.name)

    async def stop(self):
        """Stop background tasks and close connections."""
        if not self._started:
            return
        if self.remote_cache is not None:
            await self.remote_cache.stop()
        await self.local_cache.stop()
        self._started = False
        self.logger.info("Backing services stopped")

    async def __aenter__(self) -> "BackingServices":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of cache and gate state."""
        return {
            "cache": self.cache.get_stats(),
            "gates": self.gates.get_all_states(),
        }
