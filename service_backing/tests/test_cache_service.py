"""
Unit tests for the fail-open CacheService facade.
"""

import asyncio
import json
import pytest
from unittest.mock import AsyncMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from redis.exceptions import ConnectionError as RedisConnectionError

from service_backing.app.caching.cache_service import CacheService
from service_backing.app.caching.local_cache import LocalCache
from service_backing.app.caching.remote_cache import RemoteCache
from shared.metrics import MetricsCollector


class TestCacheServiceLocalOnly:
    """CacheService without a remote backend."""

    @pytest.fixture
    def local_cache(self):
        return LocalCache(max_keys=10)

    @pytest.fixture
    def cache_service(self, local_cache):
        """Create CacheService backed only by the local cache."""
        return CacheService(local_cache)

    @pytest.fixture
    def mock_profile(self):
        """Mock nested value."""
        return {
            "id": 42,
            "name": "Ada",
            "roles": ["admin", "editor"],
            "settings": {"theme": "dark", "notifications": True},
            "score": 9.5,
        }

    @pytest.mark.asyncio
    async def test_round_trip(self, cache_service, mock_profile):
        """A value read back right after set is deep-equal."""
        await cache_service.set("user:42", mock_profile, 60)

        assert await cache_service.get("user:42") == mock_profile

    @pytest.mark.asyncio
    async def test_round_trip_does_not_alias(self, cache_service, mock_profile):
        """Mutating the original after set does not change the cached copy."""
        await cache_service.set("user:42", mock_profile, 60)
        mock_profile["roles"].append("owner")

        cached = await cache_service.get("user:42")
        assert cached["roles"] == ["admin", "editor"]

    @pytest.mark.asyncio
    async def test_falsy_values_round_trip(self, cache_service):
        """Zero, empty string and False are hits, not misses."""
        for key, value in (("zero", 0), ("empty", ""), ("flag", False), ("list", [])):
            await cache_service.set(key, value, 60)
            assert await cache_service.get(key) == value

    @pytest.mark.asyncio
    async def test_expiry(self, cache_service):
        """Entries disappear after their TTL."""
        await cache_service.set("short", {"v": 1}, 1)
        await asyncio.sleep(1.1)

        assert await cache_service.get("short") is None

    @pytest.mark.asyncio
    async def test_deletion(self, cache_service):
        """Deleted keys read back as None."""
        await cache_service.set("a", 1)
        await cache_service.delete("a")

        assert await cache_service.get("a") is None

    @pytest.mark.asyncio
    async def test_delete_by_pattern(self, cache_service):
        """Only keys matching the pattern are removed."""
        await cache_service.set("user:1", {"id": 1})
        await cache_service.set("user:2", {"id": 2})
        await cache_service.set("order:1", {"id": 1})

        await cache_service.delete_by_pattern("user:*")

        assert await cache_service.get("user:1") is None
        assert await cache_service.get("user:2") is None
        assert await cache_service.get("order:1") == {"id": 1}

    @pytest.mark.asyncio
    async def test_default_ttl(self, local_cache):
        """Set without a TTL uses the service default."""
        cache_service = CacheService(local_cache, default_ttl=600)

        with patch.object(local_cache, "set", new_callable=AsyncMock) as mock_set:
            await cache_service.set("k", {"a": 1})

        mock_set.assert_awaited_once_with("k", json.dumps({"a": 1}), 600)

    @pytest.mark.asyncio
    async def test_non_positive_ttl_is_skipped(self, cache_service):
        """A TTL of zero or less is logged and ignored."""
        await cache_service.set("k", "v", 0)

        assert await cache_service.get("k") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", ["60", 1.5, True])
    async def test_non_integer_ttl_is_skipped(self, cache_service, ttl):
        """A TTL that is not an integer is logged and ignored, never raised."""
        await cache_service.set("k", "v", ttl)

        assert await cache_service.get("k") is None
        assert cache_service.get_stats()["errors"] == 0

    @pytest.mark.asyncio
    async def test_unserializable_value_fails_open(self, cache_service):
        """Serialization failures are swallowed."""
        await cache_service.set("bad", {"value": object()})

        assert await cache_service.get("bad") is None
        assert cache_service.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_full_local_cache_fails_open(self):
        """Capacity exhaustion turns the write into a no-op."""
        cache_service = CacheService(LocalCache(max_keys=1))
        await cache_service.set("a", 1)
        await cache_service.set("b", 2)

        assert await cache_service.get("a") == 1
        assert await cache_service.get("b") is None

    @pytest.mark.asyncio
    async def test_backend_errors_never_raise(self, cache_service, local_cache):
        """Any backend exception becomes a miss or a no-op."""
        failure = AsyncMock(side_effect=RuntimeError("disk on fire"))
        with patch.object(local_cache, "get", new=failure), \
             patch.object(local_cache, "set", new=failure), \
             patch.object(local_cache, "delete", new=failure), \
             patch.object(local_cache, "delete_pattern", new=failure):

            assert await cache_service.get("k") is None
            await cache_service.set("k", 1)
            await cache_service.delete("k")
            await cache_service.delete_by_pattern("k*")

        assert cache_service.get_stats()["errors"] == 4

    @pytest.mark.asyncio
    async def test_corrupt_payload_is_a_miss(self, cache_service, local_cache):
        """Undecodable payloads are treated as misses."""
        await local_cache.set("k", "{not json", 60)

        assert await cache_service.get("k") is None

    @pytest.mark.asyncio
    async def test_stats(self, cache_service):
        """Stats count hits and misses."""
        await cache_service.set("k", 1)
        await cache_service.get("k")
        await cache_service.get("missing")

        stats = cache_service.get_stats()
        assert stats["active_backend"] == "local"
        assert stats["remote_configured"] is False
        assert stats["remote_healthy"] is False
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["local_entries"] == 1


class TestCacheServiceWithRemote:
    """CacheService backend selection with a Redis backend."""

    @pytest.fixture
    def mock_redis(self):
        client = AsyncMock()
        client.ping.return_value = True
        return client

    @pytest.fixture
    def remote_cache(self, mock_redis):
        return RemoteCache("redis://localhost:6379/0", client=mock_redis)

    @pytest.fixture
    def local_cache(self):
        return LocalCache()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("backing")

    @pytest.fixture
    def cache_service(self, local_cache, remote_cache, metrics):
        return CacheService(local_cache, remote_cache, metrics=metrics)

    @pytest.mark.asyncio
    async def test_local_until_remote_ready(self, cache_service, remote_cache, local_cache):
        """The local cache serves until Redis reports ready."""
        assert cache_service.active_backend is local_cache

        await remote_cache.ping()

        assert cache_service.remote_healthy is True
        assert cache_service.active_backend is remote_cache

    @pytest.mark.asyncio
    async def test_uses_remote_when_healthy(self, cache_service, remote_cache, mock_redis):
        """Reads and writes go to Redis while it is healthy."""
        await remote_cache.ping()
        mock_redis.get.return_value = json.dumps({"id": 7})

        await cache_service.set("user:7", {"id": 7}, 120)
        result = await cache_service.get("user:7")

        assert result == {"id": 7}
        mock_redis.set.assert_awaited_once_with("user:7", json.dumps({"id": 7}), ex=120)
        mock_redis.get.assert_awaited_once_with("user:7")

    @pytest.mark.asyncio
    async def test_remote_pattern_delete(self, cache_service, remote_cache, mock_redis):
        """Pattern deletion on Redis uses KEYS then one DEL."""
        await remote_cache.ping()
        mock_redis.keys.return_value = ["user:1", "user:2"]

        await cache_service.delete_by_pattern("user:*")

        mock_redis.keys.assert_awaited_once_with("user:*")
        mock_redis.delete.assert_awaited_once_with("user:1", "user:2")

    @pytest.mark.asyncio
    async def test_fallback_when_remote_unreachable(self, cache_service, remote_cache, mock_redis):
        """With Redis down, set/get work against the local cache only."""
        mock_redis.ping.side_effect = RedisConnectionError("connection refused")
        await remote_cache.ping()

        await cache_service.set("k", {"a": 1})
        assert await cache_service.get("k") == {"a": 1}

        mock_redis.set.assert_not_called()
        mock_redis.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_connection_loss_switches_to_local(self, cache_service, remote_cache, mock_redis, local_cache):
        """A failed Redis command flips later calls to the local cache."""
        await remote_cache.ping()
        mock_redis.get.side_effect = RedisConnectionError("reset")

        assert await cache_service.get("k") is None
        assert cache_service.active_backend is local_cache

        await cache_service.set("k", "local")
        assert await cache_service.get("k") == "local"

    @pytest.mark.asyncio
    async def test_reconnection_switches_back(self, cache_service, remote_cache, mock_redis):
        """A later ready event restores Redis without a restart."""
        mock_redis.ping.side_effect = RedisConnectionError("down")
        await remote_cache.ping()
        assert cache_service.remote_healthy is False

        mock_redis.ping.side_effect = None
        await remote_cache.ping()

        assert cache_service.remote_healthy is True
        assert cache_service.active_backend is remote_cache

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, cache_service, remote_cache, mock_redis, metrics):
        """Operations and the active backend are exported as metrics."""
        await remote_cache.ping()
        mock_redis.get.return_value = None

        await cache_service.get("missing")

        assert metrics.get_sample_value(
            "cache_operations_total", operation="get", backend="remote", result="miss"
        ) == 1.0
        assert metrics.get_sample_value("cache_backend_active", backend="remote") == 1.0
        assert metrics.get_sample_value("cache_backend_active", backend="local") == 0.0

    @pytest.mark.asyncio
    async def test_falls_back_after_remote_stop(self, cache_service, remote_cache, local_cache, mock_redis):
        """Stopping the remote cache hands requests back to the local cache."""
        await remote_cache.start()
        assert cache_service.active_backend is remote_cache

        await remote_cache.stop()
        await cache_service.set("k", 1)

        assert cache_service.active_backend is local_cache
        assert await cache_service.get("k") == 1
        stats = cache_service.get_stats()
        assert stats["active_backend"] == "local"
        assert stats["remote_healthy"] is False
        assert stats["errors"] == 0
        mock_redis.set.assert_not_called()
