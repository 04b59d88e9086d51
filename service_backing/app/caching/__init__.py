"""
Caching package.

A fail-open cache facade that serves from Redis while it is reachable and
falls back to a bounded in-process cache otherwise.
"""

from .base import Cache
from .cache_service import CacheService
from .local_cache import CacheEntry, LocalCache
from .remote_cache import EVENT_ERROR, EVENT_READY, RemoteCache

__all__ = [
    "Cache",
    "CacheEntry",
    "CacheService",
    "LocalCache",
    "RemoteCache",
    "EVENT_READY",
    "EVENT_ERROR",
]
