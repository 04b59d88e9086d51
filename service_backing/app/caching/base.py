"""
Cache backend interface.
"""

from abc import ABC, abstractmethod
from typing import List, Optional


class Cache(ABC):
    """Key-value store holding serialized payloads with a per-entry TTL.

    Backends raise ``CacheError`` subclasses on failure; the fail-open policy
    lives in ``CacheService``, not here.
    """

    name: str = "cache"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored payload, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""

    @abstractmethod
    async def keys(self, pattern: str = "*") -> List[str]:
        """List live keys matching a glob pattern."""

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching ``pattern``."""
        matched = await self.keys(pattern)
        if not matched:
            return 0
        return await self.delete(*matched)
