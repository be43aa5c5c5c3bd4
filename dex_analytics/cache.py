"""
In-process TTL cache used as a read-through accelerator.

Entries are (value, expires_at) pairs. Expired entries are dropped lazily
on read and by prune(). A miss is never an error.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from dex_analytics.interfaces import TimeProvider, get_time_provider

logger = logging.getLogger(__name__)


class InMemoryCacheService:
    """
    Dictionary-backed CacheService.

    Values are stored as-is; callers only cache immutable snapshots.
    """

    def __init__(self, time_provider: Optional[TimeProvider] = None):
        self.time_provider = time_provider or get_time_provider()
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self.hits = 0
        self.misses = 0

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        value, expires_at = entry
        if self.time_provider.current_timestamp() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return None

        self.hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return
        expires_at = self.time_provider.current_timestamp() + ttl
        self._entries[key] = (value, expires_at)

    async def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def prune(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self.time_provider.current_timestamp()
        expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Pruned {len(expired)} expired cache entries")
        return len(expired)

    def clear(self) -> None:
        """Clear the cache (useful for testing)."""
        self._entries.clear()
        logger.info("Cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        now = self.time_provider.current_timestamp()
        fresh = sum(1 for _, exp in self._entries.values() if now < exp)
        return {
            "total_cached": len(self._entries),
            "fresh": fresh,
            "stale": len(self._entries) - fresh,
            "hits": self.hits,
            "misses": self.misses,
        }
