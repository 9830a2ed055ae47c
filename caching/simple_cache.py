"""
Simple In-Memory Caching System
Caches backend reference data (platform settings, operators, fee configs)
"""

import time
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class SimpleCache:
    """In-memory cache with TTL support"""

    def __init__(self, default_ttl: int = 300, clock: Callable[[], float] = time.time):
        self._cache: Dict[str, Dict[str, Any]] = {}
        self.default_ttl = default_ttl
        self._clock = clock
        self.stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0, "evictions": 0}

    def get(self, key: str, default: Any = None) -> Any:
        """Get value from cache"""
        self._cleanup_expired()

        if key in self._cache:
            entry = self._cache[key]
            if entry["expires_at"] > self._clock():
                self.stats["hits"] += 1
                return entry["value"]
            del self._cache[key]
            self.stats["evictions"] += 1

        self.stats["misses"] += 1
        return default

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set value in cache with TTL"""
        if ttl is None:
            ttl = self.default_ttl

        now = self._clock()
        self._cache[key] = {
            "value": value,
            "created_at": now,
            "expires_at": now + ttl,
        }
        self.stats["sets"] += 1

    def delete(self, key: str) -> bool:
        """Delete key from cache"""
        if key in self._cache:
            del self._cache[key]
            self.stats["deletes"] += 1
            return True
        return False

    def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix"""
        keys = [key for key in self._cache if key.startswith(prefix)]
        for key in keys:
            self.delete(key)
        return len(keys)

    def clear(self) -> None:
        """Clear all cache entries"""
        cleared_count = len(self._cache)
        self._cache.clear()
        self.stats["deletes"] += cleared_count

    async def get_or_load(
        self, key: str, loader: Callable[[], Awaitable[Any]], ttl: Optional[int] = None
    ) -> Any:
        """Return the cached value or await loader() and cache its result"""
        value = self.get(key)
        if value is not None:
            return value
        value = await loader()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def _cleanup_expired(self) -> None:
        """Remove expired entries"""
        current_time = self._clock()
        expired_keys = [
            key for key, entry in self._cache.items() if entry["expires_at"] <= current_time
        ]

        for key in expired_keys:
            del self._cache[key]
            self.stats["evictions"] += 1

    def get_stats(self) -> Dict[str, Any]:
        total_requests = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / total_requests * 100) if total_requests > 0 else 0
        return {**self.stats, "hit_rate": round(hit_rate, 2), "size": len(self._cache)}


# Shared cache for backend reference data
settings_cache = SimpleCache(default_ttl=300)
