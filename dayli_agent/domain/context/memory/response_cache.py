from typing import Dict, Any, Optional, Callable
import asyncio
import time


class ResponseCache:
    """Bounded in-memory cache with TTL and insertion-order eviction.

    Reads never refresh an entry: neither its TTL nor its eviction position
    changes on access. When full, the oldest inserted key is dropped.
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.cache: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    async def set(self, key: str, value: Any) -> None:
        """Store a value, evicting the oldest insertion when at capacity"""

        async with self._lock:
            if key not in self.cache and len(self.cache) >= self.max_size:
                oldest_key = next(iter(self.cache))
                del self.cache[oldest_key]

            self.cache[key] = {
                "key": key,
                "value": value,
                "timestamp": self._clock()
            }

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired"""

        async with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._clock() - entry["timestamp"] > self.ttl_seconds:
                del self.cache[key]
                self._misses += 1
                return None

            self._hits += 1
            return entry["value"]

    async def delete(self, key: str) -> bool:
        """Delete a key from cache"""

        async with self._lock:
            if key in self.cache:
                del self.cache[key]
                return True
            return False

    async def clear(self) -> None:
        async with self._lock:
            self.cache.clear()

    async def keys(self) -> list:
        """Keys in insertion order, oldest first"""

        async with self._lock:
            return list(self.cache.keys())

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""

        async with self._lock:
            now = self._clock()
            active_count = sum(
                1 for entry in self.cache.values()
                if now - entry["timestamp"] <= self.ttl_seconds
            )

            return {
                "total_keys": len(self.cache),
                "active_keys": active_count,
                "expired_keys": len(self.cache) - active_count,
                "hits": self._hits,
                "misses": self._misses,
                "max_size": self.max_size
            }
