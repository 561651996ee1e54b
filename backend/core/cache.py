"""
In-memory lookup cache with TTL and LRU eviction.

Only successful lookups are stored; a miss upstream is retried on the next
request rather than remembered.
"""

import asyncio
import hashlib
import time
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

from loguru import logger


def cache_key(source: str, method: str, argument: Any) -> str:
    """Generate a consistent cache key for an adapter call."""
    content = f"{source}:{method}:{argument}"
    return f"lookup:{hashlib.md5(content.encode()).hexdigest()}"


class LookupCache:
    """Async-safe memory cache shared by the cached source wrappers."""

    def __init__(self, max_size: int = 1000, default_ttl: int = 3600):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            expires_at, value = entry
            if time.monotonic() > expires_at:
                del self._entries[key]
                self.misses += 1
                return None

            self._entries.move_to_end(key)
            self.hits += 1
            return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if value is None:
            return
        async with self._lock:
            ttl = ttl if ttl is not None else self.default_ttl
            self._entries[key] = (time.monotonic() + ttl, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Lookup cache evicted {evicted}")

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total else 0.0,
        }
