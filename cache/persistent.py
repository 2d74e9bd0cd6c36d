"""
============================================================================
KUMASYNC - PERSISTENT CACHE
============================================================================
Two-level key/value cache: an in-process map backed by the cache_entries
table. Reads check memory first, then the durable layer (backfilling
memory). Writes go to both layers; a durable write failure is logged and
never raised to the caller.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from database.repositories import CacheEntryRepository
from exceptions.database import DatabaseException
from utils.logger import get_logger


logger = get_logger(__name__)

# Errors of the durable layer that are logged and swallowed
DURABLE_ERRORS = (SQLAlchemyError, DatabaseException)


@dataclass
class _MemoryEntry:
    data: Any
    timestamp: float
    ttl: float
    size: int

    def expired(self, now: float) -> bool:
        return self.timestamp + self.ttl < now


class PersistentCache:
    """
    Read-through cache with TTL expiry.

    Expiry is ``timestamp + ttl < now`` with times in seconds from
    ``clock``. Expired entries are dropped lazily on read and by
    :meth:`cleanup_expired_entries`, which the maintenance scheduler
    runs periodically.
    """

    def __init__(
        self,
        repository: CacheEntryRepository,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self.repository = repository
        self.default_ttl = default_ttl
        self.clock = clock

        self._memory: Dict[str, _MemoryEntry] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def prefix_key(prefix: str, key: str) -> str:
        """Namespace a key as ``prefix:key``."""
        return f"{prefix}:{key}"

    @staticmethod
    def _matches(key: str, prefix: Optional[str]) -> bool:
        return not prefix or key.startswith(f"{prefix}:")

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a JSON-serializable value under ``key``."""
        ttl = self.default_ttl if ttl is None else ttl
        now = self.clock()
        payload = json.dumps(value)

        self._memory[key] = _MemoryEntry(data=value, timestamp=now, ttl=ttl, size=len(payload))

        try:
            await self.repository.upsert(key, payload, now, ttl)
        except DURABLE_ERRORS as e:
            logger.warning(f"Failed to persist cache entry {key}: {e}")

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        now = self.clock()

        entry = self._memory.get(key)
        if entry is not None:
            if not entry.expired(now):
                self.hits += 1
                return entry.data
            del self._memory[key]

        try:
            row = await self.repository.get(key)
            if row is not None:
                if row.timestamp + row.ttl < now:
                    await self.repository.delete(key)
                else:
                    data = json.loads(row.data)
                    self._memory[key] = _MemoryEntry(
                        data=data,
                        timestamp=row.timestamp,
                        ttl=row.ttl,
                        size=len(row.data),
                    )
                    self.hits += 1
                    return data
        except DURABLE_ERRORS as e:
            logger.warning(f"Failed to read cache entry {key}: {e}")
        except ValueError as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")

        self.misses += 1
        return None

    async def delete(self, key: str) -> None:
        self._memory.pop(key, None)
        try:
            await self.repository.delete(key)
        except DURABLE_ERRORS as e:
            logger.warning(f"Failed to delete cache entry {key}: {e}")

    async def clear(self, prefix: Optional[str] = None) -> None:
        """Drop every entry, or every entry under ``prefix``."""
        for key in [k for k in self._memory if self._matches(k, prefix)]:
            del self._memory[key]

        try:
            await self.repository.delete_all(prefix)
        except DURABLE_ERRORS as e:
            logger.warning(f"Failed to clear cache entries ({prefix or 'all'}): {e}")

    async def get_keys(self, prefix: Optional[str] = None) -> List[str]:
        """Live keys across both layers."""
        now = self.clock()
        keys = {
            key for key, entry in self._memory.items()
            if self._matches(key, prefix) and not entry.expired(now)
        }

        try:
            keys.update(await self.repository.keys(prefix))
        except DURABLE_ERRORS as e:
            logger.warning(f"Failed to list cache keys: {e}")

        return sorted(keys)

    def get_stats(self) -> Dict[str, Any]:
        """Entry count, approximate memory usage and hit/miss rates."""
        lookups = self.hits + self.misses
        return {
            "total_entries": len(self._memory),
            "memory_usage": sum(entry.size for entry in self._memory.values()),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / lookups if lookups else 0.0,
            "miss_rate": self.misses / lookups if lookups else 0.0,
        }

    async def cleanup_expired_entries(self) -> int:
        """
        Sweep expired entries from both layers.

        Returns:
            Number of entries removed
        """
        now = self.clock()
        expired = [key for key, entry in self._memory.items() if entry.expired(now)]
        for key in expired:
            del self._memory[key]

        removed = len(expired)
        try:
            removed += await self.repository.delete_expired(now)
        except DURABLE_ERRORS as e:
            logger.warning(f"Failed to sweep expired cache entries: {e}")

        if removed:
            logger.debug(f"Cache sweep removed {removed} expired entries")
        return removed
