"""
Heartbeat cache: the heartbeat list of each source, as fetched from the
remote heartbeat endpoint, kept under ``heartbeat:source_{id}``.
"""

from typing import Any, Dict, List, Optional

from cache.persistent import PersistentCache
from config.constants import CachePrefixes


HeartbeatList = Dict[str, List[Dict[str, Any]]]


class HeartbeatCache:
    """Per-source cache of remote heartbeat lists."""

    def __init__(self, cache: PersistentCache, ttl: float = 120.0):
        self.cache = cache
        self.ttl = ttl

    @staticmethod
    def key_for(source_id: int) -> str:
        return PersistentCache.prefix_key(CachePrefixes.HEARTBEAT, f"source_{source_id}")

    async def set_heartbeats(self, source_id: int, heartbeat_list: HeartbeatList) -> None:
        await self.cache.set(self.key_for(source_id), heartbeat_list, self.ttl)

    async def get_heartbeats(self, source_id: int) -> Optional[HeartbeatList]:
        return await self.cache.get(self.key_for(source_id))

    async def clear_heartbeats(self, source_id: Optional[int] = None) -> None:
        """Forget one source's heartbeats, or all of them."""
        if source_id is None:
            await self.cache.clear(CachePrefixes.HEARTBEAT)
        else:
            await self.cache.delete(self.key_for(source_id))
