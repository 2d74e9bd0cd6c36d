"""
Cache Package for KumaSync

Two-level (memory + database) cache with TTL expiry and the
heartbeat cache built on top of it.
"""

from cache.persistent import PersistentCache
from cache.heartbeat import HeartbeatCache, HeartbeatList

__all__ = [
    "PersistentCache",
    "HeartbeatCache",
    "HeartbeatList",
]
