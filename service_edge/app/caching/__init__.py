"""
Edge caching for the gateway.
"""

from .background import BackgroundTasks
from .edge_cache import EdgeCache, MemoryResponseStore, RedisResponseStore, build_response_store

__all__ = [
    "BackgroundTasks",
    "EdgeCache",
    "MemoryResponseStore",
    "RedisResponseStore",
    "build_response_store",
]
