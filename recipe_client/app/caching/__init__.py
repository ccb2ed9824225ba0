"""
Client caching package.

Caches query results per structured key. Entries stay fresh until a
confirmed write invalidates them; prefer explicit invalidation over TTLs.
"""

from .cache_store import CacheEntry, CacheStore
from .keys import CacheKey, ResourceKind

__all__ = [
    "CacheEntry",
    "CacheKey",
    "CacheStore",
    "ResourceKind",
]
