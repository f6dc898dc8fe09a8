"""Storage modules for external feed caching.

This package provides the tenant-scoped CacheStore and the key/value
backends it writes to, so repeated searches don't hit upstream providers.
"""

from .backends import CacheBackend, MemoryCacheBackend, SQLiteCacheBackend, create_backend
from .cache import DEFAULT_TTLS, CacheEntry, CacheStore, FeedOperation, normalize_params

__all__ = [
    "CacheBackend",
    "MemoryCacheBackend",
    "SQLiteCacheBackend",
    "create_backend",
    "CacheEntry",
    "CacheStore",
    "FeedOperation",
    "DEFAULT_TTLS",
    "normalize_params",
]
