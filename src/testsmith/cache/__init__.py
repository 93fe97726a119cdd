"""Parse-result cache and its backing stores."""

from testsmith.cache.fingerprint import Fingerprint, compute_fingerprint, path_key
from testsmith.cache.parse_cache import (
    CacheEntry,
    CacheStatistics,
    ParseCache,
    build_parse_cache,
)
from testsmith.cache.store import (
    FileKeyValueStore,
    KeyValueStore,
    SqlKeyValueStore,
    StoredItem,
)

__all__ = [
    "CacheEntry",
    "CacheStatistics",
    "FileKeyValueStore",
    "Fingerprint",
    "KeyValueStore",
    "ParseCache",
    "SqlKeyValueStore",
    "StoredItem",
    "build_parse_cache",
    "compute_fingerprint",
    "path_key",
]
