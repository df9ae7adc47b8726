"""Result cache and the key-value stores that persist it."""

from cargodeck.cache.result_cache import CachedResult, CacheKind, ResultCache
from cargodeck.cache.store import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "CacheKind",
    "CachedResult",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "ResultCache",
]
