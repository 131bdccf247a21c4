"""
Cache Package.

Tiered TTL caching with a Redis primary and an in-process fallback.

Modules:
- models: CacheTier, CacheConfig, CacheEntry
- keys: Deterministic key construction
- backends: Memory and Redis stores
- tiered_cache: Read-through cache with backend fallback
"""

from .backends import CacheBackend, MemoryCacheBackend, RedisCacheBackend
from .keys import MAX_KEY_LENGTH, build_cache_key
from .models import CacheConfig, CacheEntry, CacheTier, CacheValue
from .tiered_cache import TieredCache

__all__ = [
    "CacheBackend",
    "MemoryCacheBackend",
    "RedisCacheBackend",
    "MAX_KEY_LENGTH",
    "build_cache_key",
    "CacheConfig",
    "CacheEntry",
    "CacheTier",
    "CacheValue",
    "TieredCache",
]
