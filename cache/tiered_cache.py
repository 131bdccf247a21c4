"""
Cache - Tiered Cache.

============================================================
RESPONSIBILITY
============================================================
Read-through / write-through cache in front of expensive
lookups (upstream price calls, name resolution, aggregates).

- One TTL per freshness tier
- Primary backend (Redis) with in-process fallback
- get_or_compute for sync and async producers

============================================================
DESIGN PRINCIPLES
============================================================
- Correctness-transparent: a miss or a backend outage only
  costs latency, never changes an answer
- Backend errors are logged, never raised to callers
- Compute errors are raised, never cached

============================================================
"""

import json
import logging
from typing import Any, Awaitable, Callable, Optional

from core.exceptions import CacheBackendError

from .backends import CacheBackend, MemoryCacheBackend
from .models import CacheConfig, CacheTier, CacheValue


logger = logging.getLogger(__name__)


class TieredCache:
    """
    Tiered TTL cache.

    ============================================================
    USAGE
    ============================================================
    cache = TieredCache(primary=RedisCacheBackend.from_url(url))
    value = cache.get_or_compute(key, CacheTier.STABLE, lambda: lookup())
    rows = await cache.aget_or_compute_json(key, CacheTier.VOLATILE, fetch)

    ============================================================
    """

    def __init__(
        self,
        primary: Optional[CacheBackend] = None,
        fallback: Optional[MemoryCacheBackend] = None,
        config: Optional[CacheConfig] = None,
    ) -> None:
        self._fallback = fallback or MemoryCacheBackend()
        self._primary = primary or self._fallback
        self._config = config or CacheConfig()
        self._degraded = False

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def degraded(self) -> bool:
        """True while the primary backend is failing."""
        return self._degraded

    def ttl_for(self, tier: CacheTier) -> int:
        return self._config.ttl_for(tier)

    # ---------------------------------------------------------
    # Backend dispatch
    # ---------------------------------------------------------

    def _has_separate_primary(self) -> bool:
        return self._primary is not self._fallback

    def _on_primary_error(self, operation: str, error: CacheBackendError) -> None:
        if not self._degraded:
            logger.warning(
                f"Cache backend {self._primary.name} failed on {operation}, "
                f"falling back to memory: {error}"
            )
        else:
            logger.debug(f"Cache backend still degraded ({operation}): {error}")
        self._degraded = True

    def _on_primary_ok(self) -> None:
        if self._degraded:
            logger.info(f"Cache backend {self._primary.name} recovered")
        self._degraded = False

    # ---------------------------------------------------------
    # Basic operations
    # ---------------------------------------------------------

    def get(self, key: str) -> Optional[CacheValue]:
        if self._has_separate_primary():
            try:
                value = self._primary.get(key)
                self._on_primary_ok()
                return value
            except CacheBackendError as e:
                self._on_primary_error("get", e)
        return self._fallback.get(key)

    def set(self, key: str, value: CacheValue, tier: CacheTier) -> None:
        ttl = self.ttl_for(tier)
        if self._has_separate_primary():
            try:
                self._primary.set(key, value, ttl)
                self._on_primary_ok()
                return
            except CacheBackendError as e:
                self._on_primary_error("set", e)
        self._fallback.set(key, value, ttl)

    def delete(self, key: str) -> None:
        if self._has_separate_primary():
            try:
                self._primary.delete(key)
                self._on_primary_ok()
            except CacheBackendError as e:
                self._on_primary_error("delete", e)
        self._fallback.delete(key)

    def clear(self, prefix: Optional[str] = None) -> int:
        removed = 0
        if self._has_separate_primary():
            try:
                removed += self._primary.clear(prefix)
                self._on_primary_ok()
            except CacheBackendError as e:
                self._on_primary_error("clear", e)
        removed += self._fallback.clear(prefix)
        return removed

    # ---------------------------------------------------------
    # Read-through
    # ---------------------------------------------------------

    def get_or_compute(
        self,
        key: str,
        tier: CacheTier,
        compute: Callable[[], CacheValue],
    ) -> CacheValue:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = compute()
        self.set(key, value, tier)
        return value

    async def aget_or_compute(
        self,
        key: str,
        tier: CacheTier,
        compute: Callable[[], Awaitable[CacheValue]],
    ) -> CacheValue:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await compute()
        self.set(key, value, tier)
        return value

    def get_json(self, key: str) -> Optional[Any]:
        cached = self.get(key)
        if cached is None:
            return None
        try:
            return json.loads(cached)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            self.delete(key)
            return None

    def set_json(self, key: str, value: Any, tier: CacheTier) -> None:
        self.set(key, json.dumps(value, separators=(",", ":")), tier)

    async def aget_or_compute_json(
        self,
        key: str,
        tier: CacheTier,
        compute: Callable[[], Awaitable[Any]],
        cache_empty: bool = True,
    ) -> Any:
        """
        JSON variant of aget_or_compute.

        Args:
            cache_empty: Whether an empty result may be cached
        """
        cached = self.get_json(key)
        if cached is not None:
            return cached
        value = await compute()
        if value or cache_empty:
            self.set_json(key, value, tier)
        return value

    def close(self) -> None:
        if self._has_separate_primary():
            self._primary.close()
