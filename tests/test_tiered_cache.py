"""
Tests for the tiered cache.

============================================================
PURPOSE
============================================================
1. Deterministic key building
2. Memory backend TTL expiry
3. Redis backend error wrapping
4. Primary failure fallback and recovery
5. Read-through helpers

============================================================
"""

from unittest.mock import MagicMock

import pytest
import redis

from cache.backends import MemoryCacheBackend, RedisCacheBackend
from cache.keys import MAX_KEY_LENGTH, build_cache_key
from cache.models import CacheConfig, CacheTier
from cache.tiered_cache import TieredCache
from core.constants import Region
from core.exceptions import CacheBackendError


# ============================================================
# KEYS
# ============================================================

class TestBuildCacheKey:
    """Tests for cache key determinism."""

    def test_parameter_order_irrelevant(self):
        a = build_cache_key("market:prices", items=["T4_BAG", "T5_CAPE"], region="Americas")
        b = build_cache_key("market:prices", region="Americas", items=["T5_CAPE", "T4_BAG"])
        assert a == b

    def test_distinct_selectors_never_collide(self):
        base = dict(items=["T4_BAG"], cities=["Caerleon"], qualities=[1], region="Americas")
        keys = {
            build_cache_key("market:prices", **base),
            build_cache_key("market:prices", **{**base, "cities": ["Martlock"]}),
            build_cache_key("market:prices", **{**base, "qualities": [2]}),
            build_cache_key("market:prices", **{**base, "region": "Europe"}),
            build_cache_key("market:history", **base),
        }
        assert len(keys) == 5

    def test_enum_uses_value(self):
        assert build_cache_key("x", region=Region.EUROPE) == build_cache_key("x", region="Europe")

    def test_long_key_hashed(self):
        key = build_cache_key("market:prices", items=[f"T4_ITEM_{i}" for i in range(200)])
        assert key.startswith("market:prices:sha256:")
        assert len(key) <= MAX_KEY_LENGTH

    def test_empty_namespace_rejected(self):
        with pytest.raises(ValueError):
            build_cache_key("", a=1)


# ============================================================
# MEMORY BACKEND
# ============================================================

class TestMemoryCacheBackend:
    """Tests for the in-process backend."""

    def test_expires_after_ttl(self, clock):
        backend = MemoryCacheBackend(clock=clock)
        backend.set("k", "v", ttl_seconds=60)

        clock.advance(59)
        assert backend.get("k") == "v"

        clock.advance(1)
        assert backend.get("k") is None
        assert len(backend) == 0

    def test_clear_by_prefix(self, clock):
        backend = MemoryCacheBackend(clock=clock)
        backend.set("market:a", "1", 60)
        backend.set("market:b", "2", 60)
        backend.set("items:c", "3", 60)

        assert backend.clear("market:") == 2
        assert backend.get("items:c") == "3"

    def test_purge_expired(self, clock):
        backend = MemoryCacheBackend(clock=clock)
        backend.set("short", "1", 10)
        backend.set("long", "2", 1000)
        clock.advance(11)

        assert backend.purge_expired() == 1
        assert len(backend) == 1


class FakeRedis:
    """Dict-backed stand-in returning raw bytes like a real client."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value.encode("utf-8") if isinstance(value, str) else bytes(value)

    def delete(self, *keys):
        return sum(1 for k in keys if self.store.pop(k, None) is not None)


# ============================================================
# REDIS BACKEND
# ============================================================

class TestRedisCacheBackend:
    """Tests for the redis backend with a mocked client."""

    def test_keys_are_namespaced(self):
        client = MagicMock()
        backend = RedisCacheBackend(client, namespace="mi")
        backend.set("k", "v", 30)
        client.setex.assert_called_once_with("mi:k", 30, b"sv")

    def test_redis_error_wrapped(self):
        client = MagicMock()
        client.get.side_effect = redis.exceptions.ConnectionError("down")
        backend = RedisCacheBackend(client)
        with pytest.raises(CacheBackendError):
            backend.get("k")

    def test_clear_scans_prefix(self):
        client = MagicMock()
        client.scan_iter.return_value = iter(["mi:market:a", "mi:market:b"])
        client.delete.return_value = 2
        backend = RedisCacheBackend(client, namespace="mi")

        assert backend.clear("market:") == 2
        client.scan_iter.assert_called_once_with(match="mi:market:*", count=500)

    @pytest.mark.parametrize("value", ["Adept's Bag", "", b"\xff\x00raw", b""])
    def test_value_type_preserved(self, value):
        backend = RedisCacheBackend(FakeRedis())
        backend.set("k", value, 30)
        assert backend.get("k") == value
        assert type(backend.get("k")) is type(value)

    def test_matches_memory_backend(self, clock):
        redis_backend = RedisCacheBackend(FakeRedis())
        memory = MemoryCacheBackend(clock=clock)
        for value in ("text", b"\x00\x01"):
            redis_backend.set("k", value, 30)
            memory.set("k", value, 30)
            assert redis_backend.get("k") == memory.get("k")

    @pytest.mark.parametrize("raw", [b"s\xff\x00", b"legacy-untagged"])
    def test_undecodable_entry_wrapped(self, raw):
        client = FakeRedis()
        client.store["mi:k"] = raw
        backend = RedisCacheBackend(client, namespace="mi")
        with pytest.raises(CacheBackendError):
            backend.get("k")

    def test_undecodable_entry_falls_back_through_tiered_cache(self, memory_backend):
        client = FakeRedis()
        client.store["market-intel:k"] = b"s\xff\x00"
        cache = TieredCache(primary=RedisCacheBackend(client), fallback=memory_backend)

        assert cache.get("k") is None
        assert cache.degraded is True


# ============================================================
# TIERED CACHE
# ============================================================

class TestTieredCache:
    """Tests for tier TTLs and backend fallback."""

    def test_tier_ttls(self, clock, memory_backend):
        config = CacheConfig(volatile_ttl_seconds=10, standard_ttl_seconds=20,
                             stable_ttl_seconds=30, static_ttl_seconds=40)
        cache = TieredCache(fallback=memory_backend, config=config)
        cache.set("v", "1", CacheTier.VOLATILE)
        cache.set("s", "2", CacheTier.STABLE)

        clock.advance(15)
        assert cache.get("v") is None
        assert cache.get("s") == "2"

    def test_invalid_ttl_rejected(self):
        with pytest.raises(ValueError):
            CacheConfig(volatile_ttl_seconds=0)

    def test_primary_failure_falls_back_to_memory(self, memory_backend):
        primary = MagicMock()
        primary.name = "redis"
        primary.set.side_effect = CacheBackendError("set failed")
        primary.get.side_effect = CacheBackendError("get failed")
        cache = TieredCache(primary=primary, fallback=memory_backend)

        cache.set("k", "v", CacheTier.VOLATILE)
        assert cache.degraded is True
        assert cache.get("k") == "v"

    def test_recovery_clears_degraded(self, memory_backend):
        primary = MagicMock()
        primary.name = "redis"
        primary.get.side_effect = [CacheBackendError("blip"), "fresh"]
        cache = TieredCache(primary=primary, fallback=memory_backend)

        assert cache.get("k") is None
        assert cache.degraded is True
        assert cache.get("k") == "fresh"
        assert cache.degraded is False

    def test_get_or_compute_writes_through(self, cache):
        compute = MagicMock(return_value="computed")
        assert cache.get_or_compute("k", CacheTier.STANDARD, compute) == "computed"
        assert cache.get_or_compute("k", CacheTier.STANDARD, compute) == "computed"
        compute.assert_called_once()

    def test_undecodable_json_discarded(self, cache):
        cache.set("k", "{not json", CacheTier.STANDARD)
        assert cache.get_json("k") is None
        assert cache.get("k") is None

    @pytest.mark.asyncio
    async def test_empty_result_not_cached_when_requested(self, cache):
        calls = []

        async def compute():
            calls.append(1)
            return []

        await cache.aget_or_compute_json("k", CacheTier.VOLATILE, compute, cache_empty=False)
        await cache.aget_or_compute_json("k", CacheTier.VOLATILE, compute, cache_empty=False)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_json_round_trip_through_cache(self, cache):
        async def compute():
            return [{"price": 1}]

        first = await cache.aget_or_compute_json("k", CacheTier.VOLATILE, compute)
        second = await cache.aget_or_compute_json("k", CacheTier.VOLATILE, compute)
        assert first == second == [{"price": 1}]
