"""
Cache - Backends.

============================================================
RESPONSIBILITY
============================================================
Key/value stores with per-entry TTL.

- MemoryCacheBackend: in-process, lock protected
- RedisCacheBackend: shared store through redis-py

============================================================
DESIGN PRINCIPLES
============================================================
- Backends never decide fallback; they raise CacheBackendError
  and the TieredCache decides
- Every Redis round trip is bounded by a socket timeout
- Expired entries are invisible even before they are purged
- Values read back with the type they were written with

============================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis

from core.clock import ClockProtocol, SystemClock
from core.exceptions import CacheBackendError

from .models import CacheEntry, CacheValue


logger = logging.getLogger(__name__)


# ============================================================
# INTERFACE
# ============================================================

class CacheBackend(ABC):
    """Abstract key/value store with TTLs."""

    name: str = "backend"

    @abstractmethod
    def get(self, key: str) -> Optional[CacheValue]:
        pass

    @abstractmethod
    def set(self, key: str, value: CacheValue, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def clear(self, prefix: Optional[str] = None) -> int:
        """Remove every key (or every key starting with prefix). Returns count removed."""
        pass

    def close(self) -> None:
        pass


# ============================================================
# MEMORY
# ============================================================

class MemoryCacheBackend(CacheBackend):
    """
    Thread-safe in-process store.

    Expiry uses the clock's monotonic reading, so wall clock jumps
    never resurrect or prematurely kill entries.
    """

    name = "memory"

    def __init__(self, clock: Optional[ClockProtocol] = None) -> None:
        self._clock = clock or SystemClock()
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheValue]:
        now = self._clock.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: CacheValue, ttl_seconds: int) -> None:
        expires_at = self._clock.monotonic() + ttl_seconds
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self, prefix: Optional[str] = None) -> int:
        with self._lock:
            if prefix is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def purge_expired(self) -> int:
        """Drop expired entries. Returns count removed."""
        now = self._clock.monotonic()
        with self._lock:
            doomed = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug(f"Purged {len(doomed)} expired cache entries")
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ============================================================
# REDIS
# ============================================================

# One-byte prefix recording whether the stored value was str or bytes.
_STR_TAG = b"s"
_BYTES_TAG = b"b"


def _encode_value(value: CacheValue) -> bytes:
    if isinstance(value, bytes):
        return _BYTES_TAG + value
    if isinstance(value, str):
        return _STR_TAG + value.encode("utf-8")
    raise TypeError(f"cache values must be str or bytes, got {type(value).__name__}")


def _decode_value(raw: Optional[bytes]) -> Optional[CacheValue]:
    """
    Raises:
        CacheBackendError: The stored entry was not written by this backend
    """
    if raw is None:
        return None
    tag, body = raw[:1], raw[1:]
    if tag == _BYTES_TAG:
        return bytes(body)
    if tag == _STR_TAG:
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CacheBackendError(f"redis entry is not valid UTF-8: {e}", cause=e) from e
    raise CacheBackendError(f"redis entry has unknown type tag {tag!r}")


class RedisCacheBackend(CacheBackend):
    """
    Redis-backed store.

    All keys live under ``namespace:`` so clear() never touches
    keys owned by other applications sharing the database.
    The client must return raw bytes (no decode_responses).
    """

    name = "redis"

    def __init__(
        self,
        client: "redis.Redis",
        namespace: str = "market-intel",
    ) -> None:
        self._client = client
        self._namespace = namespace

    @classmethod
    def from_url(
        cls,
        url: str,
        timeout_seconds: float = 2.0,
        namespace: str = "market-intel",
    ) -> "RedisCacheBackend":
        client = redis.Redis.from_url(
            url,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        return cls(client, namespace=namespace)

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def get(self, key: str) -> Optional[CacheValue]:
        try:
            raw = self._client.get(self._key(key))
        except redis.exceptions.RedisError as e:
            raise CacheBackendError(f"redis get failed: {e}", cause=e) from e
        return _decode_value(raw)

    def set(self, key: str, value: CacheValue, ttl_seconds: int) -> None:
        payload = _encode_value(value)
        try:
            self._client.setex(self._key(key), ttl_seconds, payload)
        except redis.exceptions.RedisError as e:
            raise CacheBackendError(f"redis set failed: {e}", cause=e) from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.exceptions.RedisError as e:
            raise CacheBackendError(f"redis delete failed: {e}", cause=e) from e

    def clear(self, prefix: Optional[str] = None) -> int:
        pattern = self._key(f"{prefix or ''}*")
        removed = 0
        try:
            batch = []
            for key in self._client.scan_iter(match=pattern, count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += self._client.delete(*batch)
                    batch = []
            if batch:
                removed += self._client.delete(*batch)
        except redis.exceptions.RedisError as e:
            raise CacheBackendError(f"redis clear failed: {e}", cause=e) from e
        return removed

    def close(self) -> None:
        try:
            self._client.close()
        except redis.exceptions.RedisError as e:
            logger.warning(f"Error closing redis client: {e}")
