"""
Cache - Models.

Tier vocabulary, TTL configuration and stored entry shape.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from core.config import Settings
from core.constants import (
    TTL_STABLE_SECONDS,
    TTL_STANDARD_SECONDS,
    TTL_STATIC_SECONDS,
    TTL_VOLATILE_SECONDS,
)


CacheValue = Union[str, bytes]


class CacheTier(str, Enum):
    """Freshness tiers; each maps to a TTL."""
    VOLATILE = "volatile"    # live quotes
    STANDARD = "standard"    # computed aggregates
    STABLE = "stable"        # display names, price history
    STATIC = "static"        # near-static lookups


@dataclass(frozen=True)
class CacheConfig:
    """TTL per tier plus backend limits."""
    volatile_ttl_seconds: int = TTL_VOLATILE_SECONDS
    standard_ttl_seconds: int = TTL_STANDARD_SECONDS
    stable_ttl_seconds: int = TTL_STABLE_SECONDS
    static_ttl_seconds: int = TTL_STATIC_SECONDS
    backend_timeout_seconds: float = 2.0

    def __post_init__(self) -> None:
        for tier in CacheTier:
            if self.ttl_for(tier) <= 0:
                raise ValueError(f"TTL for tier {tier.value} must be positive")

    def ttl_for(self, tier: CacheTier) -> int:
        return {
            CacheTier.VOLATILE: self.volatile_ttl_seconds,
            CacheTier.STANDARD: self.standard_ttl_seconds,
            CacheTier.STABLE: self.stable_ttl_seconds,
            CacheTier.STATIC: self.static_ttl_seconds,
        }[tier]

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheConfig":
        return cls(
            volatile_ttl_seconds=settings.ttl_volatile_seconds,
            standard_ttl_seconds=settings.ttl_standard_seconds,
            stable_ttl_seconds=settings.ttl_stable_seconds,
            static_ttl_seconds=settings.ttl_static_seconds,
            backend_timeout_seconds=settings.cache_timeout_seconds,
        )


@dataclass(frozen=True)
class CacheEntry:
    """A stored value and the monotonic reading at which it expires."""
    key: str
    value: CacheValue
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def remaining(self, now: float) -> Optional[float]:
        left = self.expires_at - now
        return left if left > 0 else None
