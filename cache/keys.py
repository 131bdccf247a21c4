"""
Cache - Key Builder.

Keys are built from a namespace plus a canonical JSON encoding of
every parameter, so two logically equal requests share one entry.
"""

import hashlib
import json
from enum import Enum
from typing import Any


MAX_KEY_LENGTH = 256


def _canonical(value: Any) -> Any:
    if isinstance(value, Enum):
        return _canonical(value.value)
    if isinstance(value, (list, tuple, set, frozenset)):
        # Order of a lookup list never changes the answer.
        items = [_canonical(v) for v in value]
        return sorted(items, key=lambda v: json.dumps(v, sort_keys=True, default=str))
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}
    return value


def build_cache_key(namespace: str, **params: Any) -> str:
    """
    Deterministic cache key.

    Example:
        build_cache_key("market:prices", items=["B", "A"], region=Region.EUROPE)
        -> 'market:prices:{"items":["A","B"],"region":"Europe"}'
    """
    if not namespace:
        raise ValueError("namespace must not be empty")
    encoded = json.dumps(
        {name: _canonical(value) for name, value in params.items()},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    key = f"{namespace}:{encoded}"
    if len(key) > MAX_KEY_LENGTH:
        digest = hashlib.sha256(encoded.encode("utf-8")).hexdigest()
        key = f"{namespace}:sha256:{digest}"
    return key
