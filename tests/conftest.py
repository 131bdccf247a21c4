"""
Shared test fixtures.

============================================================
PURPOSE
============================================================
- Controllable time (MockClock)
- In-memory SQLite database with the full schema
- Memory-backed TieredCache bound to the mock clock

============================================================
"""

from datetime import datetime, timezone

import pytest

from cache.backends import MemoryCacheBackend
from cache.tiered_cache import TieredCache
from core.clock import MockClock
from storage.database import Database


@pytest.fixture
def clock():
    """Mock clock fixed at 2024-06-01 12:00 UTC."""
    return MockClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def database():
    """Fresh in-memory database per test."""
    db = Database("sqlite:///:memory:")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def memory_backend(clock):
    return MemoryCacheBackend(clock=clock)


@pytest.fixture
def cache(memory_backend):
    return TieredCache(fallback=memory_backend)
