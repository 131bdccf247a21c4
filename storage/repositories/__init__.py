"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The Repository Layer is the ONLY gateway to persistent storage.
All database access goes through repository classes.

============================================================
ARCHITECTURE PRINCIPLES
============================================================
1. One repository per table or tightly related set
2. Session Injection: sessions are injected, not created internally
3. Explicit Methods: no generic 'execute'
4. Exception Handling: all DB errors wrapped in repository exceptions

============================================================
REPOSITORIES
============================================================
- MarketPriceRepository: price observations
- GoldPriceRepository: gold price observations
- KillEventRepository: combat events
- MetaBuildRepository: derived build snapshot
- ItemRepository: item reference data

============================================================
"""

from storage.repositories.base import BaseRepository
from storage.repositories.builds import KillEventRepository, MetaBuildRepository
from storage.repositories.exceptions import (
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    RepositoryException,
)
from storage.repositories.items import ItemRepository
from storage.repositories.market import GoldPriceRepository, MarketPriceRepository

__all__ = [
    "BaseRepository",
    "KillEventRepository",
    "MetaBuildRepository",
    "ConnectionError",
    "DuplicateRecordError",
    "IntegrityError",
    "QueryError",
    "RepositoryException",
    "ItemRepository",
    "GoldPriceRepository",
    "MarketPriceRepository",
]
