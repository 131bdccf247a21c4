"""
Storage Models Package.

ORM models of the market pipeline database.

============================================================
MODEL ORGANIZATION
============================================================

Market observations (market.py)
- MarketPriceRecord
- GoldPriceRecord

Combat events and derived builds (market.py)
- KillEventRecord
- MetaBuildRecord

Reference data (market.py)
- ItemRecord

============================================================
"""

from storage.models.base import Base, TimestampMixin
from storage.models.market import (
    GoldPriceRecord,
    ItemRecord,
    KillEventRecord,
    MarketPriceRecord,
    MetaBuildRecord,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "GoldPriceRecord",
    "ItemRecord",
    "KillEventRecord",
    "MarketPriceRecord",
    "MetaBuildRecord",
]
