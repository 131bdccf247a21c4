"""
Data Ingestion Package.

Acquires market data and converts it into canonical records.
No business logic - only data acquisition.

Sub-packages:
- collectors: AODP batch sync and the streaming feed subscriber
- normalizers: Raw record normalization

Modules (import directly; they depend on storage):
- ingestion_service: Streaming ingestion adapter
- item_catalog: Cached item display names
"""

from data_ingestion.types import (
    AuctionType,
    CanonicalRecord,
    CollectorConfig,
    FeedMetrics,
    GoldQuote,
    IngestionResult,
    IngestionSource,
    IngestionStatus,
    PriceHistoryPoint,
    PriceQuote,
    RawRecord,
    RecordKind,
)
from data_ingestion.normalizers import (
    MarketNormalizer,
    NormalizationResult,
    RecordError,
    TimestampNormalizer,
)


__all__ = [
    # Types
    "AuctionType",
    "CanonicalRecord",
    "CollectorConfig",
    "FeedMetrics",
    "GoldQuote",
    "IngestionResult",
    "IngestionSource",
    "IngestionStatus",
    "PriceHistoryPoint",
    "PriceQuote",
    "RawRecord",
    "RecordKind",
    # Normalizers
    "MarketNormalizer",
    "NormalizationResult",
    "RecordError",
    "TimestampNormalizer",
]
