"""
Data Ingestion - Normalizers Package.

Converts raw upstream records into canonical records.

Normalizers:
- market_normalizer: price quotes, price history points, gold quotes
"""

from data_ingestion.normalizers.market_normalizer import (
    MarketNormalizer,
    NormalizationResult,
    RecordError,
    TimestampNormalizer,
    normalize_city,
    normalize_item_id,
    normalize_price,
    normalize_price_range,
    normalize_quality,
    normalize_server,
)


__all__ = [
    "MarketNormalizer",
    "NormalizationResult",
    "RecordError",
    "TimestampNormalizer",
    "normalize_city",
    "normalize_item_id",
    "normalize_price",
    "normalize_price_range",
    "normalize_quality",
    "normalize_server",
]
