"""
Data Processing - Cleaning Package.

Modules:
- outlier_filter: Z-score screening of price batches
"""

from .outlier_filter import (
    DEFAULT_Z_THRESHOLD,
    Observation,
    OutlierFilter,
    OutlierReport,
    OutlierVerdict,
    batch_statistics,
    filter_gold_quotes,
    filter_price_quotes,
    z_score,
)

__all__ = [
    "DEFAULT_Z_THRESHOLD",
    "Observation",
    "OutlierFilter",
    "OutlierReport",
    "OutlierVerdict",
    "batch_statistics",
    "filter_gold_quotes",
    "filter_price_quotes",
    "z_score",
]
