"""
Data Ingestion - Collectors Package.

Each collector is responsible for a specific data source.

Collectors:
- aodp: Batch price and gold sync over the AODP REST API
- market_feed: Websocket subscriber for the push feed
"""

from data_ingestion.collectors.base import BaseCollector
from data_ingestion.collectors.aodp import (
    AODP_BASE_URLS,
    AODPClient,
    GoldSyncService,
    PriceSyncService,
)
from data_ingestion.collectors.market_feed import FeedConfig, FeedMessage, FeedSubscriber


__all__ = [
    "BaseCollector",
    "AODP_BASE_URLS",
    "AODPClient",
    "GoldSyncService",
    "PriceSyncService",
    "FeedConfig",
    "FeedMessage",
    "FeedSubscriber",
]
