"""
Arbitrage - Market Service.

============================================================
RESPONSIBILITY
============================================================
Read side of the market pipeline for the presentation layer.

- Current prices     (VOLATILE cache tier)
- Price history      (STABLE cache tier)
- Gold prices        (VOLATILE cache tier)
- Arbitrage scan     prices -> names -> market data -> scanner

============================================================
DESIGN PRINCIPLES
============================================================
- Cache keys cover every selector of the query
- Empty upstream results are not cached
- Upstream failures return an empty list and are logged;
  no exception reaches the caller

============================================================
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from cache.keys import build_cache_key
from cache.models import CacheTier
from cache.tiered_cache import TieredCache
from core.clock import ClockProtocol, SystemClock
from core.constants import TRADE_CITIES
from core.exceptions import UpstreamError
from data_ingestion.collectors.aodp import (
    AODPClient,
    gold_rows_to_raw,
    history_rows_to_raw,
    price_rows_to_raw,
)
from data_ingestion.item_catalog import ItemCatalog
from data_ingestion.normalizers.market_normalizer import MarketNormalizer
from data_ingestion.types import GoldQuote, PriceHistoryPoint, PriceQuote
from data_processing.cleaning.outlier_filter import OutlierFilter, filter_price_quotes

from .models import ArbitrageOpportunity, ScanParameters
from .scanner import ArbitrageScanner, quotes_to_market_data


logger = logging.getLogger(__name__)


class MarketService:
    """
    Cached market reads and end-to-end arbitrage scans.

    Usage:
        service = MarketService(AODPClient(), cache, catalog)
        quotes = await service.get_current_prices(["T4_BAG"])
        routes = await service.find_arbitrage_opportunities(["T4_BAG"])
    """

    def __init__(
        self,
        client: AODPClient,
        cache: Optional[TieredCache] = None,
        catalog: Optional[ItemCatalog] = None,
        scanner: Optional[ArbitrageScanner] = None,
        normalizer: Optional[MarketNormalizer] = None,
        outlier_filter: Optional[OutlierFilter] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._client = client
        self._cache = cache or TieredCache()
        self._catalog = catalog
        self._scanner = scanner or ArbitrageScanner()
        clock = clock or SystemClock()
        self._normalizer = normalizer or MarketNormalizer(clock=clock, default_server=client.region)
        self._outlier_filter = outlier_filter or OutlierFilter()

    @property
    def region(self) -> str:
        return self._client.region.value

    # =========================================================
    # PRICES
    # =========================================================

    async def get_current_prices(
        self,
        item_ids: Sequence[str],
        cities: Optional[Sequence[str]] = None,
        qualities: Optional[Sequence[int]] = None,
    ) -> List[PriceQuote]:
        if not item_ids:
            return []
        key = build_cache_key(
            "market:prices",
            items=item_ids,
            cities=cities,
            qualities=qualities,
            region=self.region,
        )

        async def fetch() -> List[Dict[str, Any]]:
            rows = await self._client.get_prices(list(item_ids), cities, qualities)
            normalized = self._normalizer.normalize_batch(
                price_rows_to_raw(rows, self._client.region), source=AODPClient.SOURCE
            )
            quotes = [r for r in normalized.records if isinstance(r, PriceQuote)]
            screened = filter_price_quotes(quotes, self._outlier_filter).accepted
            return [q.to_dict() for q in screened]

        try:
            rows = await self._cache.aget_or_compute_json(key, CacheTier.VOLATILE, fetch, cache_empty=False)
        except UpstreamError as e:
            logger.error(f"Current price fetch failed for {len(item_ids)} items: {e}")
            return []
        return [PriceQuote.from_dict(row) for row in rows]

    async def get_price_history(
        self,
        item_ids: Sequence[str],
        cities: Optional[Sequence[str]] = None,
        qualities: Optional[Sequence[int]] = None,
        time_scale: int = 24,
    ) -> List[PriceHistoryPoint]:
        if not item_ids:
            return []
        key = build_cache_key(
            "market:history",
            items=item_ids,
            cities=cities,
            qualities=qualities,
            time_scale=time_scale,
            region=self.region,
        )

        async def fetch() -> List[Dict[str, Any]]:
            rows = await self._client.get_history(list(item_ids), cities, qualities, time_scale=time_scale)
            normalized = self._normalizer.normalize_batch(
                history_rows_to_raw(rows, self._client.region), source=AODPClient.SOURCE
            )
            return [r.to_dict() for r in normalized.records if isinstance(r, PriceHistoryPoint)]

        try:
            rows = await self._cache.aget_or_compute_json(key, CacheTier.STABLE, fetch, cache_empty=False)
        except UpstreamError as e:
            logger.error(f"Price history fetch failed for {len(item_ids)} items: {e}")
            return []
        return [PriceHistoryPoint.from_dict(row) for row in rows]

    async def get_gold_prices(self, count: int = 24) -> List[GoldQuote]:
        key = build_cache_key("market:gold", count=count, region=self.region)

        async def fetch() -> List[Dict[str, Any]]:
            rows = await self._client.get_gold_prices(count)
            normalized = self._normalizer.normalize_batch(
                gold_rows_to_raw(rows, self._client.region), source=AODPClient.SOURCE
            )
            return [r.to_dict() for r in normalized.records if isinstance(r, GoldQuote)]

        try:
            rows = await self._cache.aget_or_compute_json(key, CacheTier.VOLATILE, fetch, cache_empty=False)
        except UpstreamError as e:
            logger.error(f"Gold price fetch failed: {e}")
            return []
        return [GoldQuote.from_dict(row) for row in rows]

    # =========================================================
    # ARBITRAGE
    # =========================================================

    async def find_arbitrage_opportunities(
        self,
        item_ids: Sequence[str],
        cities: Sequence[str] = TRADE_CITIES,
        qualities: Optional[Sequence[int]] = None,
        params: Optional[ScanParameters] = None,
    ) -> List[ArbitrageOpportunity]:
        quotes = await self.get_current_prices(item_ids, cities, qualities)
        if not quotes:
            return []

        names: Dict[str, str] = {}
        if self._catalog is not None:
            names = self._catalog.get_names(q.item_id for q in quotes)

        points = quotes_to_market_data(quotes, names=names)
        opportunities = self._scanner.scan(points, params or ScanParameters())
        logger.info(
            f"Arbitrage scan over {len(points)} markets found {len(opportunities)} routes "
            f"(engine={self._scanner.active_engine})"
        )
        return opportunities
