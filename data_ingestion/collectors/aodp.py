"""
Data Ingestion - AODP Collectors.

============================================================
PURPOSE
============================================================
Batch price and gold sync from the Albion Online Data Project
REST API.

============================================================
ENDPOINTS
============================================================
GET {base}/api/v2/stats/prices/{ids}?locations=&qualities=
GET {base}/api/v2/stats/history/{ids}?locations=&qualities=&time-scale=
GET {base}/api/v2/stats/gold?count=

Rate limits: 180 requests/minute, 300 requests/5 minutes.

============================================================
WIRING
============================================================
Source: AODP (REST)
Repositories: MarketPriceRepository, GoldPriceRepository

============================================================
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import httpx

from core.constants import Region, TRADE_CITIES
from core.exceptions import UpstreamError
from data_ingestion.collectors.base import BaseCollector
from data_ingestion.types import (
    CanonicalRecord,
    CollectorConfig,
    GoldQuote,
    IngestionResult,
    IngestionSource,
    PriceQuote,
    RawRecord,
)
from storage.database import Database
from storage.repositories.market import GoldPriceRepository, MarketPriceRepository


logger = logging.getLogger(__name__)

AODP_BASE_URLS: Mapping[Region, str] = {
    Region.AMERICAS: "https://west.albion-online-data.com",
    Region.EUROPE: "https://europe.albion-online-data.com",
    Region.ASIA: "https://east.albion-online-data.com",
}

# The API rejects very long URLs; ids are requested in chunks.
MAX_IDS_PER_REQUEST = 100


def _join(values: Optional[Iterable[Any]]) -> Optional[str]:
    if values is None:
        return None
    joined = ",".join(str(v) for v in values)
    return joined or None


# =============================================================
# HTTP CLIENT
# =============================================================

class AODPClient:
    """
    Thin async client over the AODP stats endpoints.

    Every call is bounded by the configured timeout; failures
    surface as UpstreamError with a retry hint.
    """

    SOURCE = "aodp"

    def __init__(
        self,
        region: Region = Region.AMERICAS,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self._region = region
        self._base_url = (base_url or AODP_BASE_URLS[region]).rstrip("/")
        self._timeout = timeout_seconds
        self._client = client

    @property
    def region(self) -> Region:
        return self._region

    async def get_prices(
        self,
        item_ids: Sequence[str],
        locations: Optional[Iterable[str]] = None,
        qualities: Optional[Iterable[int]] = None,
    ) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for start in range(0, len(item_ids), MAX_IDS_PER_REQUEST):
            chunk = item_ids[start:start + MAX_IDS_PER_REQUEST]
            params = {"locations": _join(locations), "qualities": _join(qualities)}
            rows.extend(await self._get_json(f"/api/v2/stats/prices/{_join(chunk)}", params))
        return rows

    async def get_history(
        self,
        item_ids: Sequence[str],
        locations: Optional[Iterable[str]] = None,
        qualities: Optional[Iterable[int]] = None,
        time_scale: int = 24,
        date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params = {
            "locations": _join(locations),
            "qualities": _join(qualities),
            "time-scale": str(time_scale),
            "date": date,
            "end_date": end_date,
        }
        rows: List[Dict[str, Any]] = []
        for start in range(0, len(item_ids), MAX_IDS_PER_REQUEST):
            chunk = item_ids[start:start + MAX_IDS_PER_REQUEST]
            rows.extend(await self._get_json(f"/api/v2/stats/history/{_join(chunk)}", params))
        return rows

    async def get_gold_prices(self, count: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"count": str(count) if count else None}
        return await self._get_json("/api/v2/stats/gold", params)

    async def _get_json(self, path: str, params: Dict[str, Optional[str]]) -> List[Dict[str, Any]]:
        """
        Raises:
            UpstreamError: Non-2xx status, timeout, transport error or bad body
        """
        url = f"{self._base_url}{path}"
        query = {k: v for k, v in params.items() if v is not None}
        try:
            if self._client is not None:
                response = await self._client.get(url, params=query, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=query, headers={"Accept": "application/json"})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise UpstreamError(
                f"HTTP {status}: {e.response.text[:200]}",
                source=self.SOURCE,
                status_code=status,
                recoverable=status >= 500 or status == 429,
                cause=e,
            ) from e
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Request timeout: {e}", source=self.SOURCE, cause=e) from e
        except httpx.RequestError as e:
            raise UpstreamError(f"Request error: {e}", source=self.SOURCE, cause=e) from e
        except ValueError as e:
            raise UpstreamError(
                f"Invalid JSON body: {e}", source=self.SOURCE, recoverable=False, cause=e
            ) from e

        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return [data]
        raise UpstreamError(
            f"Unexpected body type {type(data).__name__}",
            source=self.SOURCE,
            recoverable=False,
        )


# =============================================================
# RAW RECORD BUILDERS
# =============================================================

def price_rows_to_raw(rows: Iterable[Mapping[str, Any]], region: Region) -> List[RawRecord]:
    return [
        RawRecord.price_quote({**row, "server": region.value}, source=AODPClient.SOURCE)
        for row in rows
    ]


def history_rows_to_raw(rows: Iterable[Mapping[str, Any]], region: Region) -> List[RawRecord]:
    """Flatten {item_id, location, quality, data: [...]} into one record per point."""
    raws: List[RawRecord] = []
    for row in rows:
        points = row.get("data") if isinstance(row, Mapping) else None
        if not isinstance(points, list):
            # Keep the malformed row so the normalizer reports it.
            raws.append(RawRecord.price_history(row, source=AODPClient.SOURCE))
            continue
        for point in points:
            payload = {
                "item_id": row.get("item_id"),
                "location": row.get("location"),
                "quality": row.get("quality"),
                "server": region.value,
            }
            if isinstance(point, Mapping):
                payload.update(point)
            raws.append(RawRecord.price_history(payload, source=AODPClient.SOURCE))
    return raws


def gold_rows_to_raw(rows: Iterable[Mapping[str, Any]], region: Region) -> List[RawRecord]:
    return [
        RawRecord.gold_quote({**row, "server": region.value}, source=AODPClient.SOURCE)
        for row in rows
    ]


# =============================================================
# COLLECTORS
# =============================================================

class PriceSyncService(BaseCollector):
    """
    Current price sync.

    Fetches the configured items across the trade cities, then
    normalizes, screens and appends them to market_prices.
    """

    def __init__(
        self,
        client: AODPClient,
        database: Database,
        item_ids: Sequence[str],
        cities: Sequence[str] = TRADE_CITIES,
        qualities: Optional[Sequence[int]] = None,
        config: Optional[CollectorConfig] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            config=config or CollectorConfig(),
            source=IngestionSource.AODP_REST,
            **kwargs,
        )
        self._client = client
        self._database = database
        self._item_ids = list(item_ids)
        self._cities = list(cities)
        self._qualities = list(qualities) if qualities else None

    async def sync(self) -> IngestionResult:
        return await self.collect()

    async def fetch_data(self) -> List[RawRecord]:
        if not self._item_ids:
            return []
        rows = await self._client.get_prices(self._item_ids, self._cities, self._qualities)
        return price_rows_to_raw(rows, self._client.region)

    def store_records(self, records: Sequence[CanonicalRecord]) -> int:
        quotes = [r for r in records if isinstance(r, PriceQuote)]
        with self._database.transaction_scope() as session:
            return MarketPriceRepository(session).add_quotes(quotes, source=self.source_name)


class GoldSyncService(BaseCollector):
    """Gold price sync; already-known (server, time) points are skipped."""

    def __init__(
        self,
        client: AODPClient,
        database: Database,
        count: int = 24,
        config: Optional[CollectorConfig] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            config=config or CollectorConfig(),
            source=IngestionSource.AODP_REST,
            **kwargs,
        )
        self._client = client
        self._database = database
        self._count = count

    async def sync(self) -> IngestionResult:
        return await self.collect()

    async def fetch_data(self) -> List[RawRecord]:
        rows = await self._client.get_gold_prices(self._count)
        return gold_rows_to_raw(rows, self._client.region)

    def store_records(self, records: Sequence[CanonicalRecord]) -> int:
        golds = [r for r in records if isinstance(r, GoldQuote)]
        if not golds:
            return 0
        with self._database.transaction_scope() as session:
            repository = GoldPriceRepository(session)
            known = {
                q.timestamp
                for q in repository.recent(self._client.region, since=min(g.timestamp for g in golds))
            }
            stored = 0
            for quote in golds:
                if quote.timestamp in known:
                    continue
                repository.add_quote(quote)
                known.add(quote.timestamp)
                stored += 1
            return stored
