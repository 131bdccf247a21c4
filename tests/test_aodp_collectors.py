"""
Tests for the AODP REST client and batch sync services.

============================================================
PURPOSE
============================================================
1. Client request shaping and error classification
2. Price sync end to end against in-memory SQLite
3. Retry, skip and failure paths of the collector lifecycle
4. Gold sync de-duplication

============================================================
"""

from typing import List

import httpx
import pytest

from core.constants import Region
from core.exceptions import UpstreamError
from data_ingestion.collectors.aodp import (
    MAX_IDS_PER_REQUEST,
    AODPClient,
    GoldSyncService,
    PriceSyncService,
    history_rows_to_raw,
)
from data_ingestion.types import CollectorConfig, IngestionStatus, RecordKind
from storage.repositories.market import GoldPriceRepository, MarketPriceRepository


BASE_URL = "https://aodp.test"

PRICE_ROWS = [
    {
        "item_id": "T4_BAG",
        "city": "Martlock",
        "quality": 1,
        "sell_price_min": 1000,
        "sell_price_max": 1200,
        "buy_price_min": 700,
        "buy_price_max": 900,
        "sell_price_min_date": "2024-06-01T10:00:00",
    },
    {
        "item_id": "T4_BAG",
        "city": "Lymhurst",
        "quality": 1,
        "sell_price_min": 1100,
        "sell_price_max": 1300,
        "buy_price_min": 800,
        "buy_price_max": 950,
        "sell_price_min_date": "2024-06-01T10:05:00",
    },
]

GOLD_ROWS = [
    {"price": 4000, "timestamp": "2024-06-01T09:00:00"},
    {"price": 4010, "timestamp": "2024-06-01T10:00:00"},
    {"price": 4020, "timestamp": "2024-06-01T11:00:00"},
]


def make_client(handler) -> AODPClient:
    transport = httpx.MockTransport(handler)
    return AODPClient(
        region=Region.AMERICAS,
        client=httpx.AsyncClient(transport=transport),
        base_url=BASE_URL,
    )


def json_handler(payload, requests: List[httpx.Request] = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(200, json=payload)
    return handler


class RecordingSleep:
    def __init__(self):
        self.waits: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


# ============================================================
# CLIENT
# ============================================================

class TestAODPClient:
    """Tests for request shaping and error classification."""

    @pytest.mark.asyncio
    async def test_price_request_shape(self):
        requests: List[httpx.Request] = []
        client = make_client(json_handler(PRICE_ROWS, requests))

        rows = await client.get_prices(["T4_BAG", "T5_CAPE"], ["Martlock", "Lymhurst"], [1, 2])

        assert rows == PRICE_ROWS
        assert requests[0].url.path == "/api/v2/stats/prices/T4_BAG,T5_CAPE"
        assert requests[0].url.params["locations"] == "Martlock,Lymhurst"
        assert requests[0].url.params["qualities"] == "1,2"

    @pytest.mark.asyncio
    async def test_ids_requested_in_chunks(self):
        requests: List[httpx.Request] = []
        client = make_client(json_handler([], requests))
        ids = [f"T4_ITEM_{i}" for i in range(MAX_IDS_PER_REQUEST + 5)]

        await client.get_prices(ids)

        assert len(requests) == 2
        assert "qualities" not in requests[0].url.params

    @pytest.mark.asyncio
    async def test_history_ids_requested_in_chunks(self):
        requests: List[httpx.Request] = []
        client = make_client(json_handler([{"item_id": "T4_ITEM_0", "data": []}], requests))
        ids = [f"T4_ITEM_{i}" for i in range(MAX_IDS_PER_REQUEST + 5)]

        rows = await client.get_history(ids, time_scale=6)

        assert len(requests) == 2
        assert len(rows) == 2
        assert requests[1].url.path == f"/api/v2/stats/history/{','.join(ids[MAX_IDS_PER_REQUEST:])}"
        assert all(r.url.params["time-scale"] == "6" for r in requests)

    @pytest.mark.asyncio
    async def test_single_object_body_wrapped(self):
        client = make_client(json_handler({"price": 4000}))
        assert await client.get_gold_prices(1) == [{"price": 4000}]

    @pytest.mark.asyncio
    async def test_server_error_is_recoverable(self):
        client = make_client(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(UpstreamError) as exc_info:
            await client.get_gold_prices()
        assert exc_info.value.status_code == 503
        assert exc_info.value.recoverable is True

    @pytest.mark.asyncio
    async def test_not_found_is_not_recoverable(self):
        client = make_client(lambda request: httpx.Response(404, text="nope"))
        with pytest.raises(UpstreamError) as exc_info:
            await client.get_gold_prices()
        assert exc_info.value.recoverable is False

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = make_client(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(UpstreamError) as exc_info:
            await client.get_gold_prices()
        assert exc_info.value.recoverable is False

    @pytest.mark.asyncio
    async def test_transport_error_is_recoverable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(UpstreamError) as exc_info:
            await client.get_gold_prices()
        assert exc_info.value.recoverable is True


class TestHistoryRows:
    """Tests for history flattening."""

    def test_one_record_per_point(self):
        rows = [{
            "item_id": "T4_BAG",
            "location": "Martlock",
            "quality": 1,
            "data": [
                {"avg_price": 1000, "item_count": 3, "timestamp": "2024-06-01T00:00:00"},
                {"avg_price": 1100, "item_count": 4, "timestamp": "2024-06-01T01:00:00"},
            ],
        }]
        raws = history_rows_to_raw(rows, Region.EUROPE)

        assert len(raws) == 2
        assert all(r.kind == RecordKind.PRICE_HISTORY for r in raws)
        assert raws[1].payload["avg_price"] == 1100
        assert raws[1].payload["server"] == "Europe"

    def test_malformed_row_kept(self):
        raws = history_rows_to_raw([{"item_id": "T4_BAG"}], Region.AMERICAS)
        assert len(raws) == 1


# ============================================================
# PRICE SYNC
# ============================================================

class TestPriceSyncService:
    """Tests for the price collector lifecycle."""

    @pytest.mark.asyncio
    async def test_sync_stores_quotes(self, database, clock):
        service = PriceSyncService(
            make_client(json_handler(PRICE_ROWS)), database, ["T4_BAG"], clock=clock
        )
        result = await service.sync()

        assert result.status == IngestionStatus.SUCCESS
        assert result.records_fetched == 2
        assert result.records_stored == 2
        with database.session_scope() as session:
            latest = MarketPriceRepository(session).latest_quotes(["T4_BAG"])
        assert {q.city for q in latest} == {"Martlock", "Lymhurst"}
        assert all(q.server == Region.AMERICAS for q in latest)

    @pytest.mark.asyncio
    async def test_retries_recoverable_errors(self, database, clock):
        responses = iter([
            httpx.Response(500, text="oops"),
            httpx.Response(502, text="oops"),
            httpx.Response(200, json=PRICE_ROWS),
        ])
        sleep = RecordingSleep()
        service = PriceSyncService(
            make_client(lambda request: next(responses)), database, ["T4_BAG"],
            clock=clock, sleep=sleep,
        )
        result = await service.sync()

        assert result.status == IngestionStatus.SUCCESS
        assert sleep.waits == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, database, clock):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="down")

        service = PriceSyncService(
            make_client(handler), database, ["T4_BAG"],
            config=CollectorConfig(max_retries=2), clock=clock, sleep=RecordingSleep(),
        )
        result = await service.sync()

        assert result.status == IngestionStatus.FAILED
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_unrecoverable_not_retried(self, database, clock):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, text="missing")

        service = PriceSyncService(make_client(handler), database, ["T4_BAG"],
                                   clock=clock, sleep=RecordingSleep())
        result = await service.sync()

        assert result.status == IngestionStatus.FAILED
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_disabled_is_skipped(self, database, clock):
        service = PriceSyncService(
            make_client(json_handler(PRICE_ROWS)), database, ["T4_BAG"],
            config=CollectorConfig(enabled=False), clock=clock,
        )
        result = await service.sync()
        assert result.status == IngestionStatus.SKIPPED
        assert result.records_fetched == 0

    @pytest.mark.asyncio
    async def test_all_records_invalid_fails(self, database, clock):
        rows = [{"city": "Martlock"}, {"city": "Lymhurst"}]
        service = PriceSyncService(make_client(json_handler(rows)), database, ["T4_BAG"], clock=clock)
        result = await service.sync()

        assert result.status == IngestionStatus.FAILED
        assert result.records_failed == 2
        assert result.records_stored == 0

    @pytest.mark.asyncio
    async def test_partial_batch(self, database, clock):
        rows = PRICE_ROWS + [{"city": "Martlock"}]
        service = PriceSyncService(make_client(json_handler(rows)), database, ["T4_BAG"], clock=clock)
        result = await service.sync()

        assert result.status == IngestionStatus.PARTIAL
        assert result.records_stored == 2

    @pytest.mark.asyncio
    async def test_no_items_fetches_nothing(self, database, clock):
        requests: List[httpx.Request] = []
        service = PriceSyncService(make_client(json_handler(PRICE_ROWS, requests)), database, [], clock=clock)
        result = await service.sync()

        assert requests == []
        assert result.records_fetched == 0


# ============================================================
# GOLD SYNC
# ============================================================

class TestGoldSyncService:
    """Tests for gold de-duplication."""

    @pytest.mark.asyncio
    async def test_known_points_skipped(self, database, clock):
        service = GoldSyncService(make_client(json_handler(GOLD_ROWS)), database, clock=clock)
        first = await service.sync()
        assert first.records_stored == 3

        newer = GOLD_ROWS[1:] + [{"price": 4030, "timestamp": "2024-06-01T12:00:00"}]
        service = GoldSyncService(make_client(json_handler(newer)), database, clock=clock)
        second = await service.sync()

        assert second.status == IngestionStatus.SUCCESS
        assert second.records_stored == 1
        with database.session_scope() as session:
            assert GoldPriceRepository(session).count() == 4

    @pytest.mark.asyncio
    async def test_negative_price_stored_as_zero(self, database, clock):
        rows = [{"price": -50, "timestamp": "2024-06-01T09:00:00"}]
        service = GoldSyncService(make_client(json_handler(rows)), database, clock=clock)
        await service.sync()

        with database.session_scope() as session:
            [quote] = GoldPriceRepository(session).recent(Region.AMERICAS)
        assert quote.price == 0

    @pytest.mark.asyncio
    async def test_count_parameter(self, database, clock):
        requests: List[httpx.Request] = []
        service = GoldSyncService(make_client(json_handler([], requests)), database, count=6, clock=clock)
        await service.sync()
        assert requests[0].url.params["count"] == "6"
        assert service.get_health_status()["enabled"] is True
