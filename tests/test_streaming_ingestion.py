"""
Tests for the streaming ingestion adapter and feed subscriber.

============================================================
PURPOSE
============================================================
1. Gold and market order message mapping
2. Per-message failure isolation
3. Idempotent start/stop and restart
4. Envelope decoding and reconnect budget

============================================================
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from core.constants import GOLD_PRICE_SUBJECT, MARKET_ORDER_SUBJECT, Region
from core.exceptions import UpstreamError
from core.state_manager import ComponentState
from data_ingestion.collectors.market_feed import FeedConfig, FeedMessage, FeedSubscriber
from data_ingestion.ingestion_service import StreamingIngestionAdapter
from storage.repositories.market import GoldPriceRepository, MarketPriceRepository


def gold_message(price, timestamp="2024-06-01T10:00:00Z") -> FeedMessage:
    return FeedMessage(GOLD_PRICE_SUBJECT, {"Price": price, "Timestamp": timestamp})


def order_message(**overrides) -> FeedMessage:
    data = {
        "Id": 1,
        "ItemTypeId": "T4_BAG",
        "LocationId": 3005,
        "QualityLevel": 2,
        "UnitPriceSilver": 1500,
        "Amount": 3,
        "AuctionType": "offer",
        "Expires": "2024-07-01T00:00:00",
    }
    data.update(overrides)
    return FeedMessage(MARKET_ORDER_SUBJECT, data)


class FakeSubscriber:
    """Yields a fixed list of messages, then idles until cancelled."""

    is_connected = True
    malformed_count = 0

    def __init__(self, messages=(), error=None):
        self._pending = list(messages)
        self._error = error
        self.connect = AsyncMock()
        self.close = AsyncMock()
        self.drained = asyncio.Event()

    def subjects(self):
        return [GOLD_PRICE_SUBJECT, MARKET_ORDER_SUBJECT]

    async def messages(self):
        while self._pending:
            yield self._pending.pop(0)
        self.drained.set()
        if self._error is not None:
            raise self._error
        await asyncio.Event().wait()


@pytest.fixture
def make_adapter(database, clock):
    def factory(subscriber):
        return StreamingIngestionAdapter(subscriber, database, clock=clock, region=Region.AMERICAS)
    return factory


async def drain(adapter: StreamingIngestionAdapter, subscriber: FakeSubscriber) -> None:
    await adapter.start()
    await asyncio.wait_for(subscriber.drained.wait(), timeout=2.0)


# ============================================================
# MESSAGE MAPPING
# ============================================================

class TestMessageHandling:
    """Tests for subject routing and field mapping."""

    @pytest.mark.asyncio
    async def test_negative_gold_stored_as_zero(self, database, make_adapter):
        adapter = make_adapter(FakeSubscriber())
        assert await adapter.handle(gold_message(-50)) is True

        with database.session_scope() as session:
            [quote] = GoldPriceRepository(session).recent(Region.AMERICAS)
        assert quote.price == 0
        assert quote.timestamp == datetime(2024, 6, 1, 10, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_offer_fills_sell_side(self, database, make_adapter):
        adapter = make_adapter(FakeSubscriber())
        assert await adapter.handle(order_message()) is True

        with database.session_scope() as session:
            [quote] = MarketPriceRepository(session).latest_quotes(["T4_BAG"])
        assert quote.city == "Caerleon"
        assert quote.quality == 2
        assert (quote.sell_price_min, quote.sell_price_max) == (1500, 1500)
        assert (quote.buy_price_min, quote.buy_price_max) == (0, 0)
        assert quote.timestamp == datetime(2024, 7, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_request_fills_buy_side(self, database, make_adapter):
        adapter = make_adapter(FakeSubscriber())
        await adapter.handle(order_message(AuctionType="REQUEST", LocationId="Fort Sterling"))

        with database.session_scope() as session:
            [quote] = MarketPriceRepository(session).latest_quotes(["T4_BAG"])
        assert quote.city == "Fort Sterling"
        assert (quote.sell_price_min, quote.buy_price_max) == (0, 1500)

    def test_mapping_without_persistence(self, make_adapter):
        adapter = make_adapter(FakeSubscriber())
        quote = adapter.quote_from_order(order_message(QualityLevel=9).data)
        assert quote.quality == 5
        assert quote.server == Region.AMERICAS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"AuctionType": "bid"},
        {"AuctionType": None},
        {"ItemTypeId": ""},
        {"UnitPriceSilver": "lots"},
        {"LocationId": 9999},
    ])
    async def test_invalid_order_counted(self, make_adapter, overrides):
        adapter = make_adapter(FakeSubscriber())
        assert await adapter.handle(order_message(**overrides)) is False
        assert adapter.metrics.messages_invalid == 1
        assert adapter.metrics.messages_stored == 0

    @pytest.mark.asyncio
    async def test_unknown_subject_ignored(self, make_adapter):
        adapter = make_adapter(FakeSubscriber())
        assert await adapter.handle_message("other.subject", {"x": 1}) is False
        assert adapter.metrics.messages_received == 1
        assert adapter.metrics.messages_invalid == 0


# ============================================================
# CONSUMPTION
# ============================================================

class TestConsumption:
    """Tests for the background consume loop."""

    @pytest.mark.asyncio
    async def test_failure_isolated_per_message(self, database, make_adapter):
        subscriber = FakeSubscriber([
            gold_message(4000),
            gold_message(4100),  # same server and time as the first
            order_message(AuctionType="bogus"),
            gold_message(4200, "2024-06-01T11:00:00Z"),
        ])
        adapter = make_adapter(subscriber)
        await drain(adapter, subscriber)

        metrics = adapter.metrics
        assert metrics.messages_received == 4
        assert metrics.messages_stored == 2
        assert metrics.messages_failed == 1
        assert metrics.messages_invalid == 1
        assert adapter.state == ComponentState.RUNNING
        with database.session_scope() as session:
            assert GoldPriceRepository(session).count() == 2

        await adapter.stop()

    @pytest.mark.asyncio
    async def test_unexpected_store_error_does_not_end_subscription(self, database, make_adapter):
        subscriber = FakeSubscriber([order_message(), gold_message(4200)])
        adapter = make_adapter(subscriber)

        with patch.object(
            MarketPriceRepository,
            "add_quote",
            side_effect=OverflowError("Python int too large to convert to SQLite INTEGER"),
        ):
            await drain(adapter, subscriber)

        metrics = adapter.metrics
        assert metrics.messages_received == 2
        assert metrics.messages_failed == 1
        assert metrics.messages_stored == 1
        assert adapter.state == ComponentState.RUNNING
        with database.session_scope() as session:
            [quote] = GoldPriceRepository(session).recent(Region.AMERICAS)
        assert quote.price == 4200

        await adapter.stop()

    @pytest.mark.asyncio
    async def test_oversized_price_counted_invalid(self, make_adapter):
        subscriber = FakeSubscriber([order_message(UnitPriceSilver=10**20), gold_message(4200)])
        adapter = make_adapter(subscriber)
        await drain(adapter, subscriber)

        assert adapter.metrics.messages_invalid == 1
        assert adapter.metrics.messages_stored == 1
        await adapter.stop()

    @pytest.mark.asyncio
    async def test_crashed_consumer_leaves_running_state(self, make_adapter):
        subscriber = FakeSubscriber(error=RuntimeError("decoder bug"))
        adapter = make_adapter(subscriber)
        await drain(adapter, subscriber)
        for _ in range(5):
            await asyncio.sleep(0)

        assert adapter.state == ComponentState.STOPPED

        subscriber._error = None
        await adapter.start()
        assert subscriber.connect.await_count == 2
        assert adapter.state == ComponentState.RUNNING
        await adapter.stop()

    @pytest.mark.asyncio
    async def test_unrecoverable_feed_error_stops(self, make_adapter):
        subscriber = FakeSubscriber(error=UpstreamError("gone", source="market_feed", recoverable=False))
        adapter = make_adapter(subscriber)
        await drain(adapter, subscriber)
        for _ in range(5):
            await asyncio.sleep(0)

        assert adapter.state == ComponentState.STOPPED
        assert adapter.get_health_status()["state"] == "stopped"


# ============================================================
# LIFECYCLE
# ============================================================

class TestLifecycle:
    """Tests for idempotent start/stop."""

    @pytest.mark.asyncio
    async def test_start_twice_connects_once(self, make_adapter):
        subscriber = FakeSubscriber()
        adapter = make_adapter(subscriber)

        await adapter.start()
        await adapter.start()

        subscriber.connect.assert_awaited_once()
        assert adapter.state == ComponentState.RUNNING
        await adapter.stop()

    @pytest.mark.asyncio
    async def test_stop_twice_closes_once(self, make_adapter):
        subscriber = FakeSubscriber()
        adapter = make_adapter(subscriber)
        await adapter.start()

        await adapter.stop()
        await adapter.stop()

        subscriber.close.assert_awaited_once()
        assert adapter.state == ComponentState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(self, make_adapter):
        subscriber = FakeSubscriber()
        adapter = make_adapter(subscriber)
        await adapter.stop()

        subscriber.close.assert_not_awaited()
        assert adapter.state == ComponentState.IDLE

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, make_adapter):
        subscriber = FakeSubscriber()
        adapter = make_adapter(subscriber)
        await adapter.start()
        await adapter.stop()
        await adapter.start()

        assert subscriber.connect.await_count == 2
        assert adapter.state == ComponentState.RUNNING
        await adapter.stop()

    @pytest.mark.asyncio
    async def test_initial_connect_failure_keeps_running(self, make_adapter):
        subscriber = FakeSubscriber()
        subscriber.connect.side_effect = UpstreamError("refused", source="market_feed")
        adapter = make_adapter(subscriber)

        await adapter.start()

        assert adapter.state == ComponentState.RUNNING
        await adapter.stop()


# ============================================================
# FEED SUBSCRIBER
# ============================================================

class TestFeedSubscriber:
    """Tests for envelope decoding and reconnection."""

    @pytest.fixture
    def subscriber(self):
        return FeedSubscriber(FeedConfig(
            url="ws://feed.test",
            subjects=[GOLD_PRICE_SUBJECT],
            reconnect_attempts=2,
        ))

    def test_decode_valid(self, subscriber):
        message = subscriber.decode(b'{"subject": "goldprices.ingest", "data": {"Price": 4000}}')
        assert message == FeedMessage(GOLD_PRICE_SUBJECT, {"Price": 4000})

    @pytest.mark.parametrize("raw", [
        "not json",
        b"\xff\xfe",
        "[1, 2]",
        '{"subject": "goldprices.ingest"}',
        '{"subject": 3, "data": {}}',
    ])
    def test_decode_malformed(self, subscriber, raw):
        assert subscriber.decode(raw) is None
        assert subscriber.malformed_count == 1

    def test_not_connected_initially(self, subscriber):
        assert subscriber.is_connected is False
        assert subscriber.subjects() == [GOLD_PRICE_SUBJECT]

    @pytest.mark.asyncio
    async def test_reconnect_budget_exhausted(self, subscriber):
        subscriber.connect = AsyncMock(side_effect=UpstreamError("refused", source="market_feed"))
        with patch("data_ingestion.collectors.market_feed.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(UpstreamError) as exc_info:
                async for _ in subscriber.messages():
                    pass

        assert exc_info.value.recoverable is False
        assert [c.args[0] for c in sleep.await_args_list] == [1, 2]
        assert subscriber.connect.await_count == 2
