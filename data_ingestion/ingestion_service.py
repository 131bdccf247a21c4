"""
Data Ingestion - Streaming Ingestion Adapter.

============================================================
RESPONSIBILITY
============================================================
Consumes the push feed and persists what it carries.

- goldprices.ingest    -> GoldQuote  -> gold_prices
- marketorders.deduped -> PriceQuote -> market_prices

============================================================
DESIGN PRINCIPLES
============================================================
- One transaction per message
- A bad or unpersistable message is counted and logged; the
  consumer keeps going
- start()/stop() are idempotent; a stopped adapter restarts

============================================================
"""

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

from core.clock import ClockProtocol, SystemClock
from core.constants import GOLD_PRICE_SUBJECT, MARKET_ORDER_SUBJECT, PRIMARY_REGION, Region
from core.exceptions import UpstreamError, ValidationError
from core.state_manager import ComponentState, StateGuard
from data_ingestion.collectors.market_feed import FeedMessage, FeedSubscriber
from data_ingestion.normalizers.market_normalizer import (
    MarketNormalizer,
    normalize_city,
    normalize_item_id,
    normalize_price,
    normalize_quality,
)
from data_ingestion.types import (
    AuctionType,
    FeedMetrics,
    GoldQuote,
    IngestionSource,
    PriceQuote,
)
from storage.database import Database, DatabasePersistenceError
from storage.repositories.exceptions import RepositoryException
from storage.repositories.market import GoldPriceRepository, MarketPriceRepository


logger = logging.getLogger("ingestion.streaming")


def _auction_type(value: Any) -> AuctionType:
    if isinstance(value, str):
        try:
            return AuctionType(value.strip().lower())
        except ValueError:
            pass
    raise ValidationError("auction_type", "expected 'offer' or 'request'", value)


class StreamingIngestionAdapter:
    """
    Background consumer of the market feed.

    ============================================================
    USAGE
    ============================================================
    adapter = StreamingIngestionAdapter(subscriber, database)
    await adapter.start()
    ...
    await adapter.stop()

    ============================================================
    """

    def __init__(
        self,
        subscriber: FeedSubscriber,
        database: Database,
        normalizer: Optional[MarketNormalizer] = None,
        clock: Optional[ClockProtocol] = None,
        region: Region = PRIMARY_REGION,
    ) -> None:
        self._subscriber = subscriber
        self._database = database
        self._clock = clock or SystemClock()
        self._normalizer = normalizer or MarketNormalizer(clock=self._clock, default_server=region)
        self._region = region
        self._state = StateGuard("streaming_ingestion")
        self._task: Optional[asyncio.Task] = None
        self._metrics = FeedMetrics()

    @property
    def state(self) -> ComponentState:
        return self._state.state

    @property
    def metrics(self) -> FeedMetrics:
        return self._metrics

    # =========================================================
    # LIFECYCLE
    # =========================================================

    async def start(self) -> None:
        """Connect and begin consuming; no-op while already running."""
        if not self._state.try_transition(
            {ComponentState.IDLE, ComponentState.STOPPED}, ComponentState.RUNNING
        ):
            logger.debug("Streaming adapter already running")
            return

        try:
            await self._subscriber.connect()
        except UpstreamError as e:
            # The consume loop reconnects with backoff.
            logger.warning(f"Initial feed connection failed, will retry: {e}")

        self._task = asyncio.create_task(self._consume(), name="streaming-ingestion")
        logger.info(
            f"Streaming adapter started: subjects={self._subscriber.subjects()}, "
            f"region={self._region.value}"
        )

    async def stop(self) -> None:
        """Tear down the subscription; no-op unless running."""
        if not self._state.try_transition({ComponentState.RUNNING}, ComponentState.STOPPED):
            logger.debug("Streaming adapter not running")
            return

        await self._subscriber.close()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"Streaming adapter stopped: {self._metrics.to_dict()}")

    async def _consume(self) -> None:
        try:
            async for message in self._subscriber.messages():
                await self.handle_message(message.subject, message.data)
        except UpstreamError as e:
            logger.error(f"Feed consumption ended: {e}")
            self._state.try_transition({ComponentState.RUNNING}, ComponentState.STOPPED)
        except Exception as e:
            logger.exception(f"Feed consumption crashed: {e}")
            self._state.try_transition({ComponentState.RUNNING}, ComponentState.STOPPED)

    # =========================================================
    # MESSAGE HANDLING
    # =========================================================

    async def handle_message(self, subject: str, data: Mapping[str, Any]) -> bool:
        """
        Convert and persist one message.

        Returns:
            True if the message was stored
        """
        self._metrics.messages_received += 1
        self._metrics.last_message_at = self._clock.now()

        try:
            if subject == GOLD_PRICE_SUBJECT:
                self._store_gold(self.gold_from_message(data))
            elif subject == MARKET_ORDER_SUBJECT:
                self._store_quote(self.quote_from_order(data))
            else:
                logger.debug(f"Ignoring message on unknown subject {subject}")
                return False
        except ValidationError as e:
            self._metrics.messages_invalid += 1
            logger.warning(f"Invalid {subject} message: {e}")
            return False
        except (RepositoryException, DatabasePersistenceError) as e:
            self._metrics.messages_failed += 1
            logger.error(f"Failed to persist {subject} message: {e}")
            return False
        except Exception as e:
            self._metrics.messages_failed += 1
            logger.exception(f"Unexpected error handling {subject} message: {e}")
            return False

        self._metrics.messages_stored += 1
        return True

    async def handle(self, message: FeedMessage) -> bool:
        return await self.handle_message(message.subject, message.data)

    def gold_from_message(self, data: Mapping[str, Any]) -> GoldQuote:
        """
        Raises:
            ValidationError: Missing or non-numeric price
        """
        if not isinstance(data, Mapping):
            raise ValidationError("payload", "message is not an object", data)
        return self._normalizer.normalize_gold_quote({**data, "server": self._region})

    def quote_from_order(self, data: Mapping[str, Any]) -> PriceQuote:
        """
        Map a market order onto one side of a price quote.

        Raises:
            ValidationError: Naming the offending field
        """
        if not isinstance(data, Mapping):
            raise ValidationError("payload", "message is not an object", data)

        side = _auction_type(data.get("AuctionType"))
        price = normalize_price(data.get("UnitPriceSilver"), "unit_price_silver")
        offer = price if side == AuctionType.OFFER else 0
        request = price if side == AuctionType.REQUEST else 0

        return PriceQuote(
            item_id=normalize_item_id(data.get("ItemTypeId")),
            city=normalize_city(data.get("LocationId")),
            quality=normalize_quality(data.get("QualityLevel")),
            sell_price_min=offer,
            sell_price_max=offer,
            buy_price_min=request,
            buy_price_max=request,
            timestamp=self._normalizer.normalize_timestamp(data.get("Expires")),
            server=self._region,
        )

    # =========================================================
    # PERSISTENCE
    # =========================================================

    def _store_gold(self, quote: GoldQuote) -> None:
        with self._database.transaction_scope() as session:
            GoldPriceRepository(session).add_quote(quote)

    def _store_quote(self, quote: PriceQuote) -> None:
        with self._database.transaction_scope() as session:
            MarketPriceRepository(session).add_quote(quote, source=IngestionSource.MARKET_FEED.value)

    def get_health_status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "connected": self._subscriber.is_connected,
            "malformed_envelopes": self._subscriber.malformed_count,
            **self._metrics.to_dict(),
        }
