"""
Market Observation Repositories.

============================================================
PURPOSE
============================================================
Append-only persistence of normalized price and gold quotes,
plus current-quote lookups for the scanner.

============================================================
"""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.clock import ensure_utc
from core.constants import Region
from data_ingestion.types import GoldQuote, PriceQuote
from storage.models.market import GoldPriceRecord, MarketPriceRecord
from storage.repositories.base import BaseRepository


class MarketPriceRepository(BaseRepository[MarketPriceRecord]):
    """Repository for market_prices."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, MarketPriceRecord, "MarketPriceRepository")

    def add_quote(self, quote: PriceQuote, source: str = "unknown") -> MarketPriceRecord:
        return self._add(self._to_record(quote, source))

    def add_quotes(self, quotes: Sequence[PriceQuote], source: str = "unknown") -> int:
        if not quotes:
            return 0
        stored = self._add_all([self._to_record(q, source) for q in quotes])
        self._logger.info(f"Stored {stored} price quotes from {source}")
        return stored

    def latest_quotes(
        self,
        item_ids: Iterable[str],
        cities: Optional[Iterable[str]] = None,
        qualities: Optional[Iterable[int]] = None,
        server: Optional[Region] = None,
    ) -> List[PriceQuote]:
        """Newest quote per (item, city, quality, server)."""
        stmt = select(MarketPriceRecord).where(MarketPriceRecord.item_id.in_(list(item_ids)))
        if cities is not None:
            stmt = stmt.where(MarketPriceRecord.city.in_(list(cities)))
        if qualities is not None:
            stmt = stmt.where(MarketPriceRecord.quality.in_(list(qualities)))
        if server is not None:
            stmt = stmt.where(MarketPriceRecord.server == server.value)
        stmt = stmt.order_by(MarketPriceRecord.observed_at.desc(), MarketPriceRecord.id.desc())

        seen = set()
        latest: List[PriceQuote] = []
        for record in self._execute_query(stmt):
            key = (record.item_id, record.city, record.quality, record.server)
            if key in seen:
                continue
            seen.add(key)
            latest.append(self._to_quote(record))
        return latest

    def count(self) -> int:
        return self._count()

    @staticmethod
    def _to_record(quote: PriceQuote, source: str) -> MarketPriceRecord:
        return MarketPriceRecord(
            item_id=quote.item_id,
            item_name=quote.item_name,
            city=quote.city,
            quality=quote.quality,
            sell_price_min=quote.sell_price_min,
            sell_price_max=quote.sell_price_max,
            buy_price_min=quote.buy_price_min,
            buy_price_max=quote.buy_price_max,
            server=quote.server.value,
            observed_at=quote.timestamp,
            source=source,
        )

    @staticmethod
    def _to_quote(record: MarketPriceRecord) -> PriceQuote:
        return PriceQuote(
            item_id=record.item_id,
            city=record.city,
            quality=record.quality,
            sell_price_min=record.sell_price_min,
            sell_price_max=record.sell_price_max,
            buy_price_min=record.buy_price_min,
            buy_price_max=record.buy_price_max,
            timestamp=ensure_utc(record.observed_at),
            server=Region(record.server),
            item_name=record.item_name,
        )


class GoldPriceRepository(BaseRepository[GoldPriceRecord]):
    """Repository for gold_prices."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, GoldPriceRecord, "GoldPriceRepository")

    def add_quote(self, quote: GoldQuote) -> GoldPriceRecord:
        """
        Raises:
            DuplicateRecordError: A price for this server and time exists
        """
        record = GoldPriceRecord(
            price=quote.price,
            server=quote.server.value,
            observed_at=quote.timestamp,
        )
        return self._add(
            record,
            context={"field": "server,observed_at", "value": f"{quote.server.value},{quote.timestamp.isoformat()}"},
        )

    def recent(self, server: Region, since: Optional[datetime] = None, limit: int = 500) -> List[GoldQuote]:
        stmt = select(GoldPriceRecord).where(GoldPriceRecord.server == server.value)
        if since is not None:
            stmt = stmt.where(GoldPriceRecord.observed_at >= since)
        stmt = stmt.order_by(GoldPriceRecord.observed_at.desc()).limit(limit)
        return [
            GoldQuote(price=r.price, timestamp=ensure_utc(r.observed_at), server=Region(r.server))
            for r in self._execute_query(stmt)
        ]

    def count(self) -> int:
        return self._count()
