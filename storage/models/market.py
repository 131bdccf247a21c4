"""
Market Domain ORM Models.

============================================================
PURPOSE
============================================================
Persistence targets of the ingestion layer and the build
aggregation job.

============================================================
DATA LIFECYCLE ROLE
============================================================
- market_prices, gold_prices: append-only observations
- kill_events: append-only combat events (aggregation input)
- items: reference data (display names)
- meta_builds_cache: derived, replaced wholesale each cycle

============================================================
MODELS
============================================================
- MarketPriceRecord
- GoldPriceRecord
- KillEventRecord
- ItemRecord
- MetaBuildRecord

============================================================
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin


class MarketPriceRecord(Base, TimestampMixin):
    """
    One normalized price observation.

    Stored exactly as the normalizer produced it; the newest row per
    (item, city, quality, server) is the current quote.
    """

    __tablename__ = "market_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    item_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Upstream item identifier, e.g. T4_BAG"
    )

    item_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    city: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Canonical city name"
    )

    quality: Mapped[int] = mapped_column(Integer, nullable=False)

    sell_price_min: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    sell_price_max: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    buy_price_min: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    buy_price_max: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    server: Mapped[str] = mapped_column(String(16), nullable=False)

    observed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Upstream observation time (UTC)"
    )

    source: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="unknown",
        comment="Ingestion source identifier"
    )

    __table_args__ = (
        Index("ix_market_prices_lookup", "item_id", "city", "quality", "server"),
        Index("ix_market_prices_observed_at", "observed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<MarketPriceRecord {self.item_id}@{self.city} q{self.quality} "
            f"sell={self.sell_price_min} buy={self.buy_price_max}>"
        )


class GoldPriceRecord(Base, TimestampMixin):
    """Gold-to-silver price at a point in time, one row per (server, time)."""

    __tablename__ = "gold_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    server: Mapped[str] = mapped_column(String(16), nullable=False)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("server", "observed_at", name="uq_gold_prices_server_time"),
    )

    def __repr__(self) -> str:
        return f"<GoldPriceRecord {self.server} {self.price} @ {self.observed_at}>"


class KillEventRecord(Base):
    """
    One combat event with both participants' loadouts.

    Equipment columns hold the upstream slot map, e.g.
    {"MainHand": {"Type": "T8_MAIN_SWORD@2"}, "Head": {...}, ...}.
    """

    __tablename__ = "kill_events"

    event_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    killer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    killer_name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    killer_equipment: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    victim_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    victim_name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    victim_equipment: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    total_fame: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        Index("ix_kill_events_occurred_at", "occurred_at"),
    )


class ItemRecord(Base, TimestampMixin):
    """Item reference data."""

    __tablename__ = "items"

    item_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    localized_names: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    tier: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def display_name(self, locale: str = "EN-US") -> Optional[str]:
        if self.localized_names and self.localized_names.get(locale):
            return self.localized_names[locale]
        return self.name


class MetaBuildRecord(Base):
    """
    Aggregated loadout statistics over the recent window.

    Superseded wholesale on every aggregation cycle.
    """

    __tablename__ = "meta_builds_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    build_id: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)

    weapon_type: Mapped[str] = mapped_column(String(128), nullable=False)
    weapon_base: Mapped[str] = mapped_column(String(128), nullable=False)
    weapon_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    head_type: Mapped[str] = mapped_column(String(128), nullable=False)
    head_base: Mapped[str] = mapped_column(String(128), nullable=False)
    head_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    armor_type: Mapped[str] = mapped_column(String(128), nullable=False)
    armor_base: Mapped[str] = mapped_column(String(128), nullable=False)
    armor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shoes_type: Mapped[str] = mapped_column(String(128), nullable=False)
    shoes_base: Mapped[str] = mapped_column(String(128), nullable=False)
    shoes_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    cape_type: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    cape_base: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    cape_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deaths: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_fame: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    sample_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    win_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    popularity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_fame: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
