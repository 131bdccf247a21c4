"""
Tests for the repository layer against in-memory SQLite.
"""

from datetime import datetime, timedelta, timezone

import pytest

from aggregation.models import BuildAggregate
from core.constants import Region
from data_ingestion.types import GoldQuote, PriceQuote
from storage.database import DatabasePersistenceError
from storage.repositories import (
    DuplicateRecordError,
    GoldPriceRepository,
    ItemRepository,
    KillEventRepository,
    MarketPriceRepository,
    MetaBuildRepository,
)


T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_quote(city: str, sell_min: int, at: datetime, quality: int = 1) -> PriceQuote:
    return PriceQuote(
        item_id="T4_BAG",
        city=city,
        quality=quality,
        sell_price_min=sell_min,
        sell_price_max=sell_min + 100,
        buy_price_min=sell_min - 200,
        buy_price_max=sell_min - 100,
        timestamp=at,
        server=Region.AMERICAS,
        item_name="Adept's Bag",
    )


def make_build(build_id: str, sample: int) -> BuildAggregate:
    return BuildAggregate(
        build_id=build_id,
        weapon_type="T8_MAIN_SWORD@3",
        weapon_base="T8_MAIN_SWORD",
        head_type="T8_HEAD_PLATE_SET1",
        head_base="T8_HEAD_PLATE_SET1",
        armor_type="T8_ARMOR_PLATE_SET1",
        armor_base="T8_ARMOR_PLATE_SET1",
        shoes_type="T8_SHOES_PLATE_SET1",
        shoes_base="T8_SHOES_PLATE_SET1",
        kills=sample,
        deaths=0,
        total_fame=1000 * sample,
        sample_size=sample,
        win_rate=100.0,
        popularity=10.0,
        avg_fame=1000.0,
        last_updated=T0,
    )


# ============================================================
# MARKET PRICES
# ============================================================

class TestMarketPriceRepository:
    """Tests for market_prices."""

    def test_add_and_count(self, database):
        with database.transaction_scope() as session:
            stored = MarketPriceRepository(session).add_quotes(
                [make_quote("Martlock", 1000, T0), make_quote("Lymhurst", 1100, T0)],
                source="test",
            )
        assert stored == 2
        with database.session_scope() as session:
            assert MarketPriceRepository(session).count() == 2

    def test_empty_batch(self, database):
        with database.transaction_scope() as session:
            assert MarketPriceRepository(session).add_quotes([]) == 0

    def test_latest_quote_per_key(self, database):
        with database.transaction_scope() as session:
            MarketPriceRepository(session).add_quotes([
                make_quote("Martlock", 1000, T0),
                make_quote("Martlock", 1200, T0 + timedelta(hours=1)),
                make_quote("Lymhurst", 900, T0),
                make_quote("Martlock", 5000, T0, quality=2),
            ])

        with database.session_scope() as session:
            latest = MarketPriceRepository(session).latest_quotes(["T4_BAG"], qualities=[1])

        by_city = {q.city: q for q in latest}
        assert set(by_city) == {"Martlock", "Lymhurst"}
        assert by_city["Martlock"].sell_price_min == 1200
        assert by_city["Martlock"].timestamp == T0 + timedelta(hours=1)
        assert by_city["Martlock"].server == Region.AMERICAS

    def test_rollback_on_failure(self, database):
        with pytest.raises(RuntimeError):
            with database.transaction_scope() as session:
                MarketPriceRepository(session).add_quotes([make_quote("Martlock", 1000, T0)])
                raise RuntimeError("boom")
        with database.session_scope() as session:
            assert MarketPriceRepository(session).count() == 0


# ============================================================
# GOLD PRICES
# ============================================================

class TestGoldPriceRepository:
    """Tests for gold_prices."""

    def test_duplicate_server_time_rejected(self, database):
        quote = GoldQuote(price=4000, timestamp=T0, server=Region.AMERICAS)
        with database.transaction_scope() as session:
            GoldPriceRepository(session).add_quote(quote)

        with pytest.raises(DuplicateRecordError):
            with database.transaction_scope() as session:
                GoldPriceRepository(session).add_quote(quote)

        with database.session_scope() as session:
            assert GoldPriceRepository(session).count() == 1

    def test_same_time_other_server_allowed(self, database):
        with database.transaction_scope() as session:
            repository = GoldPriceRepository(session)
            repository.add_quote(GoldQuote(price=4000, timestamp=T0, server=Region.AMERICAS))
            repository.add_quote(GoldQuote(price=4100, timestamp=T0, server=Region.EUROPE))
            assert repository.count() == 2

    def test_recent_newest_first(self, database):
        with database.transaction_scope() as session:
            repository = GoldPriceRepository(session)
            for hour in range(5):
                repository.add_quote(GoldQuote(4000 + hour, T0 + timedelta(hours=hour), Region.AMERICAS))

        with database.session_scope() as session:
            recent = GoldPriceRepository(session).recent(Region.AMERICAS, since=T0 + timedelta(hours=2))

        assert [q.price for q in recent] == [4004, 4003, 4002]
        assert recent[0].timestamp.tzinfo is not None


# ============================================================
# ITEMS
# ============================================================

class TestItemRepository:
    """Tests for items."""

    def test_localized_name_preferred(self, database):
        with database.transaction_scope() as session:
            ItemRepository(session).upsert(
                "T4_BAG", "Adept's Bag", {"EN-US": "Adept's Bag", "DE-DE": "Tasche des Adepten"}, tier=4
            )
        with database.session_scope() as session:
            repository = ItemRepository(session)
            assert repository.get_name("T4_BAG", "DE-DE") == "Tasche des Adepten"
            assert repository.get_name("T4_BAG", "FR-FR") == "Adept's Bag"
            assert repository.get_name("T9_NOPE") is None

    def test_upsert_updates(self, database):
        with database.transaction_scope() as session:
            ItemRepository(session).upsert("T4_BAG", "Old")
        with database.transaction_scope() as session:
            ItemRepository(session).upsert("T4_BAG", "New")
        with database.session_scope() as session:
            repository = ItemRepository(session)
            assert repository.get_name("T4_BAG") == "New"
            assert repository.count() == 1


# ============================================================
# COMBAT EVENTS / BUILDS
# ============================================================

class TestKillEventRepository:
    """Tests for kill_events."""

    def test_window_and_limit(self, database):
        with database.transaction_scope() as session:
            repository = KillEventRepository(session)
            for i in range(6):
                repository.add_event(
                    event_id=i,
                    occurred_at=T0 - timedelta(days=i * 10),
                    total_fame=100,
                    killer_id=f"p{i % 2}",
                )

        with database.session_scope() as session:
            repository = KillEventRepository(session)
            window = repository.recent_window(since=T0 - timedelta(days=30), limit=3)
            assert [e.event_id for e in window] == [0, 1, 2]
            assert repository.active_players_since(T0 - timedelta(days=30)) == 2
            assert repository.total_fame_since(T0 - timedelta(days=30)) == 400

    def test_duplicate_event_id(self, database):
        with database.transaction_scope() as session:
            KillEventRepository(session).add_event(event_id=1, occurred_at=T0, total_fame=1)
        with pytest.raises(DuplicateRecordError):
            with database.transaction_scope() as session:
                KillEventRepository(session).add_event(event_id=1, occurred_at=T0, total_fame=1)


class TestMetaBuildRepository:
    """Tests for meta_builds_cache."""

    def test_replace_all_supersedes(self, database):
        with database.transaction_scope() as session:
            MetaBuildRepository(session).replace_all([make_build("a", 5), make_build("b", 9)])
        with database.transaction_scope() as session:
            MetaBuildRepository(session).replace_all([make_build("c", 7)])

        with database.session_scope() as session:
            builds = MetaBuildRepository(session).list_all()
        assert [b.build_id for b in builds] == ["c"]
        assert builds[0].last_updated == T0

    def test_failed_replace_keeps_snapshot(self, database):
        with database.transaction_scope() as session:
            MetaBuildRepository(session).replace_all([make_build("a", 5)])

        # Two rows with the same build id violate the unique constraint.
        with pytest.raises((DuplicateRecordError, DatabasePersistenceError)):
            with database.transaction_scope() as session:
                MetaBuildRepository(session).replace_all([make_build("x", 5), make_build("x", 6)])

        with database.session_scope() as session:
            assert [b.build_id for b in MetaBuildRepository(session).list_all()] == ["a"]

    def test_list_order(self, database):
        with database.transaction_scope() as session:
            MetaBuildRepository(session).replace_all(
                [make_build("b", 5), make_build("a", 5), make_build("z", 9)]
            )
        with database.session_scope() as session:
            assert [b.build_id for b in MetaBuildRepository(session).list_all()] == ["z", "a", "b"]
