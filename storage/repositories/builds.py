"""
Combat Event and Build Repositories.

============================================================
PURPOSE
============================================================
- KillEventRepository: append-only event store, windowed reads
- MetaBuildRepository: wholesale replacement of the derived
  build table

============================================================
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from aggregation.models import BuildAggregate, KillEvent
from core.clock import ensure_utc
from storage.models.market import KillEventRecord, MetaBuildRecord
from storage.repositories.base import BaseRepository


class KillEventRepository(BaseRepository[KillEventRecord]):
    """Repository for kill_events."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, KillEventRecord, "KillEventRepository")

    def add_event(
        self,
        event_id: int,
        occurred_at: datetime,
        total_fame: int,
        killer_id: Optional[str] = None,
        victim_id: Optional[str] = None,
        killer_equipment: Optional[Dict[str, Any]] = None,
        victim_equipment: Optional[Dict[str, Any]] = None,
    ) -> KillEventRecord:
        return self._add(
            KillEventRecord(
                event_id=event_id,
                occurred_at=occurred_at,
                total_fame=total_fame,
                killer_id=killer_id,
                victim_id=victim_id,
                killer_equipment=killer_equipment,
                victim_equipment=victim_equipment,
            ),
            context={"field": "event_id", "value": event_id},
        )

    def recent_window(self, since: datetime, limit: int) -> List[KillEvent]:
        """Newest-first events that occurred at or after ``since``."""
        stmt = (
            select(KillEventRecord)
            .where(KillEventRecord.occurred_at >= since)
            .order_by(KillEventRecord.occurred_at.desc(), KillEventRecord.event_id.desc())
            .limit(limit)
        )
        return [
            KillEvent(
                event_id=r.event_id,
                occurred_at=ensure_utc(r.occurred_at),
                total_fame=r.total_fame or 0,
                killer_id=r.killer_id,
                victim_id=r.victim_id,
                killer_equipment=r.killer_equipment,
                victim_equipment=r.victim_equipment,
            )
            for r in self._execute_query(stmt)
        ]

    def count(self) -> int:
        return self._count()

    def active_players_since(self, since: datetime) -> int:
        """Distinct killers with an event at or after ``since``."""
        stmt = select(func.count(func.distinct(KillEventRecord.killer_id))).where(
            KillEventRecord.occurred_at >= since,
            KillEventRecord.killer_id.is_not(None),
        )
        return int(self._execute_scalar(stmt) or 0)

    def total_fame_since(self, since: datetime) -> int:
        stmt = select(func.coalesce(func.sum(KillEventRecord.total_fame), 0)).where(
            KillEventRecord.occurred_at >= since
        )
        return int(self._execute_scalar(stmt) or 0)


class MetaBuildRepository(BaseRepository[MetaBuildRecord]):
    """Repository for meta_builds_cache."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, MetaBuildRecord, "MetaBuildRepository")

    def replace_all(self, builds: Sequence[BuildAggregate]) -> int:
        """
        Delete every row then insert ``builds``.

        Runs inside the caller's transaction; a failure leaves the
        previous rows in place once the caller rolls back.
        """
        try:
            self._session.execute(delete(MetaBuildRecord))
        except SQLAlchemyError as e:
            self._handle_db_error(e, "replace_all.delete")
        inserted = self._add_all([self._to_record(b) for b in builds])
        self._logger.info(f"Replaced meta build snapshot with {inserted} rows")
        return inserted

    def list_all(self) -> List[BuildAggregate]:
        stmt = select(MetaBuildRecord).order_by(
            MetaBuildRecord.sample_size.desc(), MetaBuildRecord.build_id
        )
        return [self._to_aggregate(r) for r in self._execute_query(stmt)]

    def count(self) -> int:
        return self._count()

    @staticmethod
    def _to_record(build: BuildAggregate) -> MetaBuildRecord:
        return MetaBuildRecord(
            build_id=build.build_id,
            weapon_type=build.weapon_type,
            weapon_base=build.weapon_base,
            weapon_name=build.weapon_name,
            head_type=build.head_type,
            head_base=build.head_base,
            head_name=build.head_name,
            armor_type=build.armor_type,
            armor_base=build.armor_base,
            armor_name=build.armor_name,
            shoes_type=build.shoes_type,
            shoes_base=build.shoes_base,
            shoes_name=build.shoes_name,
            cape_type=build.cape_type,
            cape_base=build.cape_base,
            cape_name=build.cape_name,
            kills=build.kills,
            deaths=build.deaths,
            total_fame=build.total_fame,
            sample_size=build.sample_size,
            win_rate=build.win_rate,
            popularity=build.popularity,
            avg_fame=build.avg_fame,
            last_updated=build.last_updated,
        )

    @staticmethod
    def _to_aggregate(record: MetaBuildRecord) -> BuildAggregate:
        return BuildAggregate(
            build_id=record.build_id,
            weapon_type=record.weapon_type,
            weapon_base=record.weapon_base,
            head_type=record.head_type,
            head_base=record.head_base,
            armor_type=record.armor_type,
            armor_base=record.armor_base,
            shoes_type=record.shoes_type,
            shoes_base=record.shoes_base,
            kills=record.kills,
            deaths=record.deaths,
            total_fame=record.total_fame,
            sample_size=record.sample_size,
            win_rate=record.win_rate,
            popularity=record.popularity,
            avg_fame=record.avg_fame,
            last_updated=ensure_utc(record.last_updated),
            cape_type=record.cape_type,
            cape_base=record.cape_base,
            weapon_name=record.weapon_name,
            head_name=record.head_name,
            armor_name=record.armor_name,
            shoes_name=record.shoes_name,
            cape_name=record.cape_name,
        )
