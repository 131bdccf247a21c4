"""
Item Reference Repository.
"""

from typing import Dict, Optional

from sqlalchemy.orm import Session

from storage.models.market import ItemRecord
from storage.repositories.base import BaseRepository


class ItemRepository(BaseRepository[ItemRecord]):
    """Repository for items."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, ItemRecord, "ItemRepository")

    def get(self, item_id: str) -> Optional[ItemRecord]:
        return self._get_by_id(item_id)

    def get_name(self, item_id: str, locale: str = "EN-US") -> Optional[str]:
        record = self._get_by_id(item_id)
        return record.display_name(locale) if record else None

    def upsert(
        self,
        item_id: str,
        name: Optional[str],
        localized_names: Optional[Dict[str, str]] = None,
        tier: Optional[int] = None,
    ) -> ItemRecord:
        record = self._get_by_id(item_id)
        if record is None:
            return self._add(ItemRecord(
                item_id=item_id,
                name=name,
                localized_names=localized_names,
                tier=tier,
            ))
        record.name = name
        record.localized_names = localized_names
        record.tier = tier
        self._session.flush()
        return record

    def count(self) -> int:
        return self._count()
