"""
Data Ingestion - Item Catalog.

Display-name lookups over the items table, read through the
STABLE cache tier. Unknown items resolve to their own id.
"""

import logging
from typing import Dict, Iterable, Optional

from cache.keys import build_cache_key
from cache.models import CacheTier
from cache.tiered_cache import TieredCache
from storage.database import Database
from storage.repositories.exceptions import RepositoryException
from storage.repositories.items import ItemRepository


logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "EN-US"


class ItemCatalog:
    """Cached item id -> display name resolution."""

    def __init__(
        self,
        database: Database,
        cache: Optional[TieredCache] = None,
        locale: str = DEFAULT_LOCALE,
    ) -> None:
        self._database = database
        self._cache = cache or TieredCache()
        self._locale = locale

    def cache_key(self, item_id: str) -> str:
        return build_cache_key("items:name", item_id=item_id, locale=self._locale)

    def get_name(self, item_id: str) -> str:
        key = self.cache_key(item_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached.decode("utf-8") if isinstance(cached, bytes) else cached

        try:
            with self._database.session_scope() as session:
                name = ItemRepository(session).get_name(item_id, self._locale)
        except RepositoryException as e:
            logger.warning(f"Item name lookup failed for {item_id}: {e}")
            return item_id

        if not name:
            # Unknown ids are not cached so a later catalog load is picked up.
            return item_id
        self._cache.set(key, name, CacheTier.STABLE)
        return name

    def get_names(self, item_ids: Iterable[str]) -> Dict[str, str]:
        return {item_id: self.get_name(item_id) for item_id in dict.fromkeys(item_ids)}
