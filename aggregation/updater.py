"""
Aggregation - Periodic Updater.

============================================================
RESPONSIBILITY
============================================================
Recomputes the meta build snapshot from the recent combat
window and publishes it to the store and the cache.

============================================================
DESIGN PRINCIPLES
============================================================
- Single writer: an overlapping trigger is dropped (SKIPPED),
  never queued
- Wholesale replacement in one transaction; a failed run
  leaves the previous snapshot in place
- Shutdown lets an in-flight run finish

============================================================
WORKFLOW
============================================================
1. Load the window (newest first, bounded)
2. Fold, derive, select, resolve names (BuildAggregator)
3. Replace meta_builds_cache (delete-all, bulk insert)
4. Publish snapshot + summary to the STANDARD cache tier

============================================================
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, List, Optional

from aggregation.build_aggregator import BuildAggregator
from aggregation.models import (
    AggregationConfig,
    AggregationRunResult,
    AggregationStatus,
    BuildAggregate,
    PvpSummary,
)
from cache.keys import build_cache_key
from cache.models import CacheTier
from cache.tiered_cache import TieredCache
from core.clock import ClockProtocol, SystemClock
from core.exceptions import AggregationError
from core.state_manager import ComponentState, StateGuard
from data_ingestion.item_catalog import ItemCatalog
from storage.database import Database, DatabasePersistenceError
from storage.repositories.builds import KillEventRepository, MetaBuildRepository
from storage.repositories.exceptions import RepositoryException


logger = logging.getLogger("aggregation.updater")

META_BUILDS_CACHE_KEY = build_cache_key("aggregation:meta_builds")
PVP_SUMMARY_CACHE_KEY = build_cache_key("aggregation:pvp_summary")


class AggregationUpdater:
    """
    Periodic meta build aggregation job.

    ============================================================
    USAGE
    ============================================================
    updater = AggregationUpdater(database, catalog, cache)
    result = await updater.run()          # one run
    await updater.start()                 # every interval_seconds
    await updater.stop()

    ============================================================
    """

    def __init__(
        self,
        database: Database,
        catalog: Optional[ItemCatalog] = None,
        cache: Optional[TieredCache] = None,
        config: Optional[AggregationConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._database = database
        self._catalog = catalog
        self._cache = cache or TieredCache()
        self._config = config or AggregationConfig()
        self._clock = clock or SystemClock()
        self._aggregator = BuildAggregator(self._config)
        self._state = StateGuard("aggregation")
        self._loop_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._last_result: Optional[AggregationRunResult] = None

    @property
    def state(self) -> ComponentState:
        return self._state.state

    @property
    def last_result(self) -> Optional[AggregationRunResult]:
        return self._last_result

    # =========================================================
    # SINGLE RUN
    # =========================================================

    async def run(self) -> AggregationRunResult:
        """Run once. Never raises; a concurrent call returns SKIPPED."""
        if not self._state.try_transition({ComponentState.IDLE}, ComponentState.RUNNING):
            logger.info("Aggregation already in progress, skipping trigger")
            return AggregationRunResult(status=AggregationStatus.SKIPPED)

        started_at = self._clock.now()
        try:
            result = await asyncio.to_thread(self._run_sync, started_at)
        except AggregationError as e:
            logger.error(f"Aggregation failed, previous snapshot kept: {e}")
            result = AggregationRunResult(
                status=AggregationStatus.FAILED,
                started_at=started_at,
                error=str(e),
            )
        except Exception as e:
            logger.exception(f"Aggregation failed, previous snapshot kept: {e}")
            result = AggregationRunResult(
                status=AggregationStatus.FAILED,
                started_at=started_at,
                error=str(e),
            )
        finally:
            self._state.transition(ComponentState.IDLE)

        result.completed_at = self._clock.now()
        result.duration_seconds = (result.completed_at - started_at).total_seconds()
        self._last_result = result
        logger.info(f"Aggregation run finished: {result.to_dict()}")
        return result

    def _run_sync(self, started_at: datetime) -> AggregationRunResult:
        window_start = self._clock.window_start(self._config.window_days)

        with self._database.session_scope() as session:
            events = KillEventRepository(session).recent_window(
                since=window_start, limit=self._config.event_limit
            )

        if not events:
            logger.info(f"No combat events since {window_start.isoformat()}, snapshot untouched")
            return AggregationRunResult(status=AggregationStatus.NO_DATA, started_at=started_at)

        resolve = self._catalog.get_name if self._catalog is not None else None
        builds = self._aggregator.aggregate(events, now=started_at, resolve=resolve)

        try:
            with self._database.transaction_scope() as session:
                MetaBuildRepository(session).replace_all(builds)
        except (RepositoryException, DatabasePersistenceError) as e:
            raise AggregationError(f"Snapshot replace failed: {e}", cause=e) from e

        summary = self._summarize(len(events), len(builds), window_start, started_at)
        self._publish(builds, summary)

        return AggregationRunResult(
            status=AggregationStatus.COMPLETED,
            events_processed=len(events),
            builds_published=len(builds),
            started_at=started_at,
            summary=summary,
        )

    def _summarize(
        self,
        total_kills: int,
        build_count: int,
        window_start: datetime,
        now: datetime,
    ) -> PvpSummary:
        active_since = self._clock.window_start(self._config.active_player_days)
        with self._database.session_scope() as session:
            repository = KillEventRepository(session)
            active_players = repository.active_players_since(active_since)
            total_fame = repository.total_fame_since(window_start)
        return PvpSummary(
            total_kills=total_kills,
            active_players=active_players,
            total_fame=total_fame,
            meta_builds_count=build_count,
            last_updated=now,
        )

    def _publish(self, builds: List[BuildAggregate], summary: PvpSummary) -> None:
        self._cache.set_json(META_BUILDS_CACHE_KEY, [b.to_dict() for b in builds], CacheTier.STANDARD)
        self._cache.set_json(PVP_SUMMARY_CACHE_KEY, summary.to_dict(), CacheTier.STANDARD)

    # =========================================================
    # CACHED READS
    # =========================================================

    def cached_builds(self) -> Optional[List[Any]]:
        return self._cache.get_json(META_BUILDS_CACHE_KEY)

    def cached_summary(self) -> Optional[Any]:
        return self._cache.get_json(PVP_SUMMARY_CACHE_KEY)

    # =========================================================
    # PERIODIC LOOP
    # =========================================================

    async def start(self) -> None:
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._loop(), name="aggregation-updater")
        logger.info(f"Aggregation loop started, interval={self._config.interval_seconds}s")

    async def stop(self) -> None:
        """Stop the loop; an in-flight run is awaited, not cancelled."""
        task, self._loop_task = self._loop_task, None
        if task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        await task
        logger.info("Aggregation loop stopped")

    async def _loop(self) -> None:
        while self._stop_event is not None and not self._stop_event.is_set():
            await self.run()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._config.interval_seconds)
            except asyncio.TimeoutError:
                continue
