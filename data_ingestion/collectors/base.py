"""
Data Ingestion - Base Collector.

============================================================
PURPOSE
============================================================
Abstract base class for batch collectors.

============================================================
DESIGN PRINCIPLES
============================================================
- Fetch, normalize, screen, store; nothing else
- Repository-based persistence
- Standardized error handling; collect() never raises
- Full observability through IngestionResult

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from core.clock import ClockProtocol, SystemClock
from core.exceptions import UpstreamError
from data_ingestion.normalizers.market_normalizer import MarketNormalizer
from data_ingestion.types import (
    CanonicalRecord,
    CollectorConfig,
    GoldQuote,
    IngestionResult,
    IngestionSource,
    IngestionStatus,
    PriceQuote,
    RawRecord,
)
from data_processing.cleaning.outlier_filter import (
    OutlierFilter,
    filter_gold_quotes,
    filter_price_quotes,
)
from storage.database import DatabasePersistenceError
from storage.repositories.exceptions import RepositoryException


Sleep = Callable[[float], Awaitable[Any]]


class BaseCollector(ABC):
    """
    Abstract base class for batch collectors.

    ============================================================
    LIFECYCLE
    ============================================================
    1. fetch_data() -> raw records (retried on recoverable errors)
    2. normalize_batch() -> canonical records, per-record errors
    3. screen() -> outliers removed
    4. store_records() -> persisted count
    5. IngestionResult returned and logged

    ============================================================
    """

    def __init__(
        self,
        config: CollectorConfig,
        source: IngestionSource,
        normalizer: Optional[MarketNormalizer] = None,
        outlier_filter: Optional[OutlierFilter] = None,
        clock: Optional[ClockProtocol] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._source = source
        self._clock = clock or SystemClock()
        self._normalizer = normalizer or MarketNormalizer(clock=self._clock)
        self._outlier_filter = outlier_filter or OutlierFilter()
        self._sleep = sleep
        self._logger = logging.getLogger(f"collector.{source.value}")
        self._collector_instance = f"{source.value}_{uuid4().hex[:8]}"

    @property
    def source_name(self) -> str:
        return self._source.value

    @property
    def is_enabled(self) -> bool:
        return self._config.enabled

    # =========================================================
    # ABSTRACT METHODS - Must be implemented by subclasses
    # =========================================================

    @abstractmethod
    async def fetch_data(self) -> List[RawRecord]:
        """
        Fetch raw records from the external source.

        Raises:
            UpstreamError: On network or API errors
        """
        pass

    @abstractmethod
    def store_records(self, records: Sequence[CanonicalRecord]) -> int:
        """
        Persist screened records in one transaction.

        Raises:
            RepositoryException: On storage errors
        """
        pass

    def screen(self, records: Sequence[CanonicalRecord]) -> List[CanonicalRecord]:
        """Drop statistical outliers; non-price records pass through."""
        quotes = [r for r in records if isinstance(r, PriceQuote)]
        golds = [r for r in records if isinstance(r, GoldQuote)]
        others = [r for r in records if not isinstance(r, (PriceQuote, GoldQuote))]

        kept: List[CanonicalRecord] = []
        if quotes:
            kept.extend(filter_price_quotes(quotes, self._outlier_filter).accepted)
        if golds:
            kept.extend(filter_gold_quotes(golds, self._outlier_filter).accepted)
        kept.extend(others)
        return kept

    # =========================================================
    # COLLECTION WORKFLOW
    # =========================================================

    async def collect(self) -> IngestionResult:
        """Run a complete collection cycle. Never raises."""
        result = IngestionResult(source=self.source_name, started_at=self._clock.now())

        if not self.is_enabled:
            result.status = IngestionStatus.SKIPPED
            result.mark_complete(self._clock.now())
            self._logger.info(f"Collector {self.source_name} is disabled, skipping")
            return result

        self._logger.info(f"Starting collection for {self.source_name}")

        try:
            raws = await self._fetch_with_retry()
            result.records_fetched = len(raws)

            normalized = self._normalizer.normalize_batch(raws, source=self.source_name)
            result.records_normalized = normalized.succeeded
            result.records_failed = normalized.failed
            for error in normalized.errors[:5]:
                result.add_error(f"Normalization error: {error}")

            screened = self.screen(normalized.records)
            result.records_rejected = len(normalized.records) - len(screened)

            result.records_stored = self.store_records(screened) if screened else 0

            if result.records_fetched > 0 and result.records_normalized == 0:
                result.status = IngestionStatus.FAILED

        except UpstreamError as e:
            result.mark_failed(f"Fetch error: {e}")
            self._logger.error(f"Fetch failed for {self.source_name}: {e}")

        except (RepositoryException, DatabasePersistenceError) as e:
            result.mark_failed(f"Storage error: {e}")
            self._logger.error(f"Storage error for {self.source_name}: {e}")

        except Exception as e:
            result.mark_failed(f"Unexpected error: {e}")
            self._logger.exception(f"Unexpected error in {self.source_name}")

        result.mark_complete(self._clock.now())
        self._log_result(result)
        return result

    async def _fetch_with_retry(self) -> List[RawRecord]:
        """
        Raises:
            UpstreamError: Unrecoverable error, or all retries exhausted
        """
        last_error: Optional[UpstreamError] = None

        for attempt in range(self._config.max_retries):
            try:
                return await self.fetch_data()
            except UpstreamError as e:
                last_error = e
                if not e.recoverable:
                    raise
                if attempt + 1 >= self._config.max_retries:
                    break
                wait_time = self._config.backoff_base_seconds * (2 ** attempt)
                self._logger.warning(
                    f"Fetch attempt {attempt + 1} failed for {self.source_name}, "
                    f"retrying in {wait_time}s: {e}"
                )
                await self._sleep(wait_time)

        raise UpstreamError(
            f"All {self._config.max_retries} fetch attempts failed: {last_error}",
            source=self.source_name,
            status_code=last_error.status_code if last_error else None,
            recoverable=False,
            cause=last_error,
        )

    def _log_result(self, result: IngestionResult) -> None:
        log_data = result.to_dict()

        if result.status == IngestionStatus.SUCCESS:
            self._logger.info(f"Collection complete: {log_data}")
        elif result.status == IngestionStatus.PARTIAL:
            self._logger.warning(f"Collection partial: {log_data}")
        else:
            self._logger.error(f"Collection failed: {log_data}")

    def get_health_status(self) -> Dict[str, Any]:
        return {
            "source": self.source_name,
            "enabled": self.is_enabled,
            "version": self._config.version,
            "collector_instance": self._collector_instance,
        }
