"""
Arbitrage - Scanner.

============================================================
RESPONSIBILITY
============================================================
Public scan seam. Picks the fastest engine that is proven to
agree with the portable one and hides engine failures from
callers.

============================================================
ENGINE SELECTION
============================================================
1. At construction, run a fixed probe dataset through both
   engines and compare results with the parity comparator
2. Parity holds  -> accelerated engine is active
3. Parity fails or the probe raises -> portable engine only
4. Any exception during a later accelerated scan -> log and
   rerun the same call on the portable engine

============================================================
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from data_ingestion.types import PriceQuote
from parity_validation import OpportunityParityComparator, ParityComparisonResult

from .engine_base import ScanEngine
from .models import (
    ArbitrageOpportunity,
    MarketDataPoint,
    ScanParameters,
    ScannerConfig,
)
from .python_engine import PythonScanEngine
from .vectorized_engine import VectorizedScanEngine


logger = logging.getLogger(__name__)


# Exercises hub and cross-royal routes, ROI ties, zero prices,
# zero quantity, large-quantity transport scaling and two qualities.
PROBE_DATASET: Tuple[MarketDataPoint, ...] = (
    MarketDataPoint("T4_BAG", "Adept's Bag", "Caerleon", 1000, 1300, 10),
    MarketDataPoint("T4_BAG", "Adept's Bag", "Martlock", 900, 1250, 25),
    MarketDataPoint("T4_BAG", "Adept's Bag", "Thetford", 0, 1400, 5),
    MarketDataPoint("T4_BAG", "Adept's Bag", "Lymhurst", 1100, 0, 8),
    MarketDataPoint("T5_CAPE", "Expert's Cape", "Bridgewatch", 5000, 7000, 150),
    MarketDataPoint("T5_CAPE", "Expert's Cape", "Fort Sterling", 5000, 7000, 150),
    MarketDataPoint("T5_CAPE", "Expert's Cape", "Caerleon", 5200, 6900, 0),
    MarketDataPoint("T6_SWORD", "Master's Broadsword", "Lymhurst", 20000, 26000, 3, quality=2),
    MarketDataPoint("T6_SWORD", "Master's Broadsword", "Caerleon", 21000, 27500, 4, quality=2),
    MarketDataPoint("T6_SWORD", "Master's Broadsword", "Martlock", 19000, 24000, 2, quality=3),
)

PROBE_PARAMETERS = ScanParameters(min_roi=-100.0, max_results=1000)


def quotes_to_market_data(
    quotes: Iterable[PriceQuote],
    names: Optional[Mapping[str, str]] = None,
    volumes: Optional[Mapping[Tuple[str, str], int]] = None,
    default_quantity: int = 1,
) -> List[MarketDataPoint]:
    """
    Adapt canonical quotes to engine input.

    The cheapest offer (sell_price_min) is what a trader pays; the
    best standing request (buy_price_max) is what a trader receives.

    Args:
        names: item_id -> display name
        volumes: (item_id, city) -> tradeable quantity
        default_quantity: Quantity when no volume is known
    """
    names = names or {}
    volumes = volumes or {}
    points: List[MarketDataPoint] = []
    for quote in quotes:
        points.append(
            MarketDataPoint(
                item_id=quote.item_id,
                item_name=names.get(quote.item_id) or quote.item_name or quote.item_id,
                city=quote.city,
                buy_price=quote.sell_price_min,
                sell_price=quote.buy_price_max,
                quantity=volumes.get((quote.item_id, quote.city), default_quantity),
                quality=quote.quality,
            )
        )
    return points


class ArbitrageScanner:
    """
    Capability-selected arbitrage scanner.

    Usage:
        scanner = ArbitrageScanner(ScannerConfig())
        ranked = scanner.scan(points, ScanParameters(min_roi=15.0))
    """

    def __init__(
        self,
        config: Optional[ScannerConfig] = None,
        portable: Optional[ScanEngine] = None,
        accelerated: Optional[ScanEngine] = None,
        comparator: Optional[OpportunityParityComparator] = None,
        probe: bool = True,
    ) -> None:
        self._config = config or ScannerConfig()
        self._portable = portable or PythonScanEngine(self._config)
        self._candidate = accelerated
        if self._candidate is None and self._config.prefer_accelerated:
            self._candidate = VectorizedScanEngine(self._config)
        self._comparator = comparator or OpportunityParityComparator()
        self._accelerated: Optional[ScanEngine] = None
        self._probe_result: Optional[ParityComparisonResult] = None
        self._fallback_count = 0

        if self._candidate is not None and probe:
            self.probe()

    # ---------------------------------------------------------
    # Engine selection
    # ---------------------------------------------------------

    def probe(self, dataset: Sequence[MarketDataPoint] = PROBE_DATASET) -> bool:
        """Activate the accelerated engine iff it matches the portable one."""
        self._accelerated = None
        if self._candidate is None:
            return False
        try:
            expected = self._portable.scan(dataset, PROBE_PARAMETERS)
            actual = self._candidate.scan(dataset, PROBE_PARAMETERS)
        except Exception as e:
            logger.warning(f"Accelerated engine {self._candidate.name} failed its probe: {e}")
            return False

        self._probe_result = self._comparator.compare(
            expected,
            actual,
            reference_engine=self._portable.name,
            candidate_engine=self._candidate.name,
        )
        if not self._probe_result.is_match:
            logger.warning(
                f"Accelerated engine disabled: {self._probe_result.summary()}"
            )
            return False

        self._accelerated = self._candidate
        logger.info(f"Scan engine selected: {self._candidate.name}")
        return True

    @property
    def active_engine(self) -> str:
        return (self._accelerated or self._portable).name

    @property
    def probe_result(self) -> Optional[ParityComparisonResult]:
        return self._probe_result

    @property
    def fallback_count(self) -> int:
        return self._fallback_count

    # ---------------------------------------------------------
    # Scanning
    # ---------------------------------------------------------

    def scan(
        self,
        points: Sequence[MarketDataPoint],
        params: Optional[ScanParameters] = None,
    ) -> List[ArbitrageOpportunity]:
        params = params or ScanParameters()
        if self._accelerated is not None:
            try:
                return self._accelerated.scan(points, params)
            except Exception as e:
                self._fallback_count += 1
                logger.warning(
                    f"Engine {self._accelerated.name} failed, "
                    f"rerunning on {self._portable.name}: {e}"
                )
        return self._portable.scan(points, params)

    def stats(self) -> Dict[str, object]:
        return {
            "active_engine": self.active_engine,
            "fallback_count": self._fallback_count,
            "probe_match": self._probe_result.is_match if self._probe_result else None,
        }
