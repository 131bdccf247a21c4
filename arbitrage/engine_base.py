"""
Arbitrage - Scan Engine Interface.

============================================================
RESPONSIBILITY
============================================================
Contract shared by every scan engine plus the pieces of the
algorithm that are not engine specific.

============================================================
ALGORITHM
============================================================
1. Group points by (item_id, quality), first-appearance order
2. Every ordered (buy, sell) pair with distinct cities, buy
   index outer, sell index inner
3. Skip non-positive prices and zero tradeable quantity
4. Net profit after fees on both legs and transport
5. Keep roi >= min_roi, stable sort by roi descending, truncate

Engines must produce field-for-field identical output for the
same input, including ordering of ROI ties.

============================================================
"""

from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Dict, List, Sequence, Tuple

from .models import ArbitrageOpportunity, MarketDataPoint, ScanParameters, ScannerConfig
from .transport import TransportModel


GroupKey = Tuple[str, int]


def group_points(points: Sequence[MarketDataPoint]) -> "OrderedDict[GroupKey, List[MarketDataPoint]]":
    """Group by (item_id, quality) keeping first-appearance order."""
    groups: "OrderedDict[GroupKey, List[MarketDataPoint]]" = OrderedDict()
    for point in points:
        groups.setdefault((point.item_id, point.quality), []).append(point)
    return groups


class ScanEngine(ABC):
    """A pure, stateless arbitrage scan strategy."""

    name: str = "engine"

    def __init__(self, config: ScannerConfig) -> None:
        self._config = config
        self._transport = TransportModel(config.transport)

    @property
    def config(self) -> ScannerConfig:
        return self._config

    @abstractmethod
    def scan(
        self,
        points: Sequence[MarketDataPoint],
        params: ScanParameters,
    ) -> List[ArbitrageOpportunity]:
        """Rank every profitable cross-city route."""
        pass

    def _distance_table(self, cities: Sequence[str]) -> Dict[Tuple[str, str], int]:
        return {
            (a, b): self._transport.distance(a, b)
            for a in cities
            for b in cities
        }
