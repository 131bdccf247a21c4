"""
Arbitrage - Vectorized Scan Engine.

============================================================
RESPONSIBILITY
============================================================
numpy rendition of the portable engine. Every candidate pair
of the whole batch is laid out in one set of arrays, so the
cost model runs as a handful of array operations instead of a
Python loop per pair.

============================================================
PARITY
============================================================
- Pairs are enumerated in exactly the portable engine's order
- Arithmetic is float64 in the same operation order, so each
  value is bit-identical to the scalar result
- argsort(kind="stable") keeps ROI ties in discovery order

============================================================
"""

import logging
from typing import Dict, List, Sequence

import numpy as np

from core.exceptions import ScanEngineError

from .engine_base import ScanEngine, group_points
from .models import ArbitrageOpportunity, MarketDataPoint, ScanParameters


logger = logging.getLogger(__name__)


class VectorizedScanEngine(ScanEngine):
    """Array-at-a-time scan over the full batch."""

    name = "numpy"

    def scan(
        self,
        points: Sequence[MarketDataPoint],
        params: ScanParameters,
    ) -> List[ArbitrageOpportunity]:
        """
        Raises:
            ScanEngineError: The array stage could not complete
        """
        if not points or params.max_results == 0:
            return []
        try:
            return self._scan_arrays(points, params)
        except (ValueError, TypeError, IndexError, MemoryError, FloatingPointError) as e:
            raise ScanEngineError(self.name, f"array scan failed: {e}", cause=e) from e

    def _scan_arrays(
        self,
        points: Sequence[MarketDataPoint],
        params: ScanParameters,
    ) -> List[ArbitrageOpportunity]:
        ordered: List[MarketDataPoint] = []
        buy_parts = []
        sell_parts = []
        for group in group_points(points).values():
            offset = len(ordered)
            size = len(group)
            buy_local, sell_local = np.divmod(np.arange(size * size, dtype=np.int64), size)
            buy_parts.append(buy_local + offset)
            sell_parts.append(sell_local + offset)
            ordered.extend(group)

        buy_idx = np.concatenate(buy_parts)
        sell_idx = np.concatenate(sell_parts)

        cities = sorted({p.city for p in ordered})
        city_index: Dict[str, int] = {city: i for i, city in enumerate(cities)}
        distance = self._distance_table(cities)
        distances = np.array(
            [[distance[(a, b)] for b in cities] for a in cities],
            dtype=np.float64,
        )

        city_codes = np.array([city_index[p.city] for p in ordered], dtype=np.int64)
        buy_prices = np.array([p.buy_price for p in ordered], dtype=np.float64)
        sell_prices = np.array([p.sell_price for p in ordered], dtype=np.float64)
        quantities = np.array([p.quantity for p in ordered], dtype=np.int64)

        buy_city = city_codes[buy_idx]
        sell_city = city_codes[sell_idx]
        buy_price = buy_prices[buy_idx]
        sell_price = sell_prices[sell_idx]
        quantity = np.minimum(quantities[buy_idx], quantities[sell_idx])

        valid = (
            (buy_city != sell_city)
            & (buy_price > 0)
            & (sell_price > 0)
            & (quantity > 0)
        )
        buy_idx = buy_idx[valid]
        sell_idx = sell_idx[valid]
        buy_price = buy_price[valid]
        sell_price = sell_price[valid]
        quantity = quantity[valid]
        zones = distances[buy_city[valid], sell_city[valid]]

        transport_config = self._config.transport
        rate = self._config.fee_rate
        qty = quantity.astype(np.float64)

        buy_total = buy_price * qty
        buy_taxes = buy_total * rate
        weight_factor = np.maximum(qty / transport_config.baseline_quantity, 1.0)
        transport = zones * transport_config.cost_per_zone * weight_factor
        total_cost = buy_total + buy_taxes + transport

        sell_total = sell_price * qty
        sell_taxes = sell_total * rate
        profit = (sell_total - sell_taxes) - total_cost
        roi = np.divide(
            profit,
            total_cost,
            out=np.zeros_like(profit),
            where=total_cost > 0,
        ) * 100.0
        gross_profit = sell_total - buy_total
        profit_margin = (sell_price - buy_price) / buy_price * 100.0
        taxes = buy_taxes + sell_taxes

        kept = np.flatnonzero(roi >= params.min_roi)
        ranked = kept[np.argsort(-roi[kept], kind="stable")][: params.max_results]

        opportunities: List[ArbitrageOpportunity] = []
        for k in ranked.tolist():
            buy = ordered[int(buy_idx[k])]
            sell = ordered[int(sell_idx[k])]
            opportunities.append(
                ArbitrageOpportunity(
                    item_id=buy.item_id,
                    item_name=buy.item_name,
                    quality=buy.quality,
                    buy_city=buy.city,
                    sell_city=sell.city,
                    buy_price=buy.buy_price,
                    sell_price=sell.sell_price,
                    quantity=int(quantity[k]),
                    gross_profit=float(gross_profit[k]),
                    profit=float(profit[k]),
                    profit_margin=float(profit_margin[k]),
                    roi=float(roi[k]),
                    taxes=float(taxes[k]),
                    transport_cost=float(transport[k]),
                )
            )
        return opportunities
