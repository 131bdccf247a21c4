"""
Arbitrage - Portable Scan Engine.

Pure-Python reference implementation. Always available; the
scanner falls back to it whenever the accelerated engine is
unavailable or fails.
"""

import logging
from typing import List, Optional, Sequence

from .engine_base import ScanEngine, group_points
from .models import ArbitrageOpportunity, MarketDataPoint, ScanParameters


logger = logging.getLogger(__name__)


class PythonScanEngine(ScanEngine):
    """Nested-loop scan over each item group."""

    name = "python"

    def scan(
        self,
        points: Sequence[MarketDataPoint],
        params: ScanParameters,
    ) -> List[ArbitrageOpportunity]:
        opportunities: List[ArbitrageOpportunity] = []
        for group in group_points(points).values():
            for buy in group:
                for sell in group:
                    opportunity = self._evaluate(buy, sell)
                    if opportunity is not None and opportunity.roi >= params.min_roi:
                        opportunities.append(opportunity)

        # sorted() is stable, so ROI ties keep discovery order.
        opportunities = sorted(opportunities, key=lambda o: o.roi, reverse=True)
        return opportunities[: params.max_results]

    def _evaluate(
        self,
        buy: MarketDataPoint,
        sell: MarketDataPoint,
    ) -> Optional[ArbitrageOpportunity]:
        if buy.city == sell.city:
            return None
        if buy.buy_price <= 0 or sell.sell_price <= 0:
            return None
        quantity = min(buy.quantity, sell.quantity)
        if quantity <= 0:
            return None

        rate = self._config.fee_rate
        qty = float(quantity)
        buy_price = float(buy.buy_price)
        sell_price = float(sell.sell_price)

        buy_total = buy_price * qty
        buy_taxes = buy_total * rate
        transport = self._transport.cost(buy.city, sell.city, qty)
        total_cost = buy_total + buy_taxes + transport

        sell_total = sell_price * qty
        sell_taxes = sell_total * rate
        profit = (sell_total - sell_taxes) - total_cost
        roi = profit / total_cost * 100.0 if total_cost > 0 else 0.0

        return ArbitrageOpportunity(
            item_id=buy.item_id,
            item_name=buy.item_name,
            quality=buy.quality,
            buy_city=buy.city,
            sell_city=sell.city,
            buy_price=buy.buy_price,
            sell_price=sell.sell_price,
            quantity=quantity,
            gross_profit=sell_total - buy_total,
            profit=profit,
            profit_margin=(sell_price - buy_price) / buy_price * 100.0,
            roi=roi,
            taxes=buy_taxes + sell_taxes,
            transport_cost=transport,
        )
