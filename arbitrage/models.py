"""
Arbitrage - Models.

============================================================
PURPOSE
============================================================
Engine inputs, scan parameters and the opportunity record.

- MarketDataPoint: one (item, city, quality) price observation
  seen from the trader's side
- ScanParameters: per-call thresholds
- ScannerConfig: fee rates and transport model
- ArbitrageOpportunity: one ranked buy/sell route

============================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict

from core.constants import MARKET_TAX_RATE, SETUP_FEE_RATE

from .transport import TransportConfig


@dataclass(frozen=True)
class MarketDataPoint:
    """
    Trader-side view of one market.

    buy_price is what it costs to acquire the item here (lowest offer),
    sell_price is what a seller receives here (highest request).
    """
    item_id: str
    item_name: str
    city: str
    buy_price: float
    sell_price: float
    quantity: int
    quality: int = 1


@dataclass(frozen=True)
class ScanParameters:
    """Per-call scan thresholds."""
    min_roi: float = 10.0
    max_results: int = 100

    def __post_init__(self) -> None:
        if self.max_results < 0:
            raise ValueError("max_results must not be negative")


@dataclass(frozen=True)
class ScannerConfig:
    """Cost model shared by every scan engine."""
    market_tax_rate: float = MARKET_TAX_RATE
    setup_fee_rate: float = SETUP_FEE_RATE
    transport: TransportConfig = field(default_factory=TransportConfig)
    prefer_accelerated: bool = True

    @property
    def fee_rate(self) -> float:
        return self.market_tax_rate + self.setup_fee_rate


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """A buy-here, sell-there route with its full cost breakdown."""
    item_id: str
    item_name: str
    quality: int
    buy_city: str
    sell_city: str
    buy_price: float
    sell_price: float
    quantity: int
    gross_profit: float
    profit: float
    profit_margin: float
    roi: float
    taxes: float
    transport_cost: float

    def __post_init__(self) -> None:
        if self.buy_city == self.sell_city:
            raise ValueError(f"buy and sell city are both {self.buy_city}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "item_name": self.item_name,
            "quality": self.quality,
            "buy_city": self.buy_city,
            "sell_city": self.sell_city,
            "buy_price": self.buy_price,
            "sell_price": self.sell_price,
            "quantity": self.quantity,
            "gross_profit": self.gross_profit,
            "profit": self.profit,
            "profit_margin": self.profit_margin,
            "roi": self.roi,
            "taxes": self.taxes,
            "transport_cost": self.transport_cost,
        }
