"""
Arbitrage - Transport Cost Model.

Zone distances between markets and the hauling cost derived from
them. Distances are symmetric; the hub (Caerleon) sits closer to
every royal city than royal cities sit to each other.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Tuple

from core.constants import (
    DEFAULT_DISTANCE_ZONES,
    HUB_DISTANCE_ZONES,
    ROYAL_CITIES,
    TRANSPORT_BASELINE_QUANTITY,
    TRANSPORT_COST_PER_ZONE,
    TRANSPORT_HUB,
)


@dataclass(frozen=True)
class TransportConfig:
    """
    Transport cost parameters.

    Attributes:
        overrides: Explicit zone counts keyed by an unordered city pair
    """
    hub: str = TRANSPORT_HUB
    spokes: Tuple[str, ...] = ROYAL_CITIES
    hub_distance: int = HUB_DISTANCE_ZONES
    default_distance: int = DEFAULT_DISTANCE_ZONES
    cost_per_zone: float = TRANSPORT_COST_PER_ZONE
    baseline_quantity: float = TRANSPORT_BASELINE_QUANTITY
    overrides: Mapping[FrozenSet[str], int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.baseline_quantity <= 0:
            raise ValueError("baseline_quantity must be positive")
        if self.cost_per_zone < 0:
            raise ValueError("cost_per_zone must not be negative")


class TransportModel:
    """Distance lookup and cost formula."""

    def __init__(self, config: TransportConfig) -> None:
        self._config = config

    @property
    def config(self) -> TransportConfig:
        return self._config

    def distance(self, from_city: str, to_city: str) -> int:
        if from_city == to_city:
            return 0
        pair = frozenset((from_city, to_city))
        if pair in self._config.overrides:
            return self._config.overrides[pair]
        hub = self._config.hub
        if hub in pair:
            other = to_city if from_city == hub else from_city
            if other in self._config.spokes:
                return self._config.hub_distance
        return self._config.default_distance

    def cost(self, from_city: str, to_city: str, quantity: float) -> float:
        weight_factor = max(quantity / self._config.baseline_quantity, 1.0)
        return self.distance(from_city, to_city) * self._config.cost_per_zone * weight_factor
