"""
Aggregation - Models.

============================================================
PURPOSE
============================================================
Types for the periodic build aggregation job.

- KillEvent: one combat event with both loadouts
- Loadout: the four required slots (+ optional cape)
- BuildAggregate: per-loadout statistics over the window
- AggregationRunResult: outcome of one run

============================================================
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional


# ============================================================
# LOADOUTS
# ============================================================

WEAPON_SLOT = "MainHand"
HEAD_SLOT = "Head"
ARMOR_SLOT = "Armor"
SHOES_SLOT = "Shoes"
CAPE_SLOT = "Cape"

_LEVEL_SUFFIX = re.compile(r"_LEVEL\d+@\d+$")
_ENCHANT_SUFFIX = re.compile(r"@\d+$")


def strip_enchantment(item_type: Optional[str]) -> Optional[str]:
    """T8_MAIN_SWORD@3 -> T8_MAIN_SWORD; T4_BAG_LEVEL1@1 -> T4_BAG."""
    if not item_type:
        return None
    return _ENCHANT_SUFFIX.sub("", _LEVEL_SUFFIX.sub("", item_type))


def _slot_type(equipment: Mapping[str, Any], slot: str) -> Optional[str]:
    item = equipment.get(slot)
    if isinstance(item, Mapping):
        value = item.get("Type")
        if isinstance(value, str) and value:
            return value
    return None


@dataclass(frozen=True)
class Loadout:
    """Equipment signature of one participant."""
    weapon: str
    head: str
    armor: str
    shoes: str
    cape: Optional[str] = None

    @property
    def build_id(self) -> str:
        return f"{self.weapon}_{self.head}_{self.armor}_{self.shoes}"

    @classmethod
    def from_equipment(cls, equipment: Optional[Mapping[str, Any]]) -> Optional["Loadout"]:
        """None unless weapon, head, armor and shoes are all present."""
        if not equipment:
            return None
        weapon = _slot_type(equipment, WEAPON_SLOT)
        head = _slot_type(equipment, HEAD_SLOT)
        armor = _slot_type(equipment, ARMOR_SLOT)
        shoes = _slot_type(equipment, SHOES_SLOT)
        if not (weapon and head and armor and shoes):
            return None
        return cls(weapon, head, armor, shoes, _slot_type(equipment, CAPE_SLOT))


@dataclass(frozen=True)
class KillEvent:
    """One combat event as read from the store."""
    event_id: int
    occurred_at: datetime
    total_fame: int
    killer_id: Optional[str] = None
    victim_id: Optional[str] = None
    killer_equipment: Optional[Mapping[str, Any]] = None
    victim_equipment: Optional[Mapping[str, Any]] = None


# ============================================================
# AGGREGATES
# ============================================================

@dataclass(frozen=True)
class BuildAggregate:
    """Statistics for one loadout over the aggregation window."""
    build_id: str
    weapon_type: str
    weapon_base: str
    head_type: str
    head_base: str
    armor_type: str
    armor_base: str
    shoes_type: str
    shoes_base: str
    kills: int
    deaths: int
    total_fame: int
    sample_size: int
    win_rate: float
    popularity: float
    avg_fame: float
    last_updated: datetime
    cape_type: Optional[str] = None
    cape_base: Optional[str] = None
    weapon_name: Optional[str] = None
    head_name: Optional[str] = None
    armor_name: Optional[str] = None
    shoes_name: Optional[str] = None
    cape_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "build_id": self.build_id,
            "weapon_type": self.weapon_type,
            "weapon_base": self.weapon_base,
            "weapon_name": self.weapon_name,
            "head_type": self.head_type,
            "head_base": self.head_base,
            "head_name": self.head_name,
            "armor_type": self.armor_type,
            "armor_base": self.armor_base,
            "armor_name": self.armor_name,
            "shoes_type": self.shoes_type,
            "shoes_base": self.shoes_base,
            "shoes_name": self.shoes_name,
            "cape_type": self.cape_type,
            "cape_base": self.cape_base,
            "cape_name": self.cape_name,
            "kills": self.kills,
            "deaths": self.deaths,
            "total_fame": self.total_fame,
            "sample_size": self.sample_size,
            "win_rate": self.win_rate,
            "popularity": self.popularity,
            "avg_fame": self.avg_fame,
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass(frozen=True)
class PvpSummary:
    """Headline combat statistics published next to the build snapshot."""
    total_kills: int
    active_players: int
    total_fame: int
    meta_builds_count: int
    last_updated: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_kills": self.total_kills,
            "active_players": self.active_players,
            "total_fame": self.total_fame,
            "meta_builds_count": self.meta_builds_count,
            "last_updated": self.last_updated.isoformat(),
        }


# ============================================================
# RUN CONFIG / RESULT
# ============================================================

@dataclass(frozen=True)
class AggregationConfig:
    """Aggregation job parameters."""
    window_days: int = 30
    event_limit: int = 5000
    min_sample_size: int = 5
    max_builds: int = 100
    active_player_days: int = 7
    interval_seconds: int = 600


class AggregationStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"      # another run was in progress
    NO_DATA = "no_data"      # empty window, snapshot untouched
    FAILED = "failed"        # snapshot untouched


@dataclass
class AggregationRunResult:
    """Outcome of one aggregation run."""
    status: AggregationStatus
    events_processed: int = 0
    builds_published: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    error: Optional[str] = None
    summary: Optional[PvpSummary] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "events_processed": self.events_processed,
            "builds_published": self.builds_published,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
        }
