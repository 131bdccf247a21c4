"""
Aggregation - Build Aggregator.

============================================================
RESPONSIBILITY
============================================================
Pure computation of the build snapshot from a window of
combat events. No I/O.

1. fold: one counter per loadout signature
   (killer loadout -> kill + fame, victim loadout -> death)
2. derive: ratios computed once every event is folded in
3. select: sample_size >= minimum, top N by sample size
4. resolve: display names for every referenced item

============================================================
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from aggregation.models import (
    AggregationConfig,
    BuildAggregate,
    KillEvent,
    Loadout,
    strip_enchantment,
)


logger = logging.getLogger(__name__)

NameResolver = Callable[[str], str]


@dataclass
class BuildCounter:
    """Running counters for one loadout while folding."""
    loadout: Loadout
    kills: int = 0
    deaths: int = 0
    total_fame: int = 0

    @property
    def sample_size(self) -> int:
        return self.kills + self.deaths


# ============================================================
# FOLD
# ============================================================

def fold_events(events: Iterable[KillEvent]) -> Dict[str, BuildCounter]:
    """Fold events into per-signature counters, in first-seen order."""
    counters: Dict[str, BuildCounter] = {}

    for event in events:
        killer = Loadout.from_equipment(event.killer_equipment)
        if killer is not None:
            counter = counters.setdefault(killer.build_id, BuildCounter(killer))
            counter.kills += 1
            counter.total_fame += max(event.total_fame or 0, 0)

        victim = Loadout.from_equipment(event.victim_equipment)
        if victim is not None:
            counter = counters.setdefault(victim.build_id, BuildCounter(victim))
            counter.deaths += 1

    return counters


# ============================================================
# DERIVE
# ============================================================

def derive_aggregate(counter: BuildCounter, window_size: int, now: datetime) -> BuildAggregate:
    """
    Ratios in percent:
        win_rate   = kills / sample_size * 100
        popularity = sample_size / window_size * 100
        avg_fame   = total_fame / kills (0 without kills)
    """
    sample = counter.sample_size
    loadout = counter.loadout
    return BuildAggregate(
        build_id=loadout.build_id,
        weapon_type=loadout.weapon,
        weapon_base=strip_enchantment(loadout.weapon),
        head_type=loadout.head,
        head_base=strip_enchantment(loadout.head),
        armor_type=loadout.armor,
        armor_base=strip_enchantment(loadout.armor),
        shoes_type=loadout.shoes,
        shoes_base=strip_enchantment(loadout.shoes),
        cape_type=loadout.cape,
        cape_base=strip_enchantment(loadout.cape),
        kills=counter.kills,
        deaths=counter.deaths,
        total_fame=counter.total_fame,
        sample_size=sample,
        win_rate=(counter.kills / sample * 100.0) if sample else 0.0,
        popularity=(sample / window_size * 100.0) if window_size else 0.0,
        avg_fame=(counter.total_fame / counter.kills) if counter.kills else 0.0,
        last_updated=now,
    )


# ============================================================
# SELECT
# ============================================================

def select_top(
    aggregates: Iterable[BuildAggregate],
    min_sample_size: int,
    max_builds: int,
) -> List[BuildAggregate]:
    """Largest samples first; ties broken by build id for a stable snapshot."""
    eligible = [a for a in aggregates if a.sample_size >= min_sample_size]
    eligible.sort(key=lambda a: (-a.sample_size, a.build_id))
    return eligible[:max_builds]


# ============================================================
# RESOLVE NAMES
# ============================================================

def referenced_items(aggregates: Iterable[BuildAggregate]) -> List[str]:
    items: Dict[str, None] = {}
    for a in aggregates:
        for base in (a.weapon_base, a.head_base, a.armor_base, a.shoes_base, a.cape_base):
            if base:
                items[base] = None
    return list(items)


def resolve_names(
    aggregates: Sequence[BuildAggregate],
    resolve: NameResolver,
) -> List[BuildAggregate]:
    names = {item_id: resolve(item_id) for item_id in referenced_items(aggregates)}

    def name_of(base: Optional[str]) -> Optional[str]:
        return names.get(base) if base else None

    return [
        replace(
            a,
            weapon_name=name_of(a.weapon_base),
            head_name=name_of(a.head_base),
            armor_name=name_of(a.armor_base),
            shoes_name=name_of(a.shoes_base),
            cape_name=name_of(a.cape_base),
        )
        for a in aggregates
    ]


# ============================================================
# PIPELINE
# ============================================================

class BuildAggregator:
    """fold -> derive -> select -> resolve over one event window."""

    def __init__(self, config: Optional[AggregationConfig] = None) -> None:
        self._config = config or AggregationConfig()

    @property
    def config(self) -> AggregationConfig:
        return self._config

    def aggregate(
        self,
        events: Sequence[KillEvent],
        now: datetime,
        resolve: Optional[NameResolver] = None,
    ) -> List[BuildAggregate]:
        counters = fold_events(events)
        derived = [derive_aggregate(c, len(events), now) for c in counters.values()]
        selected = select_top(derived, self._config.min_sample_size, self._config.max_builds)

        logger.info(
            f"Folded {len(events)} events into {len(counters)} loadouts, "
            f"{len(selected)} selected (min sample {self._config.min_sample_size})"
        )

        if resolve is not None:
            selected = resolve_names(selected, resolve)
        return selected
