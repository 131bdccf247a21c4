"""
Aggregation Package.

Periodic recomputation of the meta build snapshot from the
recent combat window.

Modules:
- models: loadouts, events, aggregates, run results
- build_aggregator: pure fold/derive/select/resolve pipeline
- updater: AggregationUpdater (import directly; depends on storage)
"""

from aggregation.models import (
    AggregationConfig,
    AggregationRunResult,
    AggregationStatus,
    BuildAggregate,
    KillEvent,
    Loadout,
    PvpSummary,
    strip_enchantment,
)
from aggregation.build_aggregator import (
    BuildAggregator,
    BuildCounter,
    derive_aggregate,
    fold_events,
    resolve_names,
    select_top,
)


__all__ = [
    "AggregationConfig",
    "AggregationRunResult",
    "AggregationStatus",
    "BuildAggregate",
    "KillEvent",
    "Loadout",
    "PvpSummary",
    "strip_enchantment",
    "BuildAggregator",
    "BuildCounter",
    "derive_aggregate",
    "fold_events",
    "resolve_names",
    "select_top",
]
