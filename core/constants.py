"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Single source of truth for the fixed vocabularies of the
market pipeline.

- Canonical city names and their upstream spellings
- Market location codes used by the streaming feed
- Region/server tags and their aliases
- Marketplace fee rates and cache TTL defaults

============================================================
DESIGN PRINCIPLES
============================================================
- All constants are immutable
- Alias tables are keyed by a folded spelling (see fold_name)
- No business logic here

============================================================
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping


# ============================================================
# REGIONS
# ============================================================

class Region(str, Enum):
    """Server/region partitions of the game economy."""
    AMERICAS = "Americas"
    EUROPE = "Europe"
    ASIA = "Asia"


PRIMARY_REGION = Region.AMERICAS

REGION_ALIASES: Mapping[str, Region] = MappingProxyType({
    "americas": Region.AMERICAS,
    "us": Region.AMERICAS,
    "na": Region.AMERICAS,
    "west": Region.AMERICAS,
    "europe": Region.EUROPE,
    "eu": Region.EUROPE,
    "east": Region.EUROPE,
    "asia": Region.ASIA,
    "as": Region.ASIA,
})


# ============================================================
# LOCATIONS
# ============================================================

CAERLEON = "Caerleon"
BRIDGEWATCH = "Bridgewatch"
LYMHURST = "Lymhurst"
MARTLOCK = "Martlock"
FORT_STERLING = "Fort Sterling"
THETFORD = "Thetford"
BLACK_MARKET = "Black Market"
BRECILIEN = "Brecilien"

ROYAL_CITIES = (BRIDGEWATCH, LYMHURST, MARTLOCK, FORT_STERLING, THETFORD)

CANONICAL_CITIES = (CAERLEON,) + ROYAL_CITIES + (BLACK_MARKET, BRECILIEN)

# Default trade scan set (Black Market is buy-only, Brecilien is remote).
TRADE_CITIES = (CAERLEON,) + ROYAL_CITIES


def fold_name(name: str) -> str:
    """Fold a location spelling for alias lookups: lowercase, no spaces/separators."""
    return "".join(ch for ch in name.lower() if ch.isalnum())


CITY_ALIASES: Mapping[str, str] = MappingProxyType({
    **{fold_name(city): city for city in CANONICAL_CITIES},
    "fortsterlingportal": FORT_STERLING,
    "bm": BLACK_MARKET,
    "caerleonblackmarket": BLACK_MARKET,
})

# Market location codes as published by the order feed.
LOCATION_CODES: Mapping[int, str] = MappingProxyType({
    3005: CAERLEON,
    1002: LYMHURST,
    2004: BRIDGEWATCH,
    4002: MARTLOCK,
    3003: FORT_STERLING,
    4006: THETFORD,
})


# ============================================================
# QUALITY
# ============================================================

MIN_QUALITY = 1
MAX_QUALITY = 5
DEFAULT_QUALITY = 1


# ============================================================
# PRICES
# ============================================================

# Largest price the BIGINT price columns can hold.
MAX_PRICE = 2**63 - 1


# ============================================================
# TIMESTAMPS
# ============================================================

# Epoch values above this are treated as milliseconds.
EPOCH_MILLIS_THRESHOLD = 10_000_000_000


# ============================================================
# MARKETPLACE COSTS
# ============================================================

MARKET_TAX_RATE = 0.045
SETUP_FEE_RATE = 0.015

TRANSPORT_HUB = CAERLEON
HUB_DISTANCE_ZONES = 8
DEFAULT_DISTANCE_ZONES = 12
TRANSPORT_COST_PER_ZONE = 100.0
TRANSPORT_BASELINE_QUANTITY = 100.0


# ============================================================
# CACHE TTLS (seconds)
# ============================================================

TTL_VOLATILE_SECONDS = 5 * 60
TTL_STANDARD_SECONDS = 15 * 60
TTL_STABLE_SECONDS = 60 * 60
TTL_STATIC_SECONDS = 24 * 60 * 60


# ============================================================
# FEED SUBJECTS
# ============================================================

GOLD_PRICE_SUBJECT = "goldprices.ingest"
MARKET_ORDER_SUBJECT = "marketorders.deduped"
