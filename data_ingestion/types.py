"""
Data Ingestion - Type Definitions.

============================================================
PURPOSE
============================================================
Shared types for the ingestion layer.

- Raw record envelope (tagged union of known upstream shapes)
- Canonical quote records consumed downstream
- Ingestion result/metric types

============================================================
DESIGN PRINCIPLES
============================================================
- Untyped payloads exist only inside RawRecord
- Canonical records are frozen and already validated
- Serializable for caching and monitoring

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union
from uuid import UUID, uuid4

from core.clock import from_iso8601
from core.constants import Region


# =============================================================
# ENUMS
# =============================================================

class RecordKind(str, Enum):
    """Known upstream record shapes."""
    PRICE_QUOTE = "price_quote"
    PRICE_HISTORY = "price_history"
    GOLD_QUOTE = "gold_quote"


class IngestionSource(str, Enum):
    """Identifiers for ingestion sources."""
    AODP_REST = "aodp_rest"
    MARKET_FEED = "market_feed"


class IngestionStatus(str, Enum):
    """Status of an ingestion operation."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


class AuctionType(str, Enum):
    """Side of a streamed market order."""
    OFFER = "offer"
    REQUEST = "request"


# =============================================================
# RAW RECORD ENVELOPE
# =============================================================

@dataclass(frozen=True)
class RawRecord:
    """One loosely-typed upstream record tagged with its shape."""
    kind: RecordKind
    payload: Mapping[str, Any]
    source: str = "unknown"

    @classmethod
    def price_quote(cls, payload: Mapping[str, Any], source: str = "unknown") -> "RawRecord":
        return cls(RecordKind.PRICE_QUOTE, payload, source)

    @classmethod
    def price_history(cls, payload: Mapping[str, Any], source: str = "unknown") -> "RawRecord":
        return cls(RecordKind.PRICE_HISTORY, payload, source)

    @classmethod
    def gold_quote(cls, payload: Mapping[str, Any], source: str = "unknown") -> "RawRecord":
        return cls(RecordKind.GOLD_QUOTE, payload, source)


# =============================================================
# CANONICAL RECORDS
# =============================================================

@dataclass(frozen=True)
class PriceQuote:
    """One observed price for an (item, city, quality) tuple."""
    item_id: str
    city: str
    quality: int
    sell_price_min: int
    sell_price_max: int
    buy_price_min: int
    buy_price_max: int
    timestamp: datetime
    server: Region
    item_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "city": self.city,
            "quality": self.quality,
            "sell_price_min": self.sell_price_min,
            "sell_price_max": self.sell_price_max,
            "buy_price_min": self.buy_price_min,
            "buy_price_max": self.buy_price_max,
            "timestamp": self.timestamp.isoformat(),
            "server": self.server.value,
            "item_name": self.item_name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PriceQuote":
        """Rebuild from to_dict() output (trusted, already canonical)."""
        return cls(
            item_id=data["item_id"],
            city=data["city"],
            quality=int(data["quality"]),
            sell_price_min=int(data["sell_price_min"]),
            sell_price_max=int(data["sell_price_max"]),
            buy_price_min=int(data["buy_price_min"]),
            buy_price_max=int(data["buy_price_max"]),
            timestamp=from_iso8601(data["timestamp"]),
            server=Region(data["server"]),
            item_name=data.get("item_name"),
        )


@dataclass(frozen=True)
class PriceHistoryPoint:
    """One averaged price point from the history endpoint."""
    item_id: str
    location: str
    quality: int
    avg_price: int
    item_count: int
    timestamp: datetime
    server: Region

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "location": self.location,
            "quality": self.quality,
            "avg_price": self.avg_price,
            "item_count": self.item_count,
            "timestamp": self.timestamp.isoformat(),
            "server": self.server.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PriceHistoryPoint":
        return cls(
            item_id=data["item_id"],
            location=data["location"],
            quality=int(data["quality"]),
            avg_price=int(data["avg_price"]),
            item_count=int(data["item_count"]),
            timestamp=from_iso8601(data["timestamp"]),
            server=Region(data["server"]),
        )


@dataclass(frozen=True)
class GoldQuote:
    """One gold-to-silver conversion price."""
    price: int
    timestamp: datetime
    server: Region

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": self.price,
            "timestamp": self.timestamp.isoformat(),
            "server": self.server.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GoldQuote":
        return cls(
            price=int(data["price"]),
            timestamp=from_iso8601(data["timestamp"]),
            server=Region(data["server"]),
        )


CanonicalRecord = Union[PriceQuote, PriceHistoryPoint, GoldQuote]


# =============================================================
# INGESTION RESULT TYPES
# =============================================================

@dataclass
class IngestionResult:
    """Result of a single ingestion operation."""
    batch_id: UUID = field(default_factory=uuid4)
    source: str = ""
    status: IngestionStatus = IngestionStatus.SUCCESS

    # Counts
    records_fetched: int = 0
    records_normalized: int = 0
    records_rejected: int = 0
    records_stored: int = 0
    records_failed: int = 0

    # Timing
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    errors: List[str] = field(default_factory=list)

    def mark_complete(self, completed_at: datetime) -> None:
        """Mark the ingestion as complete and calculate duration."""
        self.completed_at = completed_at
        if self.started_at:
            delta = completed_at - self.started_at
            self.duration_seconds = delta.total_seconds()

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)
        if self.status == IngestionStatus.SUCCESS:
            self.status = IngestionStatus.PARTIAL

    def mark_failed(self, error: str) -> None:
        """Mark the ingestion as failed."""
        self.status = IngestionStatus.FAILED
        self.errors.append(error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/monitoring."""
        return {
            "batch_id": str(self.batch_id),
            "source": self.source,
            "status": self.status.value,
            "records_fetched": self.records_fetched,
            "records_normalized": self.records_normalized,
            "records_rejected": self.records_rejected,
            "records_stored": self.records_stored,
            "records_failed": self.records_failed,
            "duration_seconds": self.duration_seconds,
            "error_count": len(self.errors),
            "errors": self.errors[:5],  # Limit for logging
        }


@dataclass
class FeedMetrics:
    """Counters kept by the streaming adapter."""
    messages_received: int = 0
    messages_stored: int = 0
    messages_invalid: int = 0
    messages_failed: int = 0
    last_message_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messages_received": self.messages_received,
            "messages_stored": self.messages_stored,
            "messages_invalid": self.messages_invalid,
            "messages_failed": self.messages_failed,
            "last_message_at": self.last_message_at.isoformat() if self.last_message_at else None,
        }


# =============================================================
# COLLECTOR CONFIGURATION
# =============================================================

@dataclass(frozen=True)
class CollectorConfig:
    """Base configuration for batch collectors."""
    enabled: bool = True
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    timeout_seconds: float = 30.0
    version: str = "v2"
