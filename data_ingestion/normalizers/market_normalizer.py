"""
Data Ingestion - Market Normalizer.

============================================================
RESPONSIBILITY
============================================================
Coerces raw upstream records into canonical typed records.

- Prices, price ranges, qualities
- Timestamps in several encodings
- City and region spellings
- Snake_case and camelCase upstream field names

============================================================
DESIGN PRINCIPLES
============================================================
- One record in, one canonical record out or ValidationError
- Batches never abort on a bad record
- Recoverable oddities (swapped ranges, unknown region,
  unparseable timestamp) are repaired, not rejected

============================================================
FIELD RULES
============================================================
timestamp  seconds | milliseconds (> 1e10) | ISO-8601 | datetime
           unparseable -> now (logged)
price      None / negative -> 0, fractional -> nearest integer
range      min > max -> swapped
city       alias match (case/space-insensitive), unknown kept
server     alias match, unknown -> primary region
quality    None -> 1, clamped to [1, 5]

============================================================
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from numbers import Real
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from core.clock import ClockProtocol, SystemClock, ensure_utc, from_iso8601
from core.constants import (
    CITY_ALIASES,
    DEFAULT_QUALITY,
    EPOCH_MILLIS_THRESHOLD,
    LOCATION_CODES,
    MAX_PRICE,
    MAX_QUALITY,
    MIN_QUALITY,
    PRIMARY_REGION,
    REGION_ALIASES,
    Region,
    fold_name,
)
from core.exceptions import ValidationError
from data_ingestion.types import (
    CanonicalRecord,
    GoldQuote,
    PriceHistoryPoint,
    PriceQuote,
    RawRecord,
    RecordKind,
)


logger = logging.getLogger(__name__)

MAX_LOGGED_FAILURES = 3


# =============================================================
# FIELD NORMALIZERS
# =============================================================

def _to_number(value: Any, field_name: str) -> float:
    """Coerce a loosely typed numeric value, rejecting junk."""
    if isinstance(value, bool):
        raise ValidationError(field_name, "boolean is not a number", value)
    try:
        if isinstance(value, Real):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            raise ValidationError(field_name, f"unsupported type {type(value).__name__}", value)
    except OverflowError:
        raise ValidationError(field_name, "out of range", value) from None
    except ValueError:
        raise ValidationError(field_name, "not a number", value) from None
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(field_name, "not a finite number", value)
    return number


def _round_half_up(number: float) -> int:
    return int(math.floor(number + 0.5))


def normalize_price(value: Any, field_name: str = "price") -> int:
    """Normalize a price to a non-negative whole number of currency units."""
    if value is None:
        return 0
    number = _to_number(value, field_name)
    if number < 0:
        return 0
    price = _round_half_up(number)
    if price > MAX_PRICE:
        raise ValidationError(field_name, "out of range", value)
    return price


def normalize_price_range(
    min_value: Any,
    max_value: Any,
    field_prefix: str = "price",
) -> Tuple[int, int]:
    """Normalize a (min, max) pair; swapped ordering is repaired."""
    low = normalize_price(min_value, f"{field_prefix}_min")
    high = normalize_price(max_value, f"{field_prefix}_max")
    if low > high:
        return high, low
    return low, high


def normalize_quality(value: Any) -> int:
    """Clamp quality into [1, 5]; missing means the baseline tier."""
    if value is None:
        return DEFAULT_QUALITY
    number = _to_number(value, "quality")
    return max(MIN_QUALITY, min(MAX_QUALITY, _round_half_up(number)))


def normalize_city(value: Any) -> str:
    """
    Resolve a city name or market location code to its canonical name.

    Unknown names pass through unchanged so new locations keep flowing.
    """
    if value is None:
        raise ValidationError("city", "missing", value)
    if isinstance(value, bool):
        raise ValidationError("city", "boolean is not a location", value)
    if isinstance(value, int):
        city = LOCATION_CODES.get(value)
        if city is None:
            raise ValidationError("city", "unknown location code", value)
        return city
    if not isinstance(value, str):
        raise ValidationError("city", f"unsupported type {type(value).__name__}", value)

    text = value.strip()
    if not text:
        raise ValidationError("city", "empty", value)
    if text.isdigit():
        city = LOCATION_CODES.get(int(text))
        if city is not None:
            return city
    return CITY_ALIASES.get(fold_name(text), value)


def normalize_server(value: Any) -> Region:
    """Map a region/server tag; unknown values fall back to the primary region."""
    if isinstance(value, Region):
        return value
    if isinstance(value, str):
        region = REGION_ALIASES.get(value.strip().lower())
        if region is not None:
            return region
    return PRIMARY_REGION


def normalize_item_id(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("item_id", "missing or empty", value)
    return value.strip()


class TimestampNormalizer:
    """
    Converts upstream timestamp encodings into aware UTC datetimes.

    An unparseable value is replaced by the clock's "now" and
    logged; losing one timestamp must not drop the record.
    """

    def __init__(self, clock: Optional[ClockProtocol] = None) -> None:
        self._clock = clock or SystemClock()

    def __call__(self, value: Any) -> datetime:
        try:
            return self._parse(value)
        except (ValueError, TypeError, OverflowError, OSError) as e:
            logger.warning(f"Timestamp normalization failed for {value!r}, using now: {e}")
            return self._clock.now()

    @staticmethod
    def _parse(value: Any) -> datetime:
        if isinstance(value, datetime):
            return ensure_utc(value)
        if isinstance(value, bool) or value is None:
            raise ValueError("not a timestamp")
        if isinstance(value, Real):
            number = float(value)
            if math.isnan(number) or math.isinf(number):
                raise ValueError("not a finite timestamp")
            if number > EPOCH_MILLIS_THRESHOLD:
                number = number / 1000.0
            return datetime.fromtimestamp(number, tz=timezone.utc)
        if isinstance(value, str):
            text = value.strip()
            if not text:
                raise ValueError("empty timestamp")
            if text.lstrip("-").isdigit():
                return TimestampNormalizer._parse(int(text))
            return from_iso8601(text)
        raise TypeError(f"unsupported timestamp type {type(value).__name__}")


# =============================================================
# RECORD NORMALIZERS
# =============================================================

def _pick(payload: Mapping[str, Any], *names: str) -> Any:
    """First present value among alternative upstream field spellings."""
    for name in names:
        if name in payload and payload[name] is not None:
            return payload[name]
    return None


@dataclass(frozen=True)
class RecordError:
    """One record that failed normalization."""
    index: int
    field: str
    message: str

    def __str__(self) -> str:
        return f"#{self.index} {self.message}"


@dataclass
class NormalizationResult:
    """Outcome of a batch normalization."""
    source: str
    records: List[CanonicalRecord] = field(default_factory=list)
    errors: List[RecordError] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.records)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


class MarketNormalizer:
    """
    Normalizes raw market records into canonical records.

    ============================================================
    USAGE
    ============================================================
    normalizer = MarketNormalizer(clock=SystemClock())
    quote = normalizer.normalize(RawRecord.price_quote(payload))
    result = normalizer.normalize_batch(raw_records, source="aodp")

    ============================================================
    """

    def __init__(
        self,
        clock: Optional[ClockProtocol] = None,
        default_server: Region = PRIMARY_REGION,
    ) -> None:
        self._clock = clock or SystemClock()
        self._timestamp = TimestampNormalizer(self._clock)
        self._default_server = default_server

    # ---------------------------------------------------------
    # Single records
    # ---------------------------------------------------------

    def normalize(self, raw: RawRecord) -> CanonicalRecord:
        """
        Normalize one tagged record.

        Raises:
            ValidationError: Naming the offending field
        """
        if not isinstance(raw.payload, Mapping):
            raise ValidationError("payload", "record is not an object", raw.payload)
        if raw.kind == RecordKind.PRICE_QUOTE:
            return self.normalize_price_quote(raw.payload)
        if raw.kind == RecordKind.PRICE_HISTORY:
            return self.normalize_history_point(raw.payload)
        if raw.kind == RecordKind.GOLD_QUOTE:
            return self.normalize_gold_quote(raw.payload)
        raise ValidationError("kind", "unknown record kind", raw.kind)

    def normalize_price_quote(self, payload: Mapping[str, Any]) -> PriceQuote:
        sell_min, sell_max = normalize_price_range(
            _pick(payload, "sell_price_min", "sellPriceMin"),
            _pick(payload, "sell_price_max", "sellPriceMax"),
            "sell_price",
        )
        buy_min, buy_max = normalize_price_range(
            _pick(payload, "buy_price_min", "buyPriceMin"),
            _pick(payload, "buy_price_max", "buyPriceMax"),
            "buy_price",
        )
        name = _pick(payload, "item_name", "itemName")
        return PriceQuote(
            item_id=normalize_item_id(_pick(payload, "item_id", "itemId")),
            city=normalize_city(_pick(payload, "city", "location", "locationId")),
            quality=normalize_quality(_pick(payload, "quality", "qualityLevel")),
            sell_price_min=sell_min,
            sell_price_max=sell_max,
            buy_price_min=buy_min,
            buy_price_max=buy_max,
            timestamp=self._timestamp(
                _pick(payload, "timestamp", "sell_price_min_date", "buy_price_max_date")
            ),
            server=self._server(payload),
            item_name=name.strip() if isinstance(name, str) and name.strip() else None,
        )

    def normalize_history_point(self, payload: Mapping[str, Any]) -> PriceHistoryPoint:
        item_count = normalize_price(_pick(payload, "item_count", "itemCount"), "item_count")
        return PriceHistoryPoint(
            item_id=normalize_item_id(_pick(payload, "item_id", "itemId")),
            location=normalize_city(_pick(payload, "location", "city")),
            quality=normalize_quality(_pick(payload, "quality")),
            avg_price=normalize_price(_pick(payload, "avg_price", "avgPrice"), "avg_price"),
            item_count=item_count,
            timestamp=self._timestamp(_pick(payload, "timestamp")),
            server=self._server(payload),
        )

    def normalize_gold_quote(self, payload: Mapping[str, Any]) -> GoldQuote:
        return GoldQuote(
            price=normalize_price(_pick(payload, "price", "Price")),
            timestamp=self._timestamp(_pick(payload, "timestamp", "Timestamp")),
            server=self._server(payload),
        )

    def normalize_timestamp(self, value: Any) -> datetime:
        return self._timestamp(value)

    def _server(self, payload: Mapping[str, Any]) -> Region:
        value = _pick(payload, "server", "region")
        if value is None:
            return self._default_server
        return normalize_server(value)

    # ---------------------------------------------------------
    # Batches
    # ---------------------------------------------------------

    def normalize_batch(
        self,
        raws: Iterable[RawRecord],
        source: str = "unknown",
    ) -> NormalizationResult:
        """
        Normalize an ordered batch, collecting per-record failures.

        Never raises for a bad record; the summary is logged once.
        """
        result = NormalizationResult(source=source)
        for index, raw in enumerate(raws):
            try:
                result.records.append(self.normalize(raw))
            except ValidationError as e:
                result.errors.append(RecordError(index=index, field=e.field, message=str(e)))
            except (TypeError, ValueError, OverflowError) as e:
                result.errors.append(RecordError(index=index, field="record", message=str(e)))

        if result.errors:
            sample = "; ".join(str(err) for err in result.errors[:MAX_LOGGED_FAILURES])
            logger.warning(
                f"[{source}] Failed to normalize {result.failed}/{result.total} records: {sample}"
            )
        else:
            logger.debug(f"[{source}] Normalized {result.succeeded} records")
        return result
