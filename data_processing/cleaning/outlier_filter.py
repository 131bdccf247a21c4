"""
Data Processing - Outlier Filter.

============================================================
RESPONSIBILITY
============================================================
Flags price values that diverge from their batch by more than
a configurable number of standard deviations.

- Sample mean, population standard deviation
- Per-observation z-score verdicts
- Accepted / rejected partition plus summary statistics

============================================================
DESIGN PRINCIPLES
============================================================
- Advisory, not a security boundary: it catches feed glitches
  (misplaced decimals), not adversarial input
- Zero-variance batches never reject anything
- Verdicts are per-batch and never persisted

============================================================
"""

import logging
import statistics
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from data_ingestion.types import GoldQuote, PriceQuote


logger = logging.getLogger(__name__)

DEFAULT_Z_THRESHOLD = 3.0  # ~99.7% band under normality

T = TypeVar("T")


# ============================================================
# TYPES
# ============================================================

@dataclass(frozen=True)
class Observation:
    """A numeric value with optional traceability metadata."""
    value: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OutlierVerdict:
    """Classification of one value against its batch."""
    value: float
    accepted: bool
    z_score: float
    mean: float
    std_dev: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OutlierReport(Generic[T]):
    """Partition of a batch into accepted and rejected members."""
    accepted: List[T] = field(default_factory=list)
    rejected: List[T] = field(default_factory=list)
    verdicts: List[OutlierVerdict] = field(default_factory=list)
    mean: float = 0.0
    std_dev: float = 0.0

    @property
    def total_count(self) -> int:
        return len(self.accepted) + len(self.rejected)

    @property
    def accepted_count(self) -> int:
        return len(self.accepted)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)

    def stats(self) -> Dict[str, Any]:
        return {
            "mean": self.mean,
            "std_dev": self.std_dev,
            "total_count": self.total_count,
            "accepted_count": self.accepted_count,
            "rejected_count": self.rejected_count,
        }


# ============================================================
# STATISTICS
# ============================================================

def batch_statistics(values: Sequence[float]) -> Tuple[float, float]:
    """Mean and population standard deviation; (0, 0) for an empty batch."""
    if not values:
        return 0.0, 0.0
    mean = statistics.fmean(values)
    std_dev = statistics.pstdev(values, mu=mean) if len(values) > 1 else 0.0
    return mean, std_dev


def z_score(value: float, mean: float, std_dev: float) -> float:
    """Z-score with a zero-variance guard."""
    if std_dev == 0:
        return 0.0
    return (value - mean) / std_dev


# ============================================================
# FILTER
# ============================================================

class OutlierFilter:
    """
    Z-score outlier classifier.

    Usage:
        report = OutlierFilter(threshold=3.0).classify(observations)
        clean = report.accepted
    """

    def __init__(self, threshold: float = DEFAULT_Z_THRESHOLD) -> None:
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    def classify(self, observations: Sequence[Observation]) -> OutlierReport[Observation]:
        """Classify plain observations."""
        return self.filter_items(
            observations,
            value_of=lambda o: o.value,
            metadata_of=lambda o: o.metadata,
        )

    def filter_items(
        self,
        items: Sequence[T],
        value_of: Callable[[T], float],
        metadata_of: Optional[Callable[[T], Dict[str, Any]]] = None,
    ) -> OutlierReport[T]:
        """
        Classify arbitrary items by an extracted numeric value.

        Args:
            items: Batch members, order preserved in both partitions
            value_of: Numeric value to judge
            metadata_of: Traceability data attached to each verdict
        """
        report: OutlierReport[T] = OutlierReport()
        if not items:
            return report

        values = [float(value_of(item)) for item in items]
        mean, std_dev = batch_statistics(values)
        report.mean = mean
        report.std_dev = std_dev

        for item, value in zip(items, values):
            score = z_score(value, mean, std_dev)
            accepted = abs(score) <= self._threshold
            metadata = metadata_of(item) if metadata_of else {}
            report.verdicts.append(
                OutlierVerdict(
                    value=value,
                    accepted=accepted,
                    z_score=score,
                    mean=mean,
                    std_dev=std_dev,
                    metadata=metadata,
                )
            )
            if accepted:
                report.accepted.append(item)
            else:
                report.rejected.append(item)
                logger.warning(
                    f"Outlier detected: value={value} z={score:.2f} "
                    f"threshold={self._threshold} metadata={metadata}"
                )
        return report


# ============================================================
# DOMAIN HELPERS
# ============================================================

def filter_price_quotes(
    quotes: Iterable[PriceQuote],
    outlier_filter: Optional[OutlierFilter] = None,
) -> OutlierReport[PriceQuote]:
    """
    Screen quotes per (item, quality) on their offer price.

    Quotes without an offer (sell_price_min == 0) carry no price
    to judge and are accepted as-is. Output order follows input.
    """
    outlier_filter = outlier_filter or OutlierFilter()
    all_quotes = list(quotes)
    groups: "OrderedDict[Tuple[str, int], List[PriceQuote]]" = OrderedDict()
    for quote in all_quotes:
        groups.setdefault((quote.item_id, quote.quality), []).append(quote)

    rejected_ids = set()
    combined: OutlierReport[PriceQuote] = OutlierReport()
    for group in groups.values():
        priced = [q for q in group if q.sell_price_min > 0]
        report = outlier_filter.filter_items(
            priced,
            value_of=lambda q: q.sell_price_min,
            metadata_of=lambda q: {"item_id": q.item_id, "city": q.city, "quality": q.quality},
        )
        combined.verdicts.extend(report.verdicts)
        rejected_ids.update(id(q) for q in report.rejected)

    for quote in all_quotes:
        if id(quote) in rejected_ids:
            combined.rejected.append(quote)
        else:
            combined.accepted.append(quote)

    combined.mean, combined.std_dev = batch_statistics(
        [float(q.sell_price_min) for q in all_quotes if q.sell_price_min > 0]
    )
    if combined.rejected:
        logger.info(
            f"Rejected {combined.rejected_count} outlier prices out of {combined.total_count}"
        )
    return combined


def filter_gold_quotes(
    quotes: Sequence[GoldQuote],
    outlier_filter: Optional[OutlierFilter] = None,
) -> OutlierReport[GoldQuote]:
    """Screen a gold price series as one batch."""
    outlier_filter = outlier_filter or OutlierFilter()
    report = outlier_filter.filter_items(
        quotes,
        value_of=lambda q: q.price,
        metadata_of=lambda q: {"timestamp": q.timestamp.isoformat()},
    )
    if report.rejected:
        logger.info(
            f"Rejected {report.rejected_count} outlier gold prices out of {report.total_count}"
        )
    return report
