"""
Parity Comparators.

============================================================
PURPOSE
============================================================
Compares the ranked output of a candidate scan engine against
the reference engine, row by row and field by field.

1. Result lengths must agree
2. Each row must describe the same route
3. Numeric fields must agree within tolerance

============================================================
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

if TYPE_CHECKING:
    from arbitrage.models import ArbitrageOpportunity

from .models import (
    FieldMismatch,
    MismatchKind,
    MismatchSeverity,
    ParityComparisonResult,
    ToleranceConfig,
)


logger = logging.getLogger(__name__)

IDENTITY_FIELDS = (
    "item_id",
    "item_name",
    "quality",
    "buy_city",
    "sell_city",
    "buy_price",
    "sell_price",
    "quantity",
)

VALUE_FIELDS = (
    "gross_profit",
    "profit",
    "profit_margin",
    "roi",
    "taxes",
    "transport_cost",
)


# ============================================================
# BASE COMPARATOR
# ============================================================

class BaseComparator(ABC):
    """Abstract base class for parity comparators."""

    def __init__(self, tolerance_config: Optional[ToleranceConfig] = None):
        self._tolerance = tolerance_config or ToleranceConfig()

    @abstractmethod
    def compare(
        self,
        reference: Any,
        candidate: Any,
        reference_engine: str,
        candidate_engine: str,
    ) -> ParityComparisonResult:
        pass

    def _create_field_mismatch(
        self,
        field_name: str,
        expected_value: Any,
        actual_value: Any,
        kind: MismatchKind,
    ) -> FieldMismatch:
        """Create a field mismatch record."""
        deviation = None
        within_tolerance = expected_value == actual_value

        numeric = (int, float)
        if (
            kind == MismatchKind.VALUE
            and isinstance(expected_value, numeric)
            and isinstance(actual_value, numeric)
        ):
            deviation = abs(float(expected_value) - float(actual_value))
            within_tolerance = self._tolerance.is_within(float(expected_value), float(actual_value))

        return FieldMismatch(
            field_name=field_name,
            expected_value=expected_value,
            actual_value=actual_value,
            kind=kind,
            deviation=deviation,
            within_tolerance=within_tolerance,
        )

    def _generate_comparison_id(self) -> str:
        """Generate unique comparison ID."""
        return f"cmp_{uuid.uuid4().hex[:12]}"


# ============================================================
# OPPORTUNITY COMPARATOR
# ============================================================

class OpportunityParityComparator(BaseComparator):
    """Compares two ranked opportunity lists."""

    def compare(
        self,
        reference: Sequence["ArbitrageOpportunity"],
        candidate: Sequence["ArbitrageOpportunity"],
        reference_engine: str = "reference",
        candidate_engine: str = "candidate",
    ) -> ParityComparisonResult:
        mismatches: List[FieldMismatch] = []

        if len(reference) != len(candidate):
            mismatches.append(self._create_field_mismatch(
                "len", len(reference), len(candidate), MismatchKind.LENGTH
            ))

        for row, (expected, actual) in enumerate(zip(reference, candidate)):
            for name in IDENTITY_FIELDS:
                mismatch = self._create_field_mismatch(
                    f"[{row}].{name}",
                    getattr(expected, name),
                    getattr(actual, name),
                    MismatchKind.IDENTITY,
                )
                if not mismatch.within_tolerance:
                    mismatches.append(mismatch)
            for name in VALUE_FIELDS:
                mismatch = self._create_field_mismatch(
                    f"[{row}].{name}",
                    getattr(expected, name),
                    getattr(actual, name),
                    MismatchKind.VALUE,
                )
                if not mismatch.within_tolerance:
                    mismatches.append(mismatch)

        is_match = not mismatches
        result = ParityComparisonResult(
            comparison_id=self._generate_comparison_id(),
            timestamp=datetime.now(timezone.utc),
            reference_engine=reference_engine,
            candidate_engine=candidate_engine,
            is_match=is_match,
            severity=self._determine_severity(mismatches),
            mismatches=mismatches,
            compared_count=min(len(reference), len(candidate)),
        )
        if not is_match:
            logger.warning(f"Parity mismatch: {result.summary()}")
        return result

    def _determine_severity(self, mismatches: List[FieldMismatch]) -> MismatchSeverity:
        """Wrong routes or counts are critical; numeric drift is a warning."""
        if not mismatches:
            return MismatchSeverity.INFO
        if any(m.kind != MismatchKind.VALUE for m in mismatches):
            return MismatchSeverity.CRITICAL
        return MismatchSeverity.WARNING
