"""
Parity Validation Models.

============================================================
PURPOSE
============================================================
Data structures for comparing two scan engines on the same
input.

- Tolerance configuration (explicit, exact by default)
- Per-field mismatch detail
- Comparison result

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional


# ============================================================
# ENUMS
# ============================================================

class MismatchSeverity(Enum):
    """Severity of a parity mismatch."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class MismatchKind(Enum):
    """What diverged between the two result lists."""
    LENGTH = "length"
    IDENTITY = "identity"    # route (item, cities, quality, quantity) differs
    VALUE = "value"          # a numeric field differs


# ============================================================
# TOLERANCE DEFINITIONS
# ============================================================

@dataclass(frozen=True)
class ToleranceConfig:
    """
    Explicit tolerance thresholds for engine parity.

    No silent tolerance: the defaults demand exact equality.
    """
    float_absolute_tolerance: float = 0.0
    float_relative_tolerance: float = 0.0

    def is_within(self, expected: float, actual: float) -> bool:
        if expected == actual:
            return True
        diff = abs(expected - actual)
        if diff <= self.float_absolute_tolerance:
            return True
        if expected != 0:
            return diff / abs(expected) <= self.float_relative_tolerance
        return False


# ============================================================
# COMPARISON RESULTS
# ============================================================

@dataclass
class FieldMismatch:
    """Single field mismatch detail."""
    field_name: str
    expected_value: Any
    actual_value: Any
    kind: MismatchKind = MismatchKind.VALUE
    deviation: Optional[float] = None
    within_tolerance: bool = False


@dataclass
class ParityComparisonResult:
    """Result of comparing a candidate engine against the reference."""
    comparison_id: str
    timestamp: datetime
    reference_engine: str
    candidate_engine: str

    is_match: bool
    severity: MismatchSeverity = MismatchSeverity.INFO
    mismatches: List[FieldMismatch] = field(default_factory=list)
    compared_count: int = 0

    def get_critical_mismatches(self) -> List[FieldMismatch]:
        """Get mismatches that exceeded tolerance."""
        return [m for m in self.mismatches if not m.within_tolerance]

    def summary(self, limit: int = 3) -> str:
        if self.is_match:
            return f"{self.candidate_engine} matches {self.reference_engine} ({self.compared_count} rows)"
        shown = ", ".join(
            f"{m.field_name}: {m.expected_value!r} != {m.actual_value!r}"
            for m in self.get_critical_mismatches()[:limit]
        )
        return (
            f"{self.candidate_engine} diverges from {self.reference_engine} "
            f"[{self.severity.value}]: {shown}"
        )
