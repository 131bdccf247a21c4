"""
Parity Validation Package.

============================================================
ENGINE PARITY VALIDATION
============================================================

PURPOSE:
Checks that an accelerated scan engine reproduces the portable
engine's ranked output exactly before it is trusted.

KEY PRINCIPLE:
"The portable engine is the reference. Speed never buys a
different answer."

============================================================
"""

from .comparators import BaseComparator, OpportunityParityComparator
from .models import (
    FieldMismatch,
    MismatchKind,
    MismatchSeverity,
    ParityComparisonResult,
    ToleranceConfig,
)

__all__ = [
    "BaseComparator",
    "OpportunityParityComparator",
    "FieldMismatch",
    "MismatchKind",
    "MismatchSeverity",
    "ParityComparisonResult",
    "ToleranceConfig",
]
