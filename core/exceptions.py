"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the exception hierarchy of the market pipeline.

- Separates per-record validation failures from transport failures
- Carries context for logging
- Tells callers whether a retry can help

============================================================
EXCEPTION HIERARCHY
============================================================
MarketIntelError (base)
├── ConfigurationError
├── ValidationError          one malformed record / field
├── UpstreamError            remote call failed or timed out
├── CacheBackendError        cache backend unavailable
├── ScanEngineError          a scan engine failed to run
├── AggregationError         aggregation job failed
└── StateTransitionError     illegal component state change

Storage failures live in storage.repositories.exceptions.

============================================================
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for log routing."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# BASE EXCEPTION
# ============================================================

class MarketIntelError(Exception):
    """
    Base exception for all market pipeline errors.

    All exceptions carry:
    - severity: for log routing
    - context: for debugging
    - recoverable: whether a retry may succeed
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_recoverable: bool = True

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for structured logging."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        return self.message


class ConfigurationError(MarketIntelError):
    """Invalid or missing configuration."""

    default_severity = Severity.HIGH
    default_recoverable = False


# ============================================================
# DATA ERRORS
# ============================================================

class ValidationError(MarketIntelError):
    """
    One upstream record failed validation.

    Always names the offending field so batch summaries can
    report it without re-parsing the message.
    """

    default_severity = Severity.LOW

    def __init__(
        self,
        field: str,
        message: str,
        value: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            f"{field}: {message}",
            context={"field": field, "value": repr(value), **(context or {})},
            recoverable=False,
        )
        self.field = field
        self.value = value


class UpstreamError(MarketIntelError):
    """A remote read failed, returned a non-success status, or timed out."""

    default_severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        source: str,
        status_code: Optional[int] = None,
        recoverable: bool = True,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            context={"source": source, "status_code": status_code},
            recoverable=recoverable,
            cause=cause,
        )
        self.source = source
        self.status_code = status_code


class CacheBackendError(MarketIntelError):
    """The cache backend could not serve a request."""

    default_severity = Severity.LOW


# ============================================================
# COMPUTATION ERRORS
# ============================================================

class ScanEngineError(MarketIntelError):
    """A scan engine could not produce a result."""

    def __init__(self, engine: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"[{engine}] {message}", context={"engine": engine}, cause=cause)
        self.engine = engine


class AggregationError(MarketIntelError):
    """The aggregation job failed before publishing its snapshot."""

    default_severity = Severity.HIGH


class StateTransitionError(MarketIntelError):
    """A component was asked to move between incompatible states."""

    default_recoverable = False

    def __init__(self, component: str, from_state: str, to_state: str):
        super().__init__(
            f"{component}: cannot transition {from_state} -> {to_state}",
            context={"component": component, "from": from_state, "to": to_state},
        )
        self.component = component
        self.from_state = from_state
        self.to_state = to_state


__all__ = [
    "Severity",
    "MarketIntelError",
    "ConfigurationError",
    "ValidationError",
    "UpstreamError",
    "CacheBackendError",
    "ScanEngineError",
    "AggregationError",
    "StateTransitionError",
]
