"""
Core Module Package.

Infrastructure shared by every pipeline component.

Components:
- clock: Injectable UTC time source
- config: Environment-driven settings
- constants: Cities, regions, fee rates, TTL defaults
- exceptions: Exception hierarchy
- state_manager: Component run state (Idle/Running/Stopped)
"""

from core.clock import ClockProtocol, MockClock, SystemClock
from core.config import Settings, load_settings
from core.constants import Region
from core.exceptions import (
    AggregationError,
    CacheBackendError,
    ConfigurationError,
    MarketIntelError,
    ScanEngineError,
    StateTransitionError,
    UpstreamError,
    ValidationError,
)
from core.state_manager import ComponentState, StateGuard


__all__ = [
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "Settings",
    "load_settings",
    "Region",
    "AggregationError",
    "CacheBackendError",
    "ConfigurationError",
    "MarketIntelError",
    "ScanEngineError",
    "StateTransitionError",
    "UpstreamError",
    "ValidationError",
    "ComponentState",
    "StateGuard",
]
