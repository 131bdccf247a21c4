"""
Arbitrage Package.

Cross-city arbitrage scanning over a market snapshot.

Modules:
- models: engine input/output and configuration
- transport: zone-distance transport cost model
- python_engine / vectorized_engine: interchangeable scan engines
- scanner: capability-selected public seam with fallback
- market_service: cached price reads and end-to-end scans
  (import directly; depends on storage and the HTTP client)
"""

from arbitrage.models import (
    ArbitrageOpportunity,
    MarketDataPoint,
    ScanParameters,
    ScannerConfig,
)
from arbitrage.transport import TransportConfig, TransportModel
from arbitrage.engine_base import ScanEngine
from arbitrage.python_engine import PythonScanEngine
from arbitrage.vectorized_engine import VectorizedScanEngine
from arbitrage.scanner import (
    PROBE_DATASET,
    PROBE_PARAMETERS,
    ArbitrageScanner,
    quotes_to_market_data,
)


__all__ = [
    "ArbitrageOpportunity",
    "MarketDataPoint",
    "ScanParameters",
    "ScannerConfig",
    "TransportConfig",
    "TransportModel",
    "ScanEngine",
    "PythonScanEngine",
    "VectorizedScanEngine",
    "PROBE_DATASET",
    "PROBE_PARAMETERS",
    "ArbitrageScanner",
    "quotes_to_market_data",
]
