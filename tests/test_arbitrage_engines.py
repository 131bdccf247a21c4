"""
Tests for the arbitrage scanning engines.

============================================================
PURPOSE
============================================================
1. Transport cost model
2. Portable engine arithmetic and skip rules
3. Accelerated/portable parity on fixed and random snapshots
4. Parity comparator
5. Scanner engine selection and fallback

============================================================
"""

import random
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from arbitrage.models import ArbitrageOpportunity, MarketDataPoint, ScanParameters, ScannerConfig
from arbitrage.python_engine import PythonScanEngine
from arbitrage.scanner import PROBE_DATASET, PROBE_PARAMETERS, ArbitrageScanner, quotes_to_market_data
from arbitrage.transport import TransportConfig, TransportModel
from arbitrage.vectorized_engine import VectorizedScanEngine
from core.constants import CANONICAL_CITIES, Region
from core.exceptions import ScanEngineError
from data_ingestion.types import PriceQuote
from parity_validation import MismatchKind, MismatchSeverity, OpportunityParityComparator


FREE_TRANSPORT = ScannerConfig(transport=TransportConfig(cost_per_zone=0.0))


def engines(config: ScannerConfig):
    return PythonScanEngine(config), VectorizedScanEngine(config)


def random_snapshot(seed: int, size: int = 60):
    rng = random.Random(seed)
    items = ["T4_BAG", "T5_CAPE", "T6_SWORD", "T7_ARMOR"]
    points = []
    for _ in range(size):
        item = rng.choice(items)
        points.append(
            MarketDataPoint(
                item_id=item,
                item_name=item.title(),
                city=rng.choice(CANONICAL_CITIES),
                buy_price=rng.choice([0, rng.randint(1, 50_000)]),
                sell_price=rng.choice([0, rng.randint(1, 60_000)]),
                quantity=rng.randint(0, 400),
                quality=rng.randint(1, 3),
            )
        )
    return points


# ============================================================
# TRANSPORT
# ============================================================

class TestTransportModel:
    """Tests for the zone distance table."""

    def test_same_city_is_free(self):
        assert TransportModel(TransportConfig()).distance("Martlock", "Martlock") == 0

    def test_hub_to_royal(self):
        model = TransportModel(TransportConfig())
        assert model.distance("Caerleon", "Martlock") == 8
        assert model.distance("Martlock", "Caerleon") == 8

    def test_royal_to_royal_uses_default(self):
        assert TransportModel(TransportConfig()).distance("Lymhurst", "Thetford") == 12

    def test_override(self):
        config = TransportConfig(overrides={frozenset(("Lymhurst", "Fort Sterling")): 5})
        model = TransportModel(config)
        assert model.distance("Fort Sterling", "Lymhurst") == 5

    def test_cost_scales_above_baseline(self):
        model = TransportModel(TransportConfig())
        assert model.cost("Caerleon", "Martlock", 50) == 800.0
        assert model.cost("Caerleon", "Martlock", 250) == 2000.0


# ============================================================
# PORTABLE ENGINE
# ============================================================

class TestPythonScanEngine:
    """Tests for route arithmetic and skip rules."""

    def test_single_route_scenario(self):
        points = [
            MarketDataPoint("T4_BAG", "Adept's Bag", "Martlock", 1000, 0, 1),
            MarketDataPoint("T4_BAG", "Adept's Bag", "Lymhurst", 0, 1300, 1),
        ]
        result = PythonScanEngine(FREE_TRANSPORT).scan(points, ScanParameters(min_roi=0))

        assert len(result) == 1
        route = result[0]
        assert (route.buy_city, route.sell_city) == ("Martlock", "Lymhurst")
        assert route.profit == pytest.approx(162.0)
        assert 0 < route.profit < 300
        assert route.gross_profit == pytest.approx(300.0)
        assert route.roi == pytest.approx(162.0 / 1060.0 * 100.0)
        assert route.profit_margin == pytest.approx(30.0)
        assert route.taxes == pytest.approx(138.0)

    def test_min_roi_filters(self):
        points = [
            MarketDataPoint("T4_BAG", "Bag", "Martlock", 1000, 0, 1),
            MarketDataPoint("T4_BAG", "Bag", "Lymhurst", 0, 1300, 1),
        ]
        assert PythonScanEngine(FREE_TRANSPORT).scan(points, ScanParameters(min_roi=20)) == []

    def test_skips_zero_price_and_quantity(self):
        points = [
            MarketDataPoint("T4_BAG", "Bag", "Martlock", 0, 5000, 10),
            MarketDataPoint("T4_BAG", "Bag", "Lymhurst", 1000, 0, 10),
            MarketDataPoint("T4_BAG", "Bag", "Thetford", 1000, 5000, 0),
        ]
        result = PythonScanEngine(FREE_TRANSPORT).scan(points, ScanParameters(min_roi=-100))
        assert all(r.buy_price > 0 and r.sell_price > 0 and r.quantity > 0 for r in result)
        assert [(r.buy_city, r.sell_city) for r in result] == [("Lymhurst", "Martlock")]

    def test_never_same_city(self):
        points = [
            MarketDataPoint("T4_BAG", "Bag", "Martlock", 1000, 5000, 10),
            MarketDataPoint("T4_BAG", "Bag", "Martlock", 900, 6000, 10, quality=1),
        ]
        assert PythonScanEngine(FREE_TRANSPORT).scan(points, ScanParameters(min_roi=-100)) == []

    def test_qualities_not_mixed(self):
        points = [
            MarketDataPoint("T4_BAG", "Bag", "Martlock", 1000, 0, 10, quality=1),
            MarketDataPoint("T4_BAG", "Bag", "Lymhurst", 0, 5000, 10, quality=2),
        ]
        assert PythonScanEngine(FREE_TRANSPORT).scan(points, ScanParameters(min_roi=-100)) == []

    def test_ranked_by_roi_and_truncated(self):
        points = [
            MarketDataPoint("T4_BAG", "Bag", "Martlock", 1000, 0, 1),
            MarketDataPoint("T4_BAG", "Bag", "Lymhurst", 0, 1300, 1),
            MarketDataPoint("T5_CAPE", "Cape", "Martlock", 1000, 0, 1),
            MarketDataPoint("T5_CAPE", "Cape", "Lymhurst", 0, 2000, 1),
        ]
        result = PythonScanEngine(FREE_TRANSPORT).scan(points, ScanParameters(min_roi=0, max_results=1))
        assert [r.item_id for r in result] == ["T5_CAPE"]

    def test_opportunity_rejects_same_city(self):
        with pytest.raises(ValueError):
            ArbitrageOpportunity("T4_BAG", "Bag", 1, "Martlock", "Martlock",
                                 1.0, 2.0, 1, 1.0, 1.0, 1.0, 1.0, 0.0, 0.0)


# ============================================================
# PARITY
# ============================================================

class TestEngineParity:
    """The accelerated engine must reproduce the portable one exactly."""

    def test_probe_dataset(self):
        portable, accelerated = engines(ScannerConfig())
        assert accelerated.scan(PROBE_DATASET, PROBE_PARAMETERS) == portable.scan(PROBE_DATASET, PROBE_PARAMETERS)

    @pytest.mark.parametrize("seed", range(8))
    def test_random_snapshots(self, seed):
        portable, accelerated = engines(ScannerConfig())
        points = random_snapshot(seed)
        params = ScanParameters(min_roi=-50.0, max_results=500)
        expected = portable.scan(points, params)

        assert accelerated.scan(points, params) == expected
        assert all(o.buy_city != o.sell_city for o in expected)

    @pytest.mark.parametrize("max_results", [0, 1, 7])
    def test_truncation(self, max_results):
        portable, accelerated = engines(ScannerConfig())
        points = random_snapshot(99)
        params = ScanParameters(min_roi=0.0, max_results=max_results)
        assert accelerated.scan(points, params) == portable.scan(points, params)

    def test_empty_input(self):
        portable, accelerated = engines(ScannerConfig())
        assert portable.scan([], ScanParameters()) == accelerated.scan([], ScanParameters()) == []

    def test_accelerated_bad_input_raises_engine_error(self):
        points = [
            MarketDataPoint("T4_BAG", "Bag", "Martlock", 1000, 0, "many"),
            MarketDataPoint("T4_BAG", "Bag", "Lymhurst", 0, 1300, 1),
        ]
        with pytest.raises(ScanEngineError) as exc_info:
            VectorizedScanEngine(ScannerConfig()).scan(points, ScanParameters())
        assert exc_info.value.engine == "numpy"


class TestOpportunityParityComparator:
    """Tests for the result comparator."""

    def test_identical_lists_match(self):
        opportunities = PythonScanEngine(ScannerConfig()).scan(PROBE_DATASET, PROBE_PARAMETERS)
        result = OpportunityParityComparator().compare(opportunities, list(opportunities))
        assert result.is_match
        assert result.severity == MismatchSeverity.INFO
        assert result.compared_count == len(opportunities)

    def test_numeric_drift_is_warning(self):
        opportunities = PythonScanEngine(ScannerConfig()).scan(PROBE_DATASET, PROBE_PARAMETERS)
        drifted = [replace(opportunities[0], roi=opportunities[0].roi + 1e-9)] + opportunities[1:]
        result = OpportunityParityComparator().compare(opportunities, drifted)

        assert not result.is_match
        assert result.severity == MismatchSeverity.WARNING
        assert result.mismatches[0].field_name == "[0].roi"

    def test_length_mismatch_is_critical(self):
        opportunities = PythonScanEngine(ScannerConfig()).scan(PROBE_DATASET, PROBE_PARAMETERS)
        result = OpportunityParityComparator().compare(opportunities, opportunities[:-1])

        assert result.severity == MismatchSeverity.CRITICAL
        assert result.mismatches[0].kind == MismatchKind.LENGTH


# ============================================================
# SCANNER
# ============================================================

class FlakyEngine(VectorizedScanEngine):
    """Passes the probe, then fails on demand."""

    name = "flaky"
    fail = False

    def scan(self, points, params):
        if self.fail:
            raise RuntimeError("accelerator unavailable")
        return super().scan(points, params)


class DivergentEngine(VectorizedScanEngine):
    name = "divergent"

    def scan(self, points, params):
        return super().scan(points, params)[1:]


class TestArbitrageScanner:
    """Tests for engine selection and fallback."""

    def test_probe_selects_accelerated(self):
        scanner = ArbitrageScanner(ScannerConfig())
        assert scanner.active_engine == "numpy"
        assert scanner.probe_result.is_match

    def test_probe_mismatch_keeps_portable(self):
        config = ScannerConfig()
        scanner = ArbitrageScanner(config, accelerated=DivergentEngine(config))
        assert scanner.active_engine == "python"
        assert not scanner.probe_result.is_match

    def test_prefer_accelerated_disabled(self):
        scanner = ArbitrageScanner(ScannerConfig(prefer_accelerated=False))
        assert scanner.active_engine == "python"

    def test_runtime_failure_falls_back(self):
        config = ScannerConfig()
        flaky = FlakyEngine(config)
        scanner = ArbitrageScanner(config, accelerated=flaky)
        assert scanner.active_engine == "flaky"

        flaky.fail = True
        points = random_snapshot(3)
        params = ScanParameters(min_roi=0.0)
        result = scanner.scan(points, params)

        assert result == PythonScanEngine(config).scan(points, params)
        assert scanner.fallback_count == 1
        assert scanner.stats()["fallback_count"] == 1


class TestQuotesToMarketData:
    """Tests for the quote adapter."""

    def test_sides_and_names(self):
        quote = PriceQuote(
            item_id="T4_BAG",
            city="Martlock",
            quality=2,
            sell_price_min=1000,
            sell_price_max=1500,
            buy_price_min=700,
            buy_price_max=900,
            timestamp=datetime(2024, 6, 1, tzinfo=timezone.utc),
            server=Region.AMERICAS,
        )
        [point] = quotes_to_market_data([quote], names={"T4_BAG": "Adept's Bag"},
                                        volumes={("T4_BAG", "Martlock"): 12})
        assert point.buy_price == 1000
        assert point.sell_price == 900
        assert point.item_name == "Adept's Bag"
        assert point.quantity == 12
        assert point.quality == 2

    def test_defaults(self):
        quote = PriceQuote("T4_BAG", "Martlock", 1, 1000, 1000, 0, 0,
                           datetime(2024, 6, 1, tzinfo=timezone.utc), Region.AMERICAS)
        [point] = quotes_to_market_data([quote])
        assert point.item_name == "T4_BAG"
        assert point.quantity == 1
