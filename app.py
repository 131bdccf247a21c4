#!/usr/bin/env python3
"""
Market Intelligence Pipeline - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
One executable for every runtime task of the pipeline.

    python app.py sync --items T4_BAG,T5_CAPE --gold
    python app.py scan --items T4_BAG --min-roi 15
    python app.py aggregate [--loop]
    python app.py ingest [--with-aggregation]

Configuration comes from the environment (and a local .env),
see core/config.py.

============================================================
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

from aggregation.models import AggregationConfig, AggregationStatus
from aggregation.updater import AggregationUpdater
from arbitrage.market_service import MarketService
from arbitrage.models import ScanParameters
from arbitrage.scanner import ArbitrageScanner
from cache.backends import RedisCacheBackend
from cache.models import CacheConfig
from cache.tiered_cache import TieredCache
from core.config import Settings, load_settings
from core.constants import GOLD_PRICE_SUBJECT, MARKET_ORDER_SUBJECT, TRADE_CITIES
from core.exceptions import ConfigurationError
from data_ingestion.collectors.aodp import AODPClient, GoldSyncService, PriceSyncService
from data_ingestion.collectors.market_feed import FeedConfig, FeedSubscriber
from data_ingestion.ingestion_service import StreamingIngestionAdapter
from data_ingestion.item_catalog import ItemCatalog
from data_ingestion.normalizers.market_normalizer import MarketNormalizer
from data_ingestion.types import IngestionStatus
from data_processing.cleaning.outlier_filter import OutlierFilter
from storage.database import Database


logger = logging.getLogger("app")


# ============================================================
# WIRING
# ============================================================

def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_database(settings: Settings) -> Database:
    database = Database(settings.database_url)
    database.create_all()
    return database


def build_cache(settings: Settings) -> TieredCache:
    config = CacheConfig.from_settings(settings)
    primary = None
    if settings.redis_url:
        primary = RedisCacheBackend.from_url(settings.redis_url, timeout_seconds=config.backend_timeout_seconds)
    return TieredCache(primary=primary, config=config)


def build_aggregation_config(settings: Settings) -> AggregationConfig:
    return AggregationConfig(
        window_days=settings.aggregation_window_days,
        event_limit=settings.aggregation_event_limit,
        interval_seconds=settings.aggregation_interval_seconds,
    )


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _install_signal_handlers(stop: asyncio.Event) -> None:
    if sys.platform == "win32":
        return
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)


# ============================================================
# COMMANDS
# ============================================================

async def run_sync(args: argparse.Namespace, settings: Settings) -> int:
    database = build_database(settings)
    client = AODPClient(region=settings.region, timeout_seconds=settings.http_timeout_seconds)
    outlier_filter = OutlierFilter(settings.outlier_z_threshold)

    exit_code = 0
    items = _split(args.items)
    if items:
        prices = PriceSyncService(
            client,
            database,
            item_ids=items,
            cities=_split(args.cities) or TRADE_CITIES,
            outlier_filter=outlier_filter,
        )
        result = await prices.sync()
        exit_code = exit_code or (1 if result.status == IngestionStatus.FAILED else 0)

    if args.gold:
        gold = GoldSyncService(client, database, count=args.gold_count, outlier_filter=outlier_filter)
        result = await gold.sync()
        exit_code = exit_code or (1 if result.status == IngestionStatus.FAILED else 0)

    database.dispose()
    return exit_code


async def run_scan(args: argparse.Namespace, settings: Settings) -> int:
    database = build_database(settings)
    cache = build_cache(settings)
    service = MarketService(
        AODPClient(region=settings.region, timeout_seconds=settings.http_timeout_seconds),
        cache=cache,
        catalog=ItemCatalog(database, cache),
        scanner=ArbitrageScanner(),
        outlier_filter=OutlierFilter(settings.outlier_z_threshold),
    )
    opportunities = await service.find_arbitrage_opportunities(
        _split(args.items),
        cities=_split(args.cities) or TRADE_CITIES,
        params=ScanParameters(min_roi=args.min_roi, max_results=args.max_results),
    )
    print(json.dumps([o.to_dict() for o in opportunities], indent=2))

    cache.close()
    database.dispose()
    return 0


async def run_aggregate(args: argparse.Namespace, settings: Settings) -> int:
    database = build_database(settings)
    cache = build_cache(settings)
    updater = AggregationUpdater(
        database,
        catalog=ItemCatalog(database, cache),
        cache=cache,
        config=build_aggregation_config(settings),
    )

    exit_code = 0
    if args.loop:
        stop = asyncio.Event()
        _install_signal_handlers(stop)
        await updater.start()
        await stop.wait()
        await updater.stop()
    else:
        result = await updater.run()
        exit_code = 1 if result.status == AggregationStatus.FAILED else 0

    cache.close()
    database.dispose()
    return exit_code


async def run_ingest(args: argparse.Namespace, settings: Settings) -> int:
    database = build_database(settings)
    cache = build_cache(settings)
    subscriber = FeedSubscriber(
        FeedConfig(url=settings.feed_url, subjects=(GOLD_PRICE_SUBJECT, MARKET_ORDER_SUBJECT))
    )
    adapter = StreamingIngestionAdapter(
        subscriber,
        database,
        normalizer=MarketNormalizer(default_server=settings.region),
        region=settings.region,
    )
    updater = None
    if args.with_aggregation:
        updater = AggregationUpdater(
            database,
            catalog=ItemCatalog(database, cache),
            cache=cache,
            config=build_aggregation_config(settings),
        )

    stop = asyncio.Event()
    _install_signal_handlers(stop)

    await adapter.start()
    if updater is not None:
        await updater.start()

    await stop.wait()
    logger.info("Shutdown requested")

    await adapter.stop()
    if updater is not None:
        await updater.stop()

    cache.close()
    database.dispose()
    return 0


COMMANDS = {
    "sync": run_sync,
    "scan": run_scan,
    "aggregate": run_aggregate,
    "ingest": run_ingest,
}


# ============================================================
# CLI
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="market-intel",
        description="Market intelligence pipeline",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Batch price/gold sync from AODP")
    sync.add_argument("--items", help="Comma-separated item ids")
    sync.add_argument("--cities", help="Comma-separated cities (default: trade cities)")
    sync.add_argument("--gold", action="store_true", help="Also sync gold prices")
    sync.add_argument("--gold-count", type=int, default=24, help="Gold points to fetch")

    scan = subparsers.add_parser("scan", help="Scan for cross-city arbitrage")
    scan.add_argument("--items", required=True, help="Comma-separated item ids")
    scan.add_argument("--cities", help="Comma-separated cities (default: trade cities)")
    scan.add_argument("--min-roi", type=float, default=10.0, help="Minimum ROI in percent")
    scan.add_argument("--max-results", type=int, default=100, help="Maximum routes returned")

    aggregate = subparsers.add_parser("aggregate", help="Recompute the meta build snapshot")
    aggregate.add_argument("--loop", action="store_true", help="Run every AGGREGATION_INTERVAL_SECONDS")

    ingest = subparsers.add_parser("ingest", help="Consume the streaming market feed")
    ingest.add_argument(
        "--with-aggregation",
        action="store_true",
        help="Run the periodic aggregation job alongside",
    )

    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    configure_logging(args.log_level or settings.log_level)

    try:
        return asyncio.run(COMMANDS[args.command](args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
