"""
Core Module - Configuration.

============================================================
RESPONSIBILITY
============================================================
Loads runtime settings from the environment (and a local .env
file when present).

============================================================
ENVIRONMENT VARIABLES
============================================================
DATABASE_URL                  SQLAlchemy URL (default: local SQLite file)
REDIS_URL                     Optional shared cache backend
MARKET_REGION                 Americas | Europe | Asia (aliases accepted)
HTTP_TIMEOUT_SECONDS          Bound on every upstream HTTP call
CACHE_TIMEOUT_SECONDS         Bound on every cache backend call
CACHE_TTL_VOLATILE            Seconds, live quotes
CACHE_TTL_STANDARD            Seconds, computed aggregates
CACHE_TTL_STABLE              Seconds, names and history
CACHE_TTL_STATIC              Seconds, near-static lookups
OUTLIER_Z_THRESHOLD           Z-score rejection threshold
AGGREGATION_WINDOW_DAYS       Rolling window of kill events
AGGREGATION_EVENT_LIMIT       Maximum events per aggregation run
AGGREGATION_INTERVAL_SECONDS  Delay between scheduled aggregation runs
FEED_URL                      Streaming market feed endpoint
LOG_LEVEL                     Root log level

============================================================
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .constants import (
    PRIMARY_REGION,
    REGION_ALIASES,
    Region,
    TTL_STABLE_SECONDS,
    TTL_STANDARD_SECONDS,
    TTL_STATIC_SECONDS,
    TTL_VOLATILE_SECONDS,
)
from .exceptions import ConfigurationError


logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///market_intel.db"
DEFAULT_FEED_URL = "wss://feed.albion-online-data.com/stream"


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the whole pipeline."""
    database_url: str = DEFAULT_DATABASE_URL
    redis_url: Optional[str] = None
    region: Region = PRIMARY_REGION
    http_timeout_seconds: float = 30.0
    cache_timeout_seconds: float = 2.0
    ttl_volatile_seconds: int = TTL_VOLATILE_SECONDS
    ttl_standard_seconds: int = TTL_STANDARD_SECONDS
    ttl_stable_seconds: int = TTL_STABLE_SECONDS
    ttl_static_seconds: int = TTL_STATIC_SECONDS
    outlier_z_threshold: float = 3.0
    aggregation_window_days: int = 30
    aggregation_event_limit: int = 5000
    aggregation_interval_seconds: int = 600
    feed_url: str = DEFAULT_FEED_URL
    log_level: str = "INFO"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_region(name: str) -> Region:
    raw = os.getenv(name)
    if not raw:
        return PRIMARY_REGION
    region = REGION_ALIASES.get(raw.strip().lower())
    if region is None:
        logger.warning(f"{name}={raw!r} is not a known region, using {PRIMARY_REGION.value}")
        return PRIMARY_REGION
    return region


def load_settings(dotenv: bool = True) -> Settings:
    """
    Build Settings from the environment.

    Args:
        dotenv: Load a local .env file first

    Raises:
        ConfigurationError: On malformed numeric values
    """
    if dotenv:
        load_dotenv()

    settings = Settings(
        database_url=os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL,
        redis_url=os.getenv("REDIS_URL") or None,
        region=_env_region("MARKET_REGION"),
        http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 30.0),
        cache_timeout_seconds=_env_float("CACHE_TIMEOUT_SECONDS", 2.0),
        ttl_volatile_seconds=_env_int("CACHE_TTL_VOLATILE", TTL_VOLATILE_SECONDS),
        ttl_standard_seconds=_env_int("CACHE_TTL_STANDARD", TTL_STANDARD_SECONDS),
        ttl_stable_seconds=_env_int("CACHE_TTL_STABLE", TTL_STABLE_SECONDS),
        ttl_static_seconds=_env_int("CACHE_TTL_STATIC", TTL_STATIC_SECONDS),
        outlier_z_threshold=_env_float("OUTLIER_Z_THRESHOLD", 3.0),
        aggregation_window_days=_env_int("AGGREGATION_WINDOW_DAYS", 30),
        aggregation_event_limit=_env_int("AGGREGATION_EVENT_LIMIT", 5000),
        aggregation_interval_seconds=_env_int("AGGREGATION_INTERVAL_SECONDS", 600),
        feed_url=os.getenv("FEED_URL") or DEFAULT_FEED_URL,
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )

    if settings.outlier_z_threshold <= 0:
        raise ConfigurationError("OUTLIER_Z_THRESHOLD must be positive")

    logger.debug(
        f"Settings loaded: region={settings.region.value} "
        f"database={settings.database_url.split('@')[-1]} "
        f"redis={'on' if settings.redis_url else 'off'}"
    )
    return settings
