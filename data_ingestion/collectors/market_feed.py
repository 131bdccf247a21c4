"""
Data Ingestion - Market Feed Subscriber.

============================================================
RESPONSIBILITY
============================================================
Maintains the streaming connection to the market feed and
yields decoded messages by subject.

- Persistent websocket connection with heartbeat
- Subject subscription, replayed after reconnect
- Automatic reconnection with exponential backoff

============================================================
WIRE FORMAT
============================================================
client -> {"op": "subscribe", "subjects": ["goldprices.ingest", ...]}
server -> {"subject": "goldprices.ingest", "data": {"Price": 4200, ...}}

============================================================
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import websockets

from core.exceptions import UpstreamError


@dataclass(frozen=True)
class FeedMessage:
    """One decoded feed envelope."""
    subject: str
    data: Dict[str, Any]


@dataclass(frozen=True)
class FeedConfig:
    """Feed connection configuration."""
    url: str
    subjects: Sequence[str]
    open_timeout_seconds: float = 10.0
    heartbeat_interval_seconds: float = 20.0
    reconnect_attempts: int = 10
    max_backoff_seconds: float = 60.0


class FeedSubscriber:
    """
    Websocket subscriber for the market feed.

    ============================================================
    USAGE
    ============================================================
    subscriber = FeedSubscriber(FeedConfig(url, subjects))
    await subscriber.connect()
    async for message in subscriber.messages():
        ...
    await subscriber.close()

    ============================================================
    """

    SOURCE = "market_feed"

    def __init__(self, config: FeedConfig) -> None:
        self._config = config
        self._logger = logging.getLogger("collector.market_feed")
        self._websocket = None
        self._closed = False
        self._reconnect_count = 0
        self._malformed_count = 0

    @property
    def is_connected(self) -> bool:
        return self._websocket is not None

    @property
    def malformed_count(self) -> int:
        return self._malformed_count

    # =========================================================
    # CONNECTION MANAGEMENT
    # =========================================================

    async def connect(self) -> None:
        """
        Raises:
            UpstreamError: On connection failure
        """
        self._closed = False
        if self._websocket is not None:
            return
        try:
            self._websocket = await websockets.connect(
                self._config.url,
                open_timeout=self._config.open_timeout_seconds,
                ping_interval=self._config.heartbeat_interval_seconds,
            )
            await self._websocket.send(json.dumps({
                "op": "subscribe",
                "subjects": list(self._config.subjects),
            }))
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            self._websocket = None
            raise UpstreamError(
                f"Feed connection failed: {e}",
                source=self.SOURCE,
                recoverable=True,
                cause=e,
            ) from e

        self._reconnect_count = 0
        self._logger.info(
            f"Connected to {self._config.url}, subjects={list(self._config.subjects)}"
        )

    async def close(self) -> None:
        self._closed = True
        websocket, self._websocket = self._websocket, None
        if websocket is not None:
            try:
                await websocket.close()
            except (OSError, websockets.exceptions.WebSocketException) as e:
                self._logger.warning(f"Error closing feed connection: {e}")
        self._logger.info("Disconnected from market feed")

    async def _reconnect(self) -> None:
        """
        Raises:
            UpstreamError: When the attempt budget is exhausted
        """
        while not self._closed:
            if self._reconnect_count >= self._config.reconnect_attempts:
                raise UpstreamError(
                    "Max reconnection attempts reached",
                    source=self.SOURCE,
                    recoverable=False,
                )
            backoff = min(2 ** self._reconnect_count, self._config.max_backoff_seconds)
            self._reconnect_count += 1
            self._logger.info(f"Reconnecting in {backoff}s (attempt {self._reconnect_count})")
            await asyncio.sleep(backoff)
            try:
                await self.connect()
                return
            except UpstreamError as e:
                self._logger.warning(f"Reconnect failed: {e}")

    # =========================================================
    # MESSAGE STREAM
    # =========================================================

    async def messages(self) -> AsyncIterator[FeedMessage]:
        """Yield decoded messages until close() is called."""
        while not self._closed:
            if self._websocket is None:
                await self._reconnect()
                continue
            try:
                async for raw in self._websocket:
                    message = self.decode(raw)
                    if message is not None:
                        yield message
            except websockets.exceptions.ConnectionClosed as e:
                self._logger.warning(f"Feed connection closed: {e}")
            self._websocket = None

    def decode(self, raw: Any) -> Optional[FeedMessage]:
        """Decode one envelope; malformed envelopes are logged and dropped."""
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            envelope = json.loads(raw)
        except (UnicodeDecodeError, ValueError) as e:
            self._malformed_count += 1
            self._logger.warning(f"Dropping undecodable feed message: {e}")
            return None

        if not isinstance(envelope, dict):
            self._malformed_count += 1
            self._logger.warning("Dropping feed message: envelope is not an object")
            return None
        subject = envelope.get("subject")
        data = envelope.get("data")
        if not isinstance(subject, str) or not isinstance(data, dict):
            self._malformed_count += 1
            self._logger.warning(f"Dropping feed message without subject/data: {str(envelope)[:200]}")
            return None
        return FeedMessage(subject=subject, data=data)

    def subjects(self) -> List[str]:
        return list(self._config.subjects)
