"""
Advertisement Consumer
======================

WebSocket client for consuming advertisements from a BLE bridge.

This module provides the AdvertisementConsumer class which:
    - Connects to the bridge's WebSocket endpoint
    - Parses and validates bridge messages (advertisement, location)
    - Handles reconnection with a fixed backoff
    - Pushes advertisements into an AdvertisementBuffer
    - Forwards location fixes to a callback

Design Rules:
    - Does NOT decode the manufacturer payload
    - Does NOT filter by device name (the engine does)
    - Logs malformed messages but continues processing
    - Reconnects automatically on disconnect
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional, Union

import websockets
from pydantic import TypeAdapter, ValidationError
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
)

from breathe_tracker.models.input import AdvertisementMessage, BridgeMessage, LocationMessage
from breathe_tracker.stream.advertisement import Advertisement
from breathe_tracker.stream.buffer import AdvertisementBuffer


logger = logging.getLogger(__name__)

LocationCallback = Callable[[str], None]

_BRIDGE_ADAPTER: TypeAdapter = TypeAdapter(BridgeMessage)


def parse_bridge_message(raw: Union[str, bytes]) -> Union[AdvertisementMessage, LocationMessage]:
    """
    Parse one raw bridge message.

    Raises:
        pydantic.ValidationError: If the message is not valid JSON or does
            not match any bridge message type.
    """
    return _BRIDGE_ADAPTER.validate_json(raw)


class AdvertisementConsumerMetrics:
    """Metrics for AdvertisementConsumer observability."""

    __slots__ = (
        "advertisements_received",
        "locations_received",
        "reconnect_count",
        "parse_errors",
        "last_message_at",
    )

    def __init__(self) -> None:
        self.advertisements_received: int = 0
        self.locations_received: int = 0
        self.reconnect_count: int = 0
        self.parse_errors: int = 0
        self.last_message_at: float = 0.0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "advertisements_received": self.advertisements_received,
            "locations_received": self.locations_received,
            "reconnect_count": self.reconnect_count,
            "parse_errors": self.parse_errors,
            "last_message_at": self.last_message_at,
        }


class AdvertisementConsumer:
    """
    WebSocket consumer for bridge messages.

    Attributes:
        url: WebSocket URL to connect to
        buffer: AdvertisementBuffer to push advertisements into
        connected: Whether currently connected
        metrics: Operational metrics

    Example:
        buffer = AdvertisementBuffer(maxsize=100)
        consumer = AdvertisementConsumer(
            url="ws://localhost:8765/ws/advertisements",
            buffer=buffer,
            on_location=engine.update_location,
        )

        task = asyncio.create_task(consumer.run())
        ...
        await consumer.stop()
        await task
    """

    def __init__(
        self,
        url: str,
        buffer: AdvertisementBuffer,
        on_location: Optional[LocationCallback] = None,
        reconnect_backoff_ms: int = 1000,
        max_reconnect_attempts: int = 0,
    ) -> None:
        """
        Initialize advertisement consumer.

        Args:
            url: WebSocket URL of the bridge
            buffer: AdvertisementBuffer to push advertisements into
            on_location: Called with each location fix
            reconnect_backoff_ms: Backoff between reconnect attempts
            max_reconnect_attempts: Max attempts (0 = unlimited)
        """
        self.url = url
        self.buffer = buffer
        self.on_location = on_location
        self.reconnect_backoff_ms = reconnect_backoff_ms
        self.max_reconnect_attempts = max_reconnect_attempts

        self._websocket: Optional[Any] = None
        self._connected: bool = False
        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()

        self.metrics = AdvertisementConsumerMetrics()

    @property
    def connected(self) -> bool:
        """Whether currently connected to the bridge."""
        return self._connected

    async def run(self) -> None:
        """
        Start consuming bridge messages.

        Runs indefinitely, reconnecting on disconnect.
        Call stop() to terminate gracefully.
        """
        self._running = True
        self._stop_event.clear()

        logger.info(f"AdvertisementConsumer starting, connecting to {self.url}")

        while self._running:
            try:
                await self._connect_and_consume()
            except Exception as e:
                if self._running:
                    logger.error(f"Bridge connection error: {e}")
            self._connected = False

            # Clean closes and errors share the same backoff and attempt limit
            if not self._running or not await self._wait_before_reconnect():
                break

        logger.info("AdvertisementConsumer stopped")

    async def _wait_before_reconnect(self) -> bool:
        """
        Count a reconnect attempt and sleep for the backoff.

        Returns:
            False when the attempt limit is reached or stop() was called.
        """
        if (
            self.max_reconnect_attempts > 0
            and self.metrics.reconnect_count >= self.max_reconnect_attempts
        ):
            logger.error(f"Max reconnect attempts ({self.max_reconnect_attempts}) exceeded")
            return False

        self.metrics.reconnect_count += 1
        backoff_sec = self.reconnect_backoff_ms / 1000.0
        logger.info(
            f"Reconnecting to bridge in {backoff_sec:.1f}s "
            f"(attempt {self.metrics.reconnect_count})"
        )

        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=backoff_sec)
            return False
        except asyncio.TimeoutError:
            return True

    async def stop(self) -> None:
        """Signal the run loop to exit and close the connection."""
        logger.info("AdvertisementConsumer stopping...")
        self._running = False
        self._stop_event.set()

        if self._websocket is not None:
            try:
                await self._websocket.close()
            except Exception as e:
                logger.debug(f"Error closing bridge connection: {e}")

        self._connected = False

    async def _connect_and_consume(self) -> None:
        """Connect to the bridge and consume messages until disconnect."""
        async with websockets.connect(
            self.url,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=5,
        ) as ws:
            self._websocket = ws
            self._connected = True
            logger.info(f"Connected to bridge: {self.url}")

            try:
                async for message in ws:
                    if not self._running:
                        break
                    self.handle_message(message)

            except ConnectionClosedOK:
                logger.info("Bridge connection closed normally")
            except ConnectionClosedError as e:
                logger.warning(f"Bridge connection closed with error: {e}")
                raise
            except ConnectionClosed as e:
                logger.warning(f"Bridge connection closed: {e}")
                raise
            finally:
                self._connected = False
                self._websocket = None

    def handle_message(self, raw: Union[str, bytes]) -> Optional[Advertisement]:
        """
        Route one raw bridge message.

        Advertisements are pushed into the buffer; location fixes go to
        on_location. Malformed messages are counted and dropped.

        Returns:
            The buffered Advertisement, or None for anything else.
        """
        try:
            message = parse_bridge_message(raw)
        except ValidationError as e:
            self.metrics.parse_errors += 1
            logger.error(f"Invalid bridge message: {e.error_count()} error(s)")
            logger.debug(f"Rejected bridge message: {raw!r}")
            return None

        self.metrics.last_message_at = time.time()

        if isinstance(message, LocationMessage):
            self.metrics.locations_received += 1
            if self.on_location is not None:
                try:
                    self.on_location(message.location)
                except Exception as e:
                    logger.error(f"Location callback failed: {e}")
            return None

        advertisement = Advertisement(
            device_name=message.device_name,
            rssi=message.rssi,
            payload=message.payload_bytes(),
            company_id=message.company_id,
            received_at=self.metrics.last_message_at,
        )
        self.buffer.put_nowait(advertisement)
        self.metrics.advertisements_received += 1
        return advertisement
