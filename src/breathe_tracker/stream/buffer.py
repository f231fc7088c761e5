"""
Advertisement Buffer
====================

Async-safe bounded queue between radio sources and the engine worker.

Radio callbacks (bridge messages, BLE detections) push advertisements
here; a single processing task drains the buffer and hands each item to
the TrackingEngine, which keeps frame handling serialized.

Design Rules:
    - Fixed maximum size (drops oldest on overflow)
    - Non-blocking put for callback-driven producers
    - Exposes minimal metrics for observability
    - Does NOT process or modify advertisements
"""

import asyncio
import logging
from typing import Optional

from breathe_tracker.stream.advertisement import Advertisement


logger = logging.getLogger(__name__)


class AdvertisementBuffer:
    """
    Bounded queue for advertisements with a drop-oldest policy.

    Attributes:
        maxsize: Maximum number of advertisements to buffer
        dropped_count: Number of advertisements dropped due to overflow

    Example:
        buffer = AdvertisementBuffer(maxsize=100)

        # Producer (sync callback or coroutine)
        buffer.put_nowait(advertisement)

        # Consumer
        advertisement = await buffer.get(timeout=1.0)
    """

    def __init__(self, maxsize: int = 100) -> None:
        """
        Initialize advertisement buffer.

        Args:
            maxsize: Maximum advertisements to buffer. Must be >= 1.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._queue: asyncio.Queue[Advertisement] = asyncio.Queue(maxsize=maxsize)
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        """Maximum buffer size."""
        return self._maxsize

    @property
    def size(self) -> int:
        """Current number of advertisements in buffer."""
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        """Number of advertisements dropped due to overflow."""
        return self._dropped_count

    @property
    def total_put(self) -> int:
        """Total advertisements ever put into buffer."""
        return self._total_put

    def put_nowait(self, advertisement: Advertisement) -> bool:
        """
        Add advertisement, dropping the oldest if full.

        Args:
            advertisement: Advertisement to add

        Returns:
            True if added without dropping, False if the oldest was dropped.
        """
        self._total_put += 1

        # Single event-loop producer side: one eviction always frees a slot
        evicted = self.get_nowait() if self._queue.full() else None
        if evicted is not None:
            self._dropped_count += 1
            logger.warning(
                f"Advertisement buffer full, evicted one from {evicted.device_name!r} "
                f"(dropped so far: {self._dropped_count})"
            )

        self._queue.put_nowait(advertisement)
        return evicted is None

    async def get(self, timeout: Optional[float] = None) -> Optional[Advertisement]:
        """
        Get next advertisement from buffer.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Next advertisement, or None if timeout occurred.
        """
        try:
            if timeout is not None:
                return await asyncio.wait_for(self._queue.get(), timeout=timeout)
            return await self._queue.get()
        except asyncio.TimeoutError:
            return None

    def get_nowait(self) -> Optional[Advertisement]:
        """Get next advertisement without waiting, None if empty."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def clear(self) -> int:
        """
        Clear all advertisements from buffer.

        Returns:
            Number of advertisements cleared.
        """
        cleared = 0
        while True:
            try:
                self._queue.get_nowait()
                cleared += 1
            except asyncio.QueueEmpty:
                break
        return cleared

    def metrics(self) -> dict:
        """Buffer metrics: size, maxsize, dropped_count, total_put."""
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
        }
