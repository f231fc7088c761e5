"""
Tracking State Bus
==================

Thread-safe publish point for the engine's observable state.

The bus is constructed once at startup and passed explicitly to the
engine (the only writer) and to its consumers (HTTP endpoints, WebSocket
streams, tests). Consumers receive either per-field events through
subscribe() or an immutable TrackingSnapshot through snapshot().

Design Rules:
    - Only TrackingSnapshot fields can be published
    - Listeners are called in publication order, one event per field
    - A failing listener is logged and never breaks the publisher
"""

import logging
import threading
from collections import Counter
from typing import Any, Callable, List

from breathe_tracker.models.state import TrackingSnapshot


logger = logging.getLogger(__name__)


StateListener = Callable[[str, Any], None]


class TrackingStateBus:
    """
    Observable state shared between the engine and its consumers.

    Example:
        bus = TrackingStateBus()
        unsubscribe = bus.subscribe(lambda field, value: print(field, value))

        bus.publish(co2=800, battery=50)
        print(bus.snapshot().co2)
        unsubscribe()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = TrackingSnapshot()
        self._listeners: List[StateListener] = []
        self._publish_counts: Counter = Counter()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a listener for field events.

        Returns:
            Callable that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, **fields: Any) -> TrackingSnapshot:
        """
        Publish one or more fields.

        Args:
            **fields: TrackingSnapshot field values

        Returns:
            The new snapshot

        Raises:
            KeyError: If a field is not part of TrackingSnapshot
        """
        unknown = set(fields) - set(TrackingSnapshot.model_fields)
        if unknown:
            raise KeyError(f"Unknown state fields: {sorted(unknown)}")

        with self._lock:
            self._snapshot = self._snapshot.model_copy(update=fields)
            self._publish_counts.update(fields.keys())
            snapshot = self._snapshot
            listeners = list(self._listeners)

        for name, value in fields.items():
            for listener in listeners:
                try:
                    listener(name, value)
                except Exception as e:
                    logger.error(f"State listener failed on '{name}': {e}")

        return snapshot

    def snapshot(self) -> TrackingSnapshot:
        """Current immutable snapshot."""
        with self._lock:
            return self._snapshot

    def publish_count(self, name: str) -> int:
        """Number of times a field has been published."""
        with self._lock:
            return self._publish_counts[name]

    def metrics(self) -> dict:
        with self._lock:
            return {
                "listeners": len(self._listeners),
                "publications": dict(self._publish_counts),
            }
