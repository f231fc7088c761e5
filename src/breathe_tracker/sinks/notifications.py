"""
Notifications
=============

Raise/clear notification events and their delivery backends.

This module provides:
    - NotificationEvent: One RAISE or CLEAR event for a notification key
    - NotificationSink: Protocol for delivery backends
    - LoggingNotificationSink: Writes events to the log (default)
    - WebhookNotificationSink: POSTs events as JSON to a URL
    - NotificationCenter: Bookkeeping guaranteeing at most one outstanding
      notification per key

Keys are AlertKind values plus CONNECTION_KEY for the watchdog's
disconnection notification. Re-raising an outstanding key replaces it;
clearing a key that is not outstanding sends nothing.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Protocol

import requests

from breathe_tracker.models.alerts import AlertTransition, TransitionAction
from breathe_tracker.sinks.background import BackgroundDispatcher


logger = logging.getLogger(__name__)


CONNECTION_KEY = "CONNECTION"


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """
    Notification delivered to a sink.

    Attributes:
        action: RAISE or CLEAR
        key: Notification key (alert kind value or CONNECTION_KEY)
        title: Notification title
        message: Notification body (empty for CLEAR)
        timestamp: UNIX timestamp of the event
    """

    action: TransitionAction
    key: str
    title: str = ""
    message: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "key": self.key,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class NotificationSink(Protocol):
    """Delivery backend for notification events."""

    def send(self, event: NotificationEvent) -> None:
        ...

    def close(self) -> None:
        ...


class LoggingNotificationSink:
    """Writes notifications to the log."""

    def send(self, event: NotificationEvent) -> None:
        if event.action == TransitionAction.RAISE:
            logger.warning(f"NOTIFY [{event.key}] {event.title}: {event.message}")
        else:
            logger.info(f"CANCEL [{event.key}]")

    def close(self) -> None:
        pass


class WebhookNotificationSink:
    """
    POSTs notification events as JSON to a webhook URL.

    Requests run on a background dispatcher so a slow endpoint never
    delays frame processing.
    """

    def __init__(self, url: str, timeout_seconds: float = 5.0, max_workers: int = 1) -> None:
        if not url:
            raise ValueError("Webhook URL is required for WebhookNotificationSink")

        self.url = url
        self.timeout_seconds = timeout_seconds
        self._session = requests.Session()
        self._dispatcher = BackgroundDispatcher("webhook", max_workers=max_workers)

    def send(self, event: NotificationEvent) -> None:
        self._dispatcher.submit(
            f"webhook {event.action.value} {event.key}",
            self._post,
            event.to_dict(),
        )

    def _post(self, payload: dict) -> None:
        response = self._session.post(self.url, json=payload, timeout=self.timeout_seconds)
        response.raise_for_status()

    def close(self) -> None:
        self._dispatcher.close()
        self._session.close()

    def metrics(self) -> dict:
        return self._dispatcher.metrics()


class NotificationCenter:
    """
    Tracks outstanding notifications and forwards events to a sink.

    Example:
        center = NotificationCenter(LoggingNotificationSink())
        center.notify("CO2", "CO2 Alert", "CO2 level high: 1300 ppm")
        center.cancel("CO2")   # sends CLEAR
        center.cancel("CO2")   # nothing outstanding, sends nothing
    """

    def __init__(
        self,
        sink: Optional[NotificationSink] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.sink = sink or LoggingNotificationSink()
        self.clock = clock
        self._outstanding: Dict[str, NotificationEvent] = {}
        self._sent_count: int = 0
        self._error_count: int = 0

    def notify(self, key: str, title: str, message: str) -> None:
        """Raise (or replace) the notification for key."""
        event = NotificationEvent(
            action=TransitionAction.RAISE,
            key=key,
            title=title,
            message=message,
            timestamp=self.clock(),
        )
        self._outstanding[key] = event
        self._send(event)

    def cancel(self, key: str) -> bool:
        """
        Clear the notification for key if outstanding.

        Returns:
            True if a CLEAR was sent
        """
        raised = self._outstanding.pop(key, None)
        if raised is None:
            return False

        self._send(NotificationEvent(
            action=TransitionAction.CLEAR,
            key=key,
            title=raised.title,
            timestamp=self.clock(),
        ))
        return True

    def apply(self, transition: AlertTransition) -> None:
        """Apply an alert edge transition."""
        if transition.action == TransitionAction.RAISE:
            self.notify(transition.kind.value, transition.title, transition.message)
        else:
            self.cancel(transition.kind.value)

    def _send(self, event: NotificationEvent) -> None:
        try:
            self.sink.send(event)
            self._sent_count += 1
        except Exception as e:
            self._error_count += 1
            logger.error(f"Notification sink failed ({event.action.value} {event.key}): {e}")

    def is_outstanding(self, key: str) -> bool:
        return key in self._outstanding

    @property
    def outstanding(self) -> Dict[str, NotificationEvent]:
        """Copy of the outstanding notifications by key."""
        return dict(self._outstanding)

    def close(self) -> None:
        self.sink.close()

    def metrics(self) -> dict:
        return {
            "sent": self._sent_count,
            "errors": self._error_count,
            "outstanding": sorted(self._outstanding),
        }
