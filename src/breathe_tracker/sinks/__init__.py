"""
Sinks Module
============

Collaborators that receive the engine's output.

Components:
    - TrackingStateBus: Observable published state (UI/API side)
    - CloudSink: Cloud document store backends (logging, Firestore)
    - NotificationCenter: Raise/clear bookkeeping over notification backends
      (logging, webhook)

FirestoreCloudSink imports google.cloud.firestore only when constructed, so
google-cloud-firestore stays an optional dependency.
"""

from breathe_tracker.sinks.bus import StateListener, TrackingStateBus
from breathe_tracker.sinks.cloud import (
    CloudSink,
    CloudSinkError,
    FirestoreCloudSink,
    LoggingCloudSink,
)
from breathe_tracker.sinks.notifications import (
    CONNECTION_KEY,
    LoggingNotificationSink,
    NotificationCenter,
    NotificationEvent,
    NotificationSink,
    WebhookNotificationSink,
)

__all__ = [
    "StateListener",
    "TrackingStateBus",
    "CloudSink",
    "CloudSinkError",
    "FirestoreCloudSink",
    "LoggingCloudSink",
    "CONNECTION_KEY",
    "LoggingNotificationSink",
    "NotificationCenter",
    "NotificationEvent",
    "NotificationSink",
    "WebhookNotificationSink",
]
