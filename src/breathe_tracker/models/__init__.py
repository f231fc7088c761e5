"""
Data Models
===========

Data models for the breathe-tracker sensor engine.

This module re-exports all data models for convenient access.

Models:
    Input:
        - AdvertisementMessage, LocationMessage: Bridge messages

    Measurement:
        - Measurement: Decoded beacon reading

    Alerts:
        - AlertKind, AlertState, AlertTransition, EvaluationResult

    State:
        - ConnectionState: Beacon liveness (CONNECTED, DISCONNECTED)
        - IncidentRecord: Auto-generated incident
        - TrackingSnapshot: Published state
        - MeasurementRecord: Cloud payload
"""

from breathe_tracker.models.input import AdvertisementMessage, BridgeMessage, LocationMessage
from breathe_tracker.models.measurement import Measurement
from breathe_tracker.models.alerts import (
    NO_ALERTS,
    AlertKind,
    AlertState,
    AlertTransition,
    EvaluationResult,
    TransitionAction,
)
from breathe_tracker.models.state import (
    NO_INCIDENTS,
    ConnectionState,
    IncidentOrigin,
    IncidentRecord,
    MeasurementRecord,
    TrackingSnapshot,
)

__all__ = [
    # Input
    "AdvertisementMessage",
    "BridgeMessage",
    "LocationMessage",
    # Measurement
    "Measurement",
    # Alerts
    "NO_ALERTS",
    "AlertKind",
    "AlertState",
    "AlertTransition",
    "EvaluationResult",
    "TransitionAction",
    # State
    "NO_INCIDENTS",
    "ConnectionState",
    "IncidentOrigin",
    "IncidentRecord",
    "MeasurementRecord",
    "TrackingSnapshot",
]
