"""
Tracking State Models
=====================

This module defines the published state of the sensor-tracking engine.

Core Concepts:
    - ConnectionState: Liveness of the beacon (CONNECTED, DISCONNECTED)
    - IncidentRecord: Auto-generated incident produced on watchdog expiry
    - TrackingSnapshot: Immutable view of everything the engine publishes

The engine owns all mutable state. Consumers (HTTP endpoints, WebSocket
clients, tests) only ever receive TrackingSnapshot instances, which are
frozen pydantic models.

Example:
    from breathe_tracker.models.state import ConnectionState, TrackingSnapshot

    snapshot = TrackingSnapshot(connection_state=ConnectionState.CONNECTED)
    print(snapshot.model_dump(mode="json"))
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# Rendered incident text while the beacon is connected
NO_INCIDENTS = "No incidents"


class ConnectionState(str, Enum):
    """
    Liveness state of the beacon.

    Owned exclusively by the ConnectionWatchdog. Before tracking starts
    there is no state at all (None), which is distinct from DISCONNECTED.

    Attributes:
        CONNECTED: A frame from the beacon was seen within the watchdog window
        DISCONNECTED: The watchdog expired without a frame
    """

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class IncidentOrigin(str, Enum):
    """Where an incident came from."""

    WATCHDOG = "watchdog"
    MANUAL = "manual"


class IncidentRecord(BaseModel):
    """
    Timestamped incident description.

    The engine only produces WATCHDOG incidents; MANUAL is reserved for
    user-filed reports handled outside the engine.

    Attributes:
        timestamp: UNIX timestamp when the incident was captured
        message: Display text ("HH:MM - description")
        origin: Incident origin
        sensor_id: Sensor the incident refers to
    """

    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(..., description="UNIX timestamp of capture")
    message: str = Field(..., description="Display text")
    origin: IncidentOrigin = Field(
        default=IncidentOrigin.WATCHDOG,
        description="Incident origin",
    )
    sensor_id: Optional[str] = Field(default=None, description="Sensor identifier")


class TrackingSnapshot(BaseModel):
    """
    Immutable snapshot of the published tracking state.

    Every field starts as None ("never published"). Sentinels distinguish
    an evaluated-but-clear state from a never-evaluated one:
    alerts == "No alerts", incident == "No incidents".

    Attributes:
        sensor_id: Identifier of the tracked sensor
        location: Human-readable location of the host
        last_contact: UNIX timestamp of the last accepted measurement
        temperature: Temperature (°C)
        ozone: Ozone (ppm)
        co2: CO2 (ppm)
        battery: Battery level (%)
        signal_strength: Smoothed RSSI; None means "no signal"
        connection_state: Beacon liveness
        alerts: Combined alert list text
        incident: Current incident text
    """

    model_config = ConfigDict(frozen=True)

    sensor_id: Optional[str] = None
    location: Optional[str] = None
    last_contact: Optional[float] = None
    temperature: Optional[float] = None
    ozone: Optional[float] = None
    co2: Optional[int] = None
    battery: Optional[int] = None
    signal_strength: Optional[float] = None
    connection_state: Optional[ConnectionState] = None
    alerts: Optional[str] = None
    incident: Optional[str] = None


class MeasurementRecord(BaseModel):
    """
    Cloud payload for one accepted measurement.

    Server-side timestamps are added by the cloud backend.
    """

    model_config = ConfigDict(frozen=True)

    ozone: float
    temperature: float
    co2: int
    battery: int
    location: Optional[str] = None
    status: Optional[ConnectionState] = None
    captured_at: float
