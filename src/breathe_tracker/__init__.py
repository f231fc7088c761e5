"""
breathe-tracker
===============

Sensor-tracking engine for a BLE environmental-sensor beacon.

This package listens for broadcast beacon frames, decodes them into air
quality measurements, raises and clears threshold alerts, watches the
beacon's liveness and forwards accepted readings to a cloud document store.

Components:
    - decoding: Fixed-layout payload decoding
    - signals: Change filtering and RSSI smoothing
    - engine: LangGraph frame pipeline, thresholds and connection watchdog
    - sinks: Published state bus, cloud and notification backends
    - stream: Radio sources (WebSocket bridge, BLE scan) and buffering

Example:
    from breathe_tracker.engine import TrackingEngine
    from breathe_tracker.sinks import TrackingStateBus

    bus = TrackingStateBus()
    engine = TrackingEngine(bus)
    engine.start("SENSOR-001")

    # The service is started via the FastAPI application
    # See main.py for entry point
"""

__version__ = "0.1.0"
__author__ = "Breathe Project"

__all__ = [
    "__version__",
]
