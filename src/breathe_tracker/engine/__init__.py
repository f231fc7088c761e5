"""
Engine Module
=============

Sensor-tracking engine: orchestration, alert evaluation and liveness.

    - graph.py: TrackingEngine and its LangGraph frame pipeline
    - thresholds.py: Threshold predicates and edge-triggered evaluation
    - watchdog.py: Timer-driven connection state machine

Key Design Decisions:
    - LangGraph is used for STRUCTURE, not LLM reasoning
    - All transitions are deterministic and inspectable
    - One re-entrant lock serializes frames and watchdog expiry
"""

from breathe_tracker.engine.graph import FrameOutcome, TrackingEngine
from breathe_tracker.engine.thresholds import (
    AlertThresholds,
    ThresholdEvaluator,
    is_battery_critical,
    is_co2_dangerous,
    is_ozone_dangerous,
    is_temperature_dangerous,
)
from breathe_tracker.engine.watchdog import ConnectionWatchdog

__all__ = [
    "FrameOutcome",
    "TrackingEngine",
    "AlertThresholds",
    "ThresholdEvaluator",
    "is_battery_critical",
    "is_co2_dangerous",
    "is_ozone_dangerous",
    "is_temperature_dangerous",
    "ConnectionWatchdog",
]
