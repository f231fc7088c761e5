"""
Tracking Engine
===============

Orchestrates the per-frame pipeline and the connection watchdog.

Every advertisement first goes through the contact step: frames from other
devices are ignored, and any frame from the expected beacon resets the
connection watchdog whether or not its payload decodes. The rest of the
per-frame pipeline is a LangGraph state machine. LangGraph is used for
CONTROL FLOW only: every node is a deterministic, in-memory step.

Graph Structure:
    START → smooth_signal → decode ─┬─ (rejected) ──────────────→ END
                                    └→ change_filter ─┬─ (battery only) → END
                                                      └→ accept → evaluate → forward → END

Independently, watchdog expiry publishes the disconnected state, resets
the signal smoother, emits one incident and marks the sensor disconnected
in the cloud sink.

Concurrency:
    Frame handling, watchdog callbacks, location updates and start/stop all
    hold one re-entrant lock, so the engine processes at most one event at a
    time and publications follow frame arrival order.
"""

import logging
import threading
import time
from collections import Counter, deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, TypedDict

from langgraph.graph import END, StateGraph

from breathe_tracker.decoding.frame_decoder import FRAME_LENGTH, FRAME_SENTINEL, FrameDecoder
from breathe_tracker.engine.thresholds import AlertThresholds, ThresholdEvaluator, format_clock
from breathe_tracker.engine.watchdog import ConnectionWatchdog, TimerFactory
from breathe_tracker.models.alerts import EvaluationResult
from breathe_tracker.models.measurement import Measurement
from breathe_tracker.models.state import (
    NO_INCIDENTS,
    ConnectionState,
    IncidentRecord,
    MeasurementRecord,
)
from breathe_tracker.signals.change_filter import ChangeFilter
from breathe_tracker.signals.signal_smoother import SignalSmoother
from breathe_tracker.sinks.bus import TrackingStateBus
from breathe_tracker.sinks.cloud import CloudSink, LoggingCloudSink
from breathe_tracker.sinks.notifications import CONNECTION_KEY, NotificationCenter
from breathe_tracker.stream.advertisement import Advertisement


logger = logging.getLogger(__name__)


DEFAULT_DEVICE_NAME = "rocio"
DEFAULT_COMPANY_ID = 0x004C

DISCONNECTION_TITLE = "Connection Alert"
DISCONNECTION_MESSAGE = "The sensor is not working correctly"


class FrameOutcome(str, Enum):
    """
    What the engine did with one advertisement.

    Attributes:
        IGNORED: Not from the expected beacon, or the engine is stopped
        REJECTED: From the beacon but the payload is not a valid frame
        SUPPRESSED: Same readings as the last accepted one (battery only)
        ACCEPTED: New measurement accepted and published
    """

    IGNORED = "IGNORED"
    REJECTED = "REJECTED"
    SUPPRESSED = "SUPPRESSED"
    ACCEPTED = "ACCEPTED"


class FrameGraphState(TypedDict):
    """
    State passed through the frame graph.

    Attributes:
        advertisement: Advertisement being processed
        outcome: Set by the node that ends the pipeline
        measurement: Decoded measurement (after decode)
        evaluation: Threshold evaluation (after evaluate)
    """
    advertisement: Advertisement
    outcome: Optional[FrameOutcome]
    measurement: Optional[Measurement]
    evaluation: Optional[EvaluationResult]


class TrackingEngine:
    """
    Sensor-tracking engine.

    Owns the last accepted measurement, the smoothed signal and the
    connection watchdog. Collaborators only see what is published on the
    TrackingStateBus and the events sent to the cloud and notification
    sinks.

    Example:
        bus = TrackingStateBus()
        engine = TrackingEngine(bus, watchdog_delay_seconds=180.0)
        engine.start("SENSOR-001")

        outcome = engine.handle_advertisement(advertisement)
        print(outcome, bus.snapshot())

        engine.stop()
    """

    def __init__(
        self,
        bus: TrackingStateBus,
        cloud_sink: Optional[CloudSink] = None,
        notifications: Optional[NotificationCenter] = None,
        *,
        device_name: str = DEFAULT_DEVICE_NAME,
        company_id: int = DEFAULT_COMPANY_ID,
        frame_length: int = FRAME_LENGTH,
        sentinel: int = FRAME_SENTINEL,
        watchdog_delay_seconds: float = 180.0,
        rssi_alpha: float = 0.2,
        thresholds: Optional[AlertThresholds] = None,
        require_location: bool = True,
        incident_history: int = 50,
        clock: Callable[[], float] = time.time,
        timer_factory: Optional[TimerFactory] = None,
        log_every_n_frames: int = 100,
    ) -> None:
        """
        Initialize the engine.

        Args:
            bus: Publish point for UI-facing state
            cloud_sink: Cloud backend (defaults to LoggingCloudSink)
            notifications: Notification bookkeeping (defaults to logging)
            device_name: Advertised name of the expected beacon
            company_id: Company identifier carrying the payload
            frame_length: Expected payload length
            sentinel: Expected payload byte 0
            watchdog_delay_seconds: Silence window before DISCONNECTED
            rssi_alpha: EMA smoothing factor for RSSI
            thresholds: Alert thresholds (uses defaults if None)
            require_location: Skip cloud writes until a location is known
            incident_history: Number of auto incidents kept in memory
            clock: Time source (UNIX seconds)
            timer_factory: Watchdog timer factory (threading.Timer if None)
            log_every_n_frames: Log a summary every N frames
        """
        self.bus = bus
        self.cloud_sink = cloud_sink or LoggingCloudSink()
        self.notifications = notifications or NotificationCenter(clock=clock)
        self.device_name = device_name
        self.company_id = company_id
        self.require_location = require_location
        self.log_every_n_frames = log_every_n_frames
        self._clock = clock

        self._lock = threading.RLock()

        self.decoder = FrameDecoder(frame_length=frame_length, sentinel=sentinel, clock=clock)
        self.change_filter = ChangeFilter()
        self.smoother = SignalSmoother(alpha=rssi_alpha)
        self.evaluator = ThresholdEvaluator(thresholds)
        self.watchdog = ConnectionWatchdog(
            delay_seconds=watchdog_delay_seconds,
            on_recover=self._on_recover,
            on_transition=self._on_connection_transition,
            timer_factory=timer_factory,
            lock=self._lock,
        )

        self._graph = self._build_graph()

        # Owned state
        self._running: bool = False
        self._sensor_id: Optional[str] = None
        self._location: Optional[str] = None
        self._last_measurement: Optional[Measurement] = None
        self._incidents: Deque[IncidentRecord] = deque(maxlen=incident_history)

        # Metrics
        self._frame_count: int = 0
        self._outcomes: Counter = Counter()
        self._cloud_errors: int = 0
        self._cloud_skipped: int = 0

        logger.info(
            f"TrackingEngine initialized: device={device_name!r}, "
            f"company_id=0x{company_id:04X}, watchdog={watchdog_delay_seconds}s, "
            f"rssi_alpha={rssi_alpha}"
        )

    # =========================================================================
    # Graph
    # =========================================================================

    def _build_graph(self):
        """Build the LangGraph frame pipeline."""
        workflow = StateGraph(FrameGraphState)

        workflow.add_node("smooth_signal", self._smooth_signal_node)
        workflow.add_node("decode", self._decode_node)
        workflow.add_node("change_filter", self._change_filter_node)
        workflow.add_node("accept", self._accept_node)
        workflow.add_node("evaluate", self._evaluate_node)
        workflow.add_node("forward", self._forward_node)

        workflow.set_entry_point("smooth_signal")
        workflow.add_edge("smooth_signal", "decode")
        workflow.add_conditional_edges(
            "decode",
            self._route,
            {"continue": "change_filter", "stop": END},
        )
        workflow.add_conditional_edges(
            "change_filter",
            self._route,
            {"continue": "accept", "stop": END},
        )
        workflow.add_edge("accept", "evaluate")
        workflow.add_edge("evaluate", "forward")
        workflow.add_edge("forward", END)

        return workflow.compile()

    @staticmethod
    def _route(state: FrameGraphState) -> str:
        return "stop" if state["outcome"] is not None else "continue"

    def _smooth_signal_node(self, state: FrameGraphState) -> Dict[str, Any]:
        smoothed = self.smoother.update(state["advertisement"].rssi)
        self.bus.publish(signal_strength=smoothed)
        return {"outcome": None}

    def _decode_node(self, state: FrameGraphState) -> Dict[str, Any]:
        advertisement = state["advertisement"]
        if advertisement.company_id != self.company_id:
            return {"outcome": FrameOutcome.REJECTED}

        measurement = self.decoder.decode(advertisement.payload)
        if measurement is None:
            logger.debug(f"Discarded payload from beacon: {advertisement!r}")
            return {"outcome": FrameOutcome.REJECTED}

        return {"measurement": measurement, "outcome": None}

    def _change_filter_node(self, state: FrameGraphState) -> Dict[str, Any]:
        measurement = state["measurement"]
        if not self.change_filter.should_publish(self._last_measurement, measurement):
            self.bus.publish(battery=measurement.battery)
            return {"outcome": FrameOutcome.SUPPRESSED}
        return {"outcome": None}

    def _accept_node(self, state: FrameGraphState) -> Dict[str, Any]:
        measurement = state["measurement"]
        self._last_measurement = measurement

        logger.info(f"New sensor data detected: {measurement!r}")
        self.bus.publish(
            last_contact=measurement.captured_at,
            temperature=measurement.temperature,
            ozone=measurement.ozone,
            co2=measurement.co2,
            battery=measurement.battery,
        )
        return {"outcome": FrameOutcome.ACCEPTED}

    def _evaluate_node(self, state: FrameGraphState) -> Dict[str, Any]:
        evaluation = self.evaluator.evaluate(state["measurement"])

        for transition in evaluation.transitions:
            self.notifications.apply(transition)

        # Watchdog was reset under the same lock, so the sensor is CONNECTED here
        self.bus.publish(alerts=evaluation.alert_text, incident=NO_INCIDENTS)

        return {"evaluation": evaluation}

    def _forward_node(self, state: FrameGraphState) -> Dict[str, Any]:
        measurement = state["measurement"]

        if self._sensor_id is None:
            self._cloud_skipped += 1
        elif self.require_location and self._location is None:
            self._cloud_skipped += 1
            logger.debug("Cloud upload skipped: location not available yet")
        else:
            record = MeasurementRecord(
                ozone=measurement.ozone,
                temperature=measurement.temperature,
                co2=measurement.co2,
                battery=measurement.battery,
                location=self._location,
                status=self.watchdog.state,
                captured_at=measurement.captured_at,
            )
            try:
                self.cloud_sink.record_measurement(self._sensor_id, record)
            except Exception as e:
                self._cloud_errors += 1
                logger.error(f"Cloud sink failed to record measurement: {e}")

        return {"outcome": FrameOutcome.ACCEPTED}

    # =========================================================================
    # Watchdog callbacks
    # =========================================================================

    def _on_recover(self) -> None:
        self.notifications.cancel(CONNECTION_KEY)
        self.bus.publish(incident=NO_INCIDENTS)

    def _on_connection_transition(self, state: ConnectionState) -> None:
        self.bus.publish(connection_state=state)
        if state == ConnectionState.DISCONNECTED:
            self._on_disconnected()

    def _on_disconnected(self) -> None:
        self.smoother.reset()
        self.bus.publish(signal_strength=None)

        now = self._clock()
        incident = IncidentRecord(
            timestamp=now,
            message=f"{format_clock(now)} - {DISCONNECTION_MESSAGE}",
            sensor_id=self._sensor_id,
        )
        self._incidents.append(incident)
        self.bus.publish(incident=incident.message)

        self.notifications.notify(CONNECTION_KEY, DISCONNECTION_TITLE, DISCONNECTION_MESSAGE)

        if self._sensor_id is not None:
            try:
                self.cloud_sink.mark_disconnected(self._sensor_id)
            except Exception as e:
                self._cloud_errors += 1
                logger.error(f"Cloud sink failed to record disconnection: {e}")

    # =========================================================================
    # Public API
    # =========================================================================

    def start(self, sensor_id: str) -> None:
        """
        Start tracking a sensor and arm the watchdog.

        Args:
            sensor_id: Identifier used for cloud documents
        """
        with self._lock:
            if self._running:
                logger.warning(f"TrackingEngine already running for {self._sensor_id}")
                return

            self._sensor_id = sensor_id
            self._running = True
            self.bus.publish(sensor_id=sensor_id)
            logger.info(f"Tracking started for sensor: {sensor_id}")
            self.watchdog.start()

    def stop(self) -> None:
        """Stop tracking; cancels the watchdog synchronously."""
        with self._lock:
            self._running = False
            self.watchdog.stop()
            logger.info(f"Tracking stopped for sensor: {self._sensor_id}")

    def handle_advertisement(self, advertisement: Advertisement) -> FrameOutcome:
        """
        Process one advertisement from the radio layer.

        Args:
            advertisement: Received advertisement

        Returns:
            FrameOutcome describing what happened
        """
        with self._lock:
            if not self._running or advertisement.device_name != self.device_name:
                self._outcomes[FrameOutcome.IGNORED] += 1
                return FrameOutcome.IGNORED

            self._frame_count += 1
            self.watchdog.reset()

            result = self._graph.invoke({
                "advertisement": advertisement,
                "outcome": None,
                "measurement": None,
                "evaluation": None,
            })
            outcome: FrameOutcome = result["outcome"]
            self._outcomes[outcome] += 1

            if self._frame_count % self.log_every_n_frames == 0:
                logger.info(
                    f"TrackingEngine [frame {self._frame_count}]: "
                    f"accepted={self._outcomes[FrameOutcome.ACCEPTED]}, "
                    f"suppressed={self._outcomes[FrameOutcome.SUPPRESSED]}, "
                    f"state={self.connection_state}"
                )

            return outcome

    def update_location(self, location: str) -> None:
        """Record the host's current human-readable location."""
        with self._lock:
            self._location = location
            self.bus.publish(location=location)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def sensor_id(self) -> Optional[str]:
        return self._sensor_id

    @property
    def location(self) -> Optional[str]:
        return self._location

    @property
    def last_measurement(self) -> Optional[Measurement]:
        """Last accepted measurement."""
        return self._last_measurement

    @property
    def connection_state(self) -> Optional[ConnectionState]:
        return self.watchdog.state

    @property
    def smoothed_signal(self) -> Optional[float]:
        return self.smoother.value

    def incidents(self) -> List[IncidentRecord]:
        """Recent auto-generated incidents, oldest first."""
        with self._lock:
            return list(self._incidents)

    def metrics(self) -> dict:
        """Get engine metrics for observability."""
        with self._lock:
            return {
                "running": self._running,
                "sensor_id": self._sensor_id,
                "frames": self._frame_count,
                "outcomes": {outcome.value: count for outcome, count in self._outcomes.items()},
                "cloud_errors": self._cloud_errors,
                "cloud_skipped": self._cloud_skipped,
                "incidents": len(self._incidents),
                "decoder": self.decoder.get_metrics(),
                "change_filter": self.change_filter.get_metrics(),
                "signal": self.smoother.get_metrics(),
                "alerts": self.evaluator.get_metrics(),
                "watchdog": self.watchdog.get_metrics(),
                "notifications": self.notifications.metrics(),
            }
