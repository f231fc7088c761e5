"""
Test Configuration
==================

Pytest fixtures and test configuration for breathe-tracker.
"""

from typing import Callable, List, Optional

import pytest

from breathe_tracker.decoding import encode_frame
from breathe_tracker.engine import TrackingEngine
from breathe_tracker.models.measurement import Measurement
from breathe_tracker.models.state import MeasurementRecord
from breathe_tracker.sinks import NotificationCenter, NotificationEvent, TrackingStateBus
from breathe_tracker.stream.advertisement import Advertisement


# ozone 0.600, temperature 20.0, co2 1200, battery 50
REFERENCE_FRAME = bytes([0xAA, 0x58, 0x02, 0xC8, 0x00, 0xB0, 0x04, 0x32, 0x00])


class FakeTimer:
    """Timer handle that only fires when a test says so."""

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        """Fire even if cancelled, like a thread that already started."""
        self.callback()


class FakeTimerFactory:
    """Records every timer created by the watchdog."""

    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def latest(self) -> Optional[FakeTimer]:
        return self.timers[-1] if self.timers else None

    @property
    def pending(self) -> List[FakeTimer]:
        return [timer for timer in self.timers if not timer.cancelled]

    def expire(self) -> None:
        """Fire the most recently armed timer."""
        assert self.latest is not None, "no timer armed"
        self.latest.fire()


class FakeClock:
    """Controllable time source."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingCloudSink:
    """Cloud sink that keeps every write in memory."""

    def __init__(self) -> None:
        self.records: List[tuple] = []
        self.disconnections: List[str] = []
        self.closed = False

    def record_measurement(self, sensor_id: str, record: MeasurementRecord) -> None:
        self.records.append((sensor_id, record))

    def mark_disconnected(self, sensor_id: str) -> None:
        self.disconnections.append(sensor_id)

    def close(self) -> None:
        self.closed = True


class RecordingNotificationSink:
    """Notification sink that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: List[NotificationEvent] = []

    def send(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def close(self) -> None:
        pass

    def actions(self) -> List[tuple]:
        return [(event.action.value, event.key) for event in self.events]


@pytest.fixture
def reference_frame() -> bytes:
    return REFERENCE_FRAME


@pytest.fixture
def timers() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> TrackingStateBus:
    return TrackingStateBus()


@pytest.fixture
def bus_events(bus) -> List[tuple]:
    """Every (field, value) event published on the bus, in order."""
    events: List[tuple] = []
    bus.subscribe(lambda name, value: events.append((name, value)))
    return events


@pytest.fixture
def cloud_sink() -> RecordingCloudSink:
    return RecordingCloudSink()


@pytest.fixture
def notification_sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def engine(bus, cloud_sink, notification_sink, timers, clock):
    """Started engine with a known location and a 60 s watchdog."""
    engine = TrackingEngine(
        bus,
        cloud_sink,
        NotificationCenter(notification_sink, clock=clock),
        watchdog_delay_seconds=60.0,
        clock=clock,
        timer_factory=timers,
    )
    engine.update_location("Test Lab")
    engine.start("SENSOR-001")
    yield engine
    engine.stop()


@pytest.fixture
def make_frame() -> Callable[..., bytes]:
    """Build a beacon payload from physical values."""

    def _make(
        ozone: float = 0.6,
        temperature: float = 20.0,
        co2: int = 800,
        battery: int = 50,
    ) -> bytes:
        return encode_frame(Measurement(
            ozone=ozone,
            temperature=temperature,
            co2=co2,
            battery=battery,
            captured_at=0.0,
        ))

    return _make


@pytest.fixture
def make_advertisement() -> Callable[..., Advertisement]:
    """Build an advertisement as the beacon would send it."""

    def _make(
        payload: bytes = REFERENCE_FRAME,
        rssi: int = -60,
        device_name: Optional[str] = "rocio",
        company_id: Optional[int] = 0x004C,
    ) -> Advertisement:
        return Advertisement(
            device_name=device_name,
            rssi=rssi,
            payload=payload,
            company_id=company_id,
        )

    return _make
