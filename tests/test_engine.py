"""
Tracking Engine Tests
=====================

End-to-end scenarios through the LangGraph frame pipeline, with a fake
watchdog timer, a fake clock and recording sinks.
"""

import pytest

from breathe_tracker.engine import FrameOutcome, TrackingEngine
from breathe_tracker.models.alerts import NO_ALERTS
from breathe_tracker.models.state import NO_INCIDENTS, ConnectionState
from breathe_tracker.sinks import CONNECTION_KEY, NotificationCenter


class TestFramePipeline:
    """Per-frame behaviour."""

    def test_reference_frame_accepted(self, engine, bus, make_advertisement, notification_sink):
        """Verify the reference frame publishes readings and raises CO2 only."""
        outcome = engine.handle_advertisement(make_advertisement())

        assert outcome == FrameOutcome.ACCEPTED
        snapshot = bus.snapshot()
        assert snapshot.ozone == pytest.approx(0.6)
        assert snapshot.temperature == pytest.approx(20.0)
        assert snapshot.co2 == 1200
        assert snapshot.battery == 50
        assert "CO2 level high: 1200 ppm" in snapshot.alerts
        assert snapshot.incident == NO_INCIDENTS
        assert notification_sink.actions() == [("RAISE", "CO2")]

    def test_last_contact_from_clock(self, engine, bus, clock, make_advertisement):
        engine.handle_advertisement(make_advertisement())
        assert bus.snapshot().last_contact == clock.now

    def test_no_alerts_sentinel(self, engine, bus, make_advertisement, make_frame):
        """Verify a clean reading publishes the "No alerts" sentinel."""
        engine.handle_advertisement(make_advertisement(payload=make_frame(co2=800)))
        assert bus.snapshot().alerts == NO_ALERTS

    def test_identical_frames_publish_once(self, engine, bus, make_advertisement, notification_sink):
        """Verify a repeated reading is suppressed but battery is republished."""
        first = engine.handle_advertisement(make_advertisement())
        second = engine.handle_advertisement(make_advertisement())

        assert first == FrameOutcome.ACCEPTED
        assert second == FrameOutcome.SUPPRESSED
        assert bus.publish_count("co2") == 1
        assert bus.publish_count("alerts") == 1
        assert bus.publish_count("battery") == 2
        assert notification_sink.actions() == [("RAISE", "CO2")]

    def test_battery_only_change(self, engine, bus, bus_events, make_advertisement, make_frame):
        """Verify identical triplets with battery 50 then 40 update battery only."""
        engine.handle_advertisement(make_advertisement(payload=make_frame(battery=50)))
        engine.handle_advertisement(make_advertisement(payload=make_frame(battery=40)))

        battery_values = [value for name, value in bus_events if name == "battery"]
        assert battery_values == [50, 40]
        assert bus.publish_count("co2") == 1
        assert bus.snapshot().battery == 40
        assert engine.last_measurement.battery == 50

    def test_other_device_ignored(self, engine, bus, timers, make_advertisement):
        """Verify frames from other advertisers change nothing."""
        armed = len(timers.timers)

        outcome = engine.handle_advertisement(make_advertisement(device_name="other"))

        assert outcome == FrameOutcome.IGNORED
        assert len(timers.timers) == armed
        assert bus.snapshot().signal_strength is None

    def test_unnamed_device_ignored(self, engine, make_advertisement):
        assert engine.handle_advertisement(make_advertisement(device_name=None)) == FrameOutcome.IGNORED

    def test_malformed_payload_still_counts_as_contact(self, engine, bus, timers, make_advertisement):
        """Verify a bad payload from the beacon resets the watchdog and the signal."""
        armed = len(timers.timers)

        outcome = engine.handle_advertisement(make_advertisement(payload=b"\xaa\x00"))

        assert outcome == FrameOutcome.REJECTED
        assert len(timers.timers) == armed + 1
        assert bus.snapshot().signal_strength == -60.0
        assert bus.snapshot().co2 is None

    def test_wrong_company_id_rejected(self, engine, bus, make_advertisement):
        outcome = engine.handle_advertisement(make_advertisement(company_id=0x0059))

        assert outcome == FrameOutcome.REJECTED
        assert bus.snapshot().co2 is None

    def test_signal_smoothed(self, engine, bus, make_advertisement):
        engine.handle_advertisement(make_advertisement(rssi=-60))
        engine.handle_advertisement(make_advertisement(rssi=-70))

        assert bus.snapshot().signal_strength == pytest.approx(-62.0)
        assert engine.smoothed_signal == pytest.approx(-62.0)

    def test_alert_raise_then_clear(self, engine, make_advertisement, make_frame, notification_sink):
        """Verify CLEAR follows RAISE once the reading drops."""
        engine.handle_advertisement(make_advertisement(payload=make_frame(co2=1300)))
        engine.handle_advertisement(make_advertisement(payload=make_frame(co2=900)))

        assert notification_sink.actions() == [("RAISE", "CO2"), ("CLEAR", "CO2")]


class TestCloudForwarding:
    """Forwarding of accepted measurements."""

    def test_record_forwarded(self, engine, cloud_sink, make_advertisement):
        engine.handle_advertisement(make_advertisement())

        assert len(cloud_sink.records) == 1
        sensor_id, record = cloud_sink.records[0]
        assert sensor_id == "SENSOR-001"
        assert record.co2 == 1200
        assert record.location == "Test Lab"
        assert record.status == ConnectionState.CONNECTED

    def test_suppressed_frame_not_forwarded(self, engine, cloud_sink, make_advertisement):
        engine.handle_advertisement(make_advertisement())
        engine.handle_advertisement(make_advertisement())
        assert len(cloud_sink.records) == 1

    def test_waits_for_location(self, bus, cloud_sink, timers, make_advertisement, make_frame):
        """Verify uploads start only once a location is known."""
        engine = TrackingEngine(bus, cloud_sink, timer_factory=timers)
        engine.start("SENSOR-002")

        engine.handle_advertisement(make_advertisement(payload=make_frame(co2=800)))
        assert cloud_sink.records == []
        assert bus.snapshot().co2 == 800

        engine.update_location("Calle Mayor")
        engine.handle_advertisement(make_advertisement(payload=make_frame(co2=850)))
        assert len(cloud_sink.records) == 1
        assert engine.metrics()["cloud_skipped"] == 1
        engine.stop()

    def test_location_not_required(self, bus, cloud_sink, timers, make_advertisement):
        engine = TrackingEngine(bus, cloud_sink, timer_factory=timers, require_location=False)
        engine.start("SENSOR-003")

        engine.handle_advertisement(make_advertisement())

        assert cloud_sink.records[0][1].location is None
        engine.stop()

    def test_sink_failure_does_not_propagate(self, bus, timers, make_advertisement):
        """Verify a failing cloud sink never breaks frame processing."""

        class FailingSink:
            def record_measurement(self, sensor_id, record):
                raise RuntimeError("network down")

            def mark_disconnected(self, sensor_id):
                raise RuntimeError("network down")

            def close(self):
                pass

        engine = TrackingEngine(bus, FailingSink(), timer_factory=timers, require_location=False)
        engine.start("SENSOR-004")

        assert engine.handle_advertisement(make_advertisement()) == FrameOutcome.ACCEPTED
        timers.expire()

        assert engine.metrics()["cloud_errors"] == 2
        assert engine.connection_state == ConnectionState.DISCONNECTED
        engine.stop()


class TestConnectionLifecycle:
    """Watchdog-driven behaviour through the engine."""

    def test_start_publishes_connected(self, engine, bus):
        assert bus.snapshot().sensor_id == "SENSOR-001"
        assert bus.snapshot().connection_state == ConnectionState.CONNECTED
        assert engine.watchdog.delay_seconds == 60.0

    def test_silence_disconnects_with_one_incident(
        self, engine, bus, timers, make_advertisement, cloud_sink, notification_sink,
    ):
        """Verify expiry publishes DISCONNECTED and exactly one incident."""
        engine.handle_advertisement(make_advertisement())

        timers.expire()

        snapshot = bus.snapshot()
        assert snapshot.connection_state == ConnectionState.DISCONNECTED
        assert snapshot.signal_strength is None
        assert snapshot.incident.endswith(" - The sensor is not working correctly")
        assert len(engine.incidents()) == 1
        assert engine.incidents()[0].sensor_id == "SENSOR-001"
        assert cloud_sink.disconnections == ["SENSOR-001"]
        assert notification_sink.actions()[-1] == ("RAISE", CONNECTION_KEY)

    def test_disconnection_notice_uses_engine_clock(
        self, engine, clock, timers, make_advertisement, notification_sink,
    ):
        engine.handle_advertisement(make_advertisement())
        clock.advance(60)

        timers.expire()

        assert notification_sink.events[-1].timestamp == engine.incidents()[0].timestamp
        assert notification_sink.events[-1].timestamp == clock.now

    def test_recovery_clears_incident_before_connected(
        self, engine, bus, bus_events, timers, make_advertisement, notification_sink,
    ):
        """Verify "No incidents" is published before CONNECTED on recovery."""
        timers.expire()
        bus_events.clear()

        engine.handle_advertisement(make_advertisement())

        names = [name for name, _ in bus_events]
        incident_index = names.index("incident")
        connected_index = names.index("connection_state")
        assert bus_events[incident_index] == ("incident", NO_INCIDENTS)
        assert bus_events[connected_index] == ("connection_state", ConnectionState.CONNECTED)
        assert incident_index < connected_index
        assert ("CLEAR", CONNECTION_KEY) in notification_sink.actions()

    def test_recovering_frame_publishes_alerts(self, engine, bus, timers, make_advertisement):
        """Verify the frame that ends a silence is evaluated as connected."""
        timers.expire()

        engine.handle_advertisement(make_advertisement())

        snapshot = bus.snapshot()
        assert snapshot.connection_state == ConnectionState.CONNECTED
        assert "CO2 level high: 1200 ppm" in snapshot.alerts
        assert snapshot.incident == NO_INCIDENTS

    def test_signal_reinitialized_after_reconnect(self, engine, bus, timers, make_advertisement):
        """Verify smoothing restarts from the first sample after a disconnection."""
        engine.handle_advertisement(make_advertisement(rssi=-50))
        timers.expire()

        engine.handle_advertisement(make_advertisement(rssi=-80))

        assert bus.snapshot().signal_strength == -80.0

    def test_stop_ignores_frames(self, engine, bus, timers, make_advertisement):
        """Verify nothing is published after stop and the timer is cancelled."""
        engine.stop()
        before = bus.snapshot()

        outcome = engine.handle_advertisement(make_advertisement())

        assert outcome == FrameOutcome.IGNORED
        assert bus.snapshot() == before
        assert timers.pending == []

    def test_start_twice_is_noop(self, engine, timers):
        armed = len(timers.timers)
        engine.start("OTHER")

        assert engine.sensor_id == "SENSOR-001"
        assert len(timers.timers) == armed

    def test_incident_history_bounded(self, bus, timers, make_advertisement):
        engine = TrackingEngine(bus, timer_factory=timers, incident_history=2)
        engine.start("SENSOR-005")

        for _ in range(3):
            timers.expire()
            engine.handle_advertisement(make_advertisement())

        assert len(engine.incidents()) == 2
        engine.stop()


class TestEngineMetrics:
    """Metrics exposed to the service layer."""

    def test_outcome_counts(self, engine, make_advertisement):
        engine.handle_advertisement(make_advertisement())
        engine.handle_advertisement(make_advertisement())
        engine.handle_advertisement(make_advertisement(device_name="other"))

        metrics = engine.metrics()
        assert metrics["frames"] == 2
        assert metrics["outcomes"] == {"ACCEPTED": 1, "SUPPRESSED": 1, "IGNORED": 1}
        assert metrics["watchdog"]["state"] == "connected"

    def test_default_sinks(self, bus):
        """Verify the engine works with its default logging sinks."""
        engine = TrackingEngine(bus, timer_factory=lambda delay, cb: _NullTimer())
        assert isinstance(engine.notifications, NotificationCenter)
        assert engine.metrics()["running"] is False


class _NullTimer:
    def cancel(self):
        pass
