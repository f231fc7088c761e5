"""
Signal Processing Tests
=======================

Tests for RSSI smoothing and the repeated-reading filter.
"""

import pytest

from breathe_tracker.models.measurement import Measurement
from breathe_tracker.signals import ChangeFilter, SignalSmoother


def _measurement(ozone=0.6, temperature=20.0, co2=800, battery=50):
    return Measurement(
        ozone=ozone,
        temperature=temperature,
        co2=co2,
        battery=battery,
        captured_at=0.0,
    )


class TestSignalSmoother:
    """Tests for the RSSI EMA."""

    def test_first_sample_initializes(self):
        """Verify the first sample is taken as-is."""
        smoother = SignalSmoother(alpha=0.2)
        assert smoother.value is None
        assert smoother.update(-60) == -60.0

    def test_ema_formula(self):
        """Verify smoothed = alpha * raw + (1 - alpha) * previous."""
        smoother = SignalSmoother(alpha=0.2)
        smoother.update(-60)
        assert smoother.update(-70) == pytest.approx(-62.0)
        assert smoother.update(-70) == pytest.approx(-63.6)

    def test_reset_returns_to_no_signal(self):
        """Verify reset clears the value and the next sample re-initializes."""
        smoother = SignalSmoother(alpha=0.2)
        smoother.update(-60)
        smoother.update(-80)

        smoother.reset()
        assert smoother.value is None
        assert smoother.update(-90) == -90.0

    def test_alpha_one_disables_smoothing(self):
        smoother = SignalSmoother(alpha=1.0)
        smoother.update(-60)
        assert smoother.update(-75) == -75.0

    @pytest.mark.parametrize("alpha", [0.0, -0.1, 1.5])
    def test_invalid_alpha(self, alpha):
        """Verify alpha outside (0, 1] is refused."""
        with pytest.raises(ValueError):
            SignalSmoother(alpha=alpha)

    def test_metrics(self):
        smoother = SignalSmoother(alpha=0.5)
        smoother.update(-50)
        smoother.update(-60)

        metrics = smoother.get_metrics()
        assert metrics["sample_count"] == 2
        assert metrics["smoothed_rssi"] == pytest.approx(-55.0)
        assert smoother.sample_count == 2


class TestChangeFilter:
    """Tests for the repeated-reading filter."""

    def test_first_measurement_published(self):
        """Verify there is nothing to compare against at first."""
        assert ChangeFilter().should_publish(None, _measurement()) is True

    def test_identical_triplet_suppressed(self):
        """Verify identical ozone, temperature and CO2 are suppressed."""
        change_filter = ChangeFilter()
        assert change_filter.should_publish(_measurement(), _measurement()) is False
        assert change_filter.suppressed_count == 1

    def test_battery_ignored(self):
        """Verify a battery-only change is still a duplicate reading."""
        change_filter = ChangeFilter()
        previous = _measurement(battery=50)
        candidate = _measurement(battery=40)
        assert change_filter.should_publish(previous, candidate) is False

    @pytest.mark.parametrize("changes", [
        {"ozone": 0.601},
        {"temperature": 20.1},
        {"co2": 801},
    ])
    def test_any_triplet_change_published(self, changes):
        """Verify a change in any compared field publishes."""
        assert ChangeFilter().should_publish(_measurement(), _measurement(**changes)) is True

    def test_metrics(self):
        change_filter = ChangeFilter()
        change_filter.should_publish(None, _measurement())
        change_filter.should_publish(_measurement(), _measurement())

        assert change_filter.get_metrics() == {"passed": 1, "suppressed": 1}
