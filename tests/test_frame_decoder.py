"""
Frame Decoder Tests
===================

Tests for the beacon payload codec and the FrameDecoder wrapper.
"""

import struct

import pytest

from breathe_tracker.decoding import FrameDecoder, decode_frame, encode_frame
from breathe_tracker.models.measurement import Measurement


class TestDecodeFrame:
    """Tests for decode_frame."""

    def test_reference_frame(self, reference_frame):
        """Verify the documented example frame decodes field by field."""
        measurement = decode_frame(reference_frame, captured_at=123.0)

        assert measurement is not None
        assert measurement.ozone == pytest.approx(0.600)
        assert measurement.temperature == pytest.approx(20.0)
        assert measurement.co2 == 1200
        assert measurement.battery == 50
        assert measurement.captured_at == 123.0

    def test_fields_are_little_endian(self):
        """Verify byte order: low byte first."""
        payload = bytes([0xAA, 0x01, 0x02, 0x03, 0x04, 0x05, 0x06, 0x07, 0x08])
        measurement = decode_frame(payload, captured_at=0.0)

        assert measurement.ozone == pytest.approx(0x0201 / 1000.0)
        assert measurement.temperature == pytest.approx(0x0403 / 10.0)
        assert measurement.co2 == 0x0605
        assert measurement.battery == 0x0807

    @pytest.mark.parametrize("length", [0, 1, 8, 10, 20])
    def test_wrong_length_rejected(self, reference_frame, length):
        """Verify any length other than 9 is rejected."""
        payload = (reference_frame * 3)[:length]
        assert decode_frame(payload) is None

    def test_wrong_sentinel_rejected(self, reference_frame):
        """Verify byte 0 must be 0xAA."""
        payload = bytes([0xAB]) + reference_frame[1:]
        assert decode_frame(payload) is None

    def test_battery_above_100_passed_through(self):
        """Verify battery is not range-checked."""
        payload = bytes([0xAA, 0, 0, 0, 0, 0, 0]) + struct.pack("<H", 250)
        measurement = decode_frame(payload, captured_at=0.0)
        assert measurement.battery == 250

    def test_maximum_values(self):
        """Verify decoding is total over the u16 range."""
        payload = bytes([0xAA]) + b"\xff" * 8
        measurement = decode_frame(payload, captured_at=0.0)

        assert measurement.ozone == pytest.approx(65.535)
        assert measurement.temperature == pytest.approx(6553.5)
        assert measurement.co2 == 65535
        assert measurement.battery == 65535


class TestEncodeFrame:
    """Tests for encode_frame."""

    def test_encodes_reference_frame(self, reference_frame):
        """Verify encoding the reference values reproduces the frame."""
        measurement = Measurement(
            ozone=0.6, temperature=20.0, co2=1200, battery=50, captured_at=0.0,
        )
        assert encode_frame(measurement) == reference_frame

    def test_round_trip_within_quantisation(self):
        """Verify values survive a round trip within frame resolution."""
        original = Measurement(
            ozone=0.12345, temperature=23.456, co2=987, battery=77, captured_at=0.0,
        )
        decoded = decode_frame(encode_frame(original), captured_at=0.0)

        assert abs(decoded.ozone - original.ozone) <= 0.001
        assert abs(decoded.temperature - original.temperature) <= 0.1
        assert decoded.co2 == original.co2
        assert decoded.battery == original.battery

    def test_out_of_range_raises(self):
        """Verify values that do not fit in u16 are refused."""
        measurement = Measurement(
            ozone=0.1, temperature=20.0, co2=70000, battery=50, captured_at=0.0,
        )
        with pytest.raises(struct.error):
            encode_frame(measurement)


class TestFrameDecoder:
    """Tests for the FrameDecoder wrapper."""

    def test_uses_clock_for_capture_time(self, reference_frame):
        """Verify captured_at comes from the injected clock."""
        decoder = FrameDecoder(clock=lambda: 42.0)
        assert decoder.decode(reference_frame).captured_at == 42.0

    def test_counts_rejections(self, reference_frame):
        """Verify rejections are counted by cause."""
        decoder = FrameDecoder()

        decoder.decode(reference_frame)
        decoder.decode(reference_frame[:5])
        decoder.decode(bytes([0x00]) + reference_frame[1:])

        metrics = decoder.get_metrics()
        assert metrics["decoded"] == 1
        assert metrics["rejected_length"] == 1
        assert metrics["rejected_sentinel"] == 1
        assert decoder.decoded_count == 1

    def test_custom_sentinel(self, reference_frame):
        """Verify the sentinel is configurable."""
        decoder = FrameDecoder(sentinel=0xAB)
        assert decoder.decode(reference_frame) is None
        assert decoder.decode(bytes([0xAB]) + reference_frame[1:]) is not None

    def test_invalid_configuration(self):
        """Verify impossible layouts are refused at construction."""
        with pytest.raises(ValueError):
            FrameDecoder(frame_length=5)
        with pytest.raises(ValueError):
            FrameDecoder(sentinel=0x1FF)
