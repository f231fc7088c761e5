"""
Frame Decoder
=============

Decodes the beacon's manufacturer-specific payload into a Measurement.

Frame Layout (9 bytes, little-endian u16 fields):
    offset 0     sentinel 0xAA (protocol version)
    offset 1..2  ozone_raw        ozone_ppm = ozone_raw / 1000
    offset 3..4  temperature_raw  temperature_c = temperature_raw / 10
    offset 5..6  co2_ppm
    offset 7..8  battery_pct      (not range-checked)

Design Rules:
    - A frame either fully decodes or is rejected (returns None)
    - Rejection is NOT an error: nearby unrelated advertisers are common
    - Decoding is total over the 9-byte, sentinel-matched domain
"""

import logging
import struct
import time
from typing import Callable, Optional

from breathe_tracker.models.measurement import Measurement


logger = logging.getLogger(__name__)


FRAME_LENGTH = 9
FRAME_SENTINEL = 0xAA

OZONE_SCALE = 1000.0
TEMPERATURE_SCALE = 10.0

_FIELDS = struct.Struct("<HHHH")


def decode_frame(
    payload: bytes,
    captured_at: Optional[float] = None,
    frame_length: int = FRAME_LENGTH,
    sentinel: int = FRAME_SENTINEL,
) -> Optional[Measurement]:
    """
    Decode a raw beacon payload.

    Args:
        payload: Manufacturer-specific data bytes
        captured_at: Capture timestamp (defaults to time.time())
        frame_length: Expected payload length
        sentinel: Expected value of byte 0

    Returns:
        Measurement, or None when the payload is not a beacon frame
    """
    if payload is None or len(payload) != frame_length or payload[0] != sentinel:
        return None

    ozone_raw, temperature_raw, co2, battery = _FIELDS.unpack_from(payload, 1)

    return Measurement(
        ozone=ozone_raw / OZONE_SCALE,
        temperature=temperature_raw / TEMPERATURE_SCALE,
        co2=co2,
        battery=battery,
        captured_at=time.time() if captured_at is None else captured_at,
    )


def encode_frame(measurement: Measurement, sentinel: int = FRAME_SENTINEL) -> bytes:
    """
    Encode a measurement into a beacon payload (inverse of decode_frame).

    Values are rounded to the frame's resolution (0.001 ppm, 0.1 °C).

    Raises:
        struct.error: If a field does not fit in an unsigned 16-bit value
    """
    return bytes([sentinel]) + _FIELDS.pack(
        round(measurement.ozone * OZONE_SCALE),
        round(measurement.temperature * TEMPERATURE_SCALE),
        measurement.co2,
        measurement.battery,
    )


class FrameDecoder:
    """
    Stateful wrapper around decode_frame with rejection metrics.

    Attributes:
        frame_length: Expected payload length
        sentinel: Expected protocol sentinel

    Example:
        decoder = FrameDecoder()
        measurement = decoder.decode(payload)
        if measurement is None:
            return  # not our frame
    """

    def __init__(
        self,
        frame_length: int = FRAME_LENGTH,
        sentinel: int = FRAME_SENTINEL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if frame_length < 1 + _FIELDS.size:
            raise ValueError(f"frame_length must be >= {1 + _FIELDS.size}")
        if not 0 <= sentinel <= 0xFF:
            raise ValueError("sentinel must be a single byte")

        self.frame_length = frame_length
        self.sentinel = sentinel
        self._clock = clock

        self._decoded_count: int = 0
        self._rejected_length: int = 0
        self._rejected_sentinel: int = 0

    def decode(self, payload: bytes) -> Optional[Measurement]:
        """
        Decode a payload, counting rejections.

        Returns:
            Measurement, or None when rejected
        """
        if payload is None or len(payload) != self.frame_length:
            self._rejected_length += 1
            return None
        if payload[0] != self.sentinel:
            self._rejected_sentinel += 1
            return None

        measurement = decode_frame(
            payload,
            captured_at=self._clock(),
            frame_length=self.frame_length,
            sentinel=self.sentinel,
        )
        self._decoded_count += 1
        return measurement

    @property
    def decoded_count(self) -> int:
        """Number of frames successfully decoded."""
        return self._decoded_count

    def get_metrics(self) -> dict:
        """Get decoder metrics for observability."""
        return {
            "decoded": self._decoded_count,
            "rejected_length": self._rejected_length,
            "rejected_sentinel": self._rejected_sentinel,
        }
