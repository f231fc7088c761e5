"""
Measurement Models
==================

Typed measurement data passed through the tracking pipeline.

A Measurement is produced only by the frame decoder from a well-formed
beacon payload. It is immutable so it can be handed to collaborators
(state bus, cloud sink) without copying.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Measurement:
    """
    Decoded air-quality reading from the beacon.

    Attributes:
        ozone: Ozone concentration (ppm), 0.001 resolution
        temperature: Temperature (°C), 0.1 resolution
        co2: CO2 concentration (ppm)
        battery: Beacon battery level (%). Not range-checked: the beacon
            may report values above 100 and they are passed through.
        captured_at: UNIX timestamp when the frame was decoded
    """

    ozone: float
    temperature: float
    co2: int
    battery: int
    captured_at: float

    def same_readings(self, other: "Measurement") -> bool:
        """True when ozone, temperature and CO2 are exactly equal."""
        return (
            self.ozone == other.ozone
            and self.temperature == other.temperature
            and self.co2 == other.co2
        )

    def __repr__(self) -> str:
        return (
            f"Measurement(ozone={self.ozone:.3f}, "
            f"temperature={self.temperature:.1f}, "
            f"co2={self.co2}, battery={self.battery})"
        )

    def to_dict(self) -> dict:
        """Export as dictionary for logging/serialization."""
        return {
            "ozone": self.ozone,
            "temperature": self.temperature,
            "co2": self.co2,
            "battery": self.battery,
            "captured_at": round(self.captured_at, 3),
        }
