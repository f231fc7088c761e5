"""
Input Message Schema
====================

Pydantic models for messages received from the BLE bridge.

The bridge is a small process running next to the radio (phone, gateway,
Raspberry Pi) that forwards raw advertisements and location fixes over a
WebSocket. Each message is one JSON object with a "type" discriminator.

Input Contract:
    {
        "type": "advertisement",
        "device_name": "rocio",
        "rssi": -67,
        "company_id": 76,
        "payload": "aa5802c800b0043200"
    }

    {
        "type": "location",
        "location": "Calle Mayor, Gandia"
    }

Example:
    from pydantic import TypeAdapter
    from breathe_tracker.models.input import BridgeMessage

    message = TypeAdapter(BridgeMessage).validate_json(raw)
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class AdvertisementMessage(BaseModel):
    """
    Advertisement forwarded by the bridge.

    Attributes:
        type: Fixed discriminator ("advertisement")
        device_name: Advertised local name (may be missing)
        rssi: Received signal strength (dBm)
        company_id: Manufacturer-specific data company identifier
        payload: Manufacturer-specific data, hex encoded
    """

    type: Literal["advertisement"] = "advertisement"

    device_name: Optional[str] = Field(
        default=None,
        description="Advertised device name",
    )

    rssi: int = Field(
        ...,
        description="Received signal strength indicator (dBm)",
    )

    company_id: Optional[int] = Field(
        default=None,
        ge=0,
        le=0xFFFF,
        description="Bluetooth SIG company identifier of the payload",
    )

    payload: str = Field(
        default="",
        description="Manufacturer-specific payload as a hex string",
    )

    @field_validator("payload")
    @classmethod
    def _validate_hex(cls, value: str) -> str:
        cleaned = value.replace(":", "").replace(" ", "")
        bytes.fromhex(cleaned)
        return cleaned

    def payload_bytes(self) -> bytes:
        """Decoded payload bytes."""
        return bytes.fromhex(self.payload)


class LocationMessage(BaseModel):
    """Location fix forwarded by the bridge."""

    type: Literal["location"] = "location"

    location: str = Field(
        ...,
        min_length=1,
        description="Human-readable location (street, city)",
    )


BridgeMessage = Annotated[
    Union[AdvertisementMessage, LocationMessage],
    Field(discriminator="type"),
]
