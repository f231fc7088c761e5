"""
Advertisement Data Model
========================

Internal representation of one BLE advertisement for the tracking pipeline.

Design Rules:
    - This is the ONLY advertisement format passed to the engine
    - Does NOT decode the manufacturer payload
    - Produced by every radio source (bridge consumer, BLE scanner)
"""

import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True, slots=True)
class Advertisement:
    """
    Advertisement received from the radio layer.

    Attributes:
        device_name: Advertised local name (None when not advertised)
        rssi: Instantaneous signal strength (dBm)
        payload: Manufacturer-specific data for company_id (raw bytes)
        company_id: Company identifier the payload was published under
        received_at: UNIX timestamp when the advertisement was received
    """

    device_name: Optional[str]
    rssi: int
    payload: bytes = b""
    company_id: Optional[int] = None
    received_at: float = field(default_factory=time.time)

    def __repr__(self) -> str:
        """Compact repr with hex payload."""
        company = f"0x{self.company_id:04X}" if self.company_id is not None else None
        return (
            f"Advertisement(device_name={self.device_name!r}, "
            f"rssi={self.rssi}, company_id={company}, "
            f"payload={self.payload.hex()})"
        )
