"""
BLE Scanner Source
==================

Direct BLE scanning with bleak, for hosts that own a Bluetooth adapter.

Every detection is converted into an Advertisement and pushed into the
AdvertisementBuffer. bleak invokes the detection callback on the event
loop thread, so the buffer's non-blocking put is safe here.

bleak is an optional dependency (pip install "breathe-tracker[ble]");
it is imported when the scanner starts.
"""

import logging
from typing import Any, Optional

from breathe_tracker.stream.advertisement import Advertisement
from breathe_tracker.stream.buffer import AdvertisementBuffer


logger = logging.getLogger(__name__)


class BleScannerSource:
    """
    Radio source backed by bleak's BleakScanner.

    Example:
        scanner = BleScannerSource(buffer, company_id=0x004C)
        await scanner.start()
        ...
        await scanner.stop()
    """

    def __init__(
        self,
        buffer: AdvertisementBuffer,
        company_id: int,
        device_name: Optional[str] = None,
    ) -> None:
        """
        Args:
            buffer: AdvertisementBuffer to push advertisements into
            company_id: Manufacturer data entry to forward as payload
            device_name: Only forward this name (None = forward everything)
        """
        self.buffer = buffer
        self.company_id = company_id
        self.device_name = device_name

        self._scanner: Optional[Any] = None
        self._detections: int = 0
        self._forwarded: int = 0

    @property
    def scanning(self) -> bool:
        return self._scanner is not None

    async def start(self) -> None:
        """Start scanning."""
        if self._scanner is not None:
            return

        try:
            from bleak import BleakScanner
        except ImportError:
            raise ImportError(
                "bleak is required for the BLE radio backend. "
                "Install with: pip install bleak"
            )

        scanner = BleakScanner(detection_callback=self._on_detection)
        await scanner.start()
        self._scanner = scanner
        logger.info(f"BLE scanning started (company_id=0x{self.company_id:04X})")

    async def stop(self) -> None:
        """Stop scanning."""
        if self._scanner is None:
            return
        scanner, self._scanner = self._scanner, None
        await scanner.stop()
        logger.info(
            f"BLE scanning stopped: detections={self._detections}, "
            f"forwarded={self._forwarded}"
        )

    def _on_detection(self, device: Any, advertisement_data: Any) -> None:
        self._detections += 1
        advertisement = to_advertisement(
            device_name=advertisement_data.local_name or device.name,
            rssi=advertisement_data.rssi,
            manufacturer_data=advertisement_data.manufacturer_data,
            company_id=self.company_id,
        )
        if self.device_name is not None and advertisement.device_name != self.device_name:
            return
        self.buffer.put_nowait(advertisement)
        self._forwarded += 1

    def metrics(self) -> dict:
        return {
            "scanning": self.scanning,
            "detections": self._detections,
            "forwarded": self._forwarded,
        }


def to_advertisement(
    device_name: Optional[str],
    rssi: int,
    manufacturer_data: dict,
    company_id: int,
) -> Advertisement:
    """
    Build an Advertisement from scanner fields.

    The payload is the manufacturer data entry for company_id. When the
    beacon does not publish that entry, the first entry (if any) is kept
    with its own company id so the engine can still count the contact.
    """
    if company_id in manufacturer_data:
        return Advertisement(
            device_name=device_name,
            rssi=rssi,
            payload=bytes(manufacturer_data[company_id]),
            company_id=company_id,
        )

    for other_id, data in manufacturer_data.items():
        return Advertisement(
            device_name=device_name,
            rssi=rssi,
            payload=bytes(data),
            company_id=other_id,
        )

    return Advertisement(device_name=device_name, rssi=rssi)
