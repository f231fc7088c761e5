"""
Stream Module
=============

Radio ingestion and advertisement buffering components.

    - Advertisement: Typed radio event (internal representation)
    - AdvertisementBuffer: Async-safe bounded queue (drops oldest on overflow)
    - AdvertisementConsumer: WebSocket bridge client with reconnection
    - BleScannerSource: Direct BLE scanning via bleak (optional)

Example:
    from breathe_tracker.stream import AdvertisementBuffer, AdvertisementConsumer

    buffer = AdvertisementBuffer(maxsize=100)
    consumer = AdvertisementConsumer(url="ws://localhost:8765", buffer=buffer)
    task = asyncio.create_task(consumer.run())

    while True:
        advertisement = await buffer.get()
        engine.handle_advertisement(advertisement)
"""

from breathe_tracker.stream.advertisement import Advertisement
from breathe_tracker.stream.ble_scanner import BleScannerSource, to_advertisement
from breathe_tracker.stream.buffer import AdvertisementBuffer
from breathe_tracker.stream.consumer import (
    AdvertisementConsumer,
    AdvertisementConsumerMetrics,
    parse_bridge_message,
)


__all__ = [
    "Advertisement",
    "AdvertisementBuffer",
    "AdvertisementConsumer",
    "AdvertisementConsumerMetrics",
    "BleScannerSource",
    "parse_bridge_message",
    "to_advertisement",
]
