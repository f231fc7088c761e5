#!/usr/bin/env python3
"""
BLE Bridge Simulator
====================

Standalone WebSocket server that behaves like a BLE bridge, for running
the tracking service without radio hardware.

This script:
    1. Serves bridge messages on ws://<host>:<port>/
    2. Sends one location fix per client on connect
    3. Broadcasts beacon advertisements with drifting readings
    4. Mixes in advertisements from unrelated devices
    5. Optionally goes silent to exercise the connection watchdog

Usage:
    python scripts/simulate_bridge.py --port 8765
    python scripts/simulate_bridge.py --interval 0.5 --silence-after 60 --silence-for 200

Then start the service with:
    BREATHE_BRIDGE_URL=ws://localhost:8765 python -m breathe_tracker.main
"""

import argparse
import asyncio
import json
import logging
import os
import random
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import websockets

from breathe_tracker.decoding import encode_frame
from breathe_tracker.models.measurement import Measurement


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


class BeaconModel:
    """Random-walk air quality readings with slow battery drain."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(seed)
        self.ozone = 0.40
        self.temperature = 22.0
        self.co2 = 900
        self.battery = 100.0

    def step(self) -> Measurement:
        self.ozone = min(max(self.ozone + self._rng.uniform(-0.05, 0.06), 0.0), 2.0)
        self.temperature = min(max(self.temperature + self._rng.uniform(-0.4, 0.5), 0.0), 50.0)
        self.co2 = min(max(self.co2 + self._rng.randint(-60, 80), 400), 5000)
        self.battery = max(self.battery - 0.05, 0.0)

        # Coarse readings repeat often
        if self._rng.random() < 0.5:
            self.ozone = round(self.ozone, 2)
            self.temperature = round(self.temperature, 0)

        return Measurement(
            ozone=self.ozone,
            temperature=self.temperature,
            co2=self.co2,
            battery=int(self.battery),
            captured_at=time.time(),
        )


def advertisement_message(device_name: str, rssi: int, company_id: int, payload: bytes) -> str:
    return json.dumps({
        "type": "advertisement",
        "device_name": device_name,
        "rssi": rssi,
        "company_id": company_id,
        "payload": payload.hex(),
    })


async def run_bridge(
    host: str,
    port: int,
    device_name: str,
    company_id: int,
    location: str,
    interval: float,
    silence_after: float,
    silence_for: float,
    seed: int,
) -> None:
    """Serve simulated bridge traffic until interrupted."""
    clients = set()
    beacon = BeaconModel(seed)
    rng = random.Random(seed + 1)

    async def handler(connection, *args) -> None:
        clients.add(connection)
        logger.info(f"Client connected ({len(clients)} total)")
        try:
            await connection.send(json.dumps({"type": "location", "location": location}))
            await connection.wait_closed()
        finally:
            clients.discard(connection)
            logger.info(f"Client disconnected ({len(clients)} total)")

    server = await websockets.serve(handler, host, port)
    logger.info("=" * 60)
    logger.info(f"Bridge simulator listening on ws://{host}:{port}")
    logger.info(f"Beacon: {device_name!r} company_id=0x{company_id:04X}")
    logger.info(f"Interval: {interval}s")
    if silence_after > 0:
        logger.info(f"Silence: {silence_for}s after {silence_after}s")
    logger.info("=" * 60)

    start_time = time.time()
    sent = 0

    try:
        while True:
            await asyncio.sleep(interval)
            elapsed = time.time() - start_time

            silent = silence_after > 0 and silence_after <= elapsed < silence_after + silence_for
            messages = []

            if not silent:
                payload = encode_frame(beacon.step())
                messages.append(advertisement_message(
                    device_name, rng.randint(-85, -55), company_id, payload,
                ))

            if rng.random() < 0.3:
                messages.append(advertisement_message(
                    "unrelated-tag", rng.randint(-95, -70), 0x0059, bytes(rng.getrandbits(8) for _ in range(6)),
                ))

            for message in messages:
                for client in list(clients):
                    try:
                        await client.send(message)
                        sent += 1
                    except websockets.exceptions.ConnectionClosed:
                        clients.discard(client)

            if sent and sent % 100 == 0:
                logger.info(f"Sent {sent} messages (silent={silent})")

    finally:
        server.close()
        await server.wait_closed()
        logger.info(f"Bridge simulator stopped after {sent} messages")


def main():
    parser = argparse.ArgumentParser(description="BLE bridge simulator for breathe-tracker")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Bind host")
    parser.add_argument("--port", type=int, default=8765, help="Bind port (default: 8765)")
    parser.add_argument("--device-name", type=str, default="rocio", help="Beacon name")
    parser.add_argument(
        "--company-id",
        type=lambda value: int(value, 0),
        default=0x004C,
        help="Beacon company id (default: 0x004C)",
    )
    parser.add_argument("--location", type=str, default="Calle Mayor, Gandia", help="Location fix")
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between frames")
    parser.add_argument(
        "--silence-after",
        type=float,
        default=0.0,
        help="Stop the beacon after N seconds (0 = never)",
    )
    parser.add_argument("--silence-for", type=float, default=200.0, help="Silence length in seconds")
    parser.add_argument("--seed", type=int, default=7, help="Random seed")

    args = parser.parse_args()

    try:
        asyncio.run(run_bridge(
            host=args.host,
            port=args.port,
            device_name=args.device_name,
            company_id=args.company_id,
            location=args.location,
            interval=args.interval,
            silence_after=args.silence_after,
            silence_for=args.silence_for,
            seed=args.seed,
        ))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
