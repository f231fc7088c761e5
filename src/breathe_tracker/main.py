"""
breathe-tracker Main Application
================================

FastAPI entry point for the sensor-tracking service.

Pipeline:
    radio source (bridge WebSocket or BLE scan)
        → AdvertisementBuffer
        → processing task (single consumer)
        → TrackingEngine
        → TrackingStateBus → endpoints

Endpoints:
    GET  /           - Service information
    GET  /health     - Liveness probe (is process alive?)
    GET  /ready      - Readiness probe (engine running + radio attached?)
    GET  /metrics    - Detailed metrics
    GET  /state      - Current published tracking state
    GET  /incidents  - Recent auto-generated incidents
    POST /location   - Update the host's current location
    WS   /ws/state   - Real-time tracking state stream
"""

import asyncio
import logging
import os
import signal
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Union

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from breathe_tracker.config import Settings, settings
from breathe_tracker.engine import AlertThresholds, TrackingEngine
from breathe_tracker.models.input import LocationMessage
from breathe_tracker.sinks import (
    CloudSink,
    FirestoreCloudSink,
    LoggingCloudSink,
    LoggingNotificationSink,
    NotificationCenter,
    NotificationSink,
    TrackingStateBus,
    WebhookNotificationSink,
)
from breathe_tracker.stream import AdvertisementBuffer, AdvertisementConsumer, BleScannerSource


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_shutdown_flag: bool = False

_bus: Optional[TrackingStateBus] = None
_engine: Optional[TrackingEngine] = None
_cloud_sink: Optional[CloudSink] = None
_notifications: Optional[NotificationCenter] = None

_buffer: Optional[AdvertisementBuffer] = None
_radio: Optional[Union[AdvertisementConsumer, BleScannerSource]] = None
_radio_task: Optional[asyncio.Task] = None
_processing_task: Optional[asyncio.Task] = None

_startup_time: float = 0.0
_is_ready: bool = False
_frame_error_count: int = 0


# =============================================================================
# Getters
# =============================================================================

def get_bus() -> Optional[TrackingStateBus]:
    return _bus

def get_engine() -> Optional[TrackingEngine]:
    return _engine

def get_buffer() -> Optional[AdvertisementBuffer]:
    return _buffer

def get_radio() -> Optional[Union[AdvertisementConsumer, BleScannerSource]]:
    return _radio

def is_ready() -> bool:
    return _is_ready


# =============================================================================
# Signal Handlers
# =============================================================================

def _handle_sigterm(signum, frame):
    """Handle SIGTERM for graceful shutdown."""
    global _shutdown_flag
    logger.info("Received SIGTERM, initiating graceful shutdown...")
    _shutdown_flag = True


# =============================================================================
# Factories
# =============================================================================

def create_cloud_sink(config: Settings) -> CloudSink:
    """
    Create the cloud sink selected by config.

    Fails fast if the Firestore backend is requested but unavailable.
    """
    backend = config.cloud.backend

    if backend == "log":
        logger.info("Using LoggingCloudSink")
        return LoggingCloudSink()

    elif backend == "firestore":
        logger.info(f"Using FirestoreCloudSink: project={config.cloud.project}")
        return FirestoreCloudSink(
            project=config.cloud.project,
            credentials_path=config.cloud.credentials_path,
            sensors_collection=config.cloud.sensors_collection,
            measurements_collection=config.cloud.measurements_collection,
            max_workers=config.cloud.max_workers,
        )

    else:
        raise ValueError(f"Unknown cloud backend: {backend}")


def create_notification_sink(config: Settings) -> NotificationSink:
    """Create the notification sink selected by config."""
    backend = config.notifications.backend

    if backend == "log":
        logger.info("Using LoggingNotificationSink")
        return LoggingNotificationSink()

    elif backend == "webhook":
        if not config.notifications.webhook_url:
            raise ValueError("Webhook notification backend requires notifications.webhook_url")
        logger.info(f"Using WebhookNotificationSink: {config.notifications.webhook_url}")
        return WebhookNotificationSink(
            url=config.notifications.webhook_url,
            timeout_seconds=config.notifications.timeout_seconds,
        )

    else:
        raise ValueError(f"Unknown notification backend: {backend}")


def create_engine(
    config: Settings,
    bus: TrackingStateBus,
    cloud_sink: CloudSink,
    notifications: NotificationCenter,
) -> TrackingEngine:
    """Create a TrackingEngine from config."""
    return TrackingEngine(
        bus,
        cloud_sink,
        notifications,
        device_name=config.tracking.device_name,
        company_id=config.tracking.company_id,
        frame_length=config.tracking.frame_length,
        sentinel=config.tracking.sentinel,
        watchdog_delay_seconds=config.watchdog.delay_seconds,
        rssi_alpha=config.signal.rssi_alpha,
        thresholds=AlertThresholds(
            co2_ppm=config.thresholds.co2_ppm,
            ozone_ppm=config.thresholds.ozone_ppm,
            temperature_c=config.thresholds.temperature_c,
            battery_pct=config.thresholds.battery_pct,
        ),
        require_location=config.tracking.require_location,
        incident_history=config.tracking.incident_history,
    )


def create_radio_source(
    config: Settings,
    buffer: AdvertisementBuffer,
    engine: TrackingEngine,
) -> Union[AdvertisementConsumer, BleScannerSource]:
    """Create the radio source selected by config."""
    backend = config.radio.backend

    if backend == "bridge":
        logger.info(f"Using bridge radio source: {config.radio.url}")
        return AdvertisementConsumer(
            url=config.radio.url,
            buffer=buffer,
            on_location=engine.update_location,
            reconnect_backoff_ms=config.radio.reconnect_backoff_ms,
            max_reconnect_attempts=config.radio.max_reconnect_attempts,
        )

    elif backend == "ble":
        logger.info("Using BLE scanner radio source")
        return BleScannerSource(
            buffer=buffer,
            company_id=config.tracking.company_id,
            device_name=config.tracking.device_name,
        )

    else:
        raise ValueError(f"Unknown radio backend: {backend}")


# =============================================================================
# Processing Pipeline
# =============================================================================

async def process_advertisements() -> None:
    """Drain the buffer into the engine, one advertisement at a time."""
    global _is_ready, _frame_error_count

    if _buffer is None or _engine is None:
        logger.error("Processing pipeline not initialized")
        return

    logger.info("Advertisement processing pipeline started")
    _is_ready = True

    while not _shutdown_flag:
        try:
            advertisement = await _buffer.get(timeout=1.0)
            if advertisement is None:
                continue

            try:
                _engine.handle_advertisement(advertisement)
            except Exception as e:
                _frame_error_count += 1
                logger.error(f"Engine error ({advertisement!r}): {e}")

        except asyncio.CancelledError:
            logger.info("Advertisement processing pipeline cancelled")
            break
        except Exception as e:
            _frame_error_count += 1
            logger.error(f"Pipeline error: {e}")
            await asyncio.sleep(0.1)

    _is_ready = False
    logger.info("Advertisement processing pipeline stopped")


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _bus, _engine, _cloud_sink, _notifications
    global _buffer, _radio, _radio_task, _processing_task, _startup_time
    global _shutdown_flag

    try:
        signal.signal(signal.SIGTERM, _handle_sigterm)
    except ValueError:
        # Only the main thread may install handlers (e.g. not under a test client)
        logger.debug("SIGTERM handler not installed: not on the main thread")

    # Startup
    _shutdown_flag = False
    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    _bus = TrackingStateBus()
    _cloud_sink = create_cloud_sink(settings)
    _notifications = NotificationCenter(create_notification_sink(settings))
    _engine = create_engine(settings, _bus, _cloud_sink, _notifications)
    _engine.start(settings.tracking.sensor_id)

    _buffer = AdvertisementBuffer(maxsize=settings.radio.max_queue_size)
    _radio = create_radio_source(settings, _buffer, _engine)
    if isinstance(_radio, AdvertisementConsumer):
        _radio_task = asyncio.create_task(_radio.run(), name="bridge_consumer")
    else:
        await _radio.start()

    _processing_task = asyncio.create_task(
        process_advertisements(),
        name="advertisement_processing",
    )

    logger.info("All components started")

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")
    _shutdown_flag = True

    if _processing_task:
        _processing_task.cancel()
        try:
            await _processing_task
        except asyncio.CancelledError:
            pass

    if _radio:
        await _radio.stop()

    if _radio_task:
        try:
            await asyncio.wait_for(_radio_task, timeout=5.0)
        except asyncio.TimeoutError:
            _radio_task.cancel()
            try:
                await _radio_task
            except asyncio.CancelledError:
                pass

    if _engine:
        _engine.stop()
    if _cloud_sink:
        _cloud_sink.close()
    if _notifications:
        _notifications.close()

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="breathe-tracker",
    description="BLE environmental-sensor tracking service",
    version=settings.service.version,
    lifespan=lifespan,
)


def _snapshot_payload() -> dict:
    bus = get_bus()
    if bus is None:
        return {}
    return bus.snapshot().model_dump(mode="json")


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": settings.service.name,
        "version": settings.service.version,
        "status": "running",
        "sensor_id": settings.tracking.sensor_id,
        "device_name": settings.tracking.device_name,
        "radio_backend": settings.radio.backend,
        "cloud_backend": settings.cloud.backend,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - is the engine tracking and the radio attached?

    Returns 503 if not ready.
    """
    engine = get_engine()
    radio = get_radio()

    engine_running = bool(engine and engine.running and _is_ready)
    if isinstance(radio, AdvertisementConsumer):
        radio_attached = radio.connected
    elif isinstance(radio, BleScannerSource):
        radio_attached = radio.scanning
    else:
        radio_attached = False

    body = {
        "engine_running": engine_running,
        "radio_attached": radio_attached,
        "connection_state": engine.connection_state.value if engine and engine.connection_state else None,
    }

    if engine_running:
        return JSONResponse({"status": "ready", **body})
    return JSONResponse({"status": "not_ready", **body}, status_code=503)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    engine = get_engine()
    buffer = get_buffer()
    radio = get_radio()
    bus = get_bus()

    radio_metrics = {}
    if isinstance(radio, AdvertisementConsumer):
        radio_metrics = {"connected": radio.connected, **radio.metrics.to_dict()}
    elif isinstance(radio, BleScannerSource):
        radio_metrics = radio.metrics()

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "frame_errors": _frame_error_count,
        "radio_backend": settings.radio.backend,
        "cloud_backend": settings.cloud.backend,
        "radio": radio_metrics,
        "buffer": buffer.metrics() if buffer else {},
        "engine": engine.metrics() if engine else {},
        "bus": bus.metrics() if bus else {},
    })


@app.get("/state")
async def state() -> JSONResponse:
    """Current published tracking state."""
    if get_bus() is None:
        return JSONResponse({"error": "Engine not started"}, status_code=503)
    return JSONResponse(_snapshot_payload())


@app.get("/incidents")
async def incidents() -> JSONResponse:
    """Recent auto-generated incidents, newest first."""
    engine = get_engine()
    if engine is None:
        return JSONResponse({"error": "Engine not started"}, status_code=503)
    records = [record.model_dump(mode="json") for record in reversed(engine.incidents())]
    return JSONResponse({"count": len(records), "incidents": records})


@app.post("/location")
async def update_location(message: LocationMessage) -> JSONResponse:
    """Update the host's current human-readable location."""
    engine = get_engine()
    if engine is None:
        return JSONResponse({"error": "Engine not started"}, status_code=503)
    engine.update_location(message.location)
    return JSONResponse({"location": message.location})


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/state")
async def state_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint pushing the tracking state whenever it changes."""
    await websocket.accept()
    logger.info("Client connected to /ws/state")

    loop = asyncio.get_running_loop()
    changed = asyncio.Event()

    # Watchdog expiry publishes from a timer thread
    def on_change(field: str, value: object) -> None:
        loop.call_soon_threadsafe(changed.set)

    async def wait_for_disconnect() -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    bus = get_bus()
    unsubscribe = bus.subscribe(on_change) if bus else None
    receiver = asyncio.create_task(wait_for_disconnect())

    try:
        await websocket.send_json(_snapshot_payload())
        while not _shutdown_flag and not receiver.done():
            waiter = asyncio.create_task(changed.wait())
            done, _ = await asyncio.wait(
                {waiter, receiver},
                timeout=1.0,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if waiter not in done:
                waiter.cancel()
                continue
            changed.clear()
            await websocket.send_json(_snapshot_payload())

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        receiver.cancel()
        if unsubscribe:
            unsubscribe()
        logger.info("Client disconnected from /ws/state")


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "breathe_tracker.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
