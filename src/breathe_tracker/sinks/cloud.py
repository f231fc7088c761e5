"""
Cloud Sinks
===========

Best-effort forwarding of accepted measurements to a cloud document store.

Per accepted measurement a sink performs:
    (a) an append to the sensor's measurement history, and
    (b) a merge-upsert of the sensor's "latest" document plus last_contact.
On watchdog-declared disconnection it merge-upserts
    {status: "disconnected", last_contact: <server timestamp>}.

Design Rules:
    - Writes are fire-and-forget; the engine never waits on them
    - Failures are logged, never retried, never propagated
    - The engine's local state is authoritative; the cloud copy is not
"""

import logging
import time
from typing import Any, Optional, Protocol

from breathe_tracker.models.state import ConnectionState, MeasurementRecord
from breathe_tracker.sinks.background import BackgroundDispatcher


logger = logging.getLogger(__name__)


class CloudSinkError(Exception):
    """Raised when a cloud sink cannot be initialized."""
    pass


class CloudSink(Protocol):
    """
    Protocol for cloud backends.

    Implementations must return immediately from both write methods.
    """

    def record_measurement(self, sensor_id: str, record: MeasurementRecord) -> None:
        ...

    def mark_disconnected(self, sensor_id: str) -> None:
        ...

    def close(self) -> None:
        ...


class LoggingCloudSink:
    """Cloud sink that only logs writes (development and tests)."""

    def __init__(self) -> None:
        self._records: int = 0
        self._disconnections: int = 0

    def record_measurement(self, sensor_id: str, record: MeasurementRecord) -> None:
        self._records += 1
        logger.info(
            f"[cloud:{sensor_id}] measurement ozone={record.ozone:.3f} "
            f"temperature={record.temperature:.1f} co2={record.co2} "
            f"battery={record.battery} location={record.location!r}"
        )

    def mark_disconnected(self, sensor_id: str) -> None:
        self._disconnections += 1
        logger.info(f"[cloud:{sensor_id}] status=disconnected at {time.time():.0f}")

    def close(self) -> None:
        pass

    def metrics(self) -> dict:
        return {"records": self._records, "disconnections": self._disconnections}


class FirestoreCloudSink:
    """
    Google Cloud Firestore sink.

    Document layout:
        <sensors_collection>/<sensor_id>                       latest reading
        <sensors_collection>/<sensor_id>/<measurements>/<auto>  history

    Attributes:
        sensors_collection: Top-level collection of sensor documents
        measurements_collection: Per-sensor history sub-collection
    """

    def __init__(
        self,
        project: Optional[str] = None,
        credentials_path: Optional[str] = None,
        sensors_collection: str = "sensors",
        measurements_collection: str = "measurements",
        max_workers: int = 2,
        client: Optional[Any] = None,
    ) -> None:
        """
        Initialize Firestore sink.

        Args:
            project: GCP project id (None = from environment)
            credentials_path: Service account JSON (None = default credentials)
            sensors_collection: Sensor documents collection
            measurements_collection: History sub-collection
            max_workers: Background writer threads
            client: Pre-built firestore.Client (skips client creation)

        Raises:
            ImportError: If google-cloud-firestore is not installed
            CloudSinkError: If the client cannot be created
        """
        self.sensors_collection = sensors_collection
        self.measurements_collection = measurements_collection

        self._firestore = None
        self._client = client
        self._init_client(project, credentials_path)

        self._dispatcher = BackgroundDispatcher("firestore", max_workers=max_workers)

        logger.info(
            f"FirestoreCloudSink initialized: collection={sensors_collection}, "
            f"history={measurements_collection}"
        )

    def _init_client(self, project: Optional[str], credentials_path: Optional[str]) -> None:
        """Initialize the Firestore client."""
        try:
            from google.cloud import firestore

            self._firestore = firestore
            if self._client is not None:
                logger.info("Firestore client provided by caller")
            elif credentials_path:
                self._client = firestore.Client.from_service_account_json(
                    credentials_path,
                    project=project,
                )
                logger.info(f"Firestore client initialized from: {credentials_path}")
            else:
                # Use default credentials (ADC)
                self._client = firestore.Client(project=project)
                logger.info("Firestore client initialized with default credentials")

        except ImportError:
            raise ImportError(
                "google-cloud-firestore is required for FirestoreCloudSink. "
                "Install with: pip install google-cloud-firestore"
            )
        except Exception as e:
            raise CloudSinkError(f"Failed to initialize Firestore client: {e}")

    def _sensor_doc(self, sensor_id: str):
        return self._client.collection(self.sensors_collection).document(sensor_id)

    def record_measurement(self, sensor_id: str, record: MeasurementRecord) -> None:
        fields = {
            "ozone": record.ozone,
            "temperature": record.temperature,
            "co2": record.co2,
            "battery": record.battery,
            "location": record.location,
            "status": record.status.value if record.status else None,
        }
        server_time = self._firestore.SERVER_TIMESTAMP

        self._dispatcher.submit(
            f"history append for {sensor_id}",
            self._append_history,
            sensor_id,
            {**fields, "timestamp": server_time},
        )
        self._dispatcher.submit(
            f"latest upsert for {sensor_id}",
            self._merge_latest,
            sensor_id,
            {**fields, "last_contact": server_time},
        )

    def mark_disconnected(self, sensor_id: str) -> None:
        self._dispatcher.submit(
            f"disconnection upsert for {sensor_id}",
            self._merge_latest,
            sensor_id,
            {
                "status": ConnectionState.DISCONNECTED.value,
                "last_contact": self._firestore.SERVER_TIMESTAMP,
            },
        )

    def _append_history(self, sensor_id: str, data: dict) -> None:
        self._sensor_doc(sensor_id).collection(self.measurements_collection).add(data)

    def _merge_latest(self, sensor_id: str, data: dict) -> None:
        self._sensor_doc(sensor_id).set(data, merge=True)

    def close(self) -> None:
        self._dispatcher.close()

    def metrics(self) -> dict:
        return self._dispatcher.metrics()
