"""
breathe-tracker Configuration
=============================

This module handles configuration loading for the sensor-tracking service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    BREATHE_SENSOR_ID          -> tracking.sensor_id
    BREATHE_DEVICE_NAME        -> tracking.device_name
    BREATHE_WATCHDOG_DELAY     -> watchdog.delay_seconds
    BREATHE_RSSI_ALPHA         -> signal.rssi_alpha
    BREATHE_RADIO_BACKEND      -> radio.backend
    BREATHE_BRIDGE_URL         -> radio.url
    BREATHE_MAX_QUEUE_SIZE     -> radio.max_queue_size
    BREATHE_CLOUD_BACKEND      -> cloud.backend
    BREATHE_FIRESTORE_PROJECT  -> cloud.project
    BREATHE_NOTIFY_BACKEND     -> notifications.backend
    BREATHE_WEBHOOK_URL        -> notifications.webhook_url
    BREATHE_LOG_LEVEL          -> logging.level
    PORT / BREATHE_PORT        -> server.port

Example:
    from breathe_tracker.config import settings

    print(settings.tracking.device_name)
    print(settings.watchdog.delay_seconds)
    print(settings.thresholds.co2_ppm)
"""

import os
import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="breathe-tracker", description="Service name")
    version: str = Field(default="0.1.0", description="Service version")


class TrackingConfig(BaseModel):
    """Beacon identity and tracking behaviour."""

    sensor_id: str = Field(
        default="SENSOR-001",
        min_length=1,
        description="Identifier used for cloud documents",
    )
    device_name: str = Field(
        default="rocio",
        min_length=1,
        description="Advertised name of the beacon",
    )
    company_id: int = Field(
        default=0x004C,
        ge=0,
        le=0xFFFF,
        description="Company identifier carrying the payload",
    )
    frame_length: int = Field(default=9, ge=9, description="Expected payload length")
    sentinel: int = Field(default=0xAA, ge=0, le=0xFF, description="Expected payload byte 0")
    require_location: bool = Field(
        default=True,
        description="Skip cloud uploads until a location is known",
    )
    incident_history: int = Field(
        default=50,
        ge=1,
        description="Number of auto-generated incidents kept in memory",
    )


class WatchdogConfig(BaseModel):
    """Connection watchdog configuration."""

    delay_seconds: float = Field(
        default=180.0,
        gt=0,
        description="Silence window before the sensor is declared disconnected",
    )


class SignalConfig(BaseModel):
    """Signal strength smoothing configuration."""

    rssi_alpha: float = Field(
        default=0.2,
        gt=0,
        le=1.0,
        description="EMA smoothing factor for RSSI (0, 1]",
    )


class ThresholdsConfig(BaseModel):
    """Alert thresholds."""

    co2_ppm: int = Field(default=1200, ge=0, description="CO2 raise threshold (>=)")
    ozone_ppm: float = Field(default=0.9, ge=0, description="Ozone raise threshold (>=)")
    temperature_c: float = Field(default=35.0, description="Temperature raise threshold (>)")
    battery_pct: int = Field(default=15, ge=0, description="Battery raise threshold (<=)")


class RadioConfig(BaseModel):
    """Radio source configuration."""

    backend: Literal["bridge", "ble"] = Field(
        default="bridge",
        description="Radio backend: 'bridge' (WebSocket) or 'ble' (bleak)",
    )
    url: str = Field(
        default="ws://localhost:8765/ws/advertisements",
        description="WebSocket URL of the BLE bridge",
    )
    reconnect_backoff_ms: int = Field(
        default=1000,
        ge=100,
        description="Backoff in milliseconds between reconnect attempts",
    )
    max_reconnect_attempts: int = Field(
        default=0,
        ge=0,
        description="Maximum reconnection attempts (0 = unlimited)",
    )
    max_queue_size: int = Field(
        default=100,
        ge=1,
        description="Maximum size of internal advertisement buffer",
    )


class CloudConfig(BaseModel):
    """Cloud sink configuration."""

    backend: Literal["log", "firestore"] = Field(
        default="log",
        description="Cloud backend: 'log' or 'firestore'",
    )
    project: Optional[str] = Field(default=None, description="GCP project id")
    credentials_path: Optional[str] = Field(
        default=None,
        description="Service account JSON (None = default credentials)",
    )
    sensors_collection: str = Field(default="sensors", description="Sensor documents")
    measurements_collection: str = Field(
        default="measurements",
        description="Per-sensor history sub-collection",
    )
    max_workers: int = Field(default=2, ge=1, description="Background writer threads")


class NotificationsConfig(BaseModel):
    """Notification sink configuration."""

    backend: Literal["log", "webhook"] = Field(
        default="log",
        description="Notification backend: 'log' or 'webhook'",
    )
    webhook_url: Optional[str] = Field(default=None, description="Webhook endpoint")
    timeout_seconds: float = Field(default=5.0, gt=0, description="Webhook timeout")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for breathe-tracker.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    watchdog: WatchdogConfig = Field(default_factory=WatchdogConfig)
    signal: SignalConfig = Field(default_factory=SignalConfig)
    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    radio: RadioConfig = Field(default_factory=RadioConfig)
    cloud: CloudConfig = Field(default_factory=CloudConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration

    Raises:
        pydantic.ValidationError: If a value is out of range or a backend
            name is unknown.
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Tracking settings
    if env_sensor := os.environ.get("BREATHE_SENSOR_ID"):
        config_data.setdefault("tracking", {})["sensor_id"] = env_sensor
    if env_name := os.environ.get("BREATHE_DEVICE_NAME"):
        config_data.setdefault("tracking", {})["device_name"] = env_name

    # Watchdog and signal
    if env_delay := os.environ.get("BREATHE_WATCHDOG_DELAY"):
        config_data.setdefault("watchdog", {})["delay_seconds"] = float(env_delay)
    if env_alpha := os.environ.get("BREATHE_RSSI_ALPHA"):
        config_data.setdefault("signal", {})["rssi_alpha"] = float(env_alpha)

    # Radio settings
    if env_radio := os.environ.get("BREATHE_RADIO_BACKEND"):
        config_data.setdefault("radio", {})["backend"] = env_radio
    if env_url := os.environ.get("BREATHE_BRIDGE_URL"):
        config_data.setdefault("radio", {})["url"] = env_url
    if env_queue := os.environ.get("BREATHE_MAX_QUEUE_SIZE"):
        config_data.setdefault("radio", {})["max_queue_size"] = int(env_queue)

    # Sinks
    if env_cloud := os.environ.get("BREATHE_CLOUD_BACKEND"):
        config_data.setdefault("cloud", {})["backend"] = env_cloud
    if env_project := os.environ.get("BREATHE_FIRESTORE_PROJECT"):
        config_data.setdefault("cloud", {})["project"] = env_project
    if env_notify := os.environ.get("BREATHE_NOTIFY_BACKEND"):
        config_data.setdefault("notifications", {})["backend"] = env_notify
    if env_webhook := os.environ.get("BREATHE_WEBHOOK_URL"):
        config_data.setdefault("notifications", {})["webhook_url"] = env_webhook

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("BREATHE_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("BREATHE_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
