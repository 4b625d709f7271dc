"""
Configuration for the station runtime
=====================================
Serial link, timing, MQTT and HTTP settings read from the environment.
Timing defaults match the RS485 sensors and relays deployed in the field.
Sets up the logging configuration as well.
"""

import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("STATION_ENV", "development"))
    database_path: str = field(default_factory=lambda: os.getenv("STATION_DATABASE_PATH", "database/station.db"))

    # Serial link
    serial_port: str = field(default_factory=lambda: os.getenv("STATION_SERIAL_PORT", "/dev/ttyUSB0"))
    serial_baud_rate: int = field(default_factory=lambda: _env_int("STATION_SERIAL_BAUD_RATE", 9600))
    serial_timeout_s: float = field(default_factory=lambda: _env_float("STATION_SERIAL_TIMEOUT_S", 1.0))

    # Command queue / polling timings
    command_spacing_ms: int = field(default_factory=lambda: _env_int("STATION_COMMAND_SPACING_MS", 500))
    sensor_response_delay_ms: int = field(default_factory=lambda: _env_int("STATION_SENSOR_RESPONSE_DELAY_MS", 200))
    sensor_read_max_bytes: int = field(default_factory=lambda: _env_int("STATION_SENSOR_READ_MAX_BYTES", 256))
    poll_interval_s: float = field(default_factory=lambda: _env_float("STATION_POLL_INTERVAL_S", 5.0))

    # Actuator control
    control_settle_s: float = field(default_factory=lambda: _env_float("STATION_CONTROL_SETTLE_S", 8.0))
    auto_control_cooldown_s: float = field(default_factory=lambda: _env_float("STATION_AUTO_CONTROL_COOLDOWN_S", 120.0))
    auto_control_on_spacing_ms: int = field(
        default_factory=lambda: _env_int("STATION_AUTO_CONTROL_ON_SPACING_MS", 1000)
    )

    # MQTT publication
    enable_mqtt: bool = field(default_factory=lambda: _env_bool("STATION_ENABLE_MQTT", True))
    mqtt_broker_host: str = field(default_factory=lambda: os.getenv("STATION_MQTT_HOST", "localhost"))
    mqtt_broker_port: int = field(default_factory=lambda: _env_int("STATION_MQTT_PORT", 1883))
    mqtt_client_id: str = field(default_factory=lambda: os.getenv("STATION_MQTT_CLIENT_ID", "station-core"))
    mqtt_default_topic: str = field(default_factory=lambda: os.getenv("STATION_MQTT_DEFAULT_TOPIC", "/fish-dish/unknown"))
    mqtt_alert_topic: str = field(default_factory=lambda: os.getenv("STATION_MQTT_ALERT_TOPIC", "/fish-dish/alerts"))

    # HTTP
    http_host: str = field(default_factory=lambda: os.getenv("STATION_HTTP_HOST", "0.0.0.0"))
    http_port: int = field(default_factory=lambda: _env_int("STATION_HTTP_PORT", 8080))

    DEBUG: bool = field(default_factory=lambda: _env_bool("STATION_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("STATION_LOG_LEVEL", "INFO"))
    log_path: str = field(default_factory=lambda: os.getenv("STATION_LOG_PATH", "logs/station.log"))

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.serial_baud_rate <= 0:
            raise ValueError("STATION_SERIAL_BAUD_RATE must be positive.")
        if self.command_spacing_ms < 0 or self.sensor_response_delay_ms < 0:
            raise ValueError("Serial timings must not be negative.")
        if self.sensor_read_max_bytes <= 0:
            raise ValueError("STATION_SENSOR_READ_MAX_BYTES must be positive.")

    @property
    def command_spacing_s(self) -> float:
        return self.command_spacing_ms / 1000.0

    @property
    def sensor_response_delay_s(self) -> float:
        return self.sensor_response_delay_ms / 1000.0

    @property
    def auto_control_on_spacing_s(self) -> float:
        return self.auto_control_on_spacing_ms / 1000.0

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "DATABASE_PATH": self.database_path,
            "SERIAL_PORT": self.serial_port,
            "SERIAL_BAUD_RATE": self.serial_baud_rate,
            "MQTT_BROKER_HOST": self.mqtt_broker_host,
            "MQTT_BROKER_PORT": self.mqtt_broker_port,
            "DEBUG": self.DEBUG,
        }


def setup_logging(debug: bool = False, log_path: str = "logs/station.log") -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    log_level = logging.DEBUG if debug else logging.INFO

    root = logging.getLogger()
    root.setLevel(log_level)

    # Avoid adding duplicate handlers when called more than once
    has_console = any(getattr(h, "name", "") == "station_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "station_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "station_console"
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file:
        log_dir = os.path.dirname(log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "station_file"
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"station_console", "station_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info(f"Logging initialized at level: {logging.getLevelName(log_level)}")

    if _env_bool("STATION_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    config = AppConfig()
    if config.log_level.upper() == "DEBUG":
        config.DEBUG = True
    return config
