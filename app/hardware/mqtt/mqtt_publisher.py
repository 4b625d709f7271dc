"""
MQTT publication for readings and alerts.

The station only publishes: device readings go to the topic configured per
device, alerts go to a fixed alerts topic. :class:`LoggingPublisher` stands
in when MQTT is disabled so the pipeline does not need to branch.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Protocol

import paho.mqtt.client as mqtt

from app.utils.time import utc_now

logger = logging.getLogger(__name__)

# Publish traffic gets its own rotating file so it cannot flood the main log
_mqtt_logger = logging.getLogger("station.mqtt")
if not _mqtt_logger.handlers:
    os.makedirs("logs", exist_ok=True)
    _mqtt_handler = RotatingFileHandler(
        "logs/devices_mqtt.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    _mqtt_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    _mqtt_logger.addHandler(_mqtt_handler)
    _mqtt_logger.setLevel(logging.INFO)
    _mqtt_logger.propagate = False


class Publisher(Protocol):
    """Publish boundary used by the alert engine and the data pipeline."""

    def publish(self, topic: str, payload: str, qos: int = 0) -> bool: ...


def create_mqtt_client(client_id: str = "", **kwargs: Any) -> mqtt.Client:
    """
    Build an MQTT client that works with both paho-mqtt 1.x and 2.x.

    2.x requires a callback API version; we ask for VERSION1 so the
    connect/disconnect handlers keep their 1.x signatures.
    """
    client_kwargs: dict[str, Any] = {"client_id": client_id or ""}
    client_kwargs["protocol"] = kwargs.pop("protocol", getattr(mqtt, "MQTTv311", 4))
    client_kwargs.update(kwargs)

    callback_api_version = getattr(mqtt, "CallbackAPIVersion", None)
    if callback_api_version is not None and hasattr(callback_api_version, "VERSION1"):
        client_kwargs["callback_api_version"] = callback_api_version.VERSION1

    try:
        return mqtt.Client(**client_kwargs)
    except TypeError:
        # paho < 2.0 does not know callback_api_version
        client_kwargs.pop("callback_api_version", None)
        return mqtt.Client(**client_kwargs)


@dataclass
class HealthStatus:
    """
    Tracks the health status of the MQTT publisher.
    """

    is_connected: bool = False
    last_error: str | None = None
    last_error_time: datetime | None = None
    connection_attempts: int = 0
    successful_publishes: int = 0
    failed_publishes: int = 0

    @property
    def success_rate(self) -> float:
        """Calculate publish success rate percentage"""
        total_publishes = self.successful_publishes + self.failed_publishes
        if total_publishes == 0:
            return 0.0
        return (self.successful_publishes / total_publishes) * 100

    def record_error(self, error: Exception | str):
        self.last_error = str(error)
        self.last_error_time = utc_now()

    def to_dict(self):
        return {
            "is_connected": self.is_connected,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "connection_attempts": self.connection_attempts,
            "successful_publishes": self.successful_publishes,
            "failed_publishes": self.failed_publishes,
            "publish_success_rate": round(self.success_rate, 2),
        }


class MQTTPublisher:
    """
    Publish-only MQTT client with connection tracking.
    """

    def __init__(self, broker: str, port: int, client_id: str = "", keepalive: int = 60):
        """
        Args:
            broker (str): The MQTT broker address.
            port (int): The MQTT broker port.
            client_id (str, optional): The MQTT client ID.
            keepalive (int, optional): Keepalive interval in seconds.
        """
        self.broker = broker
        self.port = port
        self.client_id = client_id
        self.keepalive = keepalive
        self.health_status = HealthStatus()
        self._lock = threading.Lock()
        self.client = create_mqtt_client(client_id=client_id)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

    def connect(self) -> bool:
        """Connect and start the network loop; paho reconnects on its own afterwards."""
        self.health_status.connection_attempts += 1
        try:
            self.client.connect(self.broker, self.port, self.keepalive)
            self.client.loop_start()
        except Exception as e:
            self.health_status.is_connected = False
            self.health_status.record_error(e)
            _mqtt_logger.error("Error connecting to MQTT broker %s:%s: %s", self.broker, self.port, e)
            logger.warning("MQTT broker %s:%s unreachable: %s", self.broker, self.port, e)
            return False
        self.health_status.is_connected = True
        _mqtt_logger.info("Connected to MQTT broker %s:%s", self.broker, self.port)
        return True

    def disconnect(self) -> None:
        try:
            self.client.loop_stop()
            self.client.disconnect()
        except Exception as e:
            self.health_status.record_error(e)
            _mqtt_logger.error("Error disconnecting from MQTT broker: %s", e)
        finally:
            self.health_status.is_connected = False

    def _on_connect(self, client, userdata, flags, rc):
        self.health_status.is_connected = rc == 0
        if rc != 0:
            self.health_status.record_error(f"connect returned rc={rc}")
            _mqtt_logger.error("MQTT connection refused, rc=%s", rc)

    def _on_disconnect(self, client, userdata, rc):
        self.health_status.is_connected = False
        if rc != 0:
            _mqtt_logger.warning("Unexpected MQTT disconnect, rc=%s", rc)

    def publish(self, topic: str, payload: str, qos: int = 0) -> bool:
        """
        Publishes a message to the MQTT broker.

        Args:
            topic (str): The MQTT topic to publish to.
            payload (str): The JSON payload.
            qos (int): 0 for readings, 1 for alerts.
        """
        with self._lock:
            try:
                msg_info = self.client.publish(topic, payload, qos=qos)
            except Exception as e:
                self.health_status.failed_publishes += 1
                self.health_status.record_error(e)
                _mqtt_logger.error("Error publishing to %s: %s", topic, e)
                return False

            if msg_info.rc == mqtt.MQTT_ERR_SUCCESS:
                self.health_status.successful_publishes += 1
                _mqtt_logger.debug("Published to %s (qos=%s): %s", topic, qos, payload)
                return True

            self.health_status.failed_publishes += 1
            _mqtt_logger.error("Failed to publish to %s. MQTT result code: %s", topic, msg_info.rc)
            return False


class LoggingPublisher:
    """Publisher used when MQTT is disabled; messages only reach the log."""

    def __init__(self):
        self.published: int = 0

    def publish(self, topic: str, payload: str, qos: int = 0) -> bool:
        self.published += 1
        _mqtt_logger.info("[mqtt disabled] %s (qos=%s): %s", topic, qos, payload)
        return True
