"""
Data Processing Service
=======================
Consumer of every decoded reading: store, publish, check thresholds, then
run the auto-control strategies.

Weather and water-quality readings go to their typed tables; readings of
other devices are published only. Failures at any step are logged and the
remaining steps still run, so a broken broker or database never stops the
pollers.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from app.domain.sensors.reading import Reading
from app.enums.device import DeviceType
from app.hardware.mqtt.mqtt_publisher import Publisher
from app.services.application.alert_service import AlertService
from app.services.application.auto_control_service import AutoControlService
from infrastructure.database.repositories.base import DeviceStore, ReadingStore

logger = logging.getLogger(__name__)

# Parameters checked against thresholds, with the unit used in alert messages
WATER_QUALITY_UNITS: dict[str, str] = {
    "ph_value": "",
    "dissolved_oxygen": "mg/L",
    "ammonia_nitrogen": "mg/L",
    "water_temperature": "℃",
    "conductivity": "μS/cm",
}

WEATHER_UNITS: dict[str, str] = {
    "temperature": "℃",
    "humidity": "%",
    "wind_speed": "m/s",
    "light_intensity": "lux",
    "rainfall": "mm",
    "air_pressure": "hPa",
}


def units_for(device_type: DeviceType) -> dict[str, str]:
    if device_type is DeviceType.WATER_QUALITY:
        return WATER_QUALITY_UNITS
    if device_type is DeviceType.WEATHER:
        return WEATHER_UNITS
    return {}


class DataProcessingService:
    def __init__(
        self,
        device_repo: DeviceStore,
        reading_repo: ReadingStore,
        publisher: Publisher,
        alert_service: AlertService,
        auto_control: AutoControlService,
        default_topic: str = "/fish-dish/unknown",
    ):
        self.device_repo = device_repo
        self.reading_repo = reading_repo
        self.publisher = publisher
        self.alert_service = alert_service
        self.auto_control = auto_control
        self.default_topic = default_topic

    def __call__(self, reading: Reading) -> None:
        self.process_and_store(reading)

    def process_and_store(self, reading: Reading) -> None:
        """Run the full pipeline for one reading. Never raises."""
        topic = self.resolve_topic(reading.device_id)
        self._store(reading)
        self._publish(topic, reading)
        self._check_alerts(reading)
        try:
            self.auto_control.check_and_execute_strategy(reading)
        except Exception as e:
            logger.error("Auto-control for device %s failed: %s", reading.device_id, e, exc_info=True)

    def resolve_topic(self, device_id: int) -> str:
        try:
            topic = self.device_repo.get_mqtt_topic(device_id)
        except Exception as e:
            logger.error("Could not load MQTT topic of device %s: %s", device_id, e)
            topic = None
        if not topic:
            logger.warning("Device %s has no MQTT topic, using %s", device_id, self.default_topic)
            return self.default_topic
        return topic

    def _store(self, reading: Reading) -> None:
        try:
            row_id = self.reading_repo.save(reading)
        except Exception as e:
            logger.error("Storing reading of device %s failed: %s", reading.device_id, e, exc_info=True)
            return
        if row_id is not None:
            logger.debug("Reading of device %s stored as %s row %s", reading.device_id, reading.data_type, row_id)

    def _publish(self, topic: str, reading: Reading) -> None:
        try:
            payload = json.dumps(reading.to_dict(), ensure_ascii=False, default=str)
            if not self.publisher.publish(topic, payload):
                logger.warning("Reading of device %s was not published to %s", reading.device_id, topic)
        except Exception as e:
            logger.error("Publishing reading of device %s failed: %s", reading.device_id, e)

    def _check_alerts(self, reading: Reading) -> list[Any]:
        raised = []
        for param_name, unit in units_for(reading.device_type).items():
            value = reading.numeric_value(param_name)
            if value is None:
                continue
            alert = self.alert_service.check_and_generate_alert(
                device_id=reading.device_id,
                device_name=reading.device_name,
                device_type=reading.data_type,
                pasture_id=reading.pasture_id,
                batch_id=reading.batch_id,
                param_name=param_name,
                value=float(value),
                unit=unit,
            )
            if alert is not None:
                raised.append(alert)
        return raised
