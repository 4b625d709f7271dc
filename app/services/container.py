from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from app.config import AppConfig
from app.hardware.mqtt.mqtt_publisher import MQTTPublisher, Publisher
from app.hardware.rs485.command_queue import CommandQueue
from app.hardware.rs485.serial_link import SerialLink
from app.services.application.alert_service import AlertService
from app.services.application.auto_control_service import AutoControlService
from app.services.application.data_processing_service import DataProcessingService
from app.services.container_builder import ContainerBuilder
from app.services.hardware.device_control_service import DeviceControlService
from app.services.hardware.sensor_polling_service import SensorPollingService
from app.workers.delay_scheduler import DelayScheduler
from infrastructure.database.repositories.alerts import AlertRepository
from infrastructure.database.repositories.control import StrategyRepository, ThresholdRepository
from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.repositories.readings import ReadingRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Aggregate and manage core station services."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    device_repo: DeviceRepository
    threshold_repo: ThresholdRepository
    strategy_repo: StrategyRepository
    alert_repo: AlertRepository
    reading_repo: ReadingRepository
    publisher: Publisher
    mqtt_publisher: MQTTPublisher | None
    serial_link: SerialLink
    command_queue: CommandQueue
    delay_scheduler: DelayScheduler
    device_control_service: DeviceControlService
    alert_service: AlertService
    auto_control_service: AutoControlService
    data_processing_service: DataProcessingService
    sensor_polling_service: SensorPollingService

    @classmethod
    def build(cls, config: AppConfig) -> "ServiceContainer":
        """Construct the service container with all dependencies (nothing is started)."""
        logger.info("Building ServiceContainer using ContainerBuilder...")
        container = cls(**ContainerBuilder(config).build())
        logger.info("ServiceContainer built successfully.")
        return container

    def start(self, *, start_polling: bool = True) -> None:
        """
        Open the serial port and start the worker threads.

        A port that cannot be opened is logged and startup continues: the
        queue still runs and every write reports failure until the port
        comes back on the next restart.
        """
        if not self.serial_link.open(self.config.serial_port, self.config.serial_baud_rate):
            logger.error("❌ Serial port %s unavailable, devices will not respond", self.config.serial_port)

        self.command_queue.start()
        self.delay_scheduler.start()

        if self.mqtt_publisher is not None and not self.mqtt_publisher.connect():
            logger.warning("⚠️  MQTT broker unavailable, publishes will fail until it reconnects")

        if start_polling:
            self.sensor_polling_service.start_polling()
        logger.info("🚀 Station core started")

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        try:
            self.sensor_polling_service.stop_polling()
            logger.info("✓ Sensor polling stopped")
        except Exception as e:
            logger.warning("Failed to stop sensor polling: %s", e)

        self.auto_control_service.shutdown()
        self.device_control_service.shutdown()

        try:
            self.delay_scheduler.stop()
            logger.info("✓ DelayScheduler stopped")
        except Exception as e:
            logger.warning("Failed to stop DelayScheduler: %s", e)

        try:
            self.command_queue.stop()
            logger.info("✓ Command queue stopped")
        except Exception as e:
            logger.warning("Failed to stop command queue: %s", e)

        # Then close connections
        self.serial_link.close()
        if self.mqtt_publisher is not None:
            self.mqtt_publisher.disconnect()
        self.database.close_db()
        logger.info("ServiceContainer shutdown complete.")

    def serial_status(self) -> dict[str, Any]:
        return {
            "port": self.config.serial_port,
            "baud_rate": self.config.serial_baud_rate,
            "status": self.serial_link.port_status(),
            "available_ports": SerialLink.list_ports(),
            "command_queue": self.command_queue.get_status(),
            "polling": self.sensor_polling_service.get_service_status(),
            "pending_timers": self.delay_scheduler.pending_keys(),
        }
