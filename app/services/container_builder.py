"""
Container Builder
=================

Extracts service container construction logic from ServiceContainer.build().

Each build_*() method constructs one subsystem:
- infrastructure: database and repositories
- mqtt: the publisher (real broker client or logging stand-in)
- hardware: serial link, command queue, delay scheduler, device control
- application: alerts, auto-control, the processing pipeline and the pollers

Nothing is started here; ServiceContainer.start() opens the port and
starts the worker threads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from app.config import AppConfig
from app.hardware.mqtt.mqtt_publisher import LoggingPublisher, MQTTPublisher, Publisher
from app.hardware.rs485.command_queue import CommandQueue
from app.hardware.rs485.serial_link import SerialLink
from app.services.application.alert_service import AlertService
from app.services.application.auto_control_service import AutoControlService
from app.services.application.data_processing_service import DataProcessingService
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
class InfrastructureComponents:
    database: SQLiteDatabaseHandler
    device_repo: DeviceRepository
    threshold_repo: ThresholdRepository
    strategy_repo: StrategyRepository
    alert_repo: AlertRepository
    reading_repo: ReadingRepository


@dataclass
class MQTTComponents:
    publisher: Publisher
    mqtt_publisher: MQTTPublisher | None


@dataclass
class HardwareComponents:
    serial_link: SerialLink
    command_queue: CommandQueue
    delay_scheduler: DelayScheduler
    device_control_service: DeviceControlService


@dataclass
class ApplicationComponents:
    alert_service: AlertService
    auto_control_service: AutoControlService
    data_processing_service: DataProcessingService
    sensor_polling_service: SensorPollingService


class ContainerBuilder:
    def __init__(self, config: AppConfig):
        self.config = config

    def build_infrastructure(self) -> InfrastructureComponents:
        """
        Build infrastructure layer (database, repositories).

        Returns:
            InfrastructureComponents with all repositories
        """
        logger.info("Building infrastructure components...")
        database = SQLiteDatabaseHandler(self.config.database_path)
        database.init_app(None)

        return InfrastructureComponents(
            database=database,
            device_repo=DeviceRepository(database),
            threshold_repo=ThresholdRepository(database),
            strategy_repo=StrategyRepository(database),
            alert_repo=AlertRepository(database),
            reading_repo=ReadingRepository(database),
        )

    def build_mqtt_components(self) -> MQTTComponents:
        """
        Build the MQTT publisher (if enabled).

        The broker connection itself is opened by ServiceContainer.start().
        """
        logger.info("Building MQTT components...")
        if not self.config.enable_mqtt:
            logger.info("MQTT disabled, readings and alerts are only logged")
            return MQTTComponents(publisher=LoggingPublisher(), mqtt_publisher=None)

        mqtt_publisher = MQTTPublisher(
            broker=self.config.mqtt_broker_host,
            port=self.config.mqtt_broker_port,
            client_id=self.config.mqtt_client_id,
        )
        logger.info("✓ MQTT publisher initialized")
        return MQTTComponents(publisher=mqtt_publisher, mqtt_publisher=mqtt_publisher)

    def build_hardware_components(self, infra: InfrastructureComponents) -> HardwareComponents:
        logger.info("Building hardware components...")
        serial_link = SerialLink(timeout_s=self.config.serial_timeout_s)
        command_queue = CommandQueue(serial_link, min_spacing_s=self.config.command_spacing_s)
        delay_scheduler = DelayScheduler()
        device_control_service = DeviceControlService(
            devices=infra.device_repo,
            command_queue=command_queue,
            scheduler=delay_scheduler,
            settle_s=self.config.control_settle_s,
        )
        return HardwareComponents(
            serial_link=serial_link,
            command_queue=command_queue,
            delay_scheduler=delay_scheduler,
            device_control_service=device_control_service,
        )

    def build_application_services(
        self,
        infra: InfrastructureComponents,
        mqtt: MQTTComponents,
        hardware: HardwareComponents,
    ) -> ApplicationComponents:
        logger.info("Building application services...")
        alert_service = AlertService(
            alert_repo=infra.alert_repo,
            threshold_repo=infra.threshold_repo,
            publisher=mqtt.publisher,
            alert_topic=self.config.mqtt_alert_topic,
        )
        auto_control_service = AutoControlService(
            strategy_repo=infra.strategy_repo,
            device_repo=infra.device_repo,
            controller=hardware.device_control_service,
            command_queue=hardware.command_queue,
            scheduler=hardware.delay_scheduler,
            cooldown_s=self.config.auto_control_cooldown_s,
            on_spacing_s=self.config.auto_control_on_spacing_s,
        )
        data_processing_service = DataProcessingService(
            device_repo=infra.device_repo,
            reading_repo=infra.reading_repo,
            publisher=mqtt.publisher,
            alert_service=alert_service,
            auto_control=auto_control_service,
            default_topic=self.config.mqtt_default_topic,
        )
        sensor_polling_service = SensorPollingService(
            device_repo=infra.device_repo,
            command_queue=hardware.command_queue,
            consumer=data_processing_service.process_and_store,
            poll_interval_s=self.config.poll_interval_s,
            response_delay_s=self.config.sensor_response_delay_s,
            max_read_bytes=self.config.sensor_read_max_bytes,
        )
        return ApplicationComponents(
            alert_service=alert_service,
            auto_control_service=auto_control_service,
            data_processing_service=data_processing_service,
            sensor_polling_service=sensor_polling_service,
        )

    def build(self) -> dict[str, Any]:
        """
        Build the complete service container.

        Returns:
            Dictionary with all components for ServiceContainer construction
        """
        logger.info("Building ServiceContainer with ContainerBuilder...")
        infra = self.build_infrastructure()
        mqtt = self.build_mqtt_components()
        hardware = self.build_hardware_components(infra)
        services = self.build_application_services(infra, mqtt, hardware)

        return {
            "config": self.config,
            **vars(infra),
            **vars(mqtt),
            **vars(hardware),
            **vars(services),
        }
