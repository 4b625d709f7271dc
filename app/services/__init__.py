"""
Service Organization
====================
Services are organized by what they drive:

**application/**
  Singleton services managed by ServiceContainer that work on decoded data.
  Examples: AlertService, AutoControlService, DataProcessingService

**hardware/**
  Services that put frames on the RS485 bus through the command queue.
  Examples: SensorPollingService, DeviceControlService
"""

from .application.alert_service import AlertService
from .application.auto_control_service import AutoControlService
from .application.data_processing_service import DataProcessingService
from .hardware.device_control_service import DeviceControlService
from .hardware.sensor_polling_service import SensorPollingService

__all__ = [
    "AlertService",
    "AutoControlService",
    "DataProcessingService",
    "DeviceControlService",
    "SensorPollingService",
]
