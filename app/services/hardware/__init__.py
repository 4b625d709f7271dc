"""
Hardware Service Layer
======================
Services that talk to devices on the RS485 bus.

Services:
- SensorPollingService: one polling loop per sensor, decoded readings go to the pipeline
- DeviceControlService: on/off control of relays, including pulsed two-phase relays

Architecture:
    ServiceContainer
      ├─ CommandQueue (single writer on the serial link)
      ├─ SensorPollingService
      └─ DeviceControlService
"""

from app.services.hardware.device_control_service import DeviceControlService
from app.services.hardware.sensor_polling_service import SensorHealth, SensorPollingService

__all__ = [
    "DeviceControlService",
    "SensorHealth",
    "SensorPollingService",
]
