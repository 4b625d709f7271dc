"""
Schemas Module
==============

Pydantic models for request validation and the alert payload published over MQTT.
"""

from app.schemas.events import AlertPayload, DeviceControlRequest, ReadingPushRequest

__all__ = [
    "AlertPayload",
    "DeviceControlRequest",
    "ReadingPushRequest",
]
