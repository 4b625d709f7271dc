from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from app.domain.devices import Device
from app.enums.device import ControlStatus, DeviceType
from infrastructure.database.ops.devices import DeviceOperations

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceRepository:
    """Facade over serial device persistence."""

    _backend: DeviceOperations

    def create(self, **fields: Any) -> int | None:
        device_type = fields.get("device_type")
        if isinstance(device_type, DeviceType):
            fields["device_type"] = device_type.value
        return self._backend.insert_device(**fields)

    def get(self, device_id: int) -> Device | None:
        row = self._backend.get_device(device_id)
        return Device.from_row(row) if row else None

    def list_by_types(self, device_types: Iterable[DeviceType | str]) -> list[Device]:
        tags = [t.value if isinstance(t, DeviceType) else str(t) for t in device_types]
        devices: list[Device] = []
        for row in self._backend.list_devices_by_types(tags):
            try:
                devices.append(Device.from_row(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed device row %s: %s", row.get("device_id"), e)
        return devices

    def set_control_status(self, device_id: int, status: ControlStatus) -> bool:
        return self._backend.update_control_status(device_id, status.value)

    def mark_online(self, device_id: int, seen_at: str | None = None) -> bool:
        return self._backend.mark_device_online(device_id, seen_at)

    def set_mqtt_topic(self, device_id: int, topic: str, qos: int = 0) -> bool:
        return self._backend.upsert_mqtt_config(device_id, topic, qos)

    def get_mqtt_topic(self, device_id: int) -> str | None:
        config = self._backend.get_mqtt_config(device_id)
        if not config or not config.get("topic"):
            return None
        return config["topic"]
