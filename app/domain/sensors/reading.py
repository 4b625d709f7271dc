"""
Sensor Reading Value Object
============================
Immutable value object representing one decoded sensor frame.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Mapping

from app.enums.device import DeviceType
from app.utils.time import utc_now


@dataclass(frozen=True)
class Reading:
    """
    Immutable reading value object.

    ``values`` maps parameter names to numbers (or a string for wind
    direction and raw frames). It is exposed read-only.
    """

    device_id: int
    device_name: str
    device_type: DeviceType
    values: Mapping[str, Any]
    pasture_id: int | None = None
    batch_id: int | None = None
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @property
    def data_type(self) -> str:
        return self.device_type.data_type

    def numeric_value(self, key: str) -> Decimal | None:
        """Return the value as a Decimal, or None when missing, not numeric or not finite."""
        value = self.values.get(key)
        if value is None or isinstance(value, bool):
            return None
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            return None
        return number if number.is_finite() else None

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the payload published for the device topic."""
        payload = dict(self.values)
        payload.update(
            {
                "deviceId": self.device_id,
                "deviceName": self.device_name,
                "type": self.data_type,
                "deviceType": self.device_type.value,
                "pastureId": self.pasture_id,
                "batchId": self.batch_id,
                "timestamp": self.timestamp.isoformat(),
            }
        )
        return payload
