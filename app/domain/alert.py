"""
Alert Domain Objects
====================
Threshold configuration and the alert rows raised against it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from app.enums.device import AlertDirection, AlertSeverity, AlertStatus


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


@dataclass(frozen=True)
class ThresholdConfig:
    """Min/max band for one parameter of one device. Either bound may be absent."""

    device_id: int
    param_name: str
    min_value: float | None = None
    max_value: float | None = None
    enabled: bool = True
    unit: str | None = None
    device_type: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ThresholdConfig":
        return cls(
            device_id=int(row["device_id"]),
            param_name=row["param_name"],
            min_value=_optional_float(row.get("min_value")),
            max_value=_optional_float(row.get("max_value")),
            enabled=bool(row.get("enabled", 1)),
            unit=row.get("unit"),
            device_type=row.get("device_type"),
        )

    def classify(self, value: float) -> tuple[AlertDirection, float] | None:
        """Return the breached direction and bound, or None when in range."""
        if self.min_value is not None and value < self.min_value:
            return AlertDirection.LOW, self.min_value
        if self.max_value is not None and value > self.max_value:
            return AlertDirection.HIGH, self.max_value
        return None


@dataclass(frozen=True)
class Alert:
    alert_id: int | None
    device_id: int
    device_name: str | None
    device_type: str | None
    param_name: str
    param_value: float
    alert_type: AlertDirection
    alert_message: str
    alert_level: AlertSeverity
    status: AlertStatus
    pasture_id: int | None = None
    batch_id: int | None = None
    threshold_min: float | None = None
    threshold_max: float | None = None
    alert_time: str | None = None
    create_time: str | None = None
    update_time: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Alert":
        return cls(
            alert_id=row.get("alert_id"),
            device_id=int(row["device_id"]),
            device_name=row.get("device_name"),
            device_type=row.get("device_type"),
            param_name=row["param_name"],
            param_value=float(row["param_value"]),
            alert_type=AlertDirection(row["alert_type"]),
            alert_message=row.get("alert_message") or "",
            alert_level=AlertSeverity(int(row.get("alert_level") or 0)),
            status=AlertStatus(int(row.get("status") or 0)),
            pasture_id=row.get("pasture_id"),
            batch_id=row.get("batch_id"),
            threshold_min=_optional_float(row.get("threshold_min")),
            threshold_max=_optional_float(row.get("threshold_max")),
            alert_time=row.get("alert_time"),
            create_time=row.get("create_time"),
            update_time=row.get("update_time"),
        )

    @property
    def is_open(self) -> bool:
        return self.status is AlertStatus.OPEN

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "device_id": self.device_id,
            "device_name": self.device_name,
            "device_type": self.device_type,
            "param_name": self.param_name,
            "param_value": self.param_value,
            "alert_type": self.alert_type.value,
            "alert_message": self.alert_message,
            "alert_level": int(self.alert_level),
            "status": int(self.status),
            "pasture_id": self.pasture_id,
            "batch_id": self.batch_id,
            "threshold_min": self.threshold_min,
            "threshold_max": self.threshold_max,
            "alert_time": self.alert_time,
            "update_time": self.update_time,
        }
