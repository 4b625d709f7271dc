from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.domain.alert import Alert
from app.enums.device import AlertDirection, AlertStatus
from infrastructure.database.ops.alerts import AlertOperations


@dataclass(frozen=True)
class AlertRepository:
    """Repository facade for sensor alert operations."""

    _backend: AlertOperations

    def find_latest(
        self,
        device_id: int,
        param_name: str,
        direction: AlertDirection,
        batch_id: int | None,
        pasture_id: int | None,
    ) -> Alert | None:
        row = self._backend.find_latest_sensor_alert(device_id, param_name, direction.value, batch_id, pasture_id)
        return Alert.from_row(row) if row else None

    def list_open_for(
        self,
        device_id: int,
        param_name: str,
        batch_id: int | None,
        pasture_id: int | None,
    ) -> list[Alert]:
        rows = self._backend.list_open_sensor_alerts_for(device_id, param_name, batch_id, pasture_id)
        return [Alert.from_row(row) for row in rows]

    def create(self, alert: Alert) -> int:
        return self._backend.insert_sensor_alert(
            device_id=alert.device_id,
            device_name=alert.device_name,
            device_type=alert.device_type,
            pasture_id=alert.pasture_id,
            batch_id=alert.batch_id,
            param_name=alert.param_name,
            param_value=alert.param_value,
            threshold_min=alert.threshold_min,
            threshold_max=alert.threshold_max,
            alert_type=alert.alert_type.value,
            alert_message=alert.alert_message,
            alert_level=int(alert.alert_level),
            alert_time=alert.alert_time,
        )

    def resolve(self, alert_id: int, update_time: str | None = None) -> bool:
        return self._backend.resolve_sensor_alert(alert_id, update_time)

    def get_by_id(self, alert_id: int) -> Alert | None:
        row = self._backend.get_sensor_alert(alert_id)
        return Alert.from_row(row) if row else None

    def list_alerts(self, device_id: int | None = None, status: AlertStatus | None = None, limit: int = 100) -> list[Alert]:
        rows = self._backend.list_sensor_alerts(
            device_id=device_id,
            status=int(status) if status is not None else None,
            limit=limit,
        )
        return [Alert.from_row(row) for row in rows]

    def list_open(self, device_id: int | None = None, limit: int = 100) -> list[dict[str, Any]]:
        return [alert.to_dict() for alert in self.list_alerts(device_id, AlertStatus.OPEN, limit)]
