from __future__ import annotations

import logging
import sqlite3
from typing import Any, Optional

from app.utils.time import iso_now

logger = logging.getLogger(__name__)


class AlertOperations:
    """Database operations for the SensorAlert entity.

    Zone columns are nullable; lookups compare them with ``IS`` so a device
    without pasture/batch still deduplicates correctly. Lookups used for
    deduplication let ``sqlite3.Error`` propagate so the caller never
    mistakes a failed query for "no open alert".
    """

    def find_latest_sensor_alert(
        self,
        device_id: int,
        param_name: str,
        alert_type: str,
        batch_id: int | None,
        pasture_id: int | None,
    ) -> Optional[dict[str, Any]]:
        db = self.get_db()
        row = db.execute(
            """
            SELECT * FROM SensorAlert
            WHERE device_id = ? AND param_name = ? AND alert_type = ?
              AND batch_id IS ? AND pasture_id IS ?
            ORDER BY alert_time DESC, alert_id DESC
            LIMIT 1
            """,
            (device_id, param_name, alert_type, batch_id, pasture_id),
        ).fetchone()
        return dict(row) if row else None

    def list_open_sensor_alerts_for(
        self,
        device_id: int,
        param_name: str,
        batch_id: int | None,
        pasture_id: int | None,
    ) -> list[dict[str, Any]]:
        db = self.get_db()
        rows = db.execute(
            """
            SELECT * FROM SensorAlert
            WHERE device_id = ? AND param_name = ? AND status = 0
              AND batch_id IS ? AND pasture_id IS ?
            ORDER BY alert_time DESC, alert_id DESC
            """,
            (device_id, param_name, batch_id, pasture_id),
        ).fetchall()
        return [dict(row) for row in rows]

    def insert_sensor_alert(
        self,
        *,
        device_id: int,
        device_name: str | None,
        device_type: str | None,
        pasture_id: int | None,
        batch_id: int | None,
        param_name: str,
        param_value: float,
        threshold_min: float | None,
        threshold_max: float | None,
        alert_type: str,
        alert_message: str,
        alert_level: int,
        alert_time: str,
    ) -> int:
        db = self.get_db()
        cursor = db.execute(
            """
            INSERT INTO SensorAlert (
                device_id, device_name, device_type, pasture_id, batch_id,
                param_name, param_value, threshold_min, threshold_max,
                alert_type, alert_message, alert_level, status,
                alert_time, create_time, update_time
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
            """,
            (
                device_id,
                device_name,
                device_type,
                pasture_id,
                batch_id,
                param_name,
                param_value,
                threshold_min,
                threshold_max,
                alert_type,
                alert_message,
                alert_level,
                alert_time,
                alert_time,
                alert_time,
            ),
        )
        db.commit()
        return int(cursor.lastrowid)

    def resolve_sensor_alert(self, alert_id: int, update_time: str | None = None) -> bool:
        try:
            db = self.get_db()
            cursor = db.execute(
                "UPDATE SensorAlert SET status = 1, update_time = ? WHERE alert_id = ? AND status = 0",
                (update_time or iso_now(), alert_id),
            )
            db.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as exc:
            logger.error("Failed to resolve alert %s: %s", alert_id, exc)
            return False

    def get_sensor_alert(self, alert_id: int) -> Optional[dict[str, Any]]:
        try:
            db = self.get_db()
            row = db.execute("SELECT * FROM SensorAlert WHERE alert_id = ?", (alert_id,)).fetchone()
            return dict(row) if row else None
        except sqlite3.Error:
            return None

    def list_sensor_alerts(
        self,
        device_id: int | None = None,
        status: int | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        try:
            db = self.get_db()
            query = "SELECT * FROM SensorAlert WHERE 1 = 1"
            params: list[Any] = []
            if device_id is not None:
                query += " AND device_id = ?"
                params.append(device_id)
            if status is not None:
                query += " AND status = ?"
                params.append(status)
            query += " ORDER BY alert_time DESC, alert_id DESC LIMIT ?"
            params.append(limit)
            return [dict(row) for row in db.execute(query, params).fetchall()]
        except sqlite3.Error as exc:
            logger.debug("list_sensor_alerts failed: %s", exc)
            return []
