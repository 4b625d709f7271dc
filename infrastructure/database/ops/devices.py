from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable, Optional

from app.utils.time import iso_now

logger = logging.getLogger(__name__)


class DeviceOperations:
    """Serial device and per-device MQTT topic helpers shared across database handlers."""

    # --- Devices ----------------------------------------------------------------
    def insert_device(
        self,
        *,
        device_name: str,
        device_type: str,
        pasture_id: Optional[int] = None,
        batch_id: Optional[int] = None,
        command: Optional[str] = None,
        command_on: Optional[str] = None,
        command_off: Optional[str] = None,
        is_controllable: bool = False,
        control_status: str = "0",
        device_id: Optional[int] = None,
    ) -> Optional[int]:
        try:
            db = self.get_db()
            now = iso_now()
            cursor = db.execute(
                """
                INSERT INTO Device (
                    device_id, device_name, device_type, pasture_id, batch_id,
                    command, command_on, command_off, is_controllable,
                    control_status, status, create_time, update_time
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, '0', ?, ?)
                """,
                (
                    device_id,
                    device_name,
                    str(device_type),
                    pasture_id,
                    batch_id,
                    command,
                    command_on,
                    command_off,
                    1 if is_controllable else 0,
                    control_status,
                    now,
                    now,
                ),
            )
            db.commit()
            return cursor.lastrowid
        except sqlite3.Error as exc:
            logger.error("Failed to insert device %s: %s", device_name, exc)
            return None

    def get_device(self, device_id: int) -> Optional[dict[str, Any]]:
        try:
            db = self.get_db()
            row = db.execute("SELECT * FROM Device WHERE device_id = ?", (device_id,)).fetchone()
            return dict(row) if row else None
        except sqlite3.Error as exc:
            logger.error("Failed to load device %s: %s", device_id, exc)
            return None

    def list_devices_by_types(self, device_types: Iterable[str]) -> list[dict[str, Any]]:
        types = [str(t) for t in device_types]
        if not types:
            return []
        try:
            db = self.get_db()
            placeholders = ", ".join("?" for _ in types)
            rows = db.execute(
                f"SELECT * FROM Device WHERE device_type IN ({placeholders}) ORDER BY device_id",
                types,
            ).fetchall()
            return [dict(row) for row in rows]
        except sqlite3.Error as exc:
            logger.error("Failed to list devices for types %s: %s", types, exc)
            return []

    def update_control_status(self, device_id: int, control_status: str) -> bool:
        try:
            db = self.get_db()
            cursor = db.execute(
                "UPDATE Device SET control_status = ?, update_time = ? WHERE device_id = ?",
                (control_status, iso_now(), device_id),
            )
            db.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as exc:
            logger.error("Failed to update control status of device %s: %s", device_id, exc)
            return False

    def mark_device_online(self, device_id: int, seen_at: Optional[str] = None) -> bool:
        """Set the device online and stamp ``last_online_time``.

        Returns True when the device was not already online.
        """
        try:
            db = self.get_db()
            row = db.execute("SELECT status FROM Device WHERE device_id = ?", (device_id,)).fetchone()
            if row is None:
                return False
            db.execute(
                "UPDATE Device SET status = '1', last_online_time = ? WHERE device_id = ?",
                (seen_at or iso_now(), device_id),
            )
            db.commit()
            return str(row["status"]) != "1"
        except sqlite3.Error as exc:
            logger.error("Failed to mark device %s online: %s", device_id, exc)
            return False

    # --- MQTT topics ------------------------------------------------------------
    def upsert_mqtt_config(self, device_id: int, topic: str, qos: int = 0, enabled: bool = True) -> bool:
        try:
            db = self.get_db()
            db.execute(
                """
                INSERT INTO DeviceMqttConfig (device_id, topic, qos, enabled)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(device_id) DO UPDATE SET
                    topic = excluded.topic,
                    qos = excluded.qos,
                    enabled = excluded.enabled
                """,
                (device_id, topic, qos, 1 if enabled else 0),
            )
            db.commit()
            return True
        except sqlite3.Error as exc:
            logger.error("Failed to save MQTT config for device %s: %s", device_id, exc)
            return False

    def get_mqtt_config(self, device_id: int) -> Optional[dict[str, Any]]:
        try:
            db = self.get_db()
            row = db.execute(
                "SELECT * FROM DeviceMqttConfig WHERE device_id = ? AND enabled = 1",
                (device_id,),
            ).fetchone()
            return dict(row) if row else None
        except sqlite3.Error as exc:
            logger.error("Failed to load MQTT config for device %s: %s", device_id, exc)
            return None
