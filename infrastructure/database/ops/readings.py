from __future__ import annotations

import logging
import sqlite3
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

WEATHER_COLUMNS = (
    "temperature",
    "humidity",
    "noise",
    "pm25",
    "pm10",
    "light_intensity",
    "wind_speed",
    "wind_direction",
    "direction_angle",
    "rainfall",
    "air_pressure",
)

WATER_QUALITY_COLUMNS = (
    "water_temperature",
    "ph_value",
    "dissolved_oxygen",
    "ammonia_nitrogen",
    "conductivity",
)

_TABLES = {
    "WeatherData": WEATHER_COLUMNS,
    "WaterQualityData": WATER_QUALITY_COLUMNS,
}


class ReadingOperations:
    """Typed storage for decoded weather and water-quality readings."""

    def insert_weather_data(self, header: Mapping[str, Any], values: Mapping[str, Any]) -> Optional[int]:
        return self._insert_reading("WeatherData", header, values)

    def insert_water_quality_data(self, header: Mapping[str, Any], values: Mapping[str, Any]) -> Optional[int]:
        return self._insert_reading("WaterQualityData", header, values)

    def _insert_reading(self, table: str, header: Mapping[str, Any], values: Mapping[str, Any]) -> Optional[int]:
        columns = ["device_id", "device_name", "pasture_id", "batch_id", "collect_time"]
        params: list[Any] = [
            header.get("device_id"),
            header.get("device_name"),
            header.get("pasture_id"),
            header.get("batch_id"),
            header.get("collect_time"),
        ]
        for column in _TABLES[table]:
            if column in values:
                columns.append(column)
                params.append(values[column])

        try:
            db = self.get_db()
            cursor = db.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                params,
            )
            db.commit()
            return cursor.lastrowid
        except sqlite3.Error as exc:
            logger.error("Failed to store %s row for device %s: %s", table, header.get("device_id"), exc)
            return None

    def list_recent_readings(self, table: str, device_id: int, limit: int = 50) -> list[dict[str, Any]]:
        if table not in _TABLES:
            raise ValueError(f"Unknown reading table {table}")
        try:
            db = self.get_db()
            rows = db.execute(
                f"SELECT * FROM {table} WHERE device_id = ? ORDER BY data_id DESC LIMIT ?",
                (device_id, limit),
            ).fetchall()
            return [dict(row) for row in rows]
        except sqlite3.Error as exc:
            logger.debug("list_recent_readings failed: %s", exc)
            return []
