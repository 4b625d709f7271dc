from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.domain.sensors.reading import Reading
from app.enums.device import DeviceType
from infrastructure.database.ops.readings import ReadingOperations


@dataclass(frozen=True)
class ReadingRepository:
    """Stores weather and water-quality readings in their typed tables."""

    _backend: ReadingOperations

    def save(self, reading: Reading) -> int | None:
        """Persist ``reading``; other/unknown device types are not stored."""
        header = {
            "device_id": reading.device_id,
            "device_name": reading.device_name,
            "pasture_id": reading.pasture_id,
            "batch_id": reading.batch_id,
            "collect_time": reading.timestamp.isoformat(),
        }
        if reading.device_type is DeviceType.WEATHER:
            return self._backend.insert_weather_data(header, reading.values)
        if reading.device_type is DeviceType.WATER_QUALITY:
            return self._backend.insert_water_quality_data(header, reading.values)
        return None

    def recent_weather(self, device_id: int, limit: int = 50) -> list[dict[str, Any]]:
        return self._backend.list_recent_readings("WeatherData", device_id, limit)

    def recent_water_quality(self, device_id: int, limit: int = 50) -> list[dict[str, Any]]:
        return self._backend.list_recent_readings("WaterQualityData", device_id, limit)
