"""
Device-related Enumerations
============================

This module contains the enums shared by the serial devices, the alert
engine and the auto-control strategies.
"""

from decimal import Decimal
from enum import Enum, IntEnum


class DeviceType(str, Enum):
    """
    Device type tags as stored in the ``Device.type`` column.

    Sensors report through the serial poller:
    - WEATHER ("1"): multisensor boxes and wind direction/speed probes
    - WATER_QUALITY ("2"): water temperature / pH probes
    - OTHER ("6"): anything else that answers a polling command

    Any other tag resolves to UNKNOWN instead of raising.
    """

    WEATHER = "1"
    WATER_QUALITY = "2"
    OTHER = "6"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> "DeviceType":
        """Map readable names and unrecognised tags."""
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(str(value)) if str(value) in {"1", "2", "6"} else cls.UNKNOWN
        if isinstance(value, str):
            legacy_map = {
                "weather": cls.WEATHER,
                "water": cls.WATER_QUALITY,
                "water_quality": cls.WATER_QUALITY,
                "other": cls.OTHER,
            }
            return legacy_map.get(value.strip().lower(), cls.UNKNOWN)
        return cls.UNKNOWN

    @property
    def data_type(self) -> str:
        """Readable domain tag attached to every reading."""
        return _DATA_TYPES[self]

    @classmethod
    def sensor_types(cls) -> tuple["DeviceType", ...]:
        return (cls.WEATHER, cls.WATER_QUALITY, cls.OTHER)


_DATA_TYPES = {
    DeviceType.WEATHER: "weather",
    DeviceType.WATER_QUALITY: "water",
    DeviceType.OTHER: "other",
    DeviceType.UNKNOWN: "unknown",
}


class ControlAction(str, Enum):
    """Logical actuator actions"""

    ON = "on"
    OFF = "off"

    @classmethod
    def _missing_(cls, value: object) -> "ControlAction | None":
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def target_status(self) -> "ControlStatus":
        return ControlStatus.ON if self is ControlAction.ON else ControlStatus.OFF


class ControlStatus(str, Enum):
    """Persisted control status of an actuator"""

    ON = "1"
    OFF = "0"

    @classmethod
    def _missing_(cls, value: object) -> "ControlStatus | None":
        """Accept on/off style spellings next to the stored 1/0."""
        if isinstance(value, bool):
            return cls.ON if value else cls.OFF
        if isinstance(value, int):
            return {1: cls.ON, 0: cls.OFF}.get(value)
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized in ("on", "true"):
                return cls.ON
            if normalized in ("off", "false"):
                return cls.OFF
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class AlertDirection(str, Enum):
    """Which bound of a threshold was breached"""

    LOW = "LOW"
    HIGH = "HIGH"


class AlertSeverity(IntEnum):
    """Stored as ``alert_level``"""

    WARNING = 0
    CRITICAL = 1


class AlertStatus(IntEnum):
    """Stored as ``status``"""

    OPEN = 0
    RESOLVED = 1


class ComparisonOperator(str, Enum):
    """Strategy condition operators."""

    GT = ">"
    LT = "<"
    EQ = "="
    GE = ">="
    LE = "<="

    @classmethod
    def _missing_(cls, value: object) -> "ComparisonOperator | None":
        if not isinstance(value, str):
            return None
        normalized = value.strip()
        if normalized == "==":
            return cls.EQ
        for member in cls:
            if member.value == normalized:
                return member
        return None

    def evaluate(self, value: Decimal, threshold: Decimal) -> bool:
        """Compare ``value`` against ``threshold`` using exact decimal semantics."""
        if self is ComparisonOperator.GT:
            return value > threshold
        if self is ComparisonOperator.LT:
            return value < threshold
        if self is ComparisonOperator.GE:
            return value >= threshold
        if self is ComparisonOperator.LE:
            return value <= threshold
        return value == threshold


class SensorState(str, Enum):
    """
    Polling health of a serial sensor.
    Used by: sensor_polling_service
    """

    HEALTHY = "healthy"
    SILENT = "silent"
    FAILING = "failing"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value
