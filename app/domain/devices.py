"""
Device Domain Objects
=====================
Snapshot of a serial device row as the pollers and controllers see it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from app.enums.device import ControlStatus, DeviceType

COMMAND_SEPARATOR = "|"


def split_commands(raw: str | None) -> list[str]:
    """Split a ``|``-delimited command string into trimmed, non-empty segments."""
    if not raw:
        return []
    return [segment.strip() for segment in raw.split(COMMAND_SEPARATOR) if segment.strip()]


def _control_status(value: Any) -> ControlStatus | None:
    if value in (None, ""):
        return None
    try:
        return ControlStatus(value)
    except ValueError:
        return None


def _has_text(value: str | None) -> bool:
    return value is not None and value.strip() != "" and value.strip().lower() != "null"


@dataclass(frozen=True)
class Device:
    """
    A device attached to the RS485 bus.

    ``command`` is the hex polling frame for sensors. ``command_on`` and
    ``command_off`` hold the actuator frames; each may carry a second
    phase after a ``|``.
    """

    device_id: int
    device_name: str
    device_type: DeviceType
    pasture_id: int | None = None
    batch_id: int | None = None
    command: str | None = None
    command_on: str | None = None
    command_off: str | None = None
    is_controllable: bool = False
    control_status: ControlStatus | None = None
    status: str | None = None
    last_online_time: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Device":
        return cls(
            device_id=int(row["device_id"]),
            device_name=row.get("device_name") or f"Device {row['device_id']}",
            device_type=DeviceType(str(row.get("device_type") or "unknown")),
            pasture_id=row.get("pasture_id"),
            batch_id=row.get("batch_id"),
            command=row.get("command"),
            command_on=row.get("command_on"),
            command_off=row.get("command_off"),
            is_controllable=bool(row.get("is_controllable")),
            control_status=_control_status(row.get("control_status")),
            status=row.get("status"),
            last_online_time=row.get("last_online_time"),
        )

    @property
    def has_poll_command(self) -> bool:
        return _has_text(self.command)

    @property
    def on_commands(self) -> list[str]:
        return split_commands(self.command_on)

    @property
    def off_commands(self) -> list[str]:
        return split_commands(self.command_off)

    def command_index(self) -> int:
        """Return 1 when either command string carries a second phase."""
        if len(self.on_commands) > 1 or len(self.off_commands) > 1:
            return 1
        return 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "device_name": self.device_name,
            "device_type": self.device_type.value,
            "data_type": self.device_type.data_type,
            "pasture_id": self.pasture_id,
            "batch_id": self.batch_id,
            "is_controllable": self.is_controllable,
            "control_status": self.control_status.value if self.control_status else None,
            "status": self.status,
            "last_online_time": self.last_online_time,
        }
