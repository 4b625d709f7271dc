"""
Repository Protocols
====================

Persistence boundary of the station core. Services are typed against these
``typing.Protocol`` contracts (structural subtyping), so the SQLite
repositories satisfy them without inheritance and tests can pass small
in-memory fakes.

Usage in service type hints::

    from infrastructure.database.repositories.base import DeviceStore


    class DeviceControlService:
        def __init__(self, devices: DeviceStore, ...) -> None: ...
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol, runtime_checkable

from app.domain.alert import Alert, ThresholdConfig
from app.domain.control import Strategy
from app.domain.devices import Device
from app.domain.sensors.reading import Reading
from app.enums.device import AlertDirection, ControlStatus, DeviceType


@runtime_checkable
class DeviceStore(Protocol):
    def get(self, device_id: int) -> Device | None: ...

    def list_by_types(self, device_types: Iterable[DeviceType | str]) -> list[Device]: ...

    def set_control_status(self, device_id: int, status: ControlStatus) -> bool: ...

    def mark_online(self, device_id: int, seen_at: str | None = None) -> bool:
        """Returns True when the device transitioned to online."""
        ...

    def get_mqtt_topic(self, device_id: int) -> str | None: ...


@runtime_checkable
class ThresholdStore(Protocol):
    def get_enabled(self, device_id: int, param_name: str) -> ThresholdConfig | None: ...


@runtime_checkable
class StrategyStore(Protocol):
    def list_enabled(self) -> list[Strategy]: ...


@runtime_checkable
class AlertStore(Protocol):
    def find_latest(
        self,
        device_id: int,
        param_name: str,
        direction: AlertDirection,
        batch_id: int | None,
        pasture_id: int | None,
    ) -> Alert | None: ...

    def list_open_for(
        self,
        device_id: int,
        param_name: str,
        batch_id: int | None,
        pasture_id: int | None,
    ) -> list[Alert]: ...

    def create(self, alert: Alert) -> int: ...

    def resolve(self, alert_id: int, update_time: str | None = None) -> bool: ...

    def list_open(self, device_id: int | None = None, limit: int = 100) -> list[dict[str, Any]]: ...


@runtime_checkable
class ReadingStore(Protocol):
    def save(self, reading: Reading) -> int | None: ...


__all__ = [
    "AlertStore",
    "DeviceStore",
    "ReadingStore",
    "StrategyStore",
    "ThresholdStore",
]
