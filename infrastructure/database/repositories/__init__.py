"""Repository facades exposing typed accessors over low-level mixins.

Protocols for the persistence boundary live in ``base``::

    from infrastructure.database.repositories.base import DeviceStore
"""

from infrastructure.database.repositories.alerts import AlertRepository
from infrastructure.database.repositories.base import (
    AlertStore,
    DeviceStore,
    ReadingStore,
    StrategyStore,
    ThresholdStore,
)
from infrastructure.database.repositories.control import StrategyRepository, ThresholdRepository
from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.repositories.readings import ReadingRepository

__all__ = [
    "AlertRepository",
    "AlertStore",
    "DeviceRepository",
    "DeviceStore",
    "ReadingRepository",
    "ReadingStore",
    "StrategyRepository",
    "StrategyStore",
    "ThresholdRepository",
    "ThresholdStore",
]
