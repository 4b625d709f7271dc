"""
Domain Value Objects Package
=============================
Immutable snapshots of devices, readings, thresholds, alerts and
auto-control strategies, plus the station exception hierarchy.
"""

from .alert import Alert, ThresholdConfig
from .control import ControlResult, Strategy
from .devices import Device, split_commands
from .sensors.reading import Reading

__all__ = [
    # Devices
    "Device",
    "split_commands",
    # Readings
    "Reading",
    # Alerts
    "Alert",
    "ThresholdConfig",
    # Control
    "ControlResult",
    "Strategy",
]
