"""
Enums Module
============

This module provides enumeration types for the station application.
Enums ensure type safety and consistency across the codebase.
"""

from app.enums.device import (
    AlertDirection,
    AlertSeverity,
    AlertStatus,
    ComparisonOperator,
    ControlAction,
    ControlStatus,
    DeviceType,
    SensorState,
)

__all__ = [
    "AlertDirection",
    "AlertSeverity",
    "AlertStatus",
    "ComparisonOperator",
    "ControlAction",
    "ControlStatus",
    "DeviceType",
    "SensorState",
]
