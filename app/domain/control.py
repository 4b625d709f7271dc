"""
Control Domain Objects
======================
Dataclasses for actuator control results and auto-control strategies.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping


@dataclass(frozen=True)
class ControlResult:
    """Outcome of a control request, shaped like an HTTP response."""

    success: bool
    code: int
    message: str

    @classmethod
    def ok(cls, message: str = "Success") -> "ControlResult":
        return cls(True, 200, message)

    @classmethod
    def fail(cls, code: int, message: str) -> "ControlResult":
        return cls(False, code, message)

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "code": self.code, "message": self.message}


@dataclass(frozen=True)
class Strategy:
    """An automatic control rule: ``<param> <operator> <value>`` triggers ``action``."""

    strategy_id: int
    device_id: int
    monitor_param: str
    operator: str
    condition_value: str
    action: str
    execute_duration: float | None = None
    enabled: bool = True
    pasture_id: int | None = None
    batch_id: int | None = None
    description: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Strategy":
        duration = row.get("execute_duration")
        return cls(
            strategy_id=int(row["strategy_id"]),
            device_id=int(row["device_id"]),
            monitor_param=row["monitor_param"],
            operator=str(row.get("operator") or ""),
            condition_value=str(row.get("condition_value") or ""),
            action=str(row.get("action") or ""),
            execute_duration=float(duration) if duration not in (None, "") else None,
            enabled=bool(row.get("enabled", 1)),
            pasture_id=row.get("pasture_id"),
            batch_id=row.get("batch_id"),
            description=row.get("description"),
        )

    @property
    def threshold(self) -> Decimal:
        """Condition value as a Decimal; raises ValueError when not numeric."""
        try:
            return Decimal(self.condition_value.strip())
        except InvalidOperation:
            raise ValueError(f"Strategy {self.strategy_id} has non-numeric condition value") from None

    @property
    def has_duration(self) -> bool:
        return self.execute_duration is not None and self.execute_duration > 0
