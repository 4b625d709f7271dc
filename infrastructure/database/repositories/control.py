from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from app.domain.alert import ThresholdConfig
from app.domain.control import Strategy
from infrastructure.database.ops.control import ControlConfigOperations

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThresholdRepository:
    """Repository facade for threshold bands."""

    _backend: ControlConfigOperations

    def create(self, **fields: Any) -> int | None:
        return self._backend.insert_threshold(**fields)

    def get_enabled(self, device_id: int, param_name: str) -> ThresholdConfig | None:
        row = self._backend.get_enabled_threshold(device_id, param_name)
        return ThresholdConfig.from_row(row) if row else None


@dataclass(frozen=True)
class StrategyRepository:
    """Repository facade for auto-control strategies."""

    _backend: ControlConfigOperations

    def create(self, **fields: Any) -> int | None:
        return self._backend.insert_strategy(**fields)

    def list_enabled(self) -> list[Strategy]:
        """Enabled strategies in id order; malformed rows are logged and skipped."""
        strategies: list[Strategy] = []
        for row in self._backend.list_enabled_strategies():
            try:
                strategies.append(Strategy.from_row(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed strategy %s: %s", row.get("strategy_id"), e)
        return strategies
