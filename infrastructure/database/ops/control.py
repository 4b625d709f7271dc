from __future__ import annotations

import logging
import sqlite3
from typing import Any, Optional

logger = logging.getLogger(__name__)


class ControlConfigOperations:
    """Threshold bands and auto-control strategies."""

    # --- Thresholds -------------------------------------------------------------
    def insert_threshold(
        self,
        *,
        device_id: int,
        param_name: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        unit: Optional[str] = None,
        device_type: Optional[str] = None,
        enabled: bool = True,
    ) -> Optional[int]:
        try:
            db = self.get_db()
            cursor = db.execute(
                """
                INSERT INTO ThresholdConfig (
                    device_id, device_type, param_name, min_value, max_value, unit, enabled
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (device_id, device_type, param_name, min_value, max_value, unit, 1 if enabled else 0),
            )
            db.commit()
            return cursor.lastrowid
        except sqlite3.Error as exc:
            logger.error("Failed to insert threshold %s/%s: %s", device_id, param_name, exc)
            return None

    def get_enabled_threshold(self, device_id: int, param_name: str) -> Optional[dict[str, Any]]:
        db = self.get_db()
        row = db.execute(
            """
            SELECT * FROM ThresholdConfig
            WHERE device_id = ? AND param_name = ? AND enabled = 1
            ORDER BY threshold_id DESC LIMIT 1
            """,
            (device_id, param_name),
        ).fetchone()
        return dict(row) if row else None

    # --- Strategies -------------------------------------------------------------
    def insert_strategy(
        self,
        *,
        device_id: int,
        monitor_param: str,
        operator: str,
        condition_value: Any,
        action: str,
        execute_duration: Optional[float] = None,
        enabled: bool = True,
        pasture_id: Optional[int] = None,
        batch_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> Optional[int]:
        try:
            db = self.get_db()
            cursor = db.execute(
                """
                INSERT INTO AutoControlStrategy (
                    pasture_id, batch_id, device_id, monitor_param, operator,
                    condition_value, action, execute_duration, enabled, description
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    pasture_id,
                    batch_id,
                    device_id,
                    monitor_param,
                    operator,
                    str(condition_value),
                    action,
                    execute_duration,
                    1 if enabled else 0,
                    description,
                ),
            )
            db.commit()
            return cursor.lastrowid
        except sqlite3.Error as exc:
            logger.error("Failed to insert strategy for device %s: %s", device_id, exc)
            return None

    def list_enabled_strategies(self) -> list[dict[str, Any]]:
        try:
            db = self.get_db()
            rows = db.execute(
                "SELECT * FROM AutoControlStrategy WHERE enabled = 1 ORDER BY strategy_id"
            ).fetchall()
            return [dict(row) for row in rows]
        except sqlite3.Error as exc:
            logger.error("Failed to list strategies: %s", exc)
            return []
