"""Threshold alerts for sensor readings: raise, deduplicate, auto-clear."""

import logging
import math
from dataclasses import replace
from typing import Any

from app.domain.alert import Alert
from app.enums.device import AlertDirection, AlertSeverity, AlertStatus
from app.hardware.mqtt.mqtt_publisher import Publisher
from app.schemas.events import AlertPayload
from app.utils.concurrency import KeyedLock
from app.utils.time import iso_now
from infrastructure.database.repositories.base import AlertStore, ThresholdStore

logger = logging.getLogger(__name__)

# Deviation from the breached bound above which an alert is critical
CRITICAL_DEVIATION = 0.5


def compute_severity(value: float, bound: float) -> AlertSeverity:
    """Fractional deviation ``|value - bound| / |bound|`` above 0.5 is critical.

    A zero bound has no meaningful ratio; any breach of it is critical.
    """
    if bound == 0:
        return AlertSeverity.CRITICAL
    deviation = round(abs(value - bound) / abs(bound), 4)
    return AlertSeverity.CRITICAL if deviation > CRITICAL_DEVIATION else AlertSeverity.WARNING


def format_alert_message(param_name: str, direction: AlertDirection, value: float, bound: float, unit: str) -> str:
    if direction is AlertDirection.LOW:
        return f"{param_name} too low: {value:.2f}{unit}, below threshold {bound:.2f}{unit}"
    return f"{param_name} too high: {value:.2f}{unit}, above threshold {bound:.2f}{unit}"


class AlertService:
    """Evaluates readings against threshold bands.

    For each (device, parameter, direction, zone) at most one open alert
    exists: a repeated breach is suppressed while the last alert is open,
    and the first in-range value resolves every open alert for the
    parameter. Find-then-insert runs under a per-(device, parameter, zone)
    lock because pollers evaluate readings concurrently.
    """

    def __init__(
        self,
        alert_repo: AlertStore,
        threshold_repo: ThresholdStore,
        publisher: Publisher,
        alert_topic: str = "/fish-dish/alerts",
    ):
        self.alert_repo = alert_repo
        self.threshold_repo = threshold_repo
        self.publisher = publisher
        self.alert_topic = alert_topic
        self._locks = KeyedLock()

    def check_and_generate_alert(
        self,
        device_id: int,
        device_name: str | None,
        device_type: str | None,
        pasture_id: int | None,
        batch_id: int | None,
        param_name: str,
        value: float,
        unit: str = "",
    ) -> Alert | None:
        """
        Check one parameter value against its enabled threshold.

        Returns the newly raised alert, or None when nothing was raised
        (no threshold, in range, duplicate breach, or an error, which is
        logged and swallowed so the caller can continue with the next
        parameter).
        """
        try:
            threshold = self.threshold_repo.get_enabled(device_id, param_name)
            if threshold is None:
                return None

            value = float(value)
            if not math.isfinite(value):
                logger.warning("Ignoring non-finite %s=%s from device %s", param_name, value, device_id)
                return None

            breach = threshold.classify(value)
            with self._locks.hold((device_id, param_name, batch_id, pasture_id)):
                if breach is None:
                    self._resolve_open(device_id, param_name, batch_id, pasture_id, value)
                    return None

                direction, bound = breach
                latest = self.alert_repo.find_latest(device_id, param_name, direction, batch_id, pasture_id)
                if latest is not None and latest.is_open:
                    logger.debug(
                        "Alert %s for device %s/%s still open; suppressing duplicate",
                        latest.alert_id,
                        device_id,
                        param_name,
                    )
                    return None

                now = iso_now()
                display_unit = threshold.unit or unit or ""
                alert = Alert(
                    alert_id=None,
                    device_id=device_id,
                    device_name=device_name,
                    device_type=device_type,
                    param_name=param_name,
                    param_value=value,
                    alert_type=direction,
                    alert_message=format_alert_message(param_name, direction, value, bound, display_unit),
                    alert_level=compute_severity(value, bound),
                    status=AlertStatus.OPEN,
                    pasture_id=pasture_id,
                    batch_id=batch_id,
                    threshold_min=threshold.min_value,
                    threshold_max=threshold.max_value,
                    alert_time=now,
                    create_time=now,
                    update_time=now,
                )
                alert_id = self.alert_repo.create(alert)
                alert = replace(alert, alert_id=alert_id)

            logger.warning(
                "⚠️ Alert %s raised for device %s: %s (level %s)",
                alert_id,
                device_id,
                alert.alert_message,
                int(alert.alert_level),
            )
            self._publish(alert)
            return alert
        except Exception as e:
            logger.error("Alert check failed for device %s param %s: %s", device_id, param_name, e, exc_info=True)
            return None

    def _resolve_open(
        self,
        device_id: int,
        param_name: str,
        batch_id: int | None,
        pasture_id: int | None,
        value: float,
    ) -> int:
        resolved = 0
        now = iso_now()
        for alert in self.alert_repo.list_open_for(device_id, param_name, batch_id, pasture_id):
            if self.alert_repo.resolve(alert.alert_id, now):
                resolved += 1
                logger.info(
                    "✅ Alert %s for device %s/%s resolved (value back to %.2f)",
                    alert.alert_id,
                    device_id,
                    param_name,
                    value,
                )
        return resolved

    def _publish(self, alert: Alert) -> None:
        payload = AlertPayload(
            alert_id=alert.alert_id,
            device_id=alert.device_id,
            device_name=alert.device_name,
            alert_type=alert.alert_type.value,
            alert_message=alert.alert_message,
            param_name=alert.param_name,
            param_value=alert.param_value,
            alert_level=int(alert.alert_level),
            alert_time=alert.alert_time,
            pasture_id=alert.pasture_id,
            batch_id=alert.batch_id,
        )
        try:
            if not self.publisher.publish(self.alert_topic, payload.to_json(), qos=1):
                logger.warning("Alert %s stored but not published", alert.alert_id)
        except Exception as e:
            logger.error("Publishing alert %s failed: %s", alert.alert_id, e)

    # ------------------------------------------------------------------
    # Administrative helpers
    # ------------------------------------------------------------------

    def resolve_alert(self, alert_id: int) -> bool:
        """Resolve one alert by id; False when it does not exist or is already resolved."""
        resolved = self.alert_repo.resolve(alert_id, iso_now())
        if resolved:
            logger.info("Alert %s resolved manually", alert_id)
        return resolved

    def list_open_alerts(self, device_id: int | None = None, limit: int = 100) -> list[dict[str, Any]]:
        return self.alert_repo.list_open(device_id=device_id, limit=limit)
