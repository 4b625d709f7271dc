# app/services/hardware/sensor_polling_service.py
"""
Sensor Polling Service
======================
Periodically polls RS485 sensors through the serial command queue.

Features:
- One polling thread per sensor that has a polling command
- Each poll is a single queue task: write the frame, wait for the
  device to answer, read whatever arrived
- Online tracking, frame decoding and hand-off of the Reading to the
  processing pipeline
- Per-device health counters for the status endpoint

Actuators are never polled; they are driven by DeviceControlService.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from functools import partial
from typing import Any, Callable

from app.domain.devices import Device
from app.domain.exceptions import SerialLinkError
from app.domain.sensors.reading import Reading
from app.enums import DeviceType, SensorState
from app.hardware.rs485.command_queue import CommandQueue
from app.hardware.rs485.decoder import decode_frame
from app.hardware.rs485.hexcodec import bytes_to_hex, hex_to_bytes
from app.hardware.rs485.serial_link import SerialLink
from app.utils.time import utc_now
from infrastructure.database.repositories.base import DeviceStore

logger = logging.getLogger(__name__)

ReadingConsumer = Callable[[Reading], Any]


class SensorHealth:
    """Tracks the polling state of one serial sensor."""

    def __init__(self, device_id: int):
        self.device_id = device_id
        self.status = SensorState.UNKNOWN
        self.last_seen: datetime | None = None
        self.poll_count = 0
        self.response_count = 0
        self.empty_count = 0
        self.error_count = 0
        self.last_error: str | None = None

    def record_response(self, seen_at: datetime) -> None:
        self.status = SensorState.HEALTHY
        self.last_seen = seen_at
        self.response_count += 1
        self.last_error = None

    def record_empty(self) -> None:
        self.status = SensorState.SILENT
        self.empty_count += 1

    def record_error(self, error: Exception | str) -> None:
        self.status = SensorState.FAILING
        self.error_count += 1
        self.last_error = str(error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "status": self.status.value,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "poll_count": self.poll_count,
            "response_count": self.response_count,
            "empty_count": self.empty_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }


class SensorPollingService:
    """
    Manages one polling loop per serial sensor.

    A loop waits for its own queue task to finish before sleeping, so it
    never has more than one poll in flight. The stop event wait is the
    only place a loop can be interrupted.
    """

    def __init__(
        self,
        device_repo: DeviceStore,
        command_queue: CommandQueue,
        consumer: ReadingConsumer,
        poll_interval_s: float = 5.0,
        response_delay_s: float = 0.2,
        max_read_bytes: int = 256,
        task_timeout_s: float | None = 30.0,
    ):
        self.device_repo = device_repo
        self.command_queue = command_queue
        self.consumer = consumer
        self.poll_interval_s = poll_interval_s
        self.response_delay_s = response_delay_s
        self.max_read_bytes = max_read_bytes
        self.task_timeout_s = task_timeout_s

        self._lock = threading.RLock()
        self._workers: dict[int, tuple[threading.Thread, threading.Event]] = {}
        self._health: dict[int, SensorHealth] = {}

        logger.info(
            "SensorPollingService initialized (interval=%ss, response delay=%.0fms)",
            poll_interval_s,
            response_delay_s * 1000,
        )

    # -------------------------------------------------------------------------
    # Lifecycle Management
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        with self._lock:
            return bool(self._workers)

    def start_polling(self) -> int:
        """Start a loop for every sensor with a polling command; return how many were started."""
        devices = [d for d in self.device_repo.list_by_types(DeviceType.sensor_types()) if d.has_poll_command]
        if not devices:
            logger.info("No serial sensors with a polling command; skipping polling.")
            return 0

        started = sum(1 for device in devices if self._start_device(device))
        logger.info("🚀 Started serial polling for %s sensors", started)
        return started

    def _start_device(self, device: Device) -> bool:
        with self._lock:
            if device.device_id in self._workers:
                return False
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._poll_loop,
                args=(device, stop_event),
                name=f"SensorPoller-{device.device_id}",
                daemon=True,
            )
            self._workers[device.device_id] = (thread, stop_event)
            self._get_health(device.device_id)
        thread.start()
        logger.debug("Polling loop started for %s (%s)", device.device_name, device.device_id)
        return True

    def stop_device(self, device_id: int, timeout: float = 5.0) -> bool:
        """Stop the loop of one device; False when it was not polling."""
        with self._lock:
            worker = self._workers.pop(device_id, None)
        if worker is None:
            return False
        thread, stop_event = worker
        stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.info("Polling stopped for device %s", device_id)
        return True

    def stop_polling(self, timeout: float = 5.0) -> None:
        """Stops every polling loop gracefully."""
        with self._lock:
            workers = list(self._workers.items())
            self._workers.clear()
        if not workers:
            return

        logger.info("🛑 Stopping serial sensor polling...")
        for _, (_, stop_event) in workers:
            stop_event.set()
        for _, (thread, _) in workers:
            thread.join(timeout=timeout)
        logger.info("Serial sensor polling stopped")

    def reload(self) -> int:
        """Restart all loops from the current device table."""
        self.stop_polling()
        return self.start_polling()

    # -------------------------------------------------------------------------
    # Core Logic
    # -------------------------------------------------------------------------

    def _poll_loop(self, device: Device, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                self.poll_once(device)
            except Exception as exc:
                logger.exception("Polling loop for device %s encountered an error: %s", device.device_id, exc)
            stop_event.wait(self.poll_interval_s)

    def poll_once(self, device: Device) -> Reading | None:
        """Run one poll cycle for ``device`` and return the reading it produced, if any."""
        health = self._get_health(device.device_id)
        try:
            command = hex_to_bytes(device.command or "")
        except ValueError as exc:
            logger.error("Device %s has an invalid polling command %r: %s", device.device_id, device.command, exc)
            health.record_error(exc)
            return None

        health.poll_count += 1
        try:
            response = self.command_queue.submit_sync(
                partial(self._exchange, command),
                timeout=self.task_timeout_s,
                label=f"poll:{device.device_id}",
            )
        except Exception as exc:
            logger.error("Polling device %s (%s) failed: %s", device.device_name, device.device_id, exc)
            health.record_error(exc)
            return None

        if not response:
            logger.warning("No response from device %s (%s)", device.device_name, device.device_id)
            health.record_empty()
            return None

        seen_at = utc_now()
        if self.device_repo.mark_online(device.device_id, seen_at.isoformat()):
            logger.info("✅ Device %s (%s) is online", device.device_name, device.device_id)
        health.record_response(seen_at)

        logger.debug("Device %s answered %s", device.device_id, bytes_to_hex(response))
        reading = Reading(
            device_id=device.device_id,
            device_name=device.device_name,
            device_type=device.device_type,
            values=decode_frame(device.device_type, response),
            pasture_id=device.pasture_id,
            batch_id=device.batch_id,
            timestamp=seen_at,
        )

        try:
            self.consumer(reading)
        except Exception as exc:
            logger.error("Processing reading of device %s failed: %s", device.device_id, exc, exc_info=True)
        return reading

    def _exchange(self, command: bytes, link: SerialLink) -> bytes:
        """Queue task: write the polling frame, give the device time to answer, read."""
        if link.write(command) <= 0:
            raise SerialLinkError(f"Polling frame {bytes_to_hex(command)} was not written")
        if self.response_delay_s > 0:
            time.sleep(self.response_delay_s)
        return link.read(self.max_read_bytes)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _get_health(self, device_id: int) -> SensorHealth:
        """Get or create health tracker for a device."""
        with self._lock:
            if device_id not in self._health:
                self._health[device_id] = SensorHealth(device_id)
            return self._health[device_id]

    def get_service_status(self) -> dict[str, Any]:
        """Returns polling status for the status endpoint."""
        with self._lock:
            polling = {device_id for device_id, (thread, _) in self._workers.items() if thread.is_alive()}
            health = dict(self._health)
        devices = {}
        for device_id, tracker in health.items():
            entry = tracker.to_dict()
            entry["polling"] = device_id in polling
            devices[device_id] = entry
        return {
            "is_running": bool(polling),
            "poll_interval": self.poll_interval_s,
            "device_count": len(polling),
            "healthy_count": sum(1 for h in health.values() if h.status == SensorState.HEALTHY),
            "devices": devices,
        }

    def get_health_status(self, device_id: int) -> dict[str, Any] | None:
        """Get health status for a specific device."""
        health = self._health.get(device_id)
        return health.to_dict() if health else None


__all__ = ["SensorHealth", "SensorPollingService"]
