"""
Device Control Service
======================
Turns ``on``/``off`` requests into relay frames on the RS485 bus.

Command strings may hold two ``|``-separated groups. Index 0 sends one
frame (the first on- or off-group). Index 1 drives pulsed dual-relay
actuators: ``on`` sends on-group 0, then after a settle delay off-group 0
as a return-to-rest pulse; ``off`` does the same with group 1.

Every frame goes through the command queue. Callers that are already
running inside a queue task pass the task's ``link`` and the frame is
written directly; waiting on the queue from there would deadlock.
"""

from __future__ import annotations

import logging
from concurrent.futures import TimeoutError as FutureTimeoutError

from app.domain.control import ControlResult
from app.domain.devices import Device
from app.domain.exceptions import CommandQueueError
from app.enums.device import ControlAction
from app.hardware.rs485.command_queue import CommandQueue
from app.hardware.rs485.hexcodec import hex_to_bytes
from app.hardware.rs485.serial_link import SerialLink
from app.workers.delay_scheduler import DelayScheduler
from infrastructure.database.repositories.base import DeviceStore

logger = logging.getLogger(__name__)


class DeviceControlService:
    """Single- and dual-phase actuator control."""

    def __init__(
        self,
        devices: DeviceStore,
        command_queue: CommandQueue,
        scheduler: DelayScheduler,
        settle_s: float = 8.0,
        write_timeout_s: float | None = 30.0,
    ):
        self.devices = devices
        self.command_queue = command_queue
        self.scheduler = scheduler
        self.settle_s = settle_s
        self.write_timeout_s = write_timeout_s

    def control_device(
        self,
        device_id: int,
        action: str | ControlAction,
        index: int = 0,
        *,
        link: SerialLink | None = None,
    ) -> ControlResult:
        """
        Switch a device on or off.

        Args:
            device_id: Device to control.
            action: ``"on"`` or ``"off"``.
            index: Command group, 0 (single frame) or 1 (pulsed pair).
            link: Serial link of the running queue task when called from
                inside the queue worker; None for every other caller.

        Returns:
            ControlResult with 200 on success, 400/403/404 for request or
            configuration problems and 500 when the frame was not written.
        """
        device = self.devices.get(device_id)
        if device is None:
            return ControlResult.fail(404, f"Device {device_id} not found")
        if not device.is_controllable:
            return ControlResult.fail(403, f"Device {device_id} is not controllable")

        on_commands = device.on_commands
        off_commands = device.off_commands
        if not on_commands:
            return ControlResult.fail(400, f"Device {device_id} has no on-command configured")
        if not off_commands:
            return ControlResult.fail(400, f"Device {device_id} has no off-command configured")

        try:
            control_action = ControlAction(action)
        except ValueError:
            return ControlResult.fail(400, f"Invalid action '{action}', expected 'on' or 'off'")

        if index == 0:
            frame = on_commands[0] if control_action is ControlAction.ON else off_commands[0]
            return self._execute_step(device, control_action, frame, link)

        if index == 1:
            if len(on_commands) < 2 or len(off_commands) < 2:
                return ControlResult.fail(
                    400, f"Device {device_id} needs two command groups for index 1 control"
                )
            phase = 0 if control_action is ControlAction.ON else 1
            result = self._execute_step(device, control_action, on_commands[phase], link)
            if result.success:
                self._arm_rest_pulse(device, phase, off_commands[phase])
            return result

        return ControlResult.fail(400, f"Invalid command group index {index}")

    def _execute_step(
        self,
        device: Device,
        action: ControlAction,
        frame: str,
        link: SerialLink | None,
    ) -> ControlResult:
        try:
            data = hex_to_bytes(frame)
        except ValueError as e:
            logger.error("Device %s has an invalid command frame %r: %s", device.device_id, frame, e)
            return ControlResult.fail(400, f"Invalid command frame for device {device.device_id}")

        try:
            if link is not None:
                written = self._write_and_record(link, device, action, data)
            else:
                written = self._queue_write(device, action, data)
        except CommandQueueError as e:
            logger.error("Control of device %s rejected by command queue: %s", device.device_id, e)
            return ControlResult.fail(500, str(e))
        except Exception as e:
            logger.error("Control of device %s failed: %s", device.device_id, e, exc_info=True)
            return ControlResult.fail(500, f"Failed to send command to device {device.device_id}")

        if written is None or written <= 0:
            logger.error("Writing %s to device %s returned %s", frame, device.device_id, written)
            return ControlResult.fail(500, f"Failed to send command to device {device.device_id}")

        logger.info("Device %s (%s) turned %s", device.device_name, device.device_id, action.value)
        return ControlResult.ok(f"Device turned {action.value}")

    def _queue_write(self, device: Device, action: ControlAction, data: bytes) -> int | None:
        """Run the write as a queue task and wait up to ``write_timeout_s`` for it.

        A write still waiting in the queue when the timeout expires is
        withdrawn so it never reaches the bus. One the worker has already
        started is waited for, since the relay is switching regardless.
        """
        if self.command_queue.in_worker():
            raise CommandQueueError("control from inside a queue task must pass the task's link")
        future = self.command_queue.submit(
            lambda serial_link: self._write_and_record(serial_link, device, action, data),
            label=f"control:{device.device_id}:{action.value}",
        )
        try:
            return future.result(timeout=self.write_timeout_s)
        except FutureTimeoutError:
            if future.cancel():
                raise CommandQueueError(
                    f"Command for device {device.device_id} timed out in the queue and was not sent"
                ) from None
            logger.warning("Command for device %s is already on the bus; waiting for it", device.device_id)
            return future.result()

    def _write_and_record(self, serial_link: SerialLink, device: Device, action: ControlAction, data: bytes) -> int:
        written = serial_link.write(data)
        if written and written > 0 and not self.devices.set_control_status(device.device_id, action.target_status):
            logger.warning("Device %s switched %s but status was not persisted", device.device_id, action.value)
        return written

    def _arm_rest_pulse(self, device: Device, phase: int, frame: str) -> None:
        self.scheduler.schedule(
            self.pulse_key(device.device_id, phase),
            self.settle_s,
            self._send_rest_pulse,
            device.device_id,
            phase,
            frame,
        )

    def _send_rest_pulse(self, device_id: int, phase: int, frame: str) -> None:
        try:
            data = hex_to_bytes(frame)
        except ValueError as e:
            logger.error("Rest pulse for device %s has an invalid frame %r: %s", device_id, frame, e)
            return

        def write_pulse(serial_link: SerialLink) -> int:
            written = serial_link.write(data)
            if written > 0:
                logger.info("Rest pulse (phase %s) sent to device %s", phase, device_id)
            else:
                logger.error("Rest pulse (phase %s) to device %s failed", phase, device_id)
            return written

        try:
            self.command_queue.submit(write_pulse, label=f"pulse:{device_id}:{phase}")
        except CommandQueueError as e:
            logger.error("Could not queue rest pulse for device %s: %s", device_id, e)

    @staticmethod
    def pulse_key(device_id: int, phase: int) -> str:
        return f"pulse:{device_id}:{phase}"

    def cancel_pending(self, device_id: int) -> int:
        """Drop rest pulses that have not fired yet for ``device_id``."""
        return self.scheduler.cancel_prefix(f"pulse:{device_id}:")

    def shutdown(self) -> None:
        cancelled = self.scheduler.cancel_prefix("pulse:")
        if cancelled:
            logger.info("Cancelled %s pending rest pulses", cancelled)
