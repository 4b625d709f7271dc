"""
Auto Control Service
====================
Evaluates enabled strategies against every incoming reading and drives
the matching actuators through the command queue.

Per device the service keeps a trigger state:
- ``triggered``: an automatic ``on`` fired and has not been switched off
  automatically yet; further ``on`` matches are ignored (debounce).
- ``cooldown_until``: set when an automatic ``off`` completes; ``on``
  matches are ignored until it passes.

Matched actions run as queue tasks in order, with a pause after each one
but the last so relays do not switch at the same instant. An ``on`` with a
duration arms a cancellable auto-off timer for the same command group.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from functools import partial
from typing import Any

from app.domain.control import Strategy
from app.domain.exceptions import CommandQueueError
from app.domain.sensors.reading import Reading
from app.enums.device import ComparisonOperator, ControlAction
from app.hardware.rs485.command_queue import CommandQueue
from app.hardware.rs485.serial_link import SerialLink
from app.services.hardware.device_control_service import DeviceControlService
from app.utils.concurrency import synchronized
from app.workers.delay_scheduler import DelayScheduler
from infrastructure.database.repositories.base import DeviceStore, StrategyStore

logger = logging.getLogger(__name__)


@dataclass
class DeviceTriggerState:
    triggered: bool = False
    cooldown_until: float = 0.0
    last_on_at: float | None = None
    last_off_at: float | None = None

    def to_dict(self, now: float) -> dict[str, Any]:
        return {
            "triggered": self.triggered,
            "cooldown_remaining_s": round(max(0.0, self.cooldown_until - now), 1),
        }


class TriggerStateStore:
    """Debounce and cooldown state keyed by device id, guarded by one lock."""

    def __init__(self, clock=time.monotonic):
        self._lock = threading.Lock()
        self._states: dict[int, DeviceTriggerState] = {}
        self._clock = clock

    def _state(self, device_id: int) -> DeviceTriggerState:
        state = self._states.get(device_id)
        if state is None:
            state = self._states[device_id] = DeviceTriggerState()
        return state

    @synchronized
    def try_arm(self, device_id: int) -> str | None:
        """Mark the device triggered; return why not when it is cooling down or already triggered."""
        state = self._state(device_id)
        now = self._clock()
        if now < state.cooldown_until:
            return "cooldown"
        if state.triggered:
            return "already triggered"
        state.triggered = True
        state.last_on_at = now
        return None

    @synchronized
    def release(self, device_id: int) -> None:
        self._state(device_id).triggered = False

    @synchronized
    def record_off(self, device_id: int, cooldown_s: float) -> None:
        state = self._state(device_id)
        now = self._clock()
        state.triggered = False
        state.last_off_at = now
        state.cooldown_until = now + cooldown_s

    @synchronized
    def snapshot(self, device_id: int) -> dict[str, Any]:
        return self._state(device_id).to_dict(self._clock())


@dataclass(frozen=True)
class _ControlJob:
    strategy: Strategy
    device_id: int
    action: ControlAction
    index: int


class AutoControlService:
    def __init__(
        self,
        strategy_repo: StrategyStore,
        device_repo: DeviceStore,
        controller: DeviceControlService,
        command_queue: CommandQueue,
        scheduler: DelayScheduler,
        cooldown_s: float = 120.0,
        on_spacing_s: float = 1.0,
        state_store: TriggerStateStore | None = None,
    ):
        self.strategy_repo = strategy_repo
        self.device_repo = device_repo
        self.controller = controller
        self.command_queue = command_queue
        self.scheduler = scheduler
        self.cooldown_s = cooldown_s
        self.on_spacing_s = on_spacing_s
        self.state = state_store or TriggerStateStore()

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def check_and_execute_strategy(self, reading: Reading) -> int:
        """Evaluate all enabled strategies against ``reading``; return the number of actions queued."""
        try:
            strategies = self.strategy_repo.list_enabled()
        except Exception as e:
            logger.error("Could not load auto-control strategies: %s", e, exc_info=True)
            return 0

        jobs: list[_ControlJob] = []
        for strategy in strategies:
            try:
                job = self._evaluate(strategy, reading)
            except Exception as e:
                logger.error("Strategy %s skipped: %s", strategy.strategy_id, e, exc_info=True)
                continue
            if job is not None:
                jobs.append(job)

        self._submit_jobs(jobs)
        return len(jobs)

    def _evaluate(self, strategy: Strategy, reading: Reading) -> _ControlJob | None:
        value = reading.numeric_value(strategy.monitor_param)
        if value is None:
            return None

        try:
            operator = ComparisonOperator(strategy.operator)
        except ValueError:
            logger.warning("Strategy %s uses unsupported operator %r", strategy.strategy_id, strategy.operator)
            return None
        try:
            threshold = strategy.threshold
        except ValueError as e:
            logger.warning("%s", e)
            return None

        if not operator.evaluate(value, threshold):
            return None

        try:
            action = ControlAction(strategy.action)
        except ValueError:
            logger.warning("Strategy %s has unsupported action %r", strategy.strategy_id, strategy.action)
            return None

        device = self.device_repo.get(strategy.device_id)
        if device is None:
            logger.warning("Strategy %s targets unknown device %s", strategy.strategy_id, strategy.device_id)
            return None

        if device.control_status is action.target_status:
            return None

        if action is ControlAction.ON:
            skip_reason = self.state.try_arm(device.device_id)
            if skip_reason is not None:
                logger.info("[auto] Device %s %s, skipping automatic on", device.device_id, skip_reason)
                return None

        logger.info(
            "[auto] Strategy %s matched: %s=%s %s %s -> %s device %s",
            strategy.strategy_id,
            strategy.monitor_param,
            value,
            operator.value,
            threshold,
            action.value,
            device.device_id,
        )
        return _ControlJob(strategy=strategy, device_id=device.device_id, action=action, index=device.command_index())

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _submit_jobs(self, jobs: list[_ControlJob]) -> None:
        for position, job in enumerate(jobs):
            pause_after = position < len(jobs) - 1
            try:
                self.command_queue.submit(
                    partial(self._run_job, job, pause_after),
                    label=f"auto:{job.device_id}:{job.action.value}",
                )
            except CommandQueueError as e:
                logger.error("Could not queue automatic %s for device %s: %s", job.action.value, job.device_id, e)
                if job.action is ControlAction.ON:
                    self.state.release(job.device_id)

    def _run_job(self, job: _ControlJob, pause_after: bool, link: SerialLink) -> None:
        """Runs on the queue worker, so control goes through ``link`` directly."""
        try:
            result = self.controller.control_device(job.device_id, job.action, job.index, link=link)
            if not result.success:
                logger.warning(
                    "[auto] %s of device %s failed: %s", job.action.value, job.device_id, result.message
                )
                if job.action is ControlAction.ON:
                    self.state.release(job.device_id)
            elif job.action is ControlAction.OFF:
                self.state.record_off(job.device_id, self.cooldown_s)
            elif job.strategy.has_duration:
                self._arm_auto_off(job)
        finally:
            if pause_after and self.on_spacing_s > 0:
                time.sleep(self.on_spacing_s)

    def _arm_auto_off(self, job: _ControlJob) -> None:
        duration = float(job.strategy.execute_duration)
        logger.info(
            "[auto] Strategy %s: device %s will switch off in %.1fs",
            job.strategy.strategy_id,
            job.device_id,
            duration,
        )
        self.scheduler.schedule(
            self.auto_off_key(job.device_id),
            duration,
            self._submit_auto_off,
            job.device_id,
            job.index,
            job.strategy.strategy_id,
        )

    def _submit_auto_off(self, device_id: int, index: int, strategy_id: int) -> None:
        logger.info("[auto] Strategy %s: auto-off due for device %s", strategy_id, device_id)
        try:
            self.command_queue.submit(
                partial(self._run_auto_off, device_id, index),
                label=f"auto-off:{device_id}",
            )
        except CommandQueueError as e:
            logger.error("Could not queue auto-off for device %s: %s", device_id, e)

    def _run_auto_off(self, device_id: int, index: int, link: SerialLink) -> None:
        try:
            result = self.controller.control_device(device_id, ControlAction.OFF, index, link=link)
            if not result.success:
                logger.error("[auto] Auto-off of device %s failed: %s", device_id, result.message)
        finally:
            self.state.record_off(device_id, self.cooldown_s)

    # -------------------------------------------------------------------------
    # Management
    # -------------------------------------------------------------------------

    @staticmethod
    def auto_off_key(device_id: int) -> str:
        return f"auto-off:{device_id}"

    def cancel_pending(self, device_id: int) -> bool:
        """Cancel a pending auto-off and clear the trigger flag."""
        cancelled = self.scheduler.cancel(self.auto_off_key(device_id))
        self.state.release(device_id)
        return cancelled

    def get_device_state(self, device_id: int) -> dict[str, Any]:
        state = self.state.snapshot(device_id)
        state["auto_off_pending"] = self.scheduler.is_pending(self.auto_off_key(device_id))
        return state

    def shutdown(self) -> None:
        cancelled = self.scheduler.cancel_prefix("auto-off:")
        if cancelled:
            logger.info("Cancelled %s pending auto-off timers", cancelled)
