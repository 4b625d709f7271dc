"""
Serial Command Queue
====================
Single-worker FIFO that owns the serial link.

Every poll, relay pulse and auto-control action is a task ``task(link)``
executed by one worker thread, one at a time, in submission order. The
worker keeps a minimum gap between the end of one task and the start of
the next so the RS485 transceiver can settle.

Code already running inside a task must use the ``link`` it was handed;
``submit_sync`` refuses to run on the worker because it would wait on
itself forever.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable

from app.domain.exceptions import CommandQueueError
from app.hardware.rs485.serial_link import SerialLink

logger = logging.getLogger(__name__)

SerialTask = Callable[[SerialLink], Any]

_STOP = object()


class CommandQueue:
    """Serializes all access to a :class:`SerialLink`."""

    def __init__(self, link: SerialLink, min_spacing_s: float = 0.5, name: str = "SerialCommandQueue"):
        self.link = link
        self.min_spacing_s = max(0.0, float(min_spacing_s))
        self.name = name

        self._queue: queue.Queue = queue.Queue()
        self._worker: threading.Thread | None = None
        self._context = threading.local()
        self._lock = threading.Lock()
        self._running = False
        self._last_finished: float | None = None

        self.completed_count = 0
        self.failed_count = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._worker = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._worker.start()
        logger.info("🚀 %s started (min spacing %.0f ms)", self.name, self.min_spacing_s * 1000)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the worker. Tasks still waiting in the queue are cancelled."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            worker = self._worker

            cancelled = 0
            while True:
                try:
                    item = self._queue.get_nowait()
                except queue.Empty:
                    break
                if item is not _STOP and item[1].cancel():
                    cancelled += 1
            self._queue.put(_STOP)

        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=timeout)
        logger.info("🛑 %s stopped (%s pending tasks cancelled)", self.name, cancelled)

    def is_running(self) -> bool:
        return self._running

    def in_worker(self) -> bool:
        """True when the caller is executing inside a queued task."""
        return getattr(self._context, "active", False)

    def pending(self) -> int:
        return self._queue.qsize()

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def submit(self, task: SerialTask, *, label: str | None = None) -> Future:
        """Enqueue ``task`` and return its future without waiting."""
        future: Future = Future()
        # Checked and enqueued under the lock so nothing lands behind the stop marker
        with self._lock:
            if not self._running:
                raise CommandQueueError(f"{self.name} is not running")
            self._queue.put((task, future, label or getattr(task, "__name__", "task")))
        return future

    def submit_sync(self, task: SerialTask, timeout: float | None = None, *, label: str | None = None) -> Any:
        """Enqueue ``task``, block until the worker ran it, return its result or raise its error.

        On timeout a task that has not started yet is withdrawn from the
        queue; one that is already running is left to finish.
        """
        if self.in_worker():
            raise CommandQueueError("submit_sync called from the queue worker; use the task's link directly")
        future = self.submit(task, label=label)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            if future.cancel():
                logger.warning("Serial task '%s' timed out waiting in the queue and was withdrawn", label or "task")
            raise

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def _run(self) -> None:
        self._context.active = True
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            task, future, label = item
            if not future.set_running_or_notify_cancel():
                continue

            self._wait_for_spacing()
            try:
                result = task(self.link)
            except Exception as e:
                self.failed_count += 1
                logger.exception("Serial task '%s' failed: %s", label, e)
                future.set_exception(e)
            else:
                self.completed_count += 1
                future.set_result(result)
            finally:
                self._last_finished = time.monotonic()

    def _wait_for_spacing(self) -> None:
        if self._last_finished is None or self.min_spacing_s <= 0:
            return
        remaining = self.min_spacing_s - (time.monotonic() - self._last_finished)
        if remaining > 0:
            time.sleep(remaining)

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "pending": self.pending(),
            "completed": self.completed_count,
            "failed": self.failed_count,
            "min_spacing_ms": int(self.min_spacing_s * 1000),
        }
