"""
Delay Scheduler
===============
Cancellable one-shot timers for relay second-phase pulses and auto-off.

Jobs are keyed: scheduling a key that is already pending replaces it, and
``cancel(key)`` drops it before it fires. Callbacks run on the scheduler
thread and are expected to be short (they hand work to the command queue).

Heap entries are ``(run_at, seq, key)``; replaced or cancelled jobs leave
stale entries behind that are skipped when popped.
"""

from __future__ import annotations

import heapq
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class _DelayedJob:
    key: str
    run_at: float
    seq: int
    func: Callable[..., Any]
    args: tuple = field(default_factory=tuple)


class DelayScheduler:
    def __init__(self, name: str = "DelayScheduler"):
        self.name = name
        self._jobs: dict[str, _DelayedJob] = {}
        self._heap: list[tuple[float, int, str]] = []
        self._seq = 0
        self._cond = threading.Condition()
        self._running = False
        self._thread: threading.Thread | None = None

    # ==================== Scheduler Control ====================

    def start(self) -> None:
        with self._cond:
            if self._running:
                return
            self._running = True
            self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
            self._thread.start()
        logger.info("%s started", self.name)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the loop; jobs that have not fired are discarded."""
        with self._cond:
            if not self._running:
                return
            self._running = False
            dropped = len(self._jobs)
            self._jobs.clear()
            self._heap.clear()
            self._cond.notify_all()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.info("%s stopped (%s pending jobs dropped)", self.name, dropped)

    def is_running(self) -> bool:
        return self._running

    # ==================== Jobs ====================

    def schedule(self, key: str, delay_s: float, func: Callable[..., Any], *args: Any) -> None:
        """Run ``func(*args)`` after ``delay_s`` seconds, replacing any pending job with this key."""
        with self._cond:
            self._seq += 1
            job = _DelayedJob(key=key, run_at=time.monotonic() + max(0.0, delay_s), seq=self._seq, func=func, args=args)
            replaced = key in self._jobs
            self._jobs[key] = job
            heapq.heappush(self._heap, (job.run_at, job.seq, key))
            self._cond.notify_all()
        if replaced:
            logger.debug("Re-armed delayed job %s (%.1fs)", key, delay_s)
        else:
            logger.debug("Armed delayed job %s (%.1fs)", key, delay_s)

    def cancel(self, key: str) -> bool:
        with self._cond:
            job = self._jobs.pop(key, None)
            if job is not None:
                self._cond.notify_all()
        if job is not None:
            logger.debug("Cancelled delayed job %s", key)
        return job is not None

    def cancel_prefix(self, prefix: str) -> int:
        with self._cond:
            keys = [key for key in self._jobs if key.startswith(prefix)]
            for key in keys:
                del self._jobs[key]
            if keys:
                self._cond.notify_all()
        return len(keys)

    def is_pending(self, key: str) -> bool:
        with self._cond:
            return key in self._jobs

    def pending_keys(self) -> list[str]:
        with self._cond:
            return sorted(self._jobs)

    # ==================== Loop ====================

    def _run_loop(self) -> None:
        while True:
            job = self._next_due_job()
            if job is None:
                return
            try:
                job.func(*job.args)
            except Exception as e:
                logger.error("Delayed job %s failed: %s", job.key, e, exc_info=True)

    def _next_due_job(self) -> _DelayedJob | None:
        """Block until a live job is due; None once stopped."""
        with self._cond:
            while self._running:
                if not self._heap:
                    self._cond.wait()
                    continue

                run_at, seq, key = self._heap[0]
                job = self._jobs.get(key)
                if job is None or job.seq != seq:
                    heapq.heappop(self._heap)
                    continue

                remaining = run_at - time.monotonic()
                if remaining > 0:
                    self._cond.wait(timeout=remaining)
                    continue

                heapq.heappop(self._heap)
                del self._jobs[key]
                return job
            return None
