"""
Workers module for background timers.

- delay_scheduler: keyed one-shot timers for relay rest pulses and timed auto-off
"""

from app.workers.delay_scheduler import DelayScheduler

__all__ = ["DelayScheduler"]
