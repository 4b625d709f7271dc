import threading
import time

from app.workers.delay_scheduler import DelayScheduler


def test_job_fires_after_delay(scheduler):
    fired = threading.Event()
    started = time.monotonic()
    scheduler.schedule("job", 0.05, fired.set)

    assert fired.wait(2)
    assert time.monotonic() - started >= 0.045
    assert not scheduler.is_pending("job")


def test_jobs_fire_in_due_order(scheduler, wait_for):
    order = []
    scheduler.schedule("late", 0.15, order.append, "late")
    scheduler.schedule("early", 0.05, order.append, "early")

    assert wait_for(lambda: len(order) == 2)
    assert order == ["early", "late"]


def test_rescheduling_a_key_replaces_the_pending_job(scheduler, wait_for):
    calls = []
    scheduler.schedule("pulse:1:0", 0.05, calls.append, "first")
    scheduler.schedule("pulse:1:0", 0.1, calls.append, "second")

    assert wait_for(lambda: calls)
    time.sleep(0.1)
    assert calls == ["second"]


def test_cancel_prevents_execution(scheduler):
    calls = []
    scheduler.schedule("auto-off:3", 0.05, calls.append, 1)

    assert scheduler.cancel("auto-off:3") is True
    assert scheduler.cancel("auto-off:3") is False
    time.sleep(0.1)
    assert calls == []


def test_cancel_prefix(scheduler):
    for key in ("pulse:1:0", "pulse:1:1", "pulse:2:0"):
        scheduler.schedule(key, 5, lambda: None)

    assert scheduler.cancel_prefix("pulse:1:") == 2
    assert scheduler.pending_keys() == ["pulse:2:0"]


def test_failing_job_does_not_stop_the_loop(scheduler):
    fired = threading.Event()

    def broken():
        raise RuntimeError("boom")

    scheduler.schedule("broken", 0.01, broken)
    scheduler.schedule("ok", 0.05, fired.set)

    assert fired.wait(2)


def test_stop_drops_pending_jobs():
    scheduler = DelayScheduler()
    scheduler.start()
    calls = []
    scheduler.schedule("job", 0.1, calls.append, 1)
    scheduler.stop()

    time.sleep(0.15)
    assert calls == []
    assert scheduler.pending_keys() == []
    assert not scheduler.is_running()
