import threading
import time
from concurrent.futures import TimeoutError as FutureTimeoutError

import pytest

from app.domain.exceptions import CommandQueueError
from app.hardware.rs485.command_queue import CommandQueue


def test_tasks_run_in_submission_order(command_queue, fake_link):
    futures = [command_queue.submit(lambda link, i=i: link.write(bytes([i]))) for i in range(5)]
    for future in futures:
        assert future.result(timeout=2) == 1

    assert fake_link.frames == [bytes([i]) for i in range(5)]


def test_concurrent_submitters_never_overlap(make_link):
    link = make_link(write_delay_s=0.005)
    queue = CommandQueue(link, min_spacing_s=0.0)
    queue.start()
    try:

        def submitter(offset):
            for i in range(10):
                queue.submit_sync(lambda bus, b=offset + i: bus.write(bytes([b])), timeout=5)

        threads = [threading.Thread(target=submitter, args=(n * 10,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
    finally:
        queue.stop()

    assert len(link.frames) == 40
    assert not link.overlap_detected


def test_minimum_spacing_between_tasks(make_link):
    link = make_link()
    queue = CommandQueue(link, min_spacing_s=0.05)
    queue.start()
    try:
        for _ in range(3):
            queue.submit_sync(lambda bus: bus.write(b"\x01"), timeout=2)
    finally:
        queue.stop()

    gaps = [b - a for a, b in zip(link.timestamps, link.timestamps[1:])]
    assert all(gap >= 0.045 for gap in gaps)


def test_submit_sync_returns_task_error(command_queue):
    def broken(_link):
        raise RuntimeError("bus fault")

    with pytest.raises(RuntimeError, match="bus fault"):
        command_queue.submit_sync(broken, timeout=2)

    # The worker survives a failing task
    assert command_queue.submit_sync(lambda link: link.write(b"\x02"), timeout=2) == 1
    assert command_queue.failed_count == 1


def test_submit_sync_from_worker_is_rejected(command_queue):
    def nested(_link):
        return command_queue.submit_sync(lambda link: link.write(b"\x03"))

    with pytest.raises(CommandQueueError):
        command_queue.submit_sync(nested, timeout=2)


def test_submit_requires_running_queue(fake_link):
    queue = CommandQueue(fake_link)
    with pytest.raises(CommandQueueError):
        queue.submit(lambda link: link.write(b"\x01"))


def test_stop_cancels_pending_tasks(make_link):
    link = make_link()
    queue = CommandQueue(link, min_spacing_s=0.0)
    queue.start()
    release = threading.Event()
    queue.submit(lambda _link: release.wait(2))
    time.sleep(0.05)
    pending = [queue.submit(lambda bus: bus.write(b"\x09")) for _ in range(3)]

    stopper = threading.Thread(target=queue.stop)
    stopper.start()
    time.sleep(0.05)
    release.set()
    stopper.join(timeout=5)

    assert all(f.cancelled() for f in pending)
    assert link.frames == []
    assert queue.get_status()["running"] is False


def test_submit_sync_timeout_withdraws_waiting_task(command_queue, fake_link):
    release = threading.Event()
    command_queue.submit(lambda _link: release.wait(2))

    with pytest.raises(FutureTimeoutError):
        command_queue.submit_sync(lambda link: link.write(b"\x07"), timeout=0.05)

    release.set()
    assert command_queue.submit_sync(lambda link: link.write(b"\x08"), timeout=2) == 1
    assert fake_link.frames == [b"\x08"]


def test_submits_racing_stop_always_resolve(make_link):
    link = make_link()
    queue = CommandQueue(link, min_spacing_s=0.0)
    queue.start()
    futures = []
    go = threading.Event()

    def submitter():
        go.wait()
        for _ in range(200):
            try:
                futures.append(queue.submit(lambda bus: bus.write(b"\x01")))
            except CommandQueueError:
                return

    threads = [threading.Thread(target=submitter) for _ in range(4)]
    for t in threads:
        t.start()
    go.set()
    time.sleep(0.01)
    queue.stop()
    for t in threads:
        t.join(timeout=5)

    # Each accepted task either ran or was cancelled; none is stranded behind the stop marker
    assert all(f.done() for f in futures)
    assert sum(1 for f in futures if not f.cancelled()) == len(link.frames)
