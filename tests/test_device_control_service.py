import threading
import time

import pytest

from app.enums.device import ControlAction, ControlStatus
from app.hardware.rs485.command_queue import CommandQueue
from app.services.hardware.device_control_service import DeviceControlService


def test_single_frame_on_and_off(controller, device_repo, fake_link, seed_actuator):
    device_id = seed_actuator(command_on="01 05 00 00 FF 00", command_off="01 05 00 00 00 00")

    result = controller.control_device(device_id, "on")
    assert result.success and result.code == 200
    assert result.message == "Device turned on"
    assert fake_link.hex_frames == ["01050000FF00"]
    assert device_repo.get(device_id).control_status is ControlStatus.ON

    result = controller.control_device(device_id, ControlAction.OFF)
    assert result.success
    assert fake_link.hex_frames[-1] == "010500000000"
    assert device_repo.get(device_id).control_status is ControlStatus.OFF


def test_action_is_case_insensitive(controller, fake_link, seed_actuator):
    device_id = seed_actuator()
    assert controller.control_device(device_id, "ON").success
    assert fake_link.hex_frames == ["AA"]


def test_index_zero_uses_first_group_only(controller, fake_link, seed_actuator):
    device_id = seed_actuator(command_on="AA|BB", command_off="CC|DD")

    assert controller.control_device(device_id, "off", 0).success
    time.sleep(0.2)
    assert fake_link.hex_frames == ["CC"]


def test_dual_phase_on_sends_rest_pulse_after_settle(controller, device_repo, fake_link, seed_actuator, wait_for):
    device_id = seed_actuator(command_on="AA|BB", command_off="CC|DD")

    result = controller.control_device(device_id, "on", 1)
    assert result.success
    assert fake_link.hex_frames == ["AA"]
    assert device_repo.get(device_id).control_status is ControlStatus.ON

    assert wait_for(lambda: len(fake_link.frames) == 2)
    assert fake_link.hex_frames == ["AA", "CC"]
    assert fake_link.timestamps[1] - fake_link.timestamps[0] >= 0.09


def test_dual_phase_off_uses_second_group(controller, device_repo, fake_link, seed_actuator, wait_for):
    device_id = seed_actuator(command_on="AA|BB", command_off="CC|DD", control_status="1")

    assert controller.control_device(device_id, "off", 1).success
    assert wait_for(lambda: len(fake_link.frames) == 2)
    assert fake_link.hex_frames == ["BB", "DD"]
    assert device_repo.get(device_id).control_status is ControlStatus.OFF


def test_other_phase_does_not_cancel_pending_pulse(controller, fake_link, seed_actuator, wait_for):
    device_id = seed_actuator(command_on="AA|BB", command_off="CC|DD")

    controller.control_device(device_id, "on", 1)
    controller.control_device(device_id, "off", 1)

    assert wait_for(lambda: len(fake_link.frames) == 4)
    assert fake_link.hex_frames[:2] == ["AA", "BB"]
    assert sorted(fake_link.hex_frames[2:]) == ["CC", "DD"]


@pytest.mark.parametrize(
    ("setup", "action", "index", "code"),
    [
        ({"is_controllable": False}, "on", 0, 403),
        ({"command_on": None}, "on", 0, 400),
        ({"command_on": "null"}, "on", 0, 400),
        ({"command_off": "  "}, "on", 0, 400),
        ({}, "toggle", 0, 400),
        ({}, "on", 1, 400),
        ({"command_on": "AA|BB", "command_off": "CC|DD"}, "on", 2, 400),
        ({"command_on": "XYZ"}, "on", 0, 400),
    ],
)
def test_rejected_requests(controller, device_repo, fake_link, seed_actuator, setup, action, index, code):
    device_id = seed_actuator(**setup)

    result = controller.control_device(device_id, action, index)

    assert not result.success
    assert result.code == code
    assert fake_link.frames == []
    assert device_repo.get(device_id).control_status is ControlStatus.OFF


def test_unknown_device_is_404(controller):
    result = controller.control_device(999, "on")
    assert (result.success, result.code) == (False, 404)


def test_failed_write_is_500_without_status_change(controller, device_repo, fake_link, seed_actuator, scheduler):
    device_id = seed_actuator(command_on="AA|BB", command_off="CC|DD")
    fake_link.fail_writes = True

    result = controller.control_device(device_id, "on", 1)

    assert (result.success, result.code) == (False, 500)
    assert device_repo.get(device_id).control_status is ControlStatus.OFF
    assert scheduler.pending_keys() == []


def test_stopped_queue_is_500(device_repo, command_queue, scheduler, seed_actuator):
    device_id = seed_actuator()
    controller = DeviceControlService(device_repo, command_queue, scheduler)
    command_queue.stop()

    result = controller.control_device(device_id, "on")
    assert result.code == 500


def test_direct_link_path_inside_queue_task(controller, command_queue, fake_link, seed_actuator):
    device_id = seed_actuator()

    result = command_queue.submit_sync(
        lambda link: controller.control_device(device_id, "on", link=link),
        timeout=2,
    )

    assert result.success
    assert fake_link.hex_frames == ["AA"]


def test_cancel_pending_drops_rest_pulses(controller, fake_link, seed_actuator):
    device_id = seed_actuator(command_on="AA|BB", command_off="CC|DD")
    controller.control_device(device_id, "on", 1)

    assert controller.cancel_pending(device_id) == 1
    time.sleep(0.2)
    assert fake_link.hex_frames == ["AA"]


def test_write_timed_out_in_queue_is_never_sent(device_repo, command_queue, scheduler, fake_link, seed_actuator):
    device_id = seed_actuator()
    controller = DeviceControlService(device_repo, command_queue, scheduler, settle_s=0.1, write_timeout_s=0.1)
    release = threading.Event()
    command_queue.submit(lambda _link: release.wait(2))

    result = controller.control_device(device_id, "on")

    assert (result.success, result.code) == (False, 500)
    assert "timed out" in result.message
    release.set()
    assert command_queue.submit_sync(lambda link: link.write(b"\x01"), timeout=2) == 1
    assert fake_link.hex_frames == ["01"]
    assert device_repo.get(device_id).control_status is ControlStatus.OFF


def test_write_already_on_the_bus_is_waited_for(device_repo, scheduler, make_link, seed_actuator):
    device_id = seed_actuator()
    link = make_link(write_delay_s=0.4)
    queue = CommandQueue(link, min_spacing_s=0.0)
    queue.start()
    try:
        controller = DeviceControlService(device_repo, queue, scheduler, write_timeout_s=0.1)

        result = controller.control_device(device_id, "on")
    finally:
        queue.stop()

    assert result.success
    assert link.hex_frames == ["AA"]
    assert device_repo.get(device_id).control_status is ControlStatus.ON


@pytest.mark.parametrize(
    ("stored", "expected"),
    [("on", ControlStatus.ON), ("OFF", ControlStatus.OFF), ("1", ControlStatus.ON), ("jammed", None)],
)
def test_control_status_spellings_are_tolerated(controller, device_repo, seed_actuator, stored, expected):
    device_id = seed_actuator(control_status=stored)

    assert device_repo.get(device_id).control_status is expected
    assert controller.control_device(device_id, "off").success
    assert device_repo.get(device_id).control_status is ControlStatus.OFF


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(1, ControlStatus.ON), (0, ControlStatus.OFF), (True, ControlStatus.ON), (" On ", ControlStatus.ON)],
)
def test_control_status_lookup(raw, expected):
    assert ControlStatus(raw) is expected


def test_unknown_control_status_still_raises():
    with pytest.raises(ValueError):
        ControlStatus("half")
