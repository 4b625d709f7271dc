import time
from unittest.mock import Mock

import pytest

from app.domain.control import ControlResult, Strategy
from app.domain.sensors.reading import Reading
from app.enums.device import ControlStatus, DeviceType
from app.services.application.auto_control_service import AutoControlService, TriggerStateStore


class ManualClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def make_service(strategy_repo, device_repo, controller, command_queue, scheduler):
    def _make(**overrides):
        kwargs = {"cooldown_s": 120.0, "on_spacing_s": 0.0}
        kwargs.update(overrides)
        return AutoControlService(strategy_repo, device_repo, controller, command_queue, scheduler, **kwargs)

    return _make


def _reading(**values):
    return Reading(device_id=100, device_name="Weather box", device_type=DeviceType.WEATHER, values=values)


def test_on_with_duration_runs_full_relay_sequence(
    make_service, strategy_repo, device_repo, fake_link, seed_actuator, wait_for
):
    """on -> settle pulse -> timed auto-off -> its settle pulse, each on the right relay."""
    device_id = seed_actuator(command_on="AA|BB", command_off="CC|DD")
    strategy_repo.create(
        device_id=device_id,
        monitor_param="temperature",
        operator=">",
        condition_value="30",
        action="on",
        execute_duration=0.5,
    )
    service = make_service()

    assert service.check_and_execute_strategy(_reading(temperature=31.5)) == 1

    assert wait_for(lambda: len(fake_link.frames) == 4, timeout=5)
    assert fake_link.hex_frames == ["AA", "CC", "BB", "DD"]

    t_on, t_pulse_on, t_off, t_pulse_off = fake_link.timestamps
    assert t_pulse_on - t_on >= 0.09
    assert t_off - t_on >= 0.45
    assert t_pulse_off - t_off >= 0.09
    assert device_repo.get(device_id).control_status is ControlStatus.OFF

    state = service.get_device_state(device_id)
    assert state["triggered"] is False
    assert state["cooldown_remaining_s"] > 0
    assert state["auto_off_pending"] is False


def test_single_frame_on_with_duration(make_service, strategy_repo, device_repo, fake_link, seed_actuator, wait_for):
    device_id = seed_actuator(command_on="AA", command_off="CC")
    strategy_repo.create(
        device_id=device_id,
        monitor_param="ph_value",
        operator="<",
        condition_value="6.5",
        action="on",
        execute_duration=0.2,
    )
    service = make_service()
    reading = Reading(device_id=5, device_name="Probe", device_type=DeviceType.WATER_QUALITY, values={"ph_value": 6.2})

    service.check_and_execute_strategy(reading)

    assert wait_for(lambda: len(fake_link.frames) == 2)
    assert fake_link.hex_frames == ["AA", "CC"]
    assert wait_for(lambda: device_repo.get(device_id).control_status is ControlStatus.OFF)


def test_repeated_readings_switch_on_once(make_service, strategy_repo, fake_link, seed_actuator, wait_for):
    device_id = seed_actuator()
    strategy_repo.create(
        device_id=device_id, monitor_param="temperature", operator=">", condition_value=30, action="on"
    )
    service = make_service()

    queued = [service.check_and_execute_strategy(_reading(temperature=35)) for _ in range(3)]

    assert queued == [1, 0, 0]
    assert wait_for(lambda: len(fake_link.frames) == 1)
    time.sleep(0.1)
    assert fake_link.hex_frames == ["AA"]


def test_triggered_flag_blocks_on_even_after_manual_off(
    make_service, strategy_repo, controller, fake_link, seed_actuator, wait_for
):
    device_id = seed_actuator()
    strategy_repo.create(
        device_id=device_id, monitor_param="temperature", operator=">", condition_value=30, action="on"
    )
    service = make_service()

    service.check_and_execute_strategy(_reading(temperature=35))
    assert wait_for(lambda: len(fake_link.frames) == 1)
    assert controller.control_device(device_id, "off").success

    assert service.check_and_execute_strategy(_reading(temperature=35)) == 0

    service.cancel_pending(device_id)
    assert service.check_and_execute_strategy(_reading(temperature=35)) == 1


def test_device_already_in_target_state_is_skipped(make_service, strategy_repo, fake_link, seed_actuator):
    device_id = seed_actuator(control_status="1")
    strategy_repo.create(
        device_id=device_id, monitor_param="temperature", operator=">", condition_value=30, action="on"
    )
    service = make_service()

    assert service.check_and_execute_strategy(_reading(temperature=40)) == 0
    assert service.get_device_state(device_id)["triggered"] is False


def test_off_strategy_starts_cooldown(make_service, strategy_repo, device_repo, fake_link, seed_actuator, wait_for):
    device_id = seed_actuator()
    strategy_repo.create(
        device_id=device_id, monitor_param="temperature", operator=">", condition_value=30, action="on"
    )
    strategy_repo.create(
        device_id=device_id, monitor_param="temperature", operator="<=", condition_value=25, action="off"
    )
    service = make_service()

    assert service.check_and_execute_strategy(_reading(temperature=31)) == 1
    assert wait_for(lambda: len(fake_link.frames) == 1)
    assert wait_for(lambda: device_repo.get(device_id).control_status is ControlStatus.ON)

    assert service.check_and_execute_strategy(_reading(temperature=24)) == 1
    assert wait_for(lambda: service.get_device_state(device_id)["cooldown_remaining_s"] > 0)
    assert fake_link.hex_frames == ["AA", "CC"]

    # Hot again but still cooling down
    assert service.check_and_execute_strategy(_reading(temperature=31)) == 0


def test_cooldown_expires():
    clock = ManualClock()
    store = TriggerStateStore(clock=clock)

    store.record_off(1, cooldown_s=120)
    assert store.try_arm(1) == "cooldown"

    clock.now += 121
    assert store.try_arm(1) is None
    assert store.try_arm(1) == "already triggered"


@pytest.mark.parametrize(
    ("operator", "threshold", "value", "matches"),
    [
        (">", "30", 30.0, False),
        (">=", "30", 30.0, True),
        ("<", "6.5", 6.49, True),
        ("<=", "6.5", 6.51, False),
        ("=", "7.1", 7.1, True),
        ("==", "7.10", 7.1, True),
    ],
)
def test_operators(make_service, strategy_repo, seed_actuator, operator, threshold, value, matches):
    device_id = seed_actuator()
    strategy_repo.create(
        device_id=device_id, monitor_param="ph_value", operator=operator, condition_value=threshold, action="on"
    )
    service = make_service()

    assert service.check_and_execute_strategy(_reading(ph_value=value)) == (1 if matches else 0)


def test_unusable_strategies_are_skipped(make_service, strategy_repo, seed_actuator, fake_link, wait_for):
    device_id = seed_actuator()
    strategy_repo.create(device_id=device_id, monitor_param="temperature", operator="~", condition_value=1, action="on")
    strategy_repo.create(
        device_id=device_id, monitor_param="temperature", operator=">", condition_value="warm", action="on"
    )
    strategy_repo.create(device_id=999, monitor_param="temperature", operator=">", condition_value=1, action="on")
    strategy_repo.create(device_id=device_id, monitor_param="humidity", operator=">", condition_value=1, action="on")
    strategy_repo.create(device_id=device_id, monitor_param="raw_data", operator=">", condition_value=1, action="on")
    strategy_repo.create(device_id=device_id, monitor_param="temperature", operator=">", condition_value=1, action="on")
    service = make_service()

    queued = service.check_and_execute_strategy(_reading(temperature=40, raw_data="01 03"))

    assert queued == 1
    assert wait_for(lambda: fake_link.hex_frames == ["AA"])


@pytest.mark.parametrize(
    "bad_fields",
    [
        {"device_id": "pump-7", "execute_duration": None},
        {"device_id": None, "execute_duration": "5s"},
    ],
)
def test_malformed_strategy_row_does_not_block_the_rest(
    make_service, strategy_repo, seed_actuator, fake_link, wait_for, bad_fields
):
    device_id = seed_actuator()
    bad_fields = {**bad_fields, "device_id": bad_fields["device_id"] or device_id}
    strategy_repo.create(monitor_param="temperature", operator=">", condition_value=30, action="on", **bad_fields)
    strategy_repo.create(
        device_id=device_id, monitor_param="temperature", operator=">", condition_value=30, action="on"
    )

    assert len(strategy_repo.list_enabled()) == 1

    service = make_service()
    assert service.check_and_execute_strategy(_reading(temperature=35)) == 1
    assert wait_for(lambda: fake_link.hex_frames == ["AA"])


def test_failed_on_clears_the_trigger(make_service, strategy_repo, fake_link, seed_actuator, wait_for):
    device_id = seed_actuator()
    strategy_repo.create(
        device_id=device_id, monitor_param="temperature", operator=">", condition_value=30, action="on"
    )
    service = make_service()
    fake_link.fail_writes = True

    service.check_and_execute_strategy(_reading(temperature=35))
    assert wait_for(lambda: service.get_device_state(device_id)["triggered"] is False)

    fake_link.fail_writes = False
    assert service.check_and_execute_strategy(_reading(temperature=35)) == 1


def test_matched_actions_are_spaced(make_service, strategy_repo, fake_link, seed_actuator, wait_for):
    first = seed_actuator(command_on="A1", command_off="C1")
    second = seed_actuator(command_on="A2", command_off="C2")
    for device_id in (first, second):
        strategy_repo.create(
            device_id=device_id, monitor_param="temperature", operator=">", condition_value=30, action="on"
        )
    service = make_service(on_spacing_s=0.1)

    assert service.check_and_execute_strategy(_reading(temperature=35)) == 2

    assert wait_for(lambda: len(fake_link.frames) == 2)
    assert fake_link.hex_frames == ["A1", "A2"]
    assert fake_link.timestamps[1] - fake_link.timestamps[0] >= 0.09


def test_jobs_use_the_direct_link_path():
    strategies = Mock()
    strategies.list_enabled.return_value = [
        Strategy(strategy_id=1, device_id=3, monitor_param="temperature", operator=">", condition_value="30", action="on")
    ]
    devices = Mock()
    devices.get.return_value = Mock(device_id=3, control_status=ControlStatus.OFF, command_index=Mock(return_value=0))
    controller = Mock()
    controller.control_device.return_value = ControlResult.ok("Device turned on")
    queue = Mock()
    service = AutoControlService(strategies, devices, controller, queue, Mock(), on_spacing_s=0)

    service.check_and_execute_strategy(_reading(temperature=31))

    task = queue.submit.call_args.args[0]
    link = object()
    task(link)
    controller.control_device.assert_called_once()
    assert controller.control_device.call_args.kwargs["link"] is link


def test_shutdown_cancels_auto_off_timers(make_service, strategy_repo, scheduler, seed_actuator, wait_for):
    device_id = seed_actuator()
    strategy_repo.create(
        device_id=device_id,
        monitor_param="temperature",
        operator=">",
        condition_value=30,
        action="on",
        execute_duration=30,
    )
    service = make_service()

    service.check_and_execute_strategy(_reading(temperature=35))
    assert wait_for(lambda: scheduler.is_pending(f"auto-off:{device_id}"))

    service.shutdown()
    assert not scheduler.is_pending(f"auto-off:{device_id}")
