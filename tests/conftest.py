"""
Shared test fixtures for the station core test suite.

Provides:
- SQLite database on a temp file with all tables created (a file rather
  than ``:memory:`` because connections are per thread and the queue
  worker and scheduler threads must see the same data)
- Repository instances wired to the test database
- A fake serial link that records every frame and detects overlapping access
- A recording publisher in place of the MQTT client
- Started command queue / delay scheduler with short timings
- Helpers for seeding devices, thresholds and strategies

Usage:
    def test_example(device_repo, seed_actuator):
        device_id = seed_actuator(command_on="AA", command_off="CC")
        assert device_repo.get(device_id).is_controllable
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import pytest

from app.enums.device import DeviceType
from app.hardware.rs485.command_queue import CommandQueue
from app.services.hardware.device_control_service import DeviceControlService
from app.workers.delay_scheduler import DelayScheduler
from infrastructure.database.repositories.alerts import AlertRepository
from infrastructure.database.repositories.control import StrategyRepository, ThresholdRepository
from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.repositories.readings import ReadingRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)
logging.getLogger("app").setLevel(logging.WARNING)

SETTLE_S = 0.1
SPACING_S = 0.01


# ============================ Test doubles =================================


class FakeSerialLink:
    """Stands in for SerialLink: records frames, replays canned responses."""

    def __init__(self, write_delay_s: float = 0.0):
        self.write_delay_s = write_delay_s
        self.frames: list[bytes] = []
        self.timestamps: list[float] = []
        self.responses: list[bytes] = []
        self.fail_writes = False
        self.overlap_detected = False
        self._active = 0
        self._guard = threading.Lock()

    def _enter(self) -> None:
        with self._guard:
            self._active += 1
            if self._active > 1:
                self.overlap_detected = True

    def _exit(self) -> None:
        with self._guard:
            self._active -= 1

    def write(self, data: bytes) -> int:
        self._enter()
        try:
            if self.write_delay_s:
                time.sleep(self.write_delay_s)
            if self.fail_writes:
                return -1
            self.frames.append(bytes(data))
            self.timestamps.append(time.monotonic())
            return len(data)
        finally:
            self._exit()

    def read(self, max_bytes: int) -> bytes:
        self._enter()
        try:
            if not self.responses:
                return b""
            return self.responses.pop(0)[:max_bytes]
        finally:
            self._exit()

    def is_open(self) -> bool:
        return True

    def port_status(self) -> str:
        return "OPEN"

    def close(self) -> None:
        pass

    @property
    def hex_frames(self) -> list[str]:
        return [frame.hex().upper() for frame in self.frames]


class RecordingPublisher:
    def __init__(self, result: bool = True):
        self.result = result
        self.messages: list[tuple[str, str, int]] = []

    def publish(self, topic: str, payload: str, qos: int = 0) -> bool:
        self.messages.append((topic, payload, qos))
        return self.result


def wait_until(predicate: Callable[[], Any], timeout: float = 3.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler(tmp_path):
    """SQLite database on a temp file with all tables created.

    Each test gets a fresh database.
    """
    handler = SQLiteDatabaseHandler(str(tmp_path / "station.db"))
    handler.create_tables()
    yield handler
    handler.close_db()


@pytest.fixture()
def device_repo(db_handler):
    return DeviceRepository(db_handler)


@pytest.fixture()
def threshold_repo(db_handler):
    return ThresholdRepository(db_handler)


@pytest.fixture()
def strategy_repo(db_handler):
    return StrategyRepository(db_handler)


@pytest.fixture()
def alert_repo(db_handler):
    return AlertRepository(db_handler)


@pytest.fixture()
def reading_repo(db_handler):
    return ReadingRepository(db_handler)


# ========================== Hardware Fixtures ==============================


@pytest.fixture()
def fake_link():
    return FakeSerialLink()


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def make_link():
    return FakeSerialLink


@pytest.fixture()
def command_queue(fake_link):
    queue = CommandQueue(fake_link, min_spacing_s=SPACING_S, name="TestCommandQueue")
    queue.start()
    yield queue
    queue.stop()


@pytest.fixture()
def scheduler():
    delay_scheduler = DelayScheduler(name="TestDelayScheduler")
    delay_scheduler.start()
    yield delay_scheduler
    delay_scheduler.stop()


@pytest.fixture()
def controller(device_repo, command_queue, scheduler):
    return DeviceControlService(device_repo, command_queue, scheduler, settle_s=SETTLE_S, write_timeout_s=5.0)


# ============================ Seed Helpers =================================


@pytest.fixture()
def seed_actuator(device_repo):
    def _seed(
        command_on: str | None = "AA",
        command_off: str | None = "CC",
        *,
        is_controllable: bool = True,
        control_status: str = "0",
        device_name: str = "Aerator",
        pasture_id: int | None = 1,
        batch_id: int | None = 7,
    ) -> int:
        return device_repo.create(
            device_name=device_name,
            device_type=DeviceType.OTHER,
            pasture_id=pasture_id,
            batch_id=batch_id,
            command_on=command_on,
            command_off=command_off,
            is_controllable=is_controllable,
            control_status=control_status,
        )

    return _seed


@pytest.fixture()
def seed_sensor(device_repo):
    def _seed(
        device_type: DeviceType = DeviceType.WATER_QUALITY,
        command: str | None = "01 03 00 00 00 03 05 CB",
        *,
        device_name: str = "Pond probe",
        pasture_id: int | None = 1,
        batch_id: int | None = 7,
    ) -> int:
        return device_repo.create(
            device_name=device_name,
            device_type=device_type,
            pasture_id=pasture_id,
            batch_id=batch_id,
            command=command,
        )

    return _seed


@pytest.fixture()
def wait_for():
    """``wait_for(predicate, timeout=3.0)`` polls until the predicate holds."""
    return wait_until
