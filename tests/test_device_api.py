from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from app import create_app
from app.config import AppConfig
from app.enums.device import ControlStatus, DeviceType


@pytest.fixture()
def processing():
    return Mock()


@pytest.fixture()
def client(tmp_path, device_repo, controller, processing):
    container = SimpleNamespace(
        config=AppConfig(database_path=str(tmp_path / "station.db"), log_path=str(tmp_path / "station.log")),
        device_repo=device_repo,
        device_control_service=controller,
        data_processing_service=processing,
        serial_status=lambda: {"port": "/dev/ttyUSB0", "status": "OPEN"},
    )
    app = create_app(container=container)
    app.config["TESTING"] = True
    return app.test_client()


def test_control_switches_device(client, device_repo, fake_link, seed_actuator):
    device_id = seed_actuator(command_on="01 05 00 00 FF 00")

    response = client.post("/deviceOperation/control", json={"deviceId": device_id, "action": "on"})

    assert response.status_code == 200
    assert response.get_json() == {"success": True, "code": 200, "message": "Device turned on"}
    assert fake_link.hex_frames == ["01050000FF00"]
    assert device_repo.get(device_id).control_status is ControlStatus.ON


def test_control_status_mirrors_result_code(client, seed_actuator):
    device_id = seed_actuator(is_controllable=False)

    response = client.post("/deviceOperation/control", json={"deviceId": device_id, "action": "off"})

    assert response.status_code == 403
    body = response.get_json()
    assert body["success"] is False
    assert body["code"] == 403


def test_control_unknown_device(client):
    response = client.post("/deviceOperation/control", json={"deviceId": 404, "action": "on"})
    assert response.status_code == 404


@pytest.mark.parametrize(
    "body",
    [
        {"action": "on"},
        {"deviceId": "abc", "action": "on"},
        {"deviceId": 1},
        None,
    ],
)
def test_control_rejects_malformed_body(client, fake_link, body):
    response = client.post("/deviceOperation/control", json=body)

    assert response.status_code == 400
    assert response.get_json()["ok"] is False
    assert fake_link.frames == []


def test_pushed_reading_runs_the_pipeline(client, device_repo, processing, seed_sensor):
    device_id = seed_sensor(DeviceType.WEATHER, command=None)

    response = client.post(
        "/deviceOperation/readings",
        json={"deviceId": device_id, "values": {"temperature": 21.4, "humidity": 55}},
    )

    assert response.status_code == 202
    reading = processing.process_and_store.call_args.args[0]
    assert reading.device_id == device_id
    assert reading.values["temperature"] == 21.4
    assert reading.data_type == "weather"
    assert device_repo.get(device_id).status == "1"


def test_pushed_reading_for_unknown_device(client, processing):
    response = client.post("/deviceOperation/readings", json={"deviceId": 77, "values": {"temperature": 1}})

    assert response.status_code == 404
    processing.process_and_store.assert_not_called()


def test_pushed_reading_needs_values(client, seed_sensor):
    response = client.post("/deviceOperation/readings", json={"deviceId": seed_sensor(), "values": {}})
    assert response.status_code == 400


def test_serial_status(client):
    response = client.get("/deviceOperation/serial/status")

    assert response.status_code == 200
    assert response.get_json()["data"]["status"] == "OPEN"
