"""
Device Operations
Handles manual on/off control and readings pushed by devices that are not polled.
"""

import logging

from flask import jsonify
from pydantic import ValidationError as PydanticValidationError

from app.domain.exceptions import NotFoundError
from app.domain.sensors.reading import Reading
from app.schemas.events import DeviceControlRequest, ReadingPushRequest
from app.utils.http import safe_route
from app.utils.time import coerce_datetime, iso_now, utc_now

from ..devices import devices_api
from .._common import (
    fail,
    get_data_processing_service,
    get_device_control_service,
    get_device_repo,
    get_json,
    success,
)

logger = logging.getLogger(__name__)


@devices_api.post("/control")
@safe_route("Failed to control device")
def control_device():
    """
    Switch a device on or off.

    Request body:
        {"deviceId": 12, "action": "on" | "off", "index": 0 | 1}

    The body of the response is the control result
    ``{"success", "code", "message"}`` and the HTTP status equals ``code``.
    """
    try:
        payload = DeviceControlRequest.model_validate(get_json())
    except PydanticValidationError as e:
        return fail("Invalid control request", 400, details={"errors": e.errors(include_url=False)})

    result = get_device_control_service().control_device(payload.device_id, payload.action, payload.index)
    logger.info(
        "Manual %s of device %s (index %s): %s %s",
        payload.action,
        payload.device_id,
        payload.index,
        result.code,
        result.message,
    )
    response = jsonify(result.to_dict())
    response.status_code = result.code
    return response


@devices_api.post("/readings")
@safe_route("Failed to process reading")
def push_reading():
    """
    Accept a reading pushed by a device and run it through the same
    pipeline as a polled one (store, publish, alerts, auto-control).
    """
    try:
        payload = ReadingPushRequest.model_validate(get_json())
    except PydanticValidationError as e:
        return fail("Invalid reading", 400, details={"errors": e.errors(include_url=False)})

    device_repo = get_device_repo()
    device = device_repo.get(payload.device_id)
    if device is None:
        raise NotFoundError(f"Device {payload.device_id} not found")

    timestamp = coerce_datetime(payload.timestamp) if payload.timestamp else None
    reading = Reading(
        device_id=device.device_id,
        device_name=device.device_name,
        device_type=device.device_type,
        values=payload.values,
        pasture_id=device.pasture_id,
        batch_id=device.batch_id,
        timestamp=timestamp or utc_now(),
    )
    device_repo.mark_online(device.device_id, iso_now())
    get_data_processing_service().process_and_store(reading)
    return success(reading.to_dict(), 202, message="Reading accepted")
