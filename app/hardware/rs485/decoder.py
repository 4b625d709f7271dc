"""
Sensor Frame Decoder
====================
Pure functions mapping ``(device type, raw frame)`` to reading fields.

Frames are Modbus-style replies: address, function code, byte count, then
big-endian 16-bit registers starting at offset 3. No checksum is verified;
length is the only validity signal. Decoding never raises: a field that
cannot be extracted is left out, and a frame no layout matches comes back
as ``{"raw_data": "01 03 ..."}``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from app.enums.device import DeviceType
from app.hardware.rs485.hexcodec import bytes_to_hex

logger = logging.getLogger(__name__)

WEATHER_MULTI_MIN_LEN = 19
WEATHER_SINGLE_MIN_LEN = 7
WATER_QUALITY_MIN_LEN = 9

WIND_DIRECTION_TAG = 0x01
WIND_SPEED_TAG = 0x03

COMPASS = ("north", "northeast", "east", "southeast", "south", "southwest", "west", "northwest")
UNKNOWN_DIRECTION = "unknown"

RAW_DATA = "raw_data"


def _u16(frame: bytes, offset: int) -> int:
    if len(frame) < offset + 2:
        raise IndexError(f"frame too short for register at offset {offset}")
    return int.from_bytes(frame[offset : offset + 2], "big")


def _put(fields: dict[str, Any], key: str, extract: Callable[[], Any]) -> None:
    try:
        fields[key] = extract()
    except Exception as e:
        logger.debug("Dropping field %s: %s", key, e)


def raw_fields(frame: bytes) -> dict[str, Any]:
    return {RAW_DATA: bytes_to_hex(frame)}


def decode_weather(frame: bytes) -> dict[str, Any]:
    """Shutter-box multisensor (>=19 bytes) or single wind probe (>=7 bytes)."""
    fields: dict[str, Any] = {}
    if len(frame) >= WEATHER_MULTI_MIN_LEN:
        _put(fields, "humidity", lambda: round(_u16(frame, 3) / 10.0, 1))
        _put(fields, "temperature", lambda: round(_u16(frame, 5) / 10.0, 1))
        _put(fields, "noise", lambda: round(_u16(frame, 7) / 10.0, 1))
        _put(fields, "pm25", lambda: _u16(frame, 9))
        _put(fields, "pm10", lambda: _u16(frame, 13))
        _put(fields, "light_intensity", lambda: _u16(frame, 17))
        return fields

    if len(frame) >= WEATHER_SINGLE_MIN_LEN:
        tag = frame[0]
        if tag == WIND_DIRECTION_TAG:
            _put(fields, "direction_grade", lambda: _u16(frame, 3))
            _put(fields, "wind_direction", lambda: compass_point(_u16(frame, 3)))
            _put(fields, "direction_angle", lambda: _u16(frame, 5))
            return fields
        if tag == WIND_SPEED_TAG:
            _put(fields, "wind_speed", lambda: _u16(frame, 3) / 10.0)
            return fields
        logger.debug("Unrecognised weather frame tag 0x%02X", tag)

    return raw_fields(frame)


def compass_point(grade: int) -> str:
    """Octant index 0-7 to a compass name; anything else is ``unknown``."""
    if 0 <= grade < len(COMPASS):
        return COMPASS[grade]
    return UNKNOWN_DIRECTION


def decode_water_quality(frame: bytes) -> dict[str, Any]:
    """Water temperature with a decimal-exponent register, then pH x100."""
    if len(frame) < WATER_QUALITY_MIN_LEN:
        return raw_fields(frame)

    fields: dict[str, Any] = {}

    def water_temperature() -> float:
        scale = _u16(frame, 5)
        return round(_u16(frame, 3) / (10**scale), scale)

    _put(fields, "water_temperature", water_temperature)
    _put(fields, "ph_value", lambda: _u16(frame, 7) / 100.0)
    return fields


def decode_frame(device_type: DeviceType | str, frame: bytes) -> dict[str, Any]:
    """Dispatch on the device type; unknown types fall back to raw hex."""
    frame = bytes(frame or b"")
    try:
        kind = DeviceType(device_type)
        if kind is DeviceType.WEATHER:
            fields = decode_weather(frame)
        elif kind is DeviceType.WATER_QUALITY:
            fields = decode_water_quality(frame)
        else:
            fields = raw_fields(frame)
    except Exception as e:
        logger.warning("Frame decode failed for type %s: %s", device_type, e)
        fields = {}
    return fields or raw_fields(frame)
