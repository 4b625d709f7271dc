"""Serial bus status."""

import logging

from app.utils.http import safe_route

from ..devices import devices_api
from .._common import get_container, success

logger = logging.getLogger(__name__)


@devices_api.get("/serial/status")
@safe_route("Failed to read serial status")
def serial_status():
    """Port state, available ports, command queue depth and per-sensor polling health."""
    return success(get_container().serial_status())
