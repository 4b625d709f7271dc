"""
Device Operation API Blueprint
==============================

- operations.py: device control and pushed readings
- status.py: serial port, command queue and poller status

All routes are registered under the /deviceOperation prefix.
"""

from __future__ import annotations

import logging

from flask import Blueprint

devices_api = Blueprint("devices_api", __name__)
logger = logging.getLogger("devices_api")

# Import sub-modules to register their routes on devices_api
from . import operations, status  # noqa: E402

_ = (operations, status)

__all__ = ["devices_api"]
