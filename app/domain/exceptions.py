"""Centralized exception hierarchy for the station.

All domain and service exceptions inherit from :class:`StationError` so that
callers can catch a single base class when they need a broad safety net, yet
still match on specific subclasses where narrower handling is appropriate.

The devices blueprint maps these to HTTP status codes through
``http_status``.

Hierarchy
---------
::

    StationError (base, maps to 500)
    ├── NotFoundError            (404, entity does not exist)
    └── DeviceError              (503, hardware communication)
        ├── SerialLinkError      (503, frame not written)
        └── CommandQueueError    (503, queue stopped or misused)
"""

from __future__ import annotations


class StationError(Exception):
    """Base exception for all station application errors.

    Parameters
    ----------
    message:
        Human-readable description (logged server-side).
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


class NotFoundError(StationError):
    """Requested entity does not exist (HTTP 404)."""

    http_status: int = 404


class DeviceError(StationError):
    """Hardware communication or device-protocol failure (HTTP 503)."""

    http_status: int = 503


class SerialLinkError(DeviceError):
    """A frame could not be written to the serial port."""


class CommandQueueError(DeviceError):
    """The command queue is stopped or was called from its own worker."""
