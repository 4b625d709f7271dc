"""
Serial Link
===========
Exclusive handle to the RS485 adapter shared by every sensor and relay.

Only the command queue worker is expected to call ``write``/``read``; the
re-entrant lock around the native handle is there for stray direct calls
(status endpoints, shutdown).
"""

from __future__ import annotations

import logging
import threading

import serial
from serial.tools import list_ports

from app.hardware.rs485.hexcodec import bytes_to_hex

logger = logging.getLogger(__name__)


class PortStatus:
    NOT_INITIALIZED = "NOT_INITIALIZED"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class SerialLink:
    """Thin wrapper over a pyserial port with non-blocking reads."""

    def __init__(self, timeout_s: float = 1.0):
        self.timeout_s = timeout_s
        self.port_name: str | None = None
        self.baud_rate: int | None = None
        self._port: serial.SerialBase | None = None
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def open(self, port_name: str, baud_rate: int) -> bool:
        """
        Open ``port_name`` at ``baud_rate`` (8N1).

        Accepts any pyserial URL, e.g. ``/dev/ttyUSB0``, ``COM3`` or
        ``loop://``. Returns False and logs the available ports on failure.
        """
        with self._lock:
            if self._port is not None and self._port.is_open:
                if port_name == self.port_name and baud_rate == self.baud_rate:
                    return True
                self._close_locked()

            self.port_name = port_name
            self.baud_rate = baud_rate
            try:
                self._port = serial.serial_for_url(
                    port_name,
                    baudrate=int(baud_rate),
                    bytesize=serial.EIGHTBITS,
                    parity=serial.PARITY_NONE,
                    stopbits=serial.STOPBITS_ONE,
                    timeout=self.timeout_s,
                    write_timeout=self.timeout_s,
                )
            except (serial.SerialException, ValueError) as e:
                self._port = None
                logger.error("❌ Failed to open serial port %s @ %s baud: %s", port_name, baud_rate, e)
                logger.info("Available serial ports: %s", ", ".join(self.list_ports()) or "none")
                return False

            logger.info("✅ Serial port %s opened @ %s baud", port_name, baud_rate)
            return True

    def close(self) -> None:
        with self._lock:
            self._close_locked()

    def _close_locked(self) -> None:
        if self._port is None:
            return
        try:
            if self._port.is_open:
                self._port.close()
                logger.info("Serial port %s closed", self.port_name)
        except serial.SerialException as e:
            logger.warning("Error closing serial port %s: %s", self.port_name, e)

    def is_open(self) -> bool:
        with self._lock:
            return self._port is not None and self._port.is_open

    def port_status(self) -> str:
        with self._lock:
            if self._port is None:
                return PortStatus.NOT_INITIALIZED
            return PortStatus.OPEN if self._port.is_open else PortStatus.CLOSED

    @staticmethod
    def list_ports() -> list[str]:
        return [port.device for port in list_ports.comports()]

    # -------------------------------------------------------------------------
    # I/O
    # -------------------------------------------------------------------------

    def write(self, data: bytes) -> int:
        """Write ``data``; return bytes written, or -1 when closed or on error."""
        with self._lock:
            if self._port is None or not self._port.is_open:
                logger.error("Serial port not open, dropping frame %s", bytes_to_hex(data))
                return -1
            try:
                written = self._port.write(data)
                self._port.flush()
            except serial.SerialException as e:
                logger.error("Serial write failed on %s: %s", self.port_name, e)
                return -1
            logger.debug("TX %s (%s bytes)", bytes_to_hex(data), written)
            return written if written is not None else len(data)

    def read(self, max_bytes: int) -> bytes:
        """Return whatever is buffered, at most ``max_bytes``; never waits for more."""
        with self._lock:
            if self._port is None or not self._port.is_open:
                return b""
            try:
                available = self._port.in_waiting
                if available <= 0:
                    return b""
                data = self._port.read(min(max_bytes, available))
            except serial.SerialException as e:
                logger.error("Serial read failed on %s: %s", self.port_name, e)
                return b""
            if data:
                logger.debug("RX %s", bytes_to_hex(data))
            return bytes(data)
