"""RS485 serial transport: port handle, hex codec and the command queue."""

from app.hardware.rs485.command_queue import CommandQueue, SerialTask
from app.hardware.rs485.hexcodec import bytes_to_hex, hex_to_bytes
from app.hardware.rs485.serial_link import PortStatus, SerialLink

__all__ = ["CommandQueue", "PortStatus", "SerialLink", "SerialTask", "bytes_to_hex", "hex_to_bytes"]
