"""Hex string helpers for command frames stored in the device table."""

from __future__ import annotations


def hex_to_bytes(text: str) -> bytes:
    """Parse ``"01 03 00 00"`` or ``"01030000"``; raises ValueError on bad input."""
    compact = "".join(text.split())
    if not compact:
        raise ValueError("empty hex command")
    if len(compact) % 2:
        raise ValueError(f"odd-length hex command: {text!r}")
    return bytes.fromhex(compact)


def bytes_to_hex(data: bytes) -> str:
    """Upper-case, space separated: ``b"\\x01\\xaf"`` -> ``"01 AF"``."""
    return " ".join(f"{b:02X}" for b in data)
