"""
Domain Layer for Sensor Readings
================================
"""

from app.domain.sensors.reading import Reading

__all__ = ["Reading"]
