"""
Shared enums for the broker.
"""

from .device_enums import (
    DeviceRole,
    DeviceStatus,
    SessionState,
    ClientEvent,
    ServerEvent
)

__all__ = [
    "DeviceRole",
    "DeviceStatus",
    "SessionState",
    "ClientEvent",
    "ServerEvent"
]
