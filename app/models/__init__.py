"""
Models package for the broker.
"""

from .device import Device
from .message import Message

__all__ = [
    "Device",
    "Message",
]
