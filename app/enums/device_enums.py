"""
Device and session enums for the broker.
"""

from enum import Enum


class DeviceRole(str, Enum):
    AGENT = "AGENT"     # forwards the SMS it receives
    CLIENT = "CLIENT"   # receives forwarded SMS


class DeviceStatus(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    ONLINE = "ONLINE"
    PAIRED = "PAIRED"
    OFFLINE = "OFFLINE"


class SessionState(str, Enum):
    CONNECTED = "CONNECTED"
    REGISTERED = "REGISTERED"
    CLOSED = "CLOSED"


class ClientEvent(str, Enum):
    REGISTER = "register"
    GENERATE_PAIRING_CODE = "generate_pairing_code"
    PAIR_WITH_CODE = "pair_with_code"
    FORWARD_SMS = "forward_sms"


class ServerEvent(str, Enum):
    PAIRING_CODE_GENERATED = "pairing_code_generated"
    PAIRING_SUCCESS = "pairing_success"
    PAIRING_ERROR = "pairing_error"
    NEW_SMS = "new_sms"
