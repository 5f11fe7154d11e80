from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict
from datetime import datetime

from app.core.config import settings
from app.enums import DeviceRole, ServerEvent


class EventFrame(BaseModel):
    """Envelope for every websocket frame, in both directions"""
    event: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "event": "register",
                "data": {"deviceId": "AG1", "role": "AGENT"}
            }
        }


# ============================================================================
# Client -> server requests
# ============================================================================

class RegisterInput(BaseModel):
    deviceId: str = Field(..., min_length=1, max_length=64)
    role: DeviceRole = DeviceRole.AGENT


class GeneratePairingCodeInput(BaseModel):
    deviceId: str = Field(..., min_length=1, max_length=64)


class PairWithCodeInput(BaseModel):
    deviceId: str = Field(..., min_length=1, max_length=64)
    code: str = Field(..., min_length=1, max_length=16)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        """Codes are issued uppercase; accept them as typed by a human"""
        return v.strip().upper()


class ForwardSmsInput(BaseModel):
    from_: str = Field("", alias="from")
    content: str

    @field_validator("content")
    @classmethod
    def cap_content(cls, v: str) -> str:
        if len(v.encode("utf-8")) > settings.MAX_CONTENT_BYTES:
            raise ValueError(f"content exceeds {settings.MAX_CONTENT_BYTES} bytes")
        return v


# ============================================================================
# Server -> client events
# ============================================================================

def pairing_code_generated(code: str) -> Dict[str, Any]:
    return EventFrame(event=ServerEvent.PAIRING_CODE_GENERATED.value, data={"code": code}).model_dump()


def pairing_success(peer_id: str) -> Dict[str, Any]:
    return EventFrame(event=ServerEvent.PAIRING_SUCCESS.value, data={"peerId": peer_id}).model_dump()


def pairing_error(message: str) -> Dict[str, Any]:
    return EventFrame(event=ServerEvent.PAIRING_ERROR.value, data={"message": message}).model_dump()


def new_sms(sender_from: str, content: str, timestamp: datetime) -> Dict[str, Any]:
    return EventFrame(
        event=ServerEvent.NEW_SMS.value,
        data={
            "from": sender_from,
            "content": content,
            "timestamp": timestamp.isoformat() + "Z",
        }
    ).model_dump()
