"""
Relay Controller
Decodes websocket frames and routes each request kind to its service.
"""

import json
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from app.enums import ClientEvent
from app.exceptions.errors import StoreUnavailable, UnregisteredSession
from app.exceptions.handlers import session_exception_handler
from app.schemas.relay_schemas import (
    EventFrame,
    ForwardSmsInput,
    GeneratePairingCodeInput,
    PairWithCodeInput,
    RegisterInput,
    pairing_code_generated
)
from app.services.connection_registry import ConnectionRegistry
from app.services.device_store import DeviceStore
from app.services.pairing_service import PairingService
from app.services.relay_service import RelayService
from app.services.session_service import BrokerSession, SessionService
from app.core.logger import get_logger

logger = get_logger("relay_controller")

Handler = Callable[[BrokerSession, Dict[str, Any]], Awaitable[None]]


class RelayController:
    """Owns the broker's services and the request dispatch table."""

    def __init__(
        self,
        store: DeviceStore,
        registry: Optional[ConnectionRegistry] = None,
        pairing: Optional[PairingService] = None
    ):
        self.store = store
        self.registry = registry or ConnectionRegistry()
        self.sessions = SessionService(store, self.registry)
        self.pairing = pairing or PairingService(store, self.registry)
        self.relay = RelayService(store, self.registry)

        self._handlers: Dict[str, Handler] = {
            ClientEvent.REGISTER.value: self.on_register,
            ClientEvent.GENERATE_PAIRING_CODE.value: self.on_generate_pairing_code,
            ClientEvent.PAIR_WITH_CODE.value: self.on_pair_with_code,
            ClientEvent.FORWARD_SMS.value: self.on_forward_sms,
        }

    def connect(self, transport: Any) -> BrokerSession:
        return self.sessions.open(transport)

    async def disconnect(self, session: BrokerSession) -> None:
        try:
            await self.sessions.close(session)
        except StoreUnavailable as e:
            logger.error(f"Disconnect of session {session.id} not recorded: {e.message}")

    async def dispatch_text(self, session: BrokerSession, text: str) -> None:
        try:
            frame = json.loads(text)
        except ValueError:
            logger.warning(f"Non-JSON frame on session {session.id} ignored")
            return
        await self.dispatch(session, frame)

    async def dispatch(self, session: BrokerSession, frame: Any) -> None:
        """Run one request inside its own error boundary. Never raises."""
        try:
            envelope = EventFrame.model_validate(frame)
        except ValidationError:
            logger.warning(f"Malformed frame on session {session.id} ignored")
            return

        handler = self._handlers.get(envelope.event)
        if handler is None:
            logger.warning(f"Unknown event '{envelope.event}' on session {session.id} ignored")
            return

        try:
            await handler(session, envelope.data)
        except ValidationError as e:
            logger.warning(f"Invalid {envelope.event} payload on session {session.id}: {e.error_count()} error(s)")
        except Exception as e:
            await session_exception_handler(session, envelope.event, e)

    # ------------------------------------------------------------------
    # Request handlers
    # ------------------------------------------------------------------

    async def on_register(self, session: BrokerSession, data: Dict[str, Any]) -> None:
        payload = RegisterInput.model_validate(data)
        await self.sessions.register(session, payload.deviceId, payload.role)

    async def on_generate_pairing_code(self, session: BrokerSession, data: Dict[str, Any]) -> None:
        self._require_registered(session)
        payload = GeneratePairingCodeInput.model_validate(data)
        code = await self.pairing.generate_code(payload.deviceId)
        await session.send(pairing_code_generated(code))

    async def on_pair_with_code(self, session: BrokerSession, data: Dict[str, Any]) -> None:
        self._require_registered(session)
        payload = PairWithCodeInput.model_validate(data)
        await self.pairing.redeem_code(payload.deviceId, payload.code)

    async def on_forward_sms(self, session: BrokerSession, data: Dict[str, Any]) -> None:
        payload = ForwardSmsInput.model_validate(data)
        await self.relay.forward(session.id, payload.from_, payload.content)

    @staticmethod
    def _require_registered(session: BrokerSession) -> None:
        if session.device_id is None:
            raise UnregisteredSession(session.id)
