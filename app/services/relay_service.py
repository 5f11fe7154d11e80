"""
Relay Service
Forwards an SMS from a device to its current peer: persist first, then push live.
"""

from typing import Optional

from app.models.message import Message
from app.schemas.relay_schemas import new_sms
from app.services.connection_registry import ConnectionRegistry
from app.services.device_store import DeviceStore
from app.core.logger import get_logger

logger = get_logger("relay_service")


class RelayService:
    """Service for relaying messages between paired devices"""

    def __init__(self, store: DeviceStore, registry: ConnectionRegistry):
        self.store = store
        self.registry = registry

    async def forward(self, sender_session_id: str, sender_from: str, content: str) -> Optional[Message]:
        """
        Returns the stored message, or None when nothing was relayed
        (unregistered session or a device without a peer).
        """
        device_id = self.registry.lookup_device(sender_session_id)
        if device_id is None:
            logger.warning(f"forward_sms from unregistered session {sender_session_id} ignored")
            return None

        peer_id = await self.store.get_peer_id(device_id)
        if not peer_id:
            logger.warning(f"forward_sms from {device_id} dropped: device has no peer")
            return None

        message = await self.store.add_message(device_id, sender_from, content)

        # push failures never roll back the stored message
        delivered = await self.registry.deliver_to(
            peer_id,
            new_sms(message.sender_from, message.content, message.timestamp)
        )
        logger.info(
            f"Forwarded SMS {message.id} from {device_id} to {peer_id}"
            f" ({'live' if delivered else 'stored only'})"
        )
        return message
