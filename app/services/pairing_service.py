"""
Pairing Service
Issues short human-shareable pairing codes and redeems them into a symmetric
peer link between two devices.
"""

import secrets
import string

from app.core.config import settings
from app.exceptions.errors import CodeGenerationExhausted
from app.schemas.relay_schemas import pairing_success
from app.services.connection_registry import ConnectionRegistry
from app.services.device_store import DeviceStore, PairingResult
from app.core.logger import get_logger

logger = get_logger("pairing_service")

CODE_ALPHABET = string.ascii_uppercase + string.digits


def new_pairing_code(length: int = 6) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class PairingService:
    """Service for pairing-code issuance and redemption"""

    def __init__(
        self,
        store: DeviceStore,
        registry: ConnectionRegistry,
        code_length: int = settings.PAIRING_CODE_LENGTH,
        max_attempts: int = settings.PAIRING_CODE_MAX_ATTEMPTS,
        code_ttl_seconds: int = settings.PAIRING_CODE_TTL_SECONDS,
        clear_stale_peers: bool = settings.CLEAR_STALE_PEER_ON_REPAIR,
        code_factory=new_pairing_code
    ):
        self.store = store
        self.registry = registry
        self.code_length = code_length
        self.max_attempts = max_attempts
        self.code_ttl_seconds = code_ttl_seconds
        self.clear_stale_peers = clear_stale_peers
        self.code_factory = code_factory

    async def generate_code(self, device_id: str) -> str:
        """
        Store a fresh code on the device, replacing any previous one, and return it.
        A code already held by another device is regenerated up to max_attempts times.
        """
        for attempt in range(1, self.max_attempts + 1):
            code = self.code_factory(self.code_length)
            if await self.store.set_pairing_code(device_id, code):
                logger.info(f"Pairing code issued to {device_id}")
                return code
            logger.warning(f"Pairing code collision for {device_id} (attempt {attempt}/{self.max_attempts})")

        raise CodeGenerationExhausted(self.max_attempts)

    async def redeem_code(self, requesting_device_id: str, code: str) -> PairingResult:
        """
        Pair the requester with the device holding `code` and notify both sides.

        Raises InvalidCode when nobody (else) holds the code or it has expired.
        Both notifications are attempted even if a side has no live session.
        """
        result = await self.store.pair_with_code(
            requesting_device_id,
            code,
            ttl_seconds=self.code_ttl_seconds,
            clear_stale_peers=self.clear_stale_peers
        )
        logger.info(f"Paired {result.requester_id} with {result.holder_id}")
        if result.unpaired_ids:
            logger.info(f"Cleared stale peer link on {', '.join(result.unpaired_ids)}")

        await self.registry.deliver_to(result.requester_id, pairing_success(result.holder_id))
        await self.registry.deliver_to(result.holder_id, pairing_success(result.requester_id))
        return result
