"""
Device Store
Durable record of devices and relayed messages (the `devices` and `messages` tables).

Every public coroutine opens its own session and commits before returning, so
callers never hold a transaction across an await on the network. SQLAlchemy
failures are translated to StoreUnavailable here and nowhere else.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database.connection import AsyncSessionLocal
from app.enums import DeviceRole, DeviceStatus
from app.exceptions.errors import AlreadyPaired, InvalidCode, StoreUnavailable, UnregisteredSession
from app.models.device import Device
from app.models.message import Message
from app.core.logger import get_logger

logger = get_logger("device_store")


@dataclass
class PairingResult:
    holder_id: str
    requester_id: str
    unpaired_ids: List[str] = field(default_factory=list)


class DeviceStore:
    """Async persistence for devices and messages"""

    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self.session_factory = session_factory

    async def get_device(self, device_id: str) -> Optional[Device]:
        """Full device row. Inspection helper for tests and operators; the relay paths never need it."""
        try:
            async with self.session_factory() as db:
                return await db.get(Device, device_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load device {device_id}: {e}", exc_info=True)
            raise StoreUnavailable("get_device") from e

    async def upsert_online(self, device_id: str, role: DeviceRole) -> Device:
        """
        Insert the device as ONLINE, or mark an existing one ONLINE.
        Role, peer and pairing code of an existing device are left as they are.
        """
        try:
            try:
                return await self._upsert_online(device_id, role)
            except IntegrityError:
                # another session inserted the same id between our read and write
                logger.debug(f"Concurrent insert for {device_id}, retrying as update")
                return await self._upsert_online(device_id, role)
        except SQLAlchemyError as e:
            logger.error(f"Failed to register device {device_id}: {e}", exc_info=True)
            raise StoreUnavailable("register") from e

    async def _upsert_online(self, device_id: str, role: DeviceRole) -> Device:
        now = datetime.utcnow()
        async with self.session_factory() as db:
            async with db.begin():
                device = await db.get(Device, device_id)
                if device is None:
                    device = Device(
                        id=device_id,
                        role=DeviceRole(role).value,
                        status=DeviceStatus.ONLINE.value,
                        last_heartbeat=now,
                        created_at=now
                    )
                    db.add(device)
                    logger.info(f"Created device {device_id} ({device.role})")
                else:
                    device.status = DeviceStatus.ONLINE.value
                    device.last_heartbeat = now
            return device

    async def mark_offline(self, device_id: str) -> None:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    await db.execute(
                        update(Device)
                        .where(Device.id == device_id)
                        .values(status=DeviceStatus.OFFLINE.value)
                        .execution_options(synchronize_session=False)
                    )
        except SQLAlchemyError as e:
            logger.error(f"Failed to mark {device_id} offline: {e}", exc_info=True)
            raise StoreUnavailable("disconnect") from e

    async def set_pairing_code(self, device_id: str, code: str) -> bool:
        """
        Store `code` on the device, replacing any previous one.
        Returns False when another device already holds the same code.
        Raises AlreadyPaired when the device has a peer.
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    result = await db.execute(
                        update(Device)
                        .where(Device.id == device_id, Device.peer_id.is_(None))
                        .values(pairing_code=code, pairing_code_created_at=datetime.utcnow())
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        exists = (await db.execute(select(Device.id).where(Device.id == device_id))).first()
                        if exists is None:
                            raise UnregisteredSession(device_id)
                        raise AlreadyPaired(device_id)
            return True
        except IntegrityError:
            return False
        except SQLAlchemyError as e:
            logger.error(f"Failed to store pairing code for {device_id}: {e}", exc_info=True)
            raise StoreUnavailable("generate_pairing_code") from e

    async def pair_with_code(
        self,
        requester_id: str,
        code: str,
        ttl_seconds: int = 0,
        clear_stale_peers: bool = True
    ) -> PairingResult:
        """
        Link the requester with the device advertising `code`, in one transaction.

        The holder row is only updated while it still carries the code, so of two
        concurrent redeemers exactly one sees a row change; the other gets InvalidCode.
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    holder_stmt = select(Device.id, Device.peer_id).where(Device.pairing_code == code)
                    if ttl_seconds > 0:
                        cutoff = datetime.utcnow() - timedelta(seconds=ttl_seconds)
                        holder_stmt = holder_stmt.where(Device.pairing_code_created_at >= cutoff)
                    holder = (await db.execute(holder_stmt)).first()
                    if holder is None or holder.id == requester_id:
                        raise InvalidCode()

                    requester = (await db.execute(
                        select(Device.id, Device.peer_id).where(Device.id == requester_id)
                    )).first()
                    if requester is None:
                        raise UnregisteredSession(requester_id)

                    claimed = await db.execute(
                        update(Device)
                        .where(Device.id == holder.id, Device.pairing_code == code)
                        .values(
                            pairing_code=None,
                            pairing_code_created_at=None,
                            peer_id=requester_id,
                            status=DeviceStatus.PAIRED.value
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if claimed.rowcount == 0:
                        raise InvalidCode()

                    await db.execute(
                        update(Device)
                        .where(Device.id == requester_id)
                        .values(
                            pairing_code=None,
                            pairing_code_created_at=None,
                            peer_id=holder.id,
                            status=DeviceStatus.PAIRED.value
                        )
                        .execution_options(synchronize_session=False)
                    )

                    unpaired = []
                    if clear_stale_peers:
                        unpaired = await self._clear_stale_peers(
                            db,
                            pair=(holder.id, requester_id),
                            previous=(holder.peer_id, requester.peer_id)
                        )

            return PairingResult(holder_id=holder.id, requester_id=requester_id, unpaired_ids=unpaired)
        except SQLAlchemyError as e:
            logger.error(f"Pairing transaction failed for {requester_id}: {e}", exc_info=True)
            raise StoreUnavailable("pair_with_code") from e

    async def _clear_stale_peers(self, db, pair, previous) -> List[str]:
        stale = sorted({p for p in previous if p and p not in pair})
        if not stale:
            return []
        # only back-references still pointing at the re-paired devices are cleared
        await db.execute(
            update(Device)
            .where(Device.id.in_(stale), Device.peer_id.in_(pair))
            .values(
                peer_id=None,
                status=case(
                    (Device.status == DeviceStatus.PAIRED.value, DeviceStatus.ONLINE.value),
                    else_=Device.status
                )
            )
            .execution_options(synchronize_session=False)
        )
        return stale

    async def get_peer_id(self, device_id: str) -> Optional[str]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(select(Device.peer_id).where(Device.id == device_id))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to resolve peer of {device_id}: {e}", exc_info=True)
            raise StoreUnavailable("forward_sms") from e

    async def add_message(
        self,
        device_id: str,
        sender_from: str,
        content: str,
        timestamp: Optional[datetime] = None
    ) -> Message:
        try:
            async with self.session_factory() as db:
                message = Message(
                    device_id=device_id,
                    sender_from=sender_from,
                    content=content,
                    timestamp=timestamp or datetime.utcnow()
                )
                db.add(message)
                await db.commit()
                return message
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist message from {device_id}: {e}", exc_info=True)
            raise StoreUnavailable("forward_sms") from e

    async def list_messages(self, device_id: str, limit: int = 50) -> List[Message]:
        """
        Most recent messages forwarded by a device, newest first.
        Inspection helper for tests and operators; nothing in the relay reads history back.
        """
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Message)
                    .where(Message.device_id == device_id)
                    .order_by(Message.timestamp.desc(), Message.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to list messages of {device_id}: {e}", exc_info=True)
            raise StoreUnavailable("list_messages") from e
