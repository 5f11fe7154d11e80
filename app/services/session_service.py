"""
Session Lifecycle Service
Handles connect / register / disconnect transitions and keeps the registry and
the store in agreement about which devices are online.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import cuid

from app.enums import DeviceRole, SessionState
from app.services.connection_registry import ConnectionRegistry
from app.services.device_store import DeviceStore
from app.core.logger import get_logger

logger = get_logger("session_service")


class BrokerSession:
    """One live transport connection. A device may be represented by several over time."""

    def __init__(self, transport: Any, session_id: Optional[str] = None):
        self.id = session_id or cuid.cuid()
        self.transport = transport
        self.state = SessionState.CONNECTED
        self.device_id: Optional[str] = None
        self._send_lock = asyncio.Lock()

    async def send(self, payload: Dict[str, Any]) -> None:
        if self.state == SessionState.CLOSED:
            raise ConnectionError(f"session {self.id} is closed")
        # frames from the session's own handler and from other sessions' deliveries must not interleave
        async with self._send_lock:
            await self.transport.send_json(payload)

    def __repr__(self) -> str:
        return f"<BrokerSession {self.id} {self.state.value} device={self.device_id}>"


class SessionService:
    """Service for the lifecycle of broker sessions"""

    def __init__(self, store: DeviceStore, registry: ConnectionRegistry):
        self.store = store
        self.registry = registry
        # one lock per device, held across the registry change and the store write
        self._device_locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

    def open(self, transport: Any) -> BrokerSession:
        session = BrokerSession(transport)
        logger.info(f"New connection: {session.id}")
        return session

    async def register(self, session: BrokerSession, device_id: str, role: DeviceRole) -> None:
        """
        Bind the session to the device and mark the device ONLINE.
        Registering again on the same session repeats the same effects.
        """
        if session.state == SessionState.CLOSED:
            logger.warning(f"Ignoring register on closed session {session.id}")
            return

        async with self._device_guard(device_id):
            # closed while waiting for the device
            if session.state == SessionState.CLOSED:
                return
            await self.registry.register(session, device_id)
            session.device_id = device_id
            session.state = SessionState.REGISTERED

            await self.store.upsert_online(device_id, role)
        logger.info(f"Device {device_id} ({DeviceRole(role).value}) registered on session {session.id}")

    async def close(self, session: BrokerSession) -> None:
        """
        Tear the session down. The device goes OFFLINE unless a newer session
        already represents it. Peer and pairing code are kept.
        """
        if session.state == SessionState.CLOSED:
            return
        session.state = SessionState.CLOSED

        device_id = self.registry.lookup_device(session.id)
        if device_id is None:
            logger.info(f"Connection closed: {session.id}")
            return

        async with self._device_guard(device_id):
            await self.registry.remove(session.id)
            if self.registry.is_online(device_id):
                logger.info(f"Session {session.id} closed; device {device_id} still live on another session")
                return

            await self.store.mark_offline(device_id)
        logger.info(f"Device {device_id} disconnected (session {session.id})")

    @asynccontextmanager
    async def _device_guard(self, device_id: str):
        lock = self._device_locks.setdefault(device_id, asyncio.Lock())
        self._lock_holders[device_id] = self._lock_holders.get(device_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[device_id] -= 1
            if self._lock_holders[device_id] == 0:
                del self._lock_holders[device_id]
                del self._device_locks[device_id]
