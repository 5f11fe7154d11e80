"""
Connection Registry
In-memory map from live transport session to device id, and the only place that
knows which devices are reachable right now.
"""

import asyncio
from collections import defaultdict
from typing import Any, Dict, List, Optional, Protocol

from app.core.logger import get_logger

logger = get_logger("connection_registry")


class EventSink(Protocol):
    id: str

    async def send(self, payload: Dict[str, Any]) -> None: ...


class ConnectionRegistry:
    """
    Session -> device routing table.

    Mutations for a device are serialised by that device's lock; unrelated
    devices never contend. Delivery is fire-and-forget: nothing is queued for a
    device without a live session.
    """

    def __init__(self):
        self._device_by_session: Dict[str, str] = {}
        self._sessions_by_device: Dict[str, Dict[str, EventSink]] = defaultdict(dict)
        self._locks: Dict[str, asyncio.Lock] = {}

    async def register(self, session: EventSink, device_id: str) -> None:
        previous = self._device_by_session.get(session.id)
        if previous is not None and previous != device_id:
            async with self._lock(previous):
                self._drop(session.id, previous)

        async with self._lock(device_id):
            self._device_by_session[session.id] = device_id
            self._sessions_by_device[device_id][session.id] = session
        logger.debug(f"Session {session.id} -> device {device_id}")

    def lookup_device(self, session_id: str) -> Optional[str]:
        return self._device_by_session.get(session_id)

    async def remove(self, session_id: str) -> Optional[str]:
        """Forget the session. Returns the device it represented, if any."""
        device_id = self._device_by_session.get(session_id)
        if device_id is None:
            return None
        async with self._lock(device_id):
            self._drop(session_id, device_id)
        return device_id

    def is_online(self, device_id: str) -> bool:
        return bool(self._sessions_by_device.get(device_id))

    async def deliver_to(self, device_id: str, payload: Dict[str, Any]) -> int:
        """Push `payload` to every live session of the device. Returns how many sends succeeded."""
        if device_id not in self._sessions_by_device:
            logger.debug(f"{payload.get('event')} for {device_id} not delivered: no live session")
            return 0
        async with self._lock(device_id):
            targets: List[EventSink] = list(self._sessions_by_device.get(device_id, {}).values())

        delivered = 0
        for target in targets:
            try:
                await target.send(payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping {payload.get('event')} for {device_id} on session {target.id}: {e}")
        return delivered

    def _lock(self, device_id: str) -> asyncio.Lock:
        return self._locks.setdefault(device_id, asyncio.Lock())

    def _drop(self, session_id: str, device_id: str) -> None:
        if self._device_by_session.get(session_id) == device_id:
            del self._device_by_session[session_id]
        sessions = self._sessions_by_device.get(device_id)
        if sessions is not None:
            sessions.pop(session_id, None)
            if not sessions:
                del self._sessions_by_device[device_id]
                # critical sections never await, so nobody can be queued on this lock
                self._locks.pop(device_id, None)
