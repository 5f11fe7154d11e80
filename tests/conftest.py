import os
import tempfile

# must run before app.core.config is imported anywhere
_TMP_DIR = tempfile.mkdtemp(prefix="simlink-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'broker.db')}")
os.environ.setdefault("LOG_DIR", os.path.join(_TMP_DIR, "logs"))
os.environ.setdefault("LOG_LEVEL", "INFO")

import pytest
import pytest_asyncio
from sqlalchemy import update

import app.models  # noqa: F401  registers tables on Base.metadata
from app.database import Base, make_engine, make_session_factory
from app.models.device import Device
from app.services.connection_registry import ConnectionRegistry
from app.services.device_store import DeviceStore
from app.services.session_service import BrokerSession


class FakeTransport:
    """Stands in for a websocket: records every frame sent to it."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_json(self, payload):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(payload)

    def events(self, name):
        return [frame["data"] for frame in self.sent if frame["event"] == name]


@pytest.fixture
def make_session():
    def _make():
        return BrokerSession(FakeTransport())
    return _make


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return DeviceStore(session_factory)


@pytest.fixture
def age_pairing_code(session_factory):
    """Backdate a device's pairing code."""
    async def _age(device_id, created_at):
        async with session_factory() as db:
            await db.execute(
                update(Device).where(Device.id == device_id).values(pairing_code_created_at=created_at)
            )
            await db.commit()
    return _age


@pytest.fixture
def transport():
    return FakeTransport
