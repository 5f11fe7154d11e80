from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database.base import Base
from app.enums import DeviceRole, DeviceStatus


class Device(Base):
    """
    A phone running the SimLink app, identified by the id it generated for itself.
    """
    __tablename__ = "devices"

    id = Column(String(64), primary_key=True, index=True)
    role = Column(String(16), nullable=False, default=DeviceRole.AGENT.value)   # 'AGENT' | 'CLIENT'

    pairing_code = Column(String(16), unique=True, nullable=True)
    pairing_code_created_at = Column(DateTime, nullable=True)
    peer_id = Column(String(64), nullable=True)    # symmetric: peer.peer_id == self.id

    status = Column(String(16), nullable=False, default=DeviceStatus.DISCONNECTED.value)
    last_heartbeat = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    messages = relationship("Message", back_populates="device")

    __table_args__ = (
        Index("ix_device_peer", "peer_id"),
    )
