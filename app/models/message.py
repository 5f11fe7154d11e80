from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database.base import Base


class Message(Base):
    """
    An SMS relayed by a device. The receiving peer is resolved at delivery time and not stored.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(64), ForeignKey("devices.id"), nullable=False, index=True)
    sender_from = Column(Text, nullable=True)  # original SMS sender, not validated
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    device = relationship("Device", back_populates="messages")

    __table_args__ = (
        Index("ix_message_device_time", "device_id", "timestamp"),
    )
