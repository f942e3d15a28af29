"""SQLAlchemy ORM models for the local realtime chat store.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for the per-user read status map
- DateTime for timestamps (stored naive, read back as UTC)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from listing_desk.infra.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatRoomRecord(Base):
    """One room per (buyer, counterpart, property)."""

    __tablename__ = "chat_rooms"

    # Deterministic id from generate_room_id(), not a UUID
    id = Column(String(120), primary_key=True)
    buyer_id = Column(String(36), nullable=False, index=True)
    receiver_id = Column(String(36), nullable=False, index=True)
    receiver_role = Column(String(20), default="agent")
    property_id = Column(String(36), nullable=False)
    last_message = Column(Text, default="")
    read_status = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow)

    messages = relationship(
        "ChatMessageRecord",
        back_populates="room",
        order_by="ChatMessageRecord.created_at",
    )


class ChatMessageRecord(Base):
    """A message posted to a chat room."""

    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    room_id = Column(String(120), ForeignKey("chat_rooms.id"), nullable=False, index=True)
    sender_id = Column(String(36), nullable=False)
    sender_role = Column(String(20), nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    room = relationship("ChatRoomRecord", back_populates="messages")
