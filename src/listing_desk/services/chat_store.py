"""SQL-backed realtime chat store.

Rooms and messages persist through the async session; subscriptions are
in-process listeners that receive the full message list of a room whenever
it changes. The session is flushed, not committed; the caller owns the
transaction.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from listing_desk.domain.models import ChatMessageRecord, ChatRoomRecord
from listing_desk.domain.schemas import ChatMessage, ChatRoom
from listing_desk.services.chat_backend import MessageListener, Unsubscribe, generate_room_id

logger = logging.getLogger(__name__)


def _to_message(record: ChatMessageRecord) -> ChatMessage:
    return ChatMessage.model_validate({
        "id": record.id,
        "room_id": record.room_id,
        "sender_id": record.sender_id,
        "sender_role": record.sender_role,
        "text": record.text,
        "timestamp": record.created_at,
    })


def _to_room(record: ChatRoomRecord) -> ChatRoom:
    return ChatRoom.model_validate({
        "id": record.id,
        "buyer_id": record.buyer_id,
        "property_id": record.property_id,
        "receiver_id": record.receiver_id,
        "receiver_role": record.receiver_role,
        "last_message": record.last_message,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
        "read_status": dict(record.read_status or {}),
    })


class SqlChatBackend:
    """Chat rooms, messages and per-user read status on SQLAlchemy."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._listeners: dict[str, list[MessageListener]] = {}

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def create_or_get_room(
        self,
        buyer_id: Any,
        receiver_id: Any,
        receiver_role: str,
        property_id: Any,
    ) -> str:
        room_id = generate_room_id(buyer_id, receiver_id, property_id)
        room = await self.db.get(ChatRoomRecord, room_id)
        if room:
            logger.debug("Found existing chat room %s", room_id)
            return room_id

        now = datetime.now(timezone.utc)
        room = ChatRoomRecord(
            id=room_id,
            buyer_id=str(buyer_id),
            receiver_id=str(receiver_id),
            receiver_role=receiver_role,
            property_id=str(property_id),
            last_message="",
            read_status={},
            created_at=now,
            updated_at=now,
        )
        self.db.add(room)
        await self.db.flush()
        logger.info("Created chat room %s", room_id)
        return room_id

    async def get_rooms_for_user(self, user_id: Any) -> list[ChatRoom]:
        """Rooms where *user_id* is either the buyer or the receiver, newest first."""
        uid = str(user_id)
        result = await self.db.execute(
            select(ChatRoomRecord)
            .where(or_(ChatRoomRecord.buyer_id == uid, ChatRoomRecord.receiver_id == uid))
            .order_by(ChatRoomRecord.updated_at.desc())
        )
        return [_to_room(r) for r in result.scalars().all()]

    async def update_read_status(self, room_id: str, user_id: Any, status: str) -> None:
        room = await self._require_room(room_id)
        # Reassign so the JSON column registers the change
        room.read_status = {**(room.read_status or {}), str(user_id): status}
        await self.db.flush()
        logger.debug("Room %s read status for %s -> %s", room_id, user_id, status)

    async def get_read_status(self, room_id: str, user_id: Any) -> str | None:
        room = await self.db.get(ChatRoomRecord, room_id)
        if room is None:
            return None
        return (room.read_status or {}).get(str(user_id))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(self, room_id: str, sender_id: Any, sender_role: str, text: str) -> ChatMessage:
        room = await self._require_room(room_id)
        now = datetime.now(timezone.utc)
        record = ChatMessageRecord(
            id=str(uuid.uuid4()),
            room_id=room_id,
            sender_id=str(sender_id),
            sender_role=sender_role,
            text=text,
            created_at=now,
        )
        self.db.add(record)
        room.last_message = text
        room.updated_at = now
        await self.db.flush()

        await self._notify(room_id)
        return _to_message(record)

    async def get_messages(self, room_id: str) -> list[ChatMessage]:
        result = await self.db.execute(
            select(ChatMessageRecord)
            .where(ChatMessageRecord.room_id == room_id)
            .order_by(ChatMessageRecord.created_at)
        )
        return [_to_message(r) for r in result.scalars().all()]

    async def subscribe(self, room_id: str, listener: MessageListener) -> Unsubscribe:
        """Register *listener* and deliver the current message list right away."""
        self._listeners.setdefault(room_id, []).append(listener)
        listener(await self.get_messages(room_id))

        def unsubscribe() -> None:
            listeners = self._listeners.get(room_id, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(room_id, None)

        return unsubscribe

    def listener_count(self, room_id: str) -> int:
        return len(self._listeners.get(room_id, ()))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _require_room(self, room_id: str) -> ChatRoomRecord:
        room = await self.db.get(ChatRoomRecord, room_id)
        if room is None:
            raise LookupError(f"Chat room {room_id} not found")
        return room

    async def _notify(self, room_id: str) -> None:
        listeners = list(self._listeners.get(room_id, ()))
        if not listeners:
            return
        messages = await self.get_messages(room_id)
        for listener in listeners:
            try:
                listener(messages)
            except Exception:
                logger.exception("Chat listener for room %s failed", room_id)
