"""Interface of the realtime chat backend the inbox talks to."""

from __future__ import annotations

from typing import Any, Callable, Protocol

from listing_desk.domain.schemas import ChatMessage, ChatRoom

MessageListener = Callable[[list[ChatMessage]], Any]
Unsubscribe = Callable[[], None]


def generate_room_id(buyer_id: Any, counterpart_id: Any, property_id: Any) -> str:
    """Deterministic room id, so both parties land in the same room."""
    return f"{buyer_id}_{counterpart_id}_{property_id}"


class ChatBackend(Protocol):
    async def create_or_get_room(
        self,
        buyer_id: Any,
        receiver_id: Any,
        receiver_role: str,
        property_id: Any,
    ) -> str: ...

    async def subscribe(self, room_id: str, listener: MessageListener) -> Unsubscribe:
        """Call *listener* with the full message list now and after every change."""
        ...

    async def send_message(self, room_id: str, sender_id: Any, sender_role: str, text: str) -> ChatMessage: ...

    async def get_messages(self, room_id: str) -> list[ChatMessage]: ...

    async def get_rooms_for_user(self, user_id: Any) -> list[ChatRoom]: ...

    async def update_read_status(self, room_id: str, user_id: Any, status: str) -> None: ...

    async def get_read_status(self, room_id: str, user_id: Any) -> str | None: ...
