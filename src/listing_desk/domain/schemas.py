"""Pydantic v2 schemas for records exchanged with the REST and realtime backends.

The backends speak camelCase (``buyerId``) on some endpoints and snake_case on
others; every model accepts both.
"""

from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _coerce_id(value: Any) -> Any:
    """Ids arrive as ints from MySQL and strings from the chat store."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, str)):
        return str(value)
    return value


def _coerce_timestamp(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        # Realtime backend stores epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


RecordId = Annotated[str | None, BeforeValidator(_coerce_id)]
Timestamp = Annotated[datetime | None, BeforeValidator(_coerce_timestamp)]
# Nulls from the backend read as empty text
Text = Annotated[str, BeforeValidator(lambda v: "" if v is None else v)]


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Inquiries (relational backend)
# ---------------------------------------------------------------------------


class Inquiry(_Record):
    """A buyer inquiry row from the listing backend."""

    id: RecordId
    conversation_key: str | None = None
    buyer_id: RecordId = None
    property_id: RecordId = None
    property_title: str | None = None
    buyer_name: str | None = None
    buyer_email: str | None = None
    buyer_phone: str | None = None
    buyer_profile_image: str | None = None
    avatar: str | None = None
    message: Text = ""
    status: str = "new"
    created_at: Timestamp = None

    @property
    def key(self) -> str:
        """Conversation key: explicit when provided, else ``buyer_property``."""
        if self.conversation_key:
            return self.conversation_key
        return f"{self.buyer_id or 'guest'}_{self.property_id}"


class BuyerProfile(_Record):
    """Buyer display details resolved for chat-only conversations."""

    id: RecordId = None
    name: str | None = "Buyer"
    email: Text = ""
    phone: Text = ""
    profile_image: str | None = None


# ---------------------------------------------------------------------------
# Realtime chat
# ---------------------------------------------------------------------------


class ChatRoom(_Record):
    """A chat room from the realtime backend."""

    id: str
    buyer_id: RecordId = None
    property_id: RecordId = None
    receiver_id: RecordId = None
    receiver_role: str | None = None
    last_message: Text = ""
    created_at: Timestamp = None
    updated_at: Timestamp = None
    read_status: dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.buyer_id or 'guest'}_{self.property_id}"

    def status_for(self, user_id: Any) -> str | None:
        return self.read_status.get(str(user_id)) or None


class ChatMessage(_Record):
    """A single chat message as delivered to subscribers."""

    model_config = ConfigDict(frozen=True)

    id: str
    room_id: str | None = None
    sender_id: RecordId = None
    sender_role: str = "buyer"
    text: Text = ""
    timestamp: Timestamp = None

    @property
    def is_placeholder(self) -> bool:
        """Locally synthesized opening message that mirrors the inquiry text."""
        return self.id.startswith("initial-")


# ---------------------------------------------------------------------------
# Merged view
# ---------------------------------------------------------------------------


class EnrichedConversation(_Record):
    """One conversation per (buyer, property): an inquiry, a chat room, or both."""

    model_config = ConfigDict(frozen=True)

    id: str
    conversation_key: str
    inquiry_id: str | None = None
    buyer_id: str | None = None
    property_id: str | None = None
    property_title: str | None = None
    buyer_name: str = "Buyer"
    buyer_email: str = ""
    buyer_phone: str = ""
    buyer_profile_image: str | None = None
    avatar: str = "B"
    message: Text = ""
    status: str = "new"
    created_at: datetime = EPOCH
    last_message: Text = ""
    last_activity: datetime = EPOCH
    chat_room_id: str | None = None
    read_status: str | None = None
    is_chat_only: bool = False

    def same_conversation(self, other: "EnrichedConversation") -> bool:
        return (
            self.id == other.id
            or self.conversation_key == other.conversation_key
            or (self.buyer_id == other.buyer_id and self.property_id == other.property_id)
        )


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------


class ModerationResponse(BaseModel):
    """Verdict returned by the moderate-and-upload endpoint."""

    status: str
    message: Text = ""
    error_code: str | None = None
    details: dict[str, Any] | None = None
    data: dict[str, Any] | None = None
    http_status: int = 200
