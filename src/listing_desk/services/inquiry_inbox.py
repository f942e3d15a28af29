"""Seller inbox: reconciled conversations, the selected thread and its read state.

Read-state changes are a two-step commit. The local conversation flips
first; the realtime backend write is authoritative and a failure there
reverts the flip and raises ``ReadStateSyncError``. The legacy inquiry
status write runs in the background and only logs on failure.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Coroutine, Mapping

from listing_desk.domain.enums import InboxTab, InquiryStatus, SenderRole
from listing_desk.domain.errors import ReadStateSyncError, TransportError
from listing_desk.domain.schemas import ChatMessage, EnrichedConversation
from listing_desk.services.chat_backend import ChatBackend, Unsubscribe
from listing_desk.services.conversation_reconciler import (
    conversation_stats,
    filter_conversations,
    reconcile,
)
from listing_desk.services.inquiry_api import InquiryApi
from listing_desk.services.read_watermarks import ReadWatermarks

logger = logging.getLogger(__name__)

# Fields whose change makes a refreshed conversation replace the selected one
_SYNCED_FIELDS = ("status", "last_message", "buyer_name", "buyer_email", "buyer_phone", "chat_room_id")


class InquiryInbox:
    """Conversation list plus one selected conversation with a live message feed."""

    def __init__(
        self,
        inquiries: InquiryApi,
        chat: ChatBackend,
        current_user_id: Any,
        *,
        user_role: str = SenderRole.AGENT.value,
        property_titles: Mapping[str, str] | None = None,
        watermarks: ReadWatermarks | None = None,
    ) -> None:
        self.inquiries = inquiries
        self.chat = chat
        self.current_user_id = str(current_user_id)
        self.user_role = user_role
        self.property_titles = dict(property_titles or {})
        self.watermarks = watermarks or ReadWatermarks()

        self.conversations: list[EnrichedConversation] = []
        self.selected: EnrichedConversation | None = None
        self.tab: InboxTab = InboxTab.DETAILS

        self._messages: dict[str, list[ChatMessage]] = {}
        self._unsubscribe: Unsubscribe | None = None
        self._subscribed_id: str | None = None
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Conversation list
    # ------------------------------------------------------------------

    async def refresh(self, **filters) -> list[EnrichedConversation]:
        """Reload both sources, reconcile and resync the selected conversation."""
        inquiries = await self.inquiries.list_inquiries(**filters)
        try:
            rooms = await self.chat.get_rooms_for_user(self.current_user_id)
        except Exception:
            # Inquiries still render without the realtime side
            logger.warning("Loading chat rooms failed; showing inquiries only", exc_info=True)
            rooms = []

        self.conversations = await reconcile(
            inquiries,
            rooms,
            self.current_user_id,
            buyer_lookup=self.inquiries.get_buyer,
            property_titles=self.property_titles,
        )
        await self._sync_selected()
        logger.info("Inbox refreshed: %d conversation(s)", len(self.conversations))
        return list(self.conversations)

    def filtered(self, *, status: str | None = None, property_id: Any = None, search: str = "") -> list[EnrichedConversation]:
        return filter_conversations(self.conversations, status=status, property_id=property_id, search=search)

    def stats(self) -> dict[str, int]:
        return conversation_stats(self.conversations)

    def get(self, conversation_id: str) -> EnrichedConversation:
        for c in self.conversations:
            if c.id == conversation_id:
                return c
        raise KeyError(f"Unknown conversation {conversation_id}")

    # ------------------------------------------------------------------
    # Selection and messages
    # ------------------------------------------------------------------

    async def select(self, conversation_id: str) -> EnrichedConversation:
        """Show a conversation: refresh its read status and subscribe to its room."""
        conversation = self.get(conversation_id)

        if conversation.chat_room_id:
            status = await self.chat.get_read_status(conversation.chat_room_id, self.current_user_id)
            if status and status != conversation.status:
                conversation = conversation.model_copy(update={"status": status, "read_status": status})
                self._replace(conversation)

        self.selected = conversation
        self.tab = InboxTab.DETAILS
        await self._subscribe(conversation)

        if conversation.status == InquiryStatus.NEW.value and self._live_messages(conversation.id):
            await self.mark_read(conversation.id)
        return self.selected

    async def open_chat(self) -> list[ChatMessage]:
        """Switch to the message view. Viewing advances the read watermark."""
        if self.selected is None:
            raise LookupError("No conversation selected")
        self.tab = InboxTab.CHAT
        messages = self.messages
        self.watermarks.mark_viewed(self.selected.id, messages)
        if self.selected.status == InquiryStatus.NEW.value:
            await self.mark_read(self.selected.id)
        return messages

    @property
    def messages(self) -> list[ChatMessage]:
        """Messages of the selected conversation, led by the inquiry text."""
        if self.selected is None:
            return []
        return self._thread(self.selected)

    def unread_count(self, conversation_id: str) -> int:
        conversation = self.get(conversation_id)
        return self.watermarks.unread_count(conversation_id, self._thread(conversation))

    def unread_counts(self) -> dict[str, int]:
        return {c.id: self.unread_count(c.id) for c in self.conversations if c.id in self._messages}

    def close(self) -> None:
        """Drop the live subscription and the selection."""
        self._teardown_subscription()
        self.selected = None
        self.tab = InboxTab.DETAILS

    async def wait_idle(self) -> None:
        """Wait for background legacy status writes."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Read state
    # ------------------------------------------------------------------

    async def mark_read(self, conversation_id: str, status: str = InquiryStatus.READ.value) -> EnrichedConversation:
        """Optimistically set *status*, then write it to the realtime backend.

        Raises ``ReadStateSyncError`` after reverting when that write fails.
        """
        previous = self.get(conversation_id)
        if previous.status == status:
            return previous

        self._replace(previous.model_copy(update={"status": status, "read_status": status}))
        try:
            room_id = previous.chat_room_id or await self._room_for(previous)
            await self.chat.update_read_status(room_id, self.current_user_id, status)
        except Exception as exc:
            self._replace(previous)
            logger.warning("Read status write for %s failed, reverted: %s", conversation_id, exc)
            raise ReadStateSyncError(conversation_id, status, cause=exc) from exc

        updated = self.get(conversation_id).model_copy(update={"chat_room_id": room_id})
        self._replace(updated)
        self._legacy_status(previous.inquiry_id, status)
        return updated

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> ChatMessage:
        """Send *text* in the selected conversation and mark it replied."""
        if self.selected is None:
            raise LookupError("No conversation selected")
        text = text.strip()
        if not text:
            raise ValueError("Message cannot be empty")

        conversation = self.selected
        room_id = conversation.chat_room_id or await self._room_for(conversation)
        if room_id != conversation.chat_room_id:
            conversation = conversation.model_copy(update={"chat_room_id": room_id})
            self._replace(conversation)
            await self._subscribe(conversation)

        sent = await self.chat.send_message(room_id, self.current_user_id, self.user_role, text)

        replied = InquiryStatus.REPLIED.value
        try:
            await self.chat.update_read_status(room_id, self.current_user_id, replied)
        except Exception:
            # The message itself went through
            logger.warning("Marking %s replied failed", conversation.id, exc_info=True)
        self._legacy_status(conversation.inquiry_id, replied)

        now = datetime.now(timezone.utc)
        self._replace(
            self.get(conversation.id).model_copy(
                update={"status": replied, "read_status": replied, "last_message": text, "last_activity": now}
            )
        )

        feed = self._messages.setdefault(conversation.id, [])
        if not any(m.id == sent.id for m in feed):
            # Shown until the subscription delivers the stored copy
            feed.append(
                ChatMessage(
                    id=f"temp-{uuid.uuid4()}",
                    room_id=room_id,
                    sender_id=self.current_user_id,
                    sender_role=self.user_role,
                    text=text,
                    timestamp=now,
                )
            )
        return sent

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _room_for(self, conversation: EnrichedConversation) -> str:
        return await self.chat.create_or_get_room(
            conversation.buyer_id or "guest",
            self.current_user_id,
            self.user_role,
            conversation.property_id,
        )

    async def _subscribe(self, conversation: EnrichedConversation) -> None:
        self._teardown_subscription()
        if not conversation.chat_room_id:
            return
        conversation_id = conversation.id
        self._subscribed_id = conversation_id

        def on_messages(messages: list[ChatMessage]) -> None:
            if self._subscribed_id != conversation_id:
                return
            self._messages[conversation_id] = list(messages)
            if self.selected is None or self.selected.id != conversation_id:
                return
            if self.tab == InboxTab.CHAT:
                self.watermarks.mark_viewed(conversation_id, self._thread(self.selected))
            # The first delivery arrives inside select(), which marks read itself
            if self._unsubscribe is not None and self.selected.status == InquiryStatus.NEW.value and messages:
                self._spawn(self._mark_read_quietly(conversation_id))

        unsubscribe = await self.chat.subscribe(conversation.chat_room_id, on_messages)
        if self._subscribed_id != conversation_id:
            # Selection moved on while subscribing
            unsubscribe()
            return
        self._unsubscribe = unsubscribe

    def _teardown_subscription(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = None
        self._subscribed_id = None

    def _thread(self, conversation: EnrichedConversation) -> list[ChatMessage]:
        live = self._live_messages(conversation.id)
        if not self._has_opening(conversation):
            return live
        opening = ChatMessage(
            id=f"initial-{conversation.inquiry_id}",
            room_id=conversation.chat_room_id,
            sender_id=conversation.buyer_id,
            sender_role=SenderRole.BUYER.value,
            text=conversation.message,
            timestamp=conversation.created_at,
        )
        return [opening, *live]

    @staticmethod
    def _has_opening(conversation: EnrichedConversation) -> bool:
        return bool(conversation.inquiry_id and conversation.message)

    def _live_messages(self, conversation_id: str) -> list[ChatMessage]:
        return list(self._messages.get(conversation_id, ()))

    def _replace(self, conversation: EnrichedConversation) -> None:
        self.conversations = [conversation if c.id == conversation.id else c for c in self.conversations]
        if self.selected is not None and self.selected.id == conversation.id:
            self.selected = conversation

    async def _sync_selected(self) -> None:
        previous = self.selected
        if previous is None:
            return
        match = next((c for c in self.conversations if c.same_conversation(previous)), None)
        if match is None:
            return
        renamed = match.id != previous.id
        if not renamed and not any(getattr(match, f) != getattr(previous, f) for f in _SYNCED_FIELDS):
            return

        logger.debug("Selected conversation %s updated by refresh", match.id)
        if renamed:
            self._messages[match.id] = self._messages.pop(previous.id, [])
            shift = int(self._has_opening(match)) - int(self._has_opening(previous))
            self.watermarks.move(previous.id, match.id, shift)
        self.selected = match

        # Deliveries are keyed by conversation id
        if renamed or match.chat_room_id != previous.chat_room_id:
            await self._subscribe(match)

    async def _mark_read_quietly(self, conversation_id: str) -> None:
        try:
            await self.mark_read(conversation_id)
        except (ReadStateSyncError, KeyError) as exc:
            logger.warning("Background mark-read for %s failed: %s", conversation_id, exc)

    def _legacy_status(self, inquiry_id: str | None, status: str) -> None:
        if inquiry_id:
            self._spawn(self._write_legacy_status(inquiry_id, status))

    async def _write_legacy_status(self, inquiry_id: str, status: str) -> None:
        try:
            await self.inquiries.update_status(inquiry_id, status)
        except TransportError as exc:
            logger.warning("Legacy status write for inquiry %s failed: %s", inquiry_id, exc.message)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
