"""Per-conversation read watermarks and unread counting."""

from __future__ import annotations

from typing import Iterable, Sequence

from listing_desk.domain.enums import SenderRole
from listing_desk.domain.schemas import ChatMessage


class ReadWatermarks:
    """How many messages of each conversation the user has seen.

    A watermark moves only through ``mark_viewed``. Receiving messages never
    moves it, so a badge cannot clear without the messages being shown.
    """

    def __init__(self, counterpart_role: str = SenderRole.BUYER.value) -> None:
        self.counterpart_role = counterpart_role
        self._marks: dict[str, int] = {}

    def get(self, conversation_id: str) -> int | None:
        return self._marks.get(conversation_id)

    def mark_viewed(self, conversation_id: str, messages: Sequence[ChatMessage]) -> bool:
        """Record that *messages* were displayed. Empty lists are ignored."""
        if not messages:
            return False
        self._marks[conversation_id] = len(messages)
        return True

    def unread_count(self, conversation_id: str, messages: Sequence[ChatMessage]) -> int:
        """Counterpart messages at or past the watermark; all of them when there is none."""
        start = self._marks.get(conversation_id, 0)
        return sum(
            1
            for m in messages[start:]
            if m.sender_role == self.counterpart_role and not m.is_placeholder
        )

    def unread_counts(self, messages_by_conversation: dict[str, Sequence[ChatMessage]]) -> dict[str, int]:
        return {cid: self.unread_count(cid, msgs) for cid, msgs in messages_by_conversation.items()}

    def move(self, old_id: str, new_id: str, shift: int = 0) -> None:
        """Carry a watermark to a conversation's new id.

        *shift* accounts for messages added or dropped at the head of the
        thread (the inquiry's opening message).
        """
        mark = self._marks.pop(old_id, None)
        if mark is not None:
            self._marks[new_id] = max(mark + shift, 0)

    def forget(self, conversation_ids: Iterable[str]) -> None:
        for cid in conversation_ids:
            self._marks.pop(cid, None)
