"""Merges the inquiry list and the chat room list into one conversation per (buyer, property).

``reconcile`` is deterministic: the same inquiries, rooms and user always give
the same list, so re-running it after a refresh never duplicates entries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping

from listing_desk.domain.errors import TransportError
from listing_desk.domain.schemas import EPOCH, BuyerProfile, ChatRoom, EnrichedConversation, Inquiry

logger = logging.getLogger(__name__)

BuyerLookup = Callable[[str], Awaitable[BuyerProfile | None]]

DEFAULT_BUYER_NAME = "Buyer"
DEFAULT_PROPERTY_TITLE = "Property"


def avatar_for(name: str | None, image: str | None = None) -> str:
    """Profile image when present, else the uppercased first letter of the name."""
    if image:
        return image
    name = (name or "").strip()
    return name[0].upper() if name else "B"


def _latest_inquiries(inquiries: Iterable[Inquiry]) -> dict[str, Inquiry]:
    latest: dict[str, Inquiry] = {}
    for inquiry in inquiries:
        key = inquiry.key
        current = latest.get(key)
        if current is None or (inquiry.created_at or EPOCH) > (current.created_at or EPOCH):
            latest[key] = inquiry
    return latest


def _rooms_by_key(rooms: Iterable[ChatRoom], user_id: str) -> dict[str, ChatRoom]:
    """One room per key: rooms addressed to *user_id* first, then the most recently updated."""
    chosen: dict[str, ChatRoom] = {}
    for room in rooms:
        current = chosen.get(room.key)
        if current is None or _room_rank(room, user_id) > _room_rank(current, user_id):
            chosen[room.key] = room
    return chosen


def _room_rank(room: ChatRoom, user_id: str) -> tuple[bool, Any]:
    return (room.receiver_id == user_id, room.updated_at or EPOCH)


def _from_inquiry(inquiry: Inquiry, room: ChatRoom | None, user_id: str) -> EnrichedConversation:
    status = (room.status_for(user_id) if room else None) or inquiry.status
    name = inquiry.buyer_name or DEFAULT_BUYER_NAME
    return EnrichedConversation(
        id=str(inquiry.id),
        conversation_key=inquiry.key,
        inquiry_id=inquiry.id,
        buyer_id=inquiry.buyer_id,
        property_id=inquiry.property_id,
        property_title=inquiry.property_title,
        buyer_name=name,
        buyer_email=inquiry.buyer_email or "",
        buyer_phone=inquiry.buyer_phone or "",
        buyer_profile_image=inquiry.buyer_profile_image,
        avatar=inquiry.avatar or avatar_for(name, inquiry.buyer_profile_image),
        message=inquiry.message,
        status=status,
        created_at=inquiry.created_at or EPOCH,
        last_message=(room.last_message if room else "") or inquiry.message,
        last_activity=(room.updated_at if room else None) or inquiry.created_at or EPOCH,
        chat_room_id=room.id if room else None,
        read_status=room.status_for(user_id) if room else None,
        is_chat_only=False,
    )


def _from_room(
    room: ChatRoom,
    user_id: str,
    buyer: BuyerProfile | None,
    property_title: str | None,
) -> EnrichedConversation:
    status = room.status_for(user_id)
    name = (buyer.name if buyer else None) or DEFAULT_BUYER_NAME
    image = buyer.profile_image if buyer else None
    activity = room.updated_at or room.created_at or EPOCH
    return EnrichedConversation(
        id=f"chat_{room.id}",
        conversation_key=room.key,
        buyer_id=room.buyer_id,
        property_id=room.property_id,
        property_title=property_title or DEFAULT_PROPERTY_TITLE,
        buyer_name=name,
        buyer_email=buyer.email if buyer else "",
        buyer_phone=buyer.phone if buyer else "",
        buyer_profile_image=image,
        avatar=avatar_for(name, image),
        message=room.last_message,
        status=status or "new",
        created_at=room.created_at or activity,
        last_message=room.last_message,
        last_activity=activity,
        chat_room_id=room.id,
        read_status=status,
        is_chat_only=True,
    )


def _known_buyers(inquiries: Iterable[Inquiry]) -> dict[str, BuyerProfile]:
    """Buyer details already present on some inquiry, by buyer id."""
    known: dict[str, BuyerProfile] = {}
    for inquiry in inquiries:
        if not inquiry.buyer_id or inquiry.buyer_id in known or not inquiry.buyer_name:
            continue
        known[inquiry.buyer_id] = BuyerProfile(
            id=inquiry.buyer_id,
            name=inquiry.buyer_name,
            email=inquiry.buyer_email or "",
            phone=inquiry.buyer_phone or "",
            profile_image=inquiry.buyer_profile_image,
        )
    return known


async def _lookup_buyers(buyer_ids: list[str], lookup: BuyerLookup | None) -> dict[str, BuyerProfile]:
    if not buyer_ids or lookup is None:
        return {}

    async def _one(buyer_id: str) -> BuyerProfile | None:
        try:
            return await lookup(buyer_id)
        except TransportError as exc:
            logger.warning("Buyer lookup for %s failed: %s", buyer_id, exc.message)
            return None

    profiles = await asyncio.gather(*(_one(b) for b in buyer_ids))
    return {b: p for b, p in zip(buyer_ids, profiles) if p is not None}


async def reconcile(
    inquiries: Iterable[Inquiry],
    rooms: Iterable[ChatRoom],
    current_user_id: Any,
    buyer_lookup: BuyerLookup | None = None,
    property_titles: Mapping[str, str] | None = None,
) -> list[EnrichedConversation]:
    """One ``EnrichedConversation`` per conversation key, newest activity first.

    Chat-only rooms appear only when addressed to *current_user_id*. Their
    buyer details come from another inquiry of the same buyer, else from one
    *buyer_lookup* call per distinct buyer.
    """
    inquiries = list(inquiries)
    user_id = str(current_user_id)
    latest = _latest_inquiries(inquiries)
    rooms_by_key = _rooms_by_key(rooms, user_id)

    conversations = [_from_inquiry(i, rooms_by_key.get(key), user_id) for key, i in latest.items()]

    chat_only = [
        room for key, room in rooms_by_key.items()
        if key not in latest and room.receiver_id == user_id
    ]
    if chat_only:
        buyers = _known_buyers(inquiries)
        missing = sorted({r.buyer_id for r in chat_only if r.buyer_id and r.buyer_id not in buyers})
        buyers.update(await _lookup_buyers(missing, buyer_lookup))

        titles = {i.property_id: i.property_title for i in inquiries if i.property_id and i.property_title}
        titles.update(property_titles or {})

        for room in chat_only:
            conversations.append(
                _from_room(room, user_id, buyers.get(room.buyer_id or ""), titles.get(room.property_id or ""))
            )
        logger.debug("Reconciled %d chat-only conversation(s)", len(chat_only))

    conversations.sort(key=lambda c: (c.last_activity, c.id), reverse=True)
    return conversations


def filter_conversations(
    conversations: Iterable[EnrichedConversation],
    *,
    status: str | None = None,
    property_id: Any = None,
    search: str = "",
) -> list[EnrichedConversation]:
    """Filter by status and property; *search* matches buyer name, message or property title."""
    needle = search.strip().lower()
    result = []
    for c in conversations:
        if status and status != "all" and c.status != status:
            continue
        if property_id not in (None, "", "all") and c.property_id != str(property_id):
            continue
        if needle and not any(
            needle in (text or "").lower() for text in (c.buyer_name, c.message, c.property_title)
        ):
            continue
        result.append(c)
    return result


def conversation_stats(conversations: Iterable[EnrichedConversation]) -> dict[str, int]:
    conversations = list(conversations)
    return {
        "total": len(conversations),
        "new": sum(1 for c in conversations if c.status == "new"),
        "read": sum(1 for c in conversations if c.status == "read"),
        "replied": sum(1 for c in conversations if c.status == "replied"),
    }
