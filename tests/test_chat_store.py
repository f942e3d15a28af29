"""Tests for the SQL-backed realtime chat store."""

import pytest

from listing_desk.services.chat_store import SqlChatBackend


@pytest.fixture
def chat(db_session):
    return SqlChatBackend(db_session)


class TestRooms:
    async def test_create_or_get_is_idempotent(self, chat):
        first = await chat.create_or_get_room(10, 99, "agent", 5)
        second = await chat.create_or_get_room("10", "99", "agent", "5")

        assert first == second == "10_99_5"
        rooms = await chat.get_rooms_for_user(99)
        assert len(rooms) == 1
        assert rooms[0].receiver_role == "agent"

    async def test_rooms_for_buyer_and_receiver(self, chat):
        await chat.create_or_get_room(10, 99, "agent", 5)
        await chat.create_or_get_room(11, 98, "agent", 6)

        assert [r.id for r in await chat.get_rooms_for_user(10)] == ["10_99_5"]
        assert [r.id for r in await chat.get_rooms_for_user(98)] == ["11_98_6"]
        assert await chat.get_rooms_for_user(1234) == []

    async def test_rooms_newest_first(self, chat):
        older = await chat.create_or_get_room(10, 99, "agent", 5)
        newer = await chat.create_or_get_room(11, 99, "agent", 6)
        await chat.send_message(older, 10, "buyer", "bump")

        assert [r.id for r in await chat.get_rooms_for_user(99)] == [older, newer]


class TestReadStatus:
    async def test_per_user_status(self, chat):
        room = await chat.create_or_get_room(10, 99, "agent", 5)

        await chat.update_read_status(room, 99, "read")
        await chat.update_read_status(room, 10, "replied")

        assert await chat.get_read_status(room, 99) == "read"
        assert await chat.get_read_status(room, "10") == "replied"
        (stored,) = await chat.get_rooms_for_user(99)
        assert stored.read_status == {"99": "read", "10": "replied"}

    async def test_unknown_room(self, chat):
        assert await chat.get_read_status("nope", 99) is None
        with pytest.raises(LookupError):
            await chat.update_read_status("nope", 99, "read")


class TestMessages:
    async def test_send_updates_room(self, chat):
        room = await chat.create_or_get_room(10, 99, "agent", 5)

        sent = await chat.send_message(room, 10, "buyer", "Is parking included?")

        assert sent.text == "Is parking included?"
        assert sent.sender_id == "10"
        assert sent.timestamp is not None
        (stored,) = await chat.get_rooms_for_user(99)
        assert stored.last_message == "Is parking included?"

    async def test_messages_in_order(self, chat):
        room = await chat.create_or_get_room(10, 99, "agent", 5)
        for text in ("one", "two", "three"):
            await chat.send_message(room, 10, "buyer", text)

        assert [m.text for m in await chat.get_messages(room)] == ["one", "two", "three"]

    async def test_subscribe_delivers_now_and_on_change(self, chat):
        room = await chat.create_or_get_room(10, 99, "agent", 5)
        await chat.send_message(room, 10, "buyer", "hello")
        deliveries = []

        unsubscribe = await chat.subscribe(room, deliveries.append)
        await chat.send_message(room, 99, "agent", "hi there")

        assert [len(d) for d in deliveries] == [1, 2]
        assert deliveries[-1][-1].sender_role == "agent"

        unsubscribe()
        await chat.send_message(room, 10, "buyer", "thanks")
        assert len(deliveries) == 2
        assert chat.listener_count(room) == 0

    async def test_failing_listener_does_not_block_send(self, chat):
        room = await chat.create_or_get_room(10, 99, "agent", 5)
        seen = []

        def broken(messages):
            raise RuntimeError("boom")

        await chat.subscribe(room, lambda m: None)
        await chat.subscribe(room, seen.append)
        chat._listeners[room].insert(0, broken)

        await chat.send_message(room, 10, "buyer", "hello")

        assert len(seen[-1]) == 1
