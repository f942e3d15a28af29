"""Shared test infrastructure for the listing desk test suite.

Provides:
- settings: Settings with test-friendly limits and no auto-advance delay
- db_session: async SQLite in-memory session with the chat tables created
- make_file: factory for MediaFile values
- fake_moderation: mock ModerationClient answering from a per-filename script
- verdict: builder for ModerationResponse values
- make_inquiry / make_room: factories for inquiry and chat room records
- json_transport: httpx.MockTransport factory answering with canned JSON
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from listing_desk.infra.database import Base

import listing_desk.domain.models  # noqa: F401

from listing_desk.app.config import Settings
from listing_desk.domain.media import MediaFile
from listing_desk.domain.schemas import ChatRoom, Inquiry, ModerationResponse

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return Settings(
        api_base_url="http://backend.test/api",
        api_token="test-token",
        auto_advance_delay_seconds=0.0,
        debug=False,
    )


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------

@pytest.fixture
def make_file():
    """Factory for MediaFile values.

    Usage:
        f = make_file("kitchen.jpg")
        big = make_file("huge.png", size=6 * 1024 * 1024)
    """
    def _factory(
        filename: str = "photo.jpg",
        content_type: str = "image/jpeg",
        size: int = 1024,
    ) -> MediaFile:
        return MediaFile(filename=filename, content_type=content_type, content=b"x" * size)

    return _factory


def moderation_verdict(status: str = "success", http_status: int = 200, **kwargs) -> ModerationResponse:
    if status == "success":
        kwargs.setdefault("data", {"image_id": 7, "image_url": "https://cdn.test/img/7.jpg"})
    return ModerationResponse(status=status, http_status=http_status, **kwargs)


@pytest.fixture
def verdict():
    """The moderation_verdict builder, for scripting fake_moderation."""
    return moderation_verdict


@pytest.fixture
def fake_moderation():
    """Mock ModerationClient whose verdicts are scripted per filename.

    Usage:
        fake_moderation.verdicts["cat.jpg"] = moderation_verdict("error", 400, error_code="animal_detected")
        fake_moderation.delays["slow.jpg"] = gate   # an asyncio.Event to wait on

    Unscripted files are approved. Every call is recorded in ``.calls``.
    """
    mock = MagicMock()
    mock.verdicts = {}
    mock.delays = {}
    mock.calls = []

    async def _check(file, property_id=0, *, validate_only=None):
        mock.calls.append((file.filename, property_id))
        gate = mock.delays.get(file.filename)
        if gate is not None:
            await gate.wait()
        verdict = mock.verdicts.get(file.filename, moderation_verdict())
        if isinstance(verdict, Exception):
            raise verdict
        return verdict

    mock.check_image = _check
    return mock


# ---------------------------------------------------------------------------
# Inbox records
# ---------------------------------------------------------------------------

@pytest.fixture
def make_inquiry():
    """Factory for Inquiry records.

    Usage:
        inquiry = make_inquiry(id=1, buyer_id=10, property_id=5, minutes_ago=30)
    """
    def _factory(
        id=1,
        buyer_id=10,
        property_id=5,
        buyer_name="Asha Rao",
        message="Is this still available?",
        status="new",
        property_title="2BHK in Indiranagar",
        minutes_ago: int = 60,
        **extra,
    ) -> Inquiry:
        return Inquiry.model_validate({
            "id": id,
            "buyerId": buyer_id,
            "propertyId": property_id,
            "buyerName": buyer_name,
            "buyerEmail": "asha@example.com",
            "buyerPhone": "9876543210",
            "message": message,
            "status": status,
            "propertyTitle": property_title,
            "createdAt": (BASE_TIME - timedelta(minutes=minutes_ago)).isoformat(),
            **extra,
        })

    return _factory


@pytest.fixture
def make_room():
    """Factory for ChatRoom records.

    Usage:
        room = make_room(buyer_id=10, property_id=5, receiver_id=99, read_status={"99": "read"})
    """
    def _factory(
        buyer_id=10,
        property_id=5,
        receiver_id=99,
        last_message="Hello",
        minutes_ago: int = 5,
        read_status: dict | None = None,
    ) -> ChatRoom:
        return ChatRoom.model_validate({
            "id": f"{buyer_id}_{receiver_id}_{property_id}",
            "buyerId": buyer_id,
            "propertyId": property_id,
            "receiverId": receiver_id,
            "receiverRole": "agent",
            "lastMessage": last_message,
            "updatedAt": (BASE_TIME - timedelta(minutes=minutes_ago)).isoformat(),
            "readStatus": read_status or {},
        })

    return _factory


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def json_transport():
    """Factory for an httpx.MockTransport that answers every request the same way.

    Requests are appended to the returned transport's ``.requests`` list.
    """
    def _factory(body, status_code: int = 200, content_type: str = "application/json"):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if isinstance(body, (dict, list)):
                content = json.dumps(body).encode()
            else:
                content = (body or "").encode()
            return httpx.Response(status_code, content=content, headers={"content-type": content_type})

        transport = httpx.MockTransport(handler)
        transport.requests = requests
        return transport

    return _factory
