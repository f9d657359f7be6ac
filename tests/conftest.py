"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from messengerflow.db.base import Base
from messengerflow.models import Conversation, ConversationStatus, Page
from messengerflow.services.change_bus import InMemoryChangeBus


# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# 2024-01-25 00:00:00 UTC in platform milliseconds
BASE_TIMESTAMP_MS = 1706140800000


def make_message_payload(
    mid: str = "m1",
    text: str | None = "Hi",
    customer_id: str = "c1",
    page_id: str = "p1",
    timestamp_ms: int = BASE_TIMESTAMP_MS,
    **message_fields: Any,
) -> dict[str, Any]:
    """Webhook body carrying one customer message."""
    message: dict[str, Any] = {"mid": mid, **message_fields}
    if text is not None:
        message["text"] = text
    return {
        "object": "page",
        "entry": [
            {
                "id": page_id,
                "time": timestamp_ms,
                "messaging": [
                    {
                        "sender": {"id": customer_id},
                        "recipient": {"id": page_id},
                        "timestamp": timestamp_ms,
                        "message": message,
                    }
                ],
            }
        ],
    }


def make_delivery_payload(
    mids: list[str], customer_id: str = "c1", page_id: str = "p1"
) -> dict[str, Any]:
    """Webhook body carrying a delivery receipt."""
    return {
        "object": "page",
        "entry": [
            {
                "id": page_id,
                "messaging": [
                    {
                        "sender": {"id": customer_id},
                        "recipient": {"id": page_id},
                        "timestamp": BASE_TIMESTAMP_MS,
                        "delivery": {"mids": mids, "watermark": BASE_TIMESTAMP_MS},
                    }
                ],
            }
        ],
    }


def make_read_payload(
    watermark_ms: int, customer_id: str = "c1", page_id: str = "p1"
) -> dict[str, Any]:
    """Webhook body carrying a read receipt."""
    return {
        "object": "page",
        "entry": [
            {
                "id": page_id,
                "messaging": [
                    {
                        "sender": {"id": customer_id},
                        "recipient": {"id": page_id},
                        "timestamp": watermark_ms,
                        "read": {"watermark": watermark_ms},
                    }
                ],
            }
        ],
    }


@pytest.fixture
async def async_engine():
    """Create async engine for testing."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for testing."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def bus() -> AsyncGenerator[InMemoryChangeBus, None]:
    """In-process change bus, closed after the test."""
    change_bus = InMemoryChangeBus()
    yield change_bus
    await change_bus.close()


@pytest.fixture
async def sample_page(db_session: AsyncSession) -> Page:
    """A connected page with a send token."""
    page = Page(id="p1", name="Test Page", category="Support", access_token="PAGE_TOKEN")
    db_session.add(page)
    await db_session.commit()
    return page


@pytest.fixture
async def sample_conversation(db_session: AsyncSession, sample_page: Page) -> Conversation:
    """An existing conversation between customer c1 and page p1."""
    now = datetime.now(timezone.utc)
    conversation = Conversation(
        id="p1_c1",
        page_id="p1",
        customer_id="c1",
        customer_name="User c1",
        customer_avatar="",
        last_message="Hello",
        last_timestamp=now,
        last_inbound_at=now,
        status=ConversationStatus.OPEN,
        unread_count=0,
    )
    db_session.add(conversation)
    await db_session.commit()
    return conversation


@pytest.fixture
def message_payload() -> dict[str, Any]:
    """Scenario payload: new customer c1 says "Hi" to page p1."""
    return make_message_payload()
