"""Unit tests for ConversationResolver."""

import pytest
from sqlalchemy import func, select

from messengerflow.models import Conversation, ConversationStatus
from messengerflow.services.conversation_resolver import (
    ConversationResolver,
    conversation_id_for,
    default_customer_name,
)


class TestIdentity:
    """Tests for the deterministic identity scheme."""

    def test_conversation_id_is_page_then_customer(self):
        assert conversation_id_for("p1", "c1") == "p1_c1"

    def test_conversation_id_is_pure(self):
        assert conversation_id_for("123", "456") == conversation_id_for("123", "456")

    def test_default_customer_name_uses_first_eight_chars(self):
        assert default_customer_name("1234567890123") == "User 12345678"
        assert default_customer_name("c1") == "User c1"


class TestConversationResolver:
    """Tests for ConversationResolver."""

    @pytest.mark.asyncio
    async def test_first_contact_creates_open_conversation(self, db_session):
        resolution = await ConversationResolver(db_session).resolve("p1", "c1")
        await db_session.commit()

        assert resolution.conversation_id == "p1_c1"
        assert resolution.created is True

        conversation = await db_session.get(Conversation, "p1_c1")
        assert conversation.status == ConversationStatus.OPEN
        assert conversation.unread_count == 0
        assert conversation.customer_name == "User c1"
        assert conversation.customer_avatar == ""

    @pytest.mark.asyncio
    async def test_second_resolve_finds_existing(self, db_session):
        resolver = ConversationResolver(db_session)
        await resolver.resolve("p1", "c1")
        await db_session.commit()

        resolution = await resolver.resolve("p1", "c1")

        assert resolution.conversation_id == "p1_c1"
        assert resolution.created is False

    @pytest.mark.asyncio
    async def test_racing_first_contacts_converge_on_one_row(self, session_maker):
        """Two sessions resolving the same new pair produce exactly one row."""
        async with session_maker() as first, session_maker() as second:
            a = await ConversationResolver(first).resolve("p1", "c1")
            await first.commit()
            b = await ConversationResolver(second).resolve("p1", "c1")
            await second.commit()

        assert a.conversation_id == b.conversation_id == "p1_c1"
        assert [a.created, b.created].count(True) == 1

        async with session_maker() as session:
            count = await session.scalar(select(func.count()).select_from(Conversation))
        assert count == 1

    @pytest.mark.asyncio
    async def test_existing_fields_are_not_overwritten(self, db_session, sample_conversation):
        sample_conversation.customer_name = "Alice"
        await db_session.commit()

        resolution = await ConversationResolver(db_session).resolve("p1", "c1")
        await db_session.commit()

        assert resolution.created is False
        refreshed = await ConversationResolver(db_session).conversations.refetch("p1_c1")
        assert refreshed.customer_name == "Alice"
