"""Message repository."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from messengerflow.db.repositories.base import BaseRepository
from messengerflow.models import Message


class MessageRepository(BaseRepository[Message]):
    """Repository for message operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Message)

    async def list_for_conversation(
        self,
        conversation_id: str,
        *,
        limit: int | None = None,
    ) -> list[Message]:
        """Full message history for a conversation, oldest first."""
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp.asc(), Message.id)
        )
        if limit:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_many(self, message_ids: list[str]) -> list[Message]:
        """Fetch fresh copies of the given messages."""
        if not message_ids:
            return []
        stmt = (
            select(Message)
            .where(Message.id.in_(message_ids))
            .order_by(Message.timestamp.asc(), Message.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_read(self, message_ids: list[str]) -> list[str]:
        """Mark the given messages read.

        Unknown ids match nothing. Returns the ids whose flag actually flipped.
        """
        if not message_ids:
            return []
        stmt = (
            update(Message)
            .where(Message.id.in_(message_ids), Message.is_read.is_(False))
            .values(is_read=True)
            .returning(Message.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_read_until(
        self, conversation_id: str, watermark: datetime
    ) -> list[str]:
        """Mark every message in a conversation at or before ``watermark`` read."""
        stmt = (
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.timestamp <= watermark,
                Message.is_read.is_(False),
            )
            .values(is_read=True)
            .returning(Message.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
