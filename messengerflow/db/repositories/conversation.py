"""Conversation repository."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from messengerflow.db.repositories.base import BaseRepository
from messengerflow.models import Conversation, ConversationStatus


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for conversation reads and field-level mutations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Conversation)

    async def list_recent(
        self,
        page_id: str,
        *,
        limit: int = 5,
        statuses: set[ConversationStatus] | None = None,
    ) -> list[Conversation]:
        """List the most recently active conversations for a page."""
        stmt = select(Conversation).where(Conversation.page_id == page_id)
        if statuses:
            stmt = stmt.where(Conversation.status.in_(statuses))

        stmt = stmt.order_by(
            Conversation.last_timestamp.desc().nulls_last(),
            Conversation.id,
        ).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_pages(
        self, page_ids: list[str], *, limit: int = 50
    ) -> list[Conversation]:
        """List recent conversations across several pages."""
        stmt = (
            select(Conversation)
            .where(Conversation.page_id.in_(page_ids))
            .order_by(Conversation.last_timestamp.desc().nulls_last(), Conversation.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def advance_last_message(
        self,
        conversation_id: str,
        text: str,
        timestamp: datetime,
        *,
        inbound: bool,
    ) -> bool:
        """Move the conversation preview forward to a newer message.

        An older message delivered out of order leaves the preview untouched.
        Returns True if the preview changed.
        """
        values: dict = {"last_message": text, "last_timestamp": timestamp}
        stmt = (
            update(Conversation)
            .where(
                Conversation.id == conversation_id,
                or_(
                    Conversation.last_timestamp.is_(None),
                    Conversation.last_timestamp <= timestamp,
                ),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        changed = result.rowcount > 0

        if inbound:
            stmt = (
                update(Conversation)
                .where(
                    Conversation.id == conversation_id,
                    or_(
                        Conversation.last_inbound_at.is_(None),
                        Conversation.last_inbound_at <= timestamp,
                    ),
                )
                .values(last_inbound_at=timestamp)
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            changed = changed or result.rowcount > 0

        return changed

    async def increment_unread(self, conversation_id: str, by: int = 1) -> bool:
        """Atomically add to the unread counter. Returns False if no such row."""
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(unread_count=Conversation.unread_count + by)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def reset_unread(self, conversation_id: str) -> bool:
        """Zero the unread counter. Returns True only if it was non-zero."""
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id, Conversation.unread_count != 0)
            .values(unread_count=0)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def set_status(
        self, conversation_id: str, status: ConversationStatus
    ) -> bool:
        """Set the status in one UPDATE. Returns True only if it changed."""
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id, Conversation.status != status)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def update_fields(self, conversation_id: str, **values) -> bool:
        """Overwrite plain fields (assignment, display name, avatar)."""
        if not values:
            return False
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0
