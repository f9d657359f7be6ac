"""Idempotent durable writes for conversations and messages.

Every operation is safe to repeat with the same input: messages are keyed
on the platform id and inserted with ``ON CONFLICT DO NOTHING``, and the
unread counter only moves when that insert actually wrote a row. Changes
are published to the bus after commit; duplicates publish nothing.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from messengerflow.core.exceptions import PersistenceError
from messengerflow.db.repositories import ConversationRepository, MessageRepository
from messengerflow.models import Conversation, ConversationStatus
from messengerflow.schemas.changes import ChangeEvent, ChangeKind, ChangeTable
from messengerflow.schemas.conversation import ConversationDetail
from messengerflow.schemas.events import InboundMessage
from messengerflow.schemas.message import MessageDetail, OutboundRecord
from messengerflow.services.change_bus import ChangeBus
from messengerflow.services.conversation_resolver import (
    ConversationResolver,
    default_customer_name,
)
from messengerflow.services.status_machine import check_transition

logger = logging.getLogger(__name__)


class IngestOutcome(str, Enum):
    """Result of an idempotent message write."""

    STORED = "STORED"
    DUPLICATE = "DUPLICATE"


class StateMutator:
    """Applies durable writes and announces them on the change bus."""

    def __init__(self, db: AsyncSession, bus: ChangeBus | None = None):
        self.db = db
        self.bus = bus
        self.conversations = ConversationRepository(db)
        self.messages = MessageRepository(db)
        self.resolver = ConversationResolver(db)

    @asynccontextmanager
    async def _transaction(self, operation: str):
        """Commit on success; roll back and raise PersistenceError on store failure."""
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(operation, e) from e

    async def _publish(
        self,
        *,
        conversation: tuple[str, ChangeKind] | None = None,
        message_ids: list[str] | None = None,
        message_kind: ChangeKind = ChangeKind.UPDATE,
    ) -> None:
        """Read back committed rows and fan them out.

        The write is already durable here, so failures are logged rather than
        raised; subscribers recover by re-reading their snapshot.
        """
        if self.bus is None:
            return

        try:
            changes: list[ChangeEvent] = []
            if message_ids:
                for message in await self.messages.get_many(message_ids):
                    changes.append(
                        ChangeEvent(
                            table=ChangeTable.MESSAGES,
                            kind=message_kind,
                            row=MessageDetail.model_validate(message).model_dump(mode="json"),
                        )
                    )
            if conversation is not None:
                conversation_id, kind = conversation
                row = await self.conversations.refetch(conversation_id)
                if row is not None:
                    changes.append(
                        ChangeEvent(
                            table=ChangeTable.CONVERSATIONS,
                            kind=kind,
                            row=ConversationDetail.model_validate(row).model_dump(mode="json"),
                        )
                    )

            for change in changes:
                await self.bus.publish(change)
        except Exception as e:
            logger.error(f"Committed write but failed to publish changes: {e}")

    async def record_inbound_message(self, event: InboundMessage) -> IngestOutcome:
        """Store a customer message, creating its conversation on first contact.

        The message insert, unread increment and preview update commit
        together, so a redelivered event can never bump the counter twice.
        """
        async with self._transaction(f"Storing inbound message {event.message_id}"):
            resolution = await self.resolver.resolve(event.page_id, event.customer_id)
            inserted = await self.messages.insert_if_absent(
                id=event.message_id,
                conversation_id=resolution.conversation_id,
                sender_id=event.customer_id,
                sender_name=default_customer_name(event.customer_id),
                text=event.text,
                timestamp=event.timestamp,
                is_incoming=True,
                is_read=False,
            )
            if inserted:
                await self.conversations.increment_unread(resolution.conversation_id)
                await self.conversations.advance_last_message(
                    resolution.conversation_id,
                    event.text,
                    event.timestamp,
                    inbound=True,
                )

        conversation_kind = ChangeKind.INSERT if resolution.created else ChangeKind.UPDATE
        if not inserted:
            logger.debug(f"Duplicate inbound message {event.message_id} suppressed")
            if resolution.created:
                await self._publish(conversation=(resolution.conversation_id, conversation_kind))
            return IngestOutcome.DUPLICATE

        logger.info(
            f"Message {event.message_id} stored in conversation {resolution.conversation_id}"
        )
        await self._publish(
            conversation=(resolution.conversation_id, conversation_kind),
            message_ids=[event.message_id],
            message_kind=ChangeKind.INSERT,
        )
        return IngestOutcome.STORED

    async def record_outbound_message(self, record: OutboundRecord) -> IngestOutcome:
        """Store a confirmed agent send as an outgoing, already-read message."""
        async with self._transaction(f"Storing outbound message {record.message_id}"):
            inserted = await self.messages.insert_if_absent(
                id=record.message_id,
                conversation_id=record.conversation_id,
                sender_id=record.sender_id,
                sender_name=record.sender_name,
                text=record.text,
                timestamp=record.timestamp,
                is_incoming=False,
                is_read=True,
            )
            preview_changed = False
            if inserted:
                preview_changed = await self.conversations.advance_last_message(
                    record.conversation_id,
                    record.text,
                    record.timestamp,
                    inbound=False,
                )

        if not inserted:
            logger.debug(f"Duplicate outbound message {record.message_id} suppressed")
            return IngestOutcome.DUPLICATE

        logger.info(f"Outbound message {record.message_id} stored in {record.conversation_id}")
        await self._publish(
            conversation=(record.conversation_id, ChangeKind.UPDATE) if preview_changed else None,
            message_ids=[record.message_id],
            message_kind=ChangeKind.INSERT,
        )
        return IngestOutcome.STORED

    async def apply_delivery_receipt(self, message_ids: list[str] | tuple[str, ...]) -> list[str]:
        """Mark delivered messages read. Unknown ids are ignored.

        Returns the ids whose read flag changed.
        """
        async with self._transaction("Applying delivery receipt"):
            changed = await self.messages.mark_read(list(message_ids))

        if changed:
            logger.info(f"Messages marked as delivered: {len(changed)}")
            await self._publish(message_ids=changed)
        else:
            logger.debug(f"Delivery receipt for {len(message_ids)} ids changed nothing")
        return changed

    async def apply_read_receipt(self, conversation_id: str, watermark: datetime) -> list[str]:
        """Mark every message at or before ``watermark`` in a conversation read.

        Returns the ids whose read flag changed.
        """
        async with self._transaction(f"Applying read receipt to {conversation_id}"):
            changed = await self.messages.mark_read_until(conversation_id, watermark)

        if changed:
            logger.info(f"Messages marked as read up to {watermark.isoformat()} in {conversation_id}")
            await self._publish(message_ids=changed)
        return changed

    async def set_conversation_status(
        self, conversation_id: str, status: ConversationStatus
    ) -> Conversation | None:
        """Move a conversation to ``status`` in one atomic update.

        Returns the current row, or None if the conversation does not exist.
        Requesting the current status is a no-op.
        """
        async with self._transaction(f"Setting status of {conversation_id}"):
            conversation = await self.conversations.refetch(conversation_id)
            if conversation is None:
                return None
            changed = False
            if check_transition(conversation.status, status):
                changed = await self.conversations.set_status(conversation_id, status)

        if changed:
            logger.info(f"Conversation {conversation_id} moved to {status.value}")
            await self._publish(conversation=(conversation_id, ChangeKind.UPDATE))
        return await self.conversations.refetch(conversation_id)

    async def increment_unread(self, conversation_id: str, by: int = 1) -> bool:
        """Add to the unread counter."""
        async with self._transaction(f"Incrementing unread of {conversation_id}"):
            changed = await self.conversations.increment_unread(conversation_id, by)

        if changed:
            await self._publish(conversation=(conversation_id, ChangeKind.UPDATE))
        return changed

    async def reset_unread(self, conversation_id: str) -> bool:
        """Explicit read action: zero the unread counter.

        Returns True only if the counter was non-zero.
        """
        async with self._transaction(f"Resetting unread of {conversation_id}"):
            changed = await self.conversations.reset_unread(conversation_id)

        if changed:
            logger.info(f"Unread counter reset for {conversation_id}")
            await self._publish(conversation=(conversation_id, ChangeKind.UPDATE))
        return changed

    async def update_conversation_fields(
        self, conversation_id: str, **values
    ) -> Conversation | None:
        """Overwrite agent-editable fields (assignment, name, avatar)."""
        async with self._transaction(f"Updating conversation {conversation_id}"):
            changed = await self.conversations.update_fields(conversation_id, **values)

        if changed:
            await self._publish(conversation=(conversation_id, ChangeKind.UPDATE))
        return await self.conversations.refetch(conversation_id)
