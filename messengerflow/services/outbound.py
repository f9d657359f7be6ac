"""Outbound send path: window check, platform send, durable record."""

import logging
from collections.abc import Callable
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from messengerflow.core.clock import utcnow
from messengerflow.core.exceptions import (
    BadRequestError,
    NotFoundError,
    PersistenceError,
    PlatformRejection,
)
from messengerflow.db.repositories import ConversationRepository, MessageRepository, PageRepository
from messengerflow.schemas.message import (
    MessageCreate,
    MessageDetail,
    MessageSendResult,
    OutboundRecord,
    WindowAdvisory,
)
from messengerflow.services.change_bus import ChangeBus
from messengerflow.services.messenger_client import MessengerClient
from messengerflow.services.state_mutator import StateMutator
from messengerflow.services.window_policy import window_for_conversation

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], MessengerClient]


class OutboundService:
    """Service for agent replies.

    A restricted window never blocks the send: the request is tagged and the
    advisory travels back with the result so the operator can be warned.
    """

    def __init__(
        self,
        db: AsyncSession,
        bus: ChangeBus | None = None,
        client_factory: ClientFactory = MessengerClient,
    ):
        self.db = db
        self.conversations = ConversationRepository(db)
        self.messages = MessageRepository(db)
        self.pages = PageRepository(db)
        self.mutator = StateMutator(db, bus)
        self.client_factory = client_factory

    async def send(self, data: MessageCreate) -> MessageSendResult:
        conversation = await self.conversations.get(data.conversation_id)
        if not conversation:
            raise NotFoundError("Conversation", data.conversation_id)

        access_token = await self.pages.get_access_token(conversation.page_id)
        if not access_token:
            raise BadRequestError(f"Page '{conversation.page_id}' is not connected")

        decision = window_for_conversation(conversation)
        if decision.requires_tag:
            logger.warning(
                f"Messaging window expired for {conversation.id}, sending with tag {decision.tag}"
            )

        client = self.client_factory(access_token)
        try:
            response = await client.send_text(
                conversation.customer_id,
                data.text,
                tag=decision.tag if decision.requires_tag else None,
            )
        except PlatformRejection as e:
            logger.error(
                f"Send to {conversation.id} rejected (policy={e.is_policy}): {e.reason}"
            )
            raise

        record = OutboundRecord(
            message_id=response.get("message_id") or f"msg_{uuid4().hex}",
            conversation_id=conversation.id,
            text=data.text,
            timestamp=utcnow(),
            sender_id=data.sender_id,
            sender_name=data.sender_name,
        )
        advisory = WindowAdvisory(
            allowed=decision.allowed,
            requires_tag=decision.requires_tag,
            tag=decision.tag,
            message=decision.advisory,
        )

        # Already delivered: a store failure is reported, not raised
        try:
            await self.mutator.record_outbound_message(record)
        except PersistenceError as e:
            logger.error(f"Send {record.message_id} delivered but not stored: {e}")
            return MessageSendResult(
                message=MessageDetail(
                    id=record.message_id,
                    conversation_id=record.conversation_id,
                    sender_id=record.sender_id,
                    sender_name=record.sender_name,
                    text=record.text,
                    timestamp=record.timestamp,
                    is_incoming=False,
                    is_read=True,
                ),
                window=advisory,
                stored=False,
            )

        message = await self.messages.refetch(record.message_id)
        return MessageSendResult(message=MessageDetail.model_validate(message), window=advisory)
