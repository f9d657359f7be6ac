"""Map (page, customer) pairs onto conversation rows."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from messengerflow.db.repositories import ConversationRepository
from messengerflow.services.status_machine import INITIAL_STATUS

logger = logging.getLogger(__name__)


def conversation_id_for(page_id: str, customer_id: str) -> str:
    """Deterministic conversation identity for a page/customer pair."""
    return f"{page_id}_{customer_id}"


def default_customer_name(customer_id: str) -> str:
    """Display name used until an agent sets a real one."""
    return f"User {customer_id[:8]}"


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a conversation."""

    conversation_id: str
    created: bool


class ConversationResolver:
    """Resolves or creates conversations with a single atomic insert.

    There is no existence check: the row is written with
    ``INSERT ... ON CONFLICT DO NOTHING`` keyed on the derived id, so two
    first-contact events racing each other both land on the same row and
    exactly one of them reports ``created``.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.conversations = ConversationRepository(session)

    async def resolve(self, page_id: str, customer_id: str) -> Resolution:
        conversation_id = conversation_id_for(page_id, customer_id)
        created = await self.conversations.insert_if_absent(
            id=conversation_id,
            page_id=page_id,
            customer_id=customer_id,
            customer_name=default_customer_name(customer_id),
            customer_avatar="",
            status=INITIAL_STATUS,
            unread_count=0,
        )
        if created:
            logger.info(f"New conversation created: {conversation_id}")
        return Resolution(conversation_id=conversation_id, created=created)
