"""Conversation endpoints."""

import logging

from fastapi import APIRouter, Query

from messengerflow.api.deps import Bus, DbSession
from messengerflow.config import settings
from messengerflow.core.exceptions import BadRequestError, NotFoundError
from messengerflow.db.repositories import ConversationRepository, MessageRepository
from messengerflow.models import ConversationStatus
from messengerflow.schemas import (
    ConversationDetail,
    ConversationList,
    ConversationUpdate,
    MessageList,
)
from messengerflow.services.state_mutator import StateMutator
from messengerflow.services.status_machine import QUEUES, InvalidTransition

router = APIRouter(prefix="/conversations", tags=["conversations"])
logger = logging.getLogger(__name__)


def _statuses_for(queue: str | None) -> set[ConversationStatus] | None:
    if queue is None:
        return None
    if queue not in QUEUES:
        raise BadRequestError(f"Unknown queue '{queue}'")
    return set(QUEUES[queue])


@router.get("", response_model=ConversationList)
async def list_recent_conversations(
    db: DbSession,
    page_id: str = Query(..., min_length=1),
    limit: int = Query(settings.RECENT_CONVERSATIONS_LIMIT, ge=1, le=100),
    queue: str | None = Query(None, description="active or resolved"),
):
    """Most recently active conversations for a page (login sync)."""
    repo = ConversationRepository(db)
    items = await repo.list_recent(page_id, limit=limit, statuses=_statuses_for(queue))
    logger.info(f"Synced {len(items)} conversations for page {page_id}")
    return ConversationList(items=items, page_id=page_id, limit=limit)


@router.get("/history", response_model=ConversationList)
async def list_conversation_history(
    db: DbSession,
    page_id: str = Query(..., min_length=1),
    limit: int = Query(settings.FULL_HISTORY_LIMIT, ge=1, le=500),
    queue: str | None = Query(None, description="active or resolved"),
):
    """Extended conversation history for a page."""
    repo = ConversationRepository(db)
    items = await repo.list_recent(page_id, limit=limit, statuses=_statuses_for(queue))
    logger.info(f"Full history sync: {len(items)} conversations for page {page_id}")
    return ConversationList(items=items, page_id=page_id, limit=limit)


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(conversation_id: str, db: DbSession):
    """Get a conversation by ID."""
    repo = ConversationRepository(db)
    conversation = await repo.get(conversation_id)
    if not conversation:
        raise NotFoundError("Conversation", conversation_id)
    return conversation


@router.get("/{conversation_id}/messages", response_model=MessageList)
async def list_conversation_messages(
    conversation_id: str,
    db: DbSession,
    limit: int | None = Query(None, ge=1, le=1000),
):
    """Full message history of a conversation, oldest first."""
    if not await ConversationRepository(db).get(conversation_id):
        raise NotFoundError("Conversation", conversation_id)

    items = await MessageRepository(db).list_for_conversation(conversation_id, limit=limit)
    return MessageList(items=items, conversation_id=conversation_id)


@router.patch("/{conversation_id}", response_model=ConversationDetail)
async def update_conversation(
    conversation_id: str,
    data: ConversationUpdate,
    db: DbSession,
    bus: Bus,
):
    """Update status, assignment or customer details."""
    mutator = StateMutator(db, bus)
    if not await mutator.conversations.get(conversation_id):
        raise NotFoundError("Conversation", conversation_id)

    fields = data.model_dump(exclude_unset=True)
    status = fields.pop("status", None)
    # Only the assignment may be cleared
    fields = {k: v for k, v in fields.items() if v is not None or k == "assigned_agent_id"}

    conversation = None
    if fields:
        conversation = await mutator.update_conversation_fields(conversation_id, **fields)
    if status is not None:
        try:
            conversation = await mutator.set_conversation_status(conversation_id, status)
        except InvalidTransition as e:
            raise BadRequestError(str(e))

    if conversation is None:
        conversation = await mutator.conversations.refetch(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation", conversation_id)

    logger.info(f"Conversation updated: {conversation_id}")
    return conversation


@router.post("/{conversation_id}/read", response_model=ConversationDetail)
async def mark_conversation_read(conversation_id: str, db: DbSession, bus: Bus):
    """Explicit read action by an agent: reset the unread counter."""
    mutator = StateMutator(db, bus)
    if not await mutator.conversations.get(conversation_id):
        raise NotFoundError("Conversation", conversation_id)

    await mutator.reset_unread(conversation_id)
    return await mutator.conversations.refetch(conversation_id)
