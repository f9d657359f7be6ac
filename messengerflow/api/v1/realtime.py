"""Realtime WebSocket endpoint for agent clients.

Client frames:
- ``{"action": "subscribe_messages", "conversation_id": ...}``
- ``{"action": "subscribe_conversations", "page_ids": [...], "limit": ...}``
- ``{"action": "unsubscribe_all"}``

Server frames are ``snapshot`` (the point-in-time read), ``change`` (one
committed write) and ``error``. A snapshot is always sent before any change
for the same subscription.
"""

import logging
from typing import Annotated
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import Field, TypeAdapter, ValidationError

from messengerflow.api.deps import Bus, SessionMaker
from messengerflow.config import settings
from messengerflow.db.repositories import ConversationRepository, MessageRepository
from messengerflow.schemas import ChangeEvent, ConversationDetail, MessageDetail
from messengerflow.schemas.realtime import (
    ClientFrame,
    SubscribeConversationsFrame,
    SubscribeMessagesFrame,
    UnsubscribeAllFrame,
)
from messengerflow.services.subscriptions import SubscriptionManager

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)

frame_adapter = TypeAdapter(Annotated[ClientFrame, Field(discriminator="action")])


@router.websocket("/realtime")
async def realtime(websocket: WebSocket, bus: Bus, session_maker: SessionMaker):
    """Push snapshots and committed changes to one agent connection."""
    await websocket.accept()
    connection_id = uuid4().hex[:8]
    manager = SubscriptionManager(bus, owner=f"ws:{connection_id}")
    logger.info(f"Realtime connection {connection_id} opened")

    async def forward(change: ChangeEvent) -> None:
        await websocket.send_json({"type": "change", "change": change.model_dump(mode="json")})

    async def send_error(detail: str) -> None:
        await websocket.send_json({"type": "error", "detail": detail})

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = frame_adapter.validate_json(raw)
            except ValidationError as e:
                await send_error(f"Invalid frame: {e.errors()[0].get('msg', 'unknown')}")
                continue

            if isinstance(frame, SubscribeMessagesFrame):

                async def messages_snapshot(conversation_id=frame.conversation_id):
                    async with session_maker() as session:
                        rows = await MessageRepository(session).list_for_conversation(
                            conversation_id
                        )
                        items = [MessageDetail.model_validate(r).model_dump(mode="json") for r in rows]
                    await websocket.send_json(
                        {
                            "type": "snapshot",
                            "table": "messages",
                            "conversation_id": conversation_id,
                            "rows": items,
                        }
                    )

                await manager.subscribe_messages(frame.conversation_id, forward, messages_snapshot)

            elif isinstance(frame, SubscribeConversationsFrame):
                limit = frame.limit or settings.FULL_HISTORY_LIMIT

                async def conversations_snapshot(page_ids=frame.page_ids, limit=limit):
                    async with session_maker() as session:
                        repo = ConversationRepository(session)
                        rows = await repo.list_for_pages(page_ids, limit=limit) if page_ids else []
                        items = [
                            ConversationDetail.model_validate(r).model_dump(mode="json")
                            for r in rows
                        ]
                    await websocket.send_json(
                        {
                            "type": "snapshot",
                            "table": "conversations",
                            "page_ids": page_ids,
                            "rows": items,
                        }
                    )

                await manager.subscribe_conversations(forward, frame.page_ids, conversations_snapshot)

            elif isinstance(frame, UnsubscribeAllFrame):
                await manager.unsubscribe_all()

    except WebSocketDisconnect:
        logger.info(f"Realtime connection {connection_id} closed by client")
    finally:
        await manager.close()
