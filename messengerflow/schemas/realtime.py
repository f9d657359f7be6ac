"""Frames exchanged over the realtime WebSocket."""

from typing import Literal

from pydantic import BaseModel, Field


class SubscribeMessagesFrame(BaseModel):
    """Client asks for one conversation's messages (snapshot, then changes)."""

    action: Literal["subscribe_messages"]
    conversation_id: str


class SubscribeConversationsFrame(BaseModel):
    """Client asks for the conversations table filtered to its pages."""

    action: Literal["subscribe_conversations"]
    page_ids: list[str] = Field(default_factory=list)
    limit: int | None = Field(None, ge=1, le=500)


class UnsubscribeAllFrame(BaseModel):
    """Client revokes every subscription on this connection."""

    action: Literal["unsubscribe_all"]


ClientFrame = SubscribeMessagesFrame | SubscribeConversationsFrame | UnsubscribeAllFrame
