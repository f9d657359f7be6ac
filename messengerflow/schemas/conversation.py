"""Conversation schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from messengerflow.core.clock import as_utc
from messengerflow.models.conversation import ConversationStatus


class ConversationDetail(BaseModel):
    """Schema for conversation details."""

    id: str
    page_id: str
    customer_id: str
    customer_name: str
    customer_avatar: str | None
    last_message: str | None
    last_timestamp: datetime | None
    last_inbound_at: datetime | None
    status: ConversationStatus
    assigned_agent_id: str | None
    unread_count: int

    class Config:
        from_attributes = True

    @field_validator("last_timestamp", "last_inbound_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class ConversationList(BaseModel):
    """Schema for a list of conversations for a page."""

    items: list[ConversationDetail]
    page_id: str
    limit: int


class ConversationUpdate(BaseModel):
    """Schema for agent-initiated conversation updates."""

    status: ConversationStatus | None = None
    assigned_agent_id: str | None = Field(None, max_length=100)
    customer_name: str | None = Field(None, max_length=255)
    customer_avatar: str | None = Field(None, max_length=500)
