"""Message schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from messengerflow.core.clock import as_utc


class MessageDetail(BaseModel):
    """Schema for message details."""

    id: str
    conversation_id: str
    sender_id: str
    sender_name: str
    text: str
    timestamp: datetime
    is_incoming: bool
    is_read: bool

    class Config:
        from_attributes = True

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class MessageList(BaseModel):
    """Schema for a conversation's message history."""

    items: list[MessageDetail]
    conversation_id: str


class MessageCreate(BaseModel):
    """Schema for an agent sending a message."""

    conversation_id: str = Field(..., description="Conversation to reply in")
    text: str = Field(..., min_length=1, description="Message body")
    sender_id: str = Field(default="agent", max_length=100)
    sender_name: str = Field(default="Agent", max_length=255)


class WindowAdvisory(BaseModel):
    """Messaging-window outcome attached to a send."""

    allowed: bool
    requires_tag: bool
    tag: str | None = None
    message: str | None = None


class MessageSendResult(BaseModel):
    """Schema returned after a confirmed send."""

    message: MessageDetail
    window: WindowAdvisory
    stored: bool = True


class OutboundRecord(BaseModel):
    """A confirmed agent send, ready to be stored."""

    message_id: str
    conversation_id: str
    text: str
    timestamp: datetime
    sender_id: str = "agent"
    sender_name: str = "Agent"
