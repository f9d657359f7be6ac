"""Pydantic schemas for events, changes and request/response models."""

from messengerflow.schemas.changes import ChangeEvent, ChangeKind, ChangeTable
from messengerflow.schemas.conversation import (
    ConversationDetail,
    ConversationList,
    ConversationUpdate,
)
from messengerflow.schemas.events import (
    DeliveryReceipt,
    InboundMessage,
    PlatformEvent,
    ReadReceipt,
)
from messengerflow.schemas.message import (
    MessageCreate,
    MessageDetail,
    MessageList,
    MessageSendResult,
    OutboundRecord,
    WindowAdvisory,
)

__all__ = [
    # Changes
    "ChangeEvent",
    "ChangeKind",
    "ChangeTable",
    # Conversation
    "ConversationDetail",
    "ConversationList",
    "ConversationUpdate",
    # Events
    "DeliveryReceipt",
    "InboundMessage",
    "PlatformEvent",
    "ReadReceipt",
    # Message
    "MessageCreate",
    "MessageDetail",
    "MessageList",
    "MessageSendResult",
    "OutboundRecord",
    "WindowAdvisory",
]
