"""SQLAlchemy models."""

from messengerflow.models.conversation import Conversation, ConversationStatus
from messengerflow.models.message import Message
from messengerflow.models.page import Page

__all__ = [
    "Conversation",
    "ConversationStatus",
    "Message",
    "Page",
]
