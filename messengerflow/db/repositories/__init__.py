"""Repository classes for database operations."""

from messengerflow.db.repositories.base import BaseRepository
from messengerflow.db.repositories.conversation import ConversationRepository
from messengerflow.db.repositories.message import MessageRepository
from messengerflow.db.repositories.page import PageRepository

__all__ = [
    "BaseRepository",
    "ConversationRepository",
    "MessageRepository",
    "PageRepository",
]
