"""Message model for Messenger messages."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from messengerflow.db.base import Base
from messengerflow.models.base import TimestampMixin


class Message(Base, TimestampMixin):
    """Represents a single message in a conversation.

    Inbound messages are keyed by the platform ``mid``; outbound messages by
    the id the platform returned for the send.
    """

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    conversation_id: Mapped[str] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )

    sender_id: Mapped[str] = mapped_column(String(100), nullable=False)
    sender_name: Mapped[str] = mapped_column(String(255), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    is_incoming: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    conversation: Mapped["Conversation"] = relationship(  # noqa: F821
        back_populates="messages"
    )

    __table_args__ = (
        Index("ix_messages_conversation_timestamp", "conversation_id", "timestamp"),
        Index("ix_messages_timestamp", "timestamp"),
    )
