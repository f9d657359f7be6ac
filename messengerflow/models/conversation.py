"""Conversation model: one customer talking to one page."""

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from messengerflow.db.base import Base
from messengerflow.models.base import TimestampMixin


class ConversationStatus(str, Enum):
    """Conversation queue status."""

    OPEN = "OPEN"
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"


class Conversation(Base, TimestampMixin):
    """Represents the exchange between a customer and a page.

    The primary key is derived from ``(page_id, customer_id)`` so concurrent
    first-contact events converge on the same row.
    """

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    # Pages and agents live outside the ingestion core, so both are weak references
    page_id: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(100), nullable=False)

    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_avatar: Mapped[str | None] = mapped_column(String(500), default="")

    last_message: Mapped[str | None] = mapped_column(Text)
    last_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_inbound_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    status: Mapped[ConversationStatus] = mapped_column(
        SQLEnum(ConversationStatus, name="conversationstatus"),
        default=ConversationStatus.OPEN,
        nullable=False,
    )
    assigned_agent_id: Mapped[str | None] = mapped_column(String(100))
    unread_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    messages: Mapped[list["Message"]] = relationship(  # noqa: F821
        back_populates="conversation", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_conversations_page_timestamp", "page_id", "last_timestamp"),
        Index("ix_conversations_status", "status"),
        Index("ix_conversations_customer", "customer_id"),
        CheckConstraint("unread_count >= 0", name="ck_conversations_unread_non_negative"),
    )
