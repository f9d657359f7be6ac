"""Page model. Provisioned outside the ingestion core; read here for send tokens."""

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from messengerflow.db.base import Base
from messengerflow.models.base import TimestampMixin


class Page(Base, TimestampMixin):
    """Represents a connected Messenger page."""

    __tablename__ = "pages"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(255))
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    is_connected: Mapped[bool] = mapped_column(Boolean, default=True)
