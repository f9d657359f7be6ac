"""Change notifications carried by the fan-out bus."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from messengerflow.core.clock import utcnow


class ChangeKind(str, Enum):
    """Kind of committed write."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeTable(str, Enum):
    """Tables whose writes are fanned out to subscribers."""

    CONVERSATIONS = "conversations"
    MESSAGES = "messages"


class ChangeEvent(BaseModel):
    """A committed row change: the event kind plus the resulting row."""

    table: ChangeTable
    kind: ChangeKind
    row: dict[str, Any]
    committed_at: datetime = Field(default_factory=utcnow)

    @property
    def row_id(self) -> str | None:
        return self.row.get("id")

    @property
    def conversation_id(self) -> str | None:
        """Conversation the changed row belongs to."""
        if self.table == ChangeTable.CONVERSATIONS:
            return self.row.get("id")
        return self.row.get("conversation_id")
