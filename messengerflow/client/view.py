"""Local conversation views that merge optimistic sends with the change stream.

A send goes through a small state machine, PENDING -> CONFIRMED | FAILED.
While pending it is shown under a temporary id. It is retired, and never
shown again, once either:

* the send response confirms it with the canonical row, or
* an outgoing canonical row arrives on the stream for the same
  conversation with the same text and a timestamp within
  ``match_tolerance`` of the local one.

Each canonical row retires at most one pending send, so two identical
replies sent back to back still show as two bubbles.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from uuid import uuid4

from messengerflow.core.clock import as_utc, utcnow
from messengerflow.schemas.changes import ChangeEvent, ChangeKind, ChangeTable
from messengerflow.schemas.conversation import ConversationDetail
from messengerflow.schemas.message import MessageDetail

logger = logging.getLogger(__name__)

DEFAULT_MATCH_TOLERANCE = timedelta(seconds=60)


class SendState(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


@dataclass
class PendingSend:
    """An optimistic entry for one logical send."""

    temp_id: str
    conversation_id: str
    text: str
    timestamp: datetime
    sender_id: str = "agent"
    sender_name: str = "Agent"
    state: SendState = SendState.PENDING
    canonical_id: str | None = None
    error: str | None = None

    def as_message(self) -> MessageDetail:
        return MessageDetail(
            id=self.temp_id,
            conversation_id=self.conversation_id,
            sender_id=self.sender_id,
            sender_name=self.sender_name,
            text=self.text,
            timestamp=self.timestamp,
            is_incoming=False,
            is_read=True,
        )


def _as_change(change: ChangeEvent | dict) -> ChangeEvent:
    if isinstance(change, ChangeEvent):
        return change
    return ChangeEvent.model_validate(change)


def _as_message(row: MessageDetail | dict) -> MessageDetail:
    if isinstance(row, MessageDetail):
        return row
    return MessageDetail.model_validate(row)


class ConversationView:
    """Messages of one open conversation as an agent should see them."""

    def __init__(
        self,
        conversation_id: str,
        *,
        match_tolerance: timedelta = DEFAULT_MATCH_TOLERANCE,
    ):
        self.conversation_id = conversation_id
        self.match_tolerance = match_tolerance
        self.rows: dict[str, MessageDetail] = {}
        self.pending: dict[str, PendingSend] = {}
        # temp id -> canonical id that superseded it
        self._retired: dict[str, str] = {}
        # canonical id -> entry it retired
        self._claims: dict[str, PendingSend] = {}

    # Optimistic sends

    def begin_send(
        self,
        text: str,
        sender_id: str = "agent",
        sender_name: str = "Agent",
        now: datetime | None = None,
    ) -> PendingSend:
        """Show a send immediately under a fresh temporary id."""
        entry = PendingSend(
            temp_id=f"temp_{uuid4().hex}",
            conversation_id=self.conversation_id,
            text=text,
            timestamp=as_utc(now) if now is not None else utcnow(),
            sender_id=sender_id,
            sender_name=sender_name,
        )
        self.pending[entry.temp_id] = entry
        return entry

    def confirm(self, temp_id: str, message: MessageDetail | dict | None = None) -> PendingSend | None:
        """Mark a send confirmed and, given the canonical row, retire the entry."""
        entry = self.pending.get(temp_id)
        if entry is None:
            # Already retired by a matching row from the stream
            if message is not None:
                self._upsert(_as_message(message))
            return None

        entry.state = SendState.CONFIRMED
        if message is None:
            return entry

        row = _as_message(message)
        # The send response is authoritative: an entry the stream matched to
        # this row by text goes back to pending
        claimant = self._claims.get(row.id)
        if claimant is not None and claimant is not entry:
            self._reinstate(claimant)
        self._retire(entry, row.id)
        self._upsert(row)
        if claimant is not None and claimant is not entry:
            self._rematch(claimant)
        return entry

    def fail(self, temp_id: str, error: str) -> PendingSend | None:
        """Remove a failed send from the view and hand it back for surfacing."""
        entry = self.pending.pop(temp_id, None)
        if entry is None:
            entry = self._release(temp_id)
            if entry is None:
                return None
        entry.state = SendState.FAILED
        entry.error = error
        logger.debug(f"Send {temp_id} in {self.conversation_id} failed: {error}")
        return entry

    def _release(self, temp_id: str) -> PendingSend | None:
        """Undo a text match for a send that turned out to fail.

        The row it claimed belongs to some other send, so it is offered to the
        remaining pending entries.
        """
        canonical_id = self._retired.get(temp_id)
        entry = self._claims.get(canonical_id) if canonical_id else None
        if entry is None or entry.state == SendState.CONFIRMED:
            return None
        del self._retired[temp_id]
        del self._claims[canonical_id]
        entry.canonical_id = None

        row = self.rows.get(canonical_id)
        if row is not None:
            other = self._match_pending(row)
            if other is not None:
                self._retire(other, row.id)
        return entry

    def _retire(self, entry: PendingSend, canonical_id: str) -> None:
        entry.canonical_id = canonical_id
        self._retired[entry.temp_id] = canonical_id
        self._claims[canonical_id] = entry
        self.pending.pop(entry.temp_id, None)

    def _reinstate(self, entry: PendingSend) -> None:
        self._retired.pop(entry.temp_id, None)
        if entry.canonical_id is not None:
            self._claims.pop(entry.canonical_id, None)
        entry.canonical_id = None
        self.pending[entry.temp_id] = entry

    def _rematch(self, entry: PendingSend) -> None:
        """Retire a reinstated entry against an unclaimed row already on screen."""
        candidates = [
            row
            for row in self.rows.values()
            if row.id not in self._claims and self._matches(entry, row)
        ]
        if candidates:
            row = min(candidates, key=lambda r: (as_utc(r.timestamp), r.id))
            self._retire(entry, row.id)

    def _matches(self, entry: PendingSend, row: MessageDetail) -> bool:
        return (
            not row.is_incoming
            and entry.text == row.text
            and abs(as_utc(row.timestamp) - entry.timestamp) <= self.match_tolerance
        )

    def _match_pending(self, row: MessageDetail) -> PendingSend | None:
        if row.id in self._claims:
            return None
        candidates = [entry for entry in self.pending.values() if self._matches(entry, row)]
        if not candidates:
            return None
        return min(candidates, key=lambda entry: entry.timestamp)

    # Canonical rows

    def _upsert(self, row: MessageDetail) -> None:
        existing = self.rows.get(row.id)
        if existing is not None and existing.is_read and not row.is_read:
            # The read flag never goes back to false
            row = row.model_copy(update={"is_read": True})
        self.rows[row.id] = row

        entry = self._match_pending(row)
        if entry is not None:
            self._retire(entry, row.id)

    def apply_snapshot(self, rows: list[MessageDetail | dict]) -> None:
        """Merge a point-in-time read of the conversation."""
        for raw in rows:
            row = _as_message(raw)
            if row.conversation_id == self.conversation_id:
                self._upsert(row)

    def apply_change(self, change: ChangeEvent | dict) -> bool:
        """Apply one stream event. Duplicates and foreign rows are harmless.

        Returns True if the event concerned this conversation.
        """
        change = _as_change(change)
        if change.table != ChangeTable.MESSAGES or change.conversation_id != self.conversation_id:
            return False

        if change.kind == ChangeKind.DELETE:
            if change.row_id is not None:
                self.rows.pop(change.row_id, None)
            return True

        self._upsert(_as_message(change.row))
        return True

    @property
    def messages(self) -> list[MessageDetail]:
        """Visible messages: canonical rows plus unretired optimistic entries."""
        visible = list(self.rows.values())
        visible.extend(entry.as_message() for entry in self.pending.values())
        return sorted(visible, key=lambda m: (as_utc(m.timestamp), m.id))

    def is_retired(self, temp_id: str) -> bool:
        return temp_id in self._retired


class ConversationListView:
    """Conversation list for a set of pages, kept current from the stream.

    Changes carry the commit time; an event older than the one already
    applied for the same row is ignored, which tolerates the occasional
    out-of-order redelivery.
    """

    def __init__(self, page_ids: list[str] | None = None):
        self.page_ids = frozenset(page_ids or ())
        self.rows: dict[str, ConversationDetail] = {}
        self._versions: dict[str, datetime] = {}

    def _accepts(self, row: ConversationDetail) -> bool:
        return not self.page_ids or row.page_id in self.page_ids

    def apply_snapshot(self, rows: list[ConversationDetail | dict[str, Any]]) -> None:
        for raw in rows:
            row = raw if isinstance(raw, ConversationDetail) else ConversationDetail.model_validate(raw)
            if self._accepts(row):
                self.rows[row.id] = row

    def apply_change(self, change: ChangeEvent | dict) -> bool:
        change = _as_change(change)
        if change.table != ChangeTable.CONVERSATIONS or change.row_id is None:
            return False

        committed_at = as_utc(change.committed_at)
        seen = self._versions.get(change.row_id)
        if seen is not None and committed_at < seen:
            return False

        if change.kind == ChangeKind.DELETE:
            self.rows.pop(change.row_id, None)
            self._versions[change.row_id] = committed_at
            return True

        row = ConversationDetail.model_validate(change.row)
        if not self._accepts(row):
            return False
        self.rows[row.id] = row
        self._versions[row.id] = committed_at
        return True

    def ordered(self, statuses: set | frozenset | None = None) -> list[ConversationDetail]:
        """Conversations newest first, optionally limited to some statuses."""
        rows = [r for r in self.rows.values() if statuses is None or r.status in statuses]
        epoch = datetime.min.replace(tzinfo=utcnow().tzinfo)
        return sorted(
            rows,
            key=lambda r: (as_utc(r.last_timestamp) if r.last_timestamp else epoch, r.id),
            reverse=True,
        )

    @property
    def total_unread(self) -> int:
        return sum(row.unread_count for row in self.rows.values())
