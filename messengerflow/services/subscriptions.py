"""Per-owner subscription handles on the change bus.

Each WebSocket connection (or agent chat session) owns one
``SubscriptionManager`` and passes it around explicitly; nothing is held in
module-level state.
"""

import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from messengerflow.schemas.changes import ChangeEvent, ChangeTable
from messengerflow.services.change_bus import BusSubscription, ChangeBus, ChangeHandler

logger = logging.getLogger(__name__)

SnapshotReader = Callable[[], Awaitable[Any]]


class ManagerState(str, Enum):
    CREATED = "CREATED"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class SubscriptionClosedError(RuntimeError):
    """Raised when subscribing through a closed manager."""


class SubscriptionManager:
    """Owns the message and conversation subscriptions of one consumer.

    Every subscribe is read-then-subscribe: the bus registration is created
    paused, the snapshot is read (and delivered by the reader), then the
    registration is resumed. Changes committed while the snapshot was being
    read are buffered, never lost.
    """

    def __init__(self, bus: ChangeBus, owner: str = "anonymous"):
        self.bus = bus
        self.owner = owner
        self.state = ManagerState.CREATED
        self.messages: BusSubscription | None = None
        self.conversations: BusSubscription | None = None
        self.conversation_id: str | None = None
        self.page_ids: frozenset[str] = frozenset()

    def _ensure_open(self) -> None:
        if self.state == ManagerState.CLOSED:
            raise SubscriptionClosedError(f"Subscription manager for {self.owner} is closed")

    async def _open(
        self,
        table: ChangeTable,
        handler: ChangeHandler,
        predicate: Callable[[ChangeEvent], bool] | None,
        snapshot: SnapshotReader | None,
    ) -> tuple[BusSubscription, Any]:
        subscription = await self.bus.subscribe(
            table, handler, predicate=predicate, paused=True
        )
        try:
            result = await snapshot() if snapshot is not None else None
        except BaseException:
            await subscription.close()
            raise
        subscription.resume()
        self.state = ManagerState.ACTIVE
        return subscription, result

    async def subscribe_messages(
        self,
        conversation_id: str,
        handler: ChangeHandler,
        snapshot: SnapshotReader | None = None,
    ) -> Any:
        """Follow one conversation's messages, replacing any previous one.

        Returns whatever ``snapshot`` returned.
        """
        self._ensure_open()
        if self.messages is not None:
            await self.messages.close()
            self.messages = None

        self.messages, result = await self._open(
            ChangeTable.MESSAGES,
            handler,
            lambda change: change.conversation_id == conversation_id,
            snapshot,
        )
        self.conversation_id = conversation_id
        logger.debug(f"{self.owner} subscribed to messages of {conversation_id}")
        return result

    async def subscribe_conversations(
        self,
        handler: ChangeHandler,
        page_ids: list[str] | None = None,
        snapshot: SnapshotReader | None = None,
    ) -> Any:
        """Follow the conversations table, optionally narrowed to some pages."""
        self._ensure_open()
        if self.conversations is not None:
            await self.conversations.close()
            self.conversations = None

        pages = frozenset(page_ids or ())

        def predicate(change: ChangeEvent) -> bool:
            return not pages or change.row.get("page_id") in pages

        self.conversations, result = await self._open(
            ChangeTable.CONVERSATIONS, handler, predicate, snapshot
        )
        self.page_ids = pages
        logger.debug(f"{self.owner} subscribed to conversations for {len(pages) or 'all'} pages")
        return result

    async def unsubscribe_all(self) -> None:
        """Revoke every subscription. The manager stays usable."""
        for subscription in (self.messages, self.conversations):
            if subscription is not None:
                await subscription.close()
        self.messages = None
        self.conversations = None
        self.conversation_id = None
        self.page_ids = frozenset()

    async def close(self) -> None:
        """Revoke everything and refuse further subscriptions."""
        if self.state == ManagerState.CLOSED:
            return
        await self.unsubscribe_all()
        self.state = ManagerState.CLOSED
        logger.debug(f"Subscription manager for {self.owner} closed")

    async def __aenter__(self) -> "SubscriptionManager":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
