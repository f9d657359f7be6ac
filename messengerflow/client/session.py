"""An agent's open chat: optimistic sends, stream merge and background refresh."""

import logging
from dataclasses import dataclass

from messengerflow.client.api import InboxApiClient, InboxApiError
from messengerflow.client.realtime import RealtimeClient
from messengerflow.client.refresher import CancellationToken, ThreadRefresher
from messengerflow.client.view import ConversationView, PendingSend
from messengerflow.schemas.message import MessageDetail, WindowAdvisory

logger = logging.getLogger(__name__)


@dataclass
class SendOutcome:
    """What the operator should be told about one send."""

    entry: PendingSend
    advisory: WindowAdvisory | None = None
    error: str | None = None
    is_policy: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatSession:
    """Lifetime of one open conversation in an agent client.

    Opening reads the history, subscribes to the conversation's messages and
    starts a refresher; closing cancels the refresher and drops the
    subscription. Sends show up immediately and reconcile with the canonical
    row from either the send response or the stream, whichever comes first.
    """

    def __init__(
        self,
        api: InboxApiClient,
        conversation_id: str,
        realtime: RealtimeClient | None = None,
        refresh_interval: float = 2.0,
        sender_id: str = "agent",
        sender_name: str = "Agent",
    ):
        self.api = api
        self.conversation_id = conversation_id
        self.realtime = realtime
        self.sender_id = sender_id
        self.sender_name = sender_name
        self.view = ConversationView(conversation_id)
        self.token = CancellationToken()
        self.refresher = ThreadRefresher(self.reload, refresh_interval, self.token)
        self.is_open = False

    @property
    def messages(self) -> list[MessageDetail]:
        return self.view.messages

    async def reload(self) -> None:
        """Merge a fresh read of the history into the view."""
        rows = await self.api.list_messages(self.conversation_id)
        if not self.token.cancelled:
            self.view.apply_snapshot(rows)

    async def open(self) -> None:
        await self.reload()
        if self.realtime is not None:
            await self.realtime.subscribe_messages(self.conversation_id)
        self.refresher.start()
        self.is_open = True
        logger.debug(f"Chat {self.conversation_id} opened")

    async def handle_frame(self, frame: dict) -> None:
        """Route a realtime frame into the view."""
        if self.token.cancelled:
            return
        frame_type = frame.get("type")
        if frame_type == "snapshot" and frame.get("conversation_id") == self.conversation_id:
            self.view.apply_snapshot(frame.get("rows", []))
        elif frame_type == "change":
            self.view.apply_change(frame["change"])
        elif frame_type == "error":
            logger.warning(f"Realtime error for chat {self.conversation_id}: {frame.get('detail')}")

    async def send(self, text: str) -> SendOutcome:
        """Send optimistically; on failure the entry is withdrawn and the reason returned."""
        entry = self.view.begin_send(text, self.sender_id, self.sender_name)
        try:
            result = await self.api.send_message(
                self.conversation_id, text, self.sender_id, self.sender_name
            )
        except InboxApiError as e:
            self.view.fail(entry.temp_id, e.reason)
            logger.warning(f"Send in {self.conversation_id} failed: {e.reason}")
            return SendOutcome(entry=entry, error=e.reason, is_policy=e.is_policy)

        self.view.confirm(entry.temp_id, result["message"])
        advisory = WindowAdvisory.model_validate(result["window"])
        return SendOutcome(entry=entry, advisory=advisory)

    async def mark_read(self) -> None:
        await self.api.mark_read(self.conversation_id)

    async def close(self) -> None:
        """Stop background refresh and revoke the subscription."""
        await self.refresher.stop()
        if self.realtime is not None and self.realtime.conversation_id == self.conversation_id:
            await self.realtime.unsubscribe_all()
        self.is_open = False
        logger.debug(f"Chat {self.conversation_id} closed")

    async def __aenter__(self) -> "ChatSession":
        await self.open()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
