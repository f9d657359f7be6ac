"""Agent-side client library for the inbox."""

from messengerflow.client.api import InboxApiClient, InboxApiError
from messengerflow.client.realtime import RealtimeClient
from messengerflow.client.refresher import CancellationToken, ThreadRefresher
from messengerflow.client.session import ChatSession, SendOutcome
from messengerflow.client.view import (
    ConversationListView,
    ConversationView,
    PendingSend,
    SendState,
)

__all__ = [
    "InboxApiClient",
    "InboxApiError",
    "RealtimeClient",
    "CancellationToken",
    "ThreadRefresher",
    "ChatSession",
    "SendOutcome",
    "ConversationListView",
    "ConversationView",
    "PendingSend",
    "SendState",
]
