"""Business logic services."""

from messengerflow.services.change_bus import (
    BusSubscription,
    ChangeBus,
    InMemoryChangeBus,
    RedisChangeBus,
    create_change_bus,
)
from messengerflow.services.conversation_resolver import (
    ConversationResolver,
    Resolution,
    conversation_id_for,
    default_customer_name,
)
from messengerflow.services.event_decoder import decode_payload
from messengerflow.services.ingestion import IngestionService
from messengerflow.services.messenger_client import MessengerClient
from messengerflow.services.outbound import OutboundService
from messengerflow.services.state_mutator import IngestOutcome, StateMutator
from messengerflow.services.subscriptions import ManagerState, SubscriptionManager
from messengerflow.services.window_policy import WindowDecision, WindowState, evaluate_window

__all__ = [
    "BusSubscription",
    "ChangeBus",
    "InMemoryChangeBus",
    "RedisChangeBus",
    "create_change_bus",
    "ConversationResolver",
    "Resolution",
    "conversation_id_for",
    "default_customer_name",
    "decode_payload",
    "IngestionService",
    "MessengerClient",
    "OutboundService",
    "IngestOutcome",
    "StateMutator",
    "ManagerState",
    "SubscriptionManager",
    "WindowDecision",
    "WindowState",
    "evaluate_window",
]
