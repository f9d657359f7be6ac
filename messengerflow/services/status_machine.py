"""Conversation status machine.

Flat and fully connected: an agent may move a conversation between any two
of OPEN, PENDING and RESOLVED. New conversations start OPEN and nothing in
the core changes status on its own.
"""

from messengerflow.models import ConversationStatus

INITIAL_STATUS = ConversationStatus.OPEN

TRANSITIONS: dict[ConversationStatus, frozenset[ConversationStatus]] = {
    state: frozenset(s for s in ConversationStatus if s != state)
    for state in ConversationStatus
}

# Queue name -> statuses shown in it
QUEUES: dict[str, frozenset[ConversationStatus]] = {
    "active": frozenset({ConversationStatus.OPEN, ConversationStatus.PENDING}),
    "resolved": frozenset({ConversationStatus.RESOLVED}),
}


class InvalidTransition(ValueError):
    """Requested status change is not part of the machine."""


def can_transition(current: ConversationStatus, target: ConversationStatus) -> bool:
    """True if ``current -> target`` is a real transition (not a no-op)."""
    return target in TRANSITIONS.get(current, frozenset())


def check_transition(current: ConversationStatus, target: ConversationStatus) -> bool:
    """Validate a requested change.

    Returns False for a same-state request, which is an idempotent no-op.
    Raises InvalidTransition for anything outside the machine.
    """
    if current == target:
        return False
    if not can_transition(current, target):
        raise InvalidTransition(f"Cannot move conversation from {current} to {target}")
    return True


def queue_for(status: ConversationStatus) -> str:
    """Name of the inbox queue a conversation with ``status`` appears in."""
    for name, statuses in QUEUES.items():
        if status in statuses:
            return name
    raise InvalidTransition(f"Status {status} belongs to no queue")
