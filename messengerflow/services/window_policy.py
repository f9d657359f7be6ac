"""Messaging-window policy.

The platform only accepts free-form replies within a fixed window after the
customer last wrote. Past the window a send must carry a message tag.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from messengerflow.config import settings
from messengerflow.core.clock import as_utc, utcnow


class WindowState(str, Enum):
    ALLOWED = "ALLOWED"
    RESTRICTED = "RESTRICTED"


@dataclass(frozen=True)
class WindowDecision:
    state: WindowState
    requires_tag: bool
    tag: str | None = None
    elapsed: timedelta | None = None

    @property
    def allowed(self) -> bool:
        return self.state == WindowState.ALLOWED

    @property
    def advisory(self) -> str | None:
        """Operator-facing warning for a restricted window."""
        if self.allowed:
            return None
        return (
            f"The {settings.MESSAGING_WINDOW_HOURS}-hour messaging window has expired. "
            f"The message will be sent with the {self.tag} tag and may still be "
            "rejected until the customer writes again."
        )


def evaluate_window(
    last_contact: datetime | None,
    now: datetime | None = None,
    *,
    window: timedelta | None = None,
    tag: str | None = None,
) -> WindowDecision:
    """Decide whether a reply may go out untagged.

    Args:
        last_contact: Last customer contact (or last activity when unknown)
        now: Evaluation time, defaults to the current UTC time
        window: Window length, defaults to ``MESSAGING_WINDOW_HOURS``
        tag: Tag to require when restricted, defaults to ``MESSAGING_WINDOW_TAG``

    Returns:
        ALLOWED while elapsed time is within the window, otherwise RESTRICTED
        with ``requires_tag`` set. A conversation with no contact at all is
        treated as outside the window.
    """
    window = window if window is not None else timedelta(hours=settings.MESSAGING_WINDOW_HOURS)
    tag = tag or settings.MESSAGING_WINDOW_TAG
    now = as_utc(now) if now is not None else utcnow()

    if last_contact is None:
        return WindowDecision(WindowState.RESTRICTED, requires_tag=True, tag=tag)

    elapsed = now - as_utc(last_contact)
    if elapsed > window:
        return WindowDecision(
            WindowState.RESTRICTED, requires_tag=True, tag=tag, elapsed=elapsed
        )
    return WindowDecision(WindowState.ALLOWED, requires_tag=False, elapsed=elapsed)


def window_for_conversation(conversation, now: datetime | None = None) -> WindowDecision:
    """Evaluate the window for a conversation row.

    Uses the last inbound message time, falling back to the last activity.
    """
    last_contact = conversation.last_inbound_at or conversation.last_timestamp
    return evaluate_window(last_contact, now)
