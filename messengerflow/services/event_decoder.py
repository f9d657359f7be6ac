"""Decode Messenger webhook payloads into normalized events.

Pure functions: no I/O, never raises. Anything that does not look like a
supported event is dropped, so a malformed delivery degrades to "nothing
to do" instead of an error.
"""

import logging
from typing import Any

from messengerflow.core.clock import from_epoch_ms
from messengerflow.schemas.events import (
    DeliveryReceipt,
    InboundMessage,
    PlatformEvent,
    ReadReceipt,
)

logger = logging.getLogger(__name__)

PAGE_OBJECT = "page"


def _participant_id(event: dict, key: str) -> str | None:
    participant = event.get(key)
    if not isinstance(participant, dict):
        return None
    value = participant.get("id")
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value) or None


def _timestamp(value: Any):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return from_epoch_ms(value)
    except (OverflowError, OSError, ValueError):
        return None


def _decode_message(event: dict, page_id: str, customer_id: str) -> InboundMessage | None:
    message = event["message"]
    if not isinstance(message, dict):
        return None

    if message.get("is_echo"):
        # Page-sent messages come back as echoes; outbound rows are written by the send path
        logger.debug(f"Skipping echo message {message.get('mid')}")
        return None

    text = message.get("text")
    if not isinstance(text, str) or not text:
        logger.warning(
            f"Received non-text message {message.get('mid')} from {customer_id}, skipping"
        )
        return None

    mid = message.get("mid")
    timestamp = _timestamp(event.get("timestamp"))
    if not isinstance(mid, str) or not mid or timestamp is None:
        logger.debug("Message event missing mid or timestamp, skipping")
        return None

    return InboundMessage(
        page_id=page_id,
        customer_id=customer_id,
        message_id=mid,
        text=text,
        timestamp=timestamp,
    )


def _decode_delivery(event: dict, page_id: str, customer_id: str) -> DeliveryReceipt | None:
    delivery = event["delivery"]
    if not isinstance(delivery, dict):
        return None

    mids = delivery.get("mids") or []
    if not isinstance(mids, list):
        return None
    message_ids = tuple(mid for mid in mids if isinstance(mid, str) and mid)
    if not message_ids:
        return None

    return DeliveryReceipt(
        page_id=page_id,
        customer_id=customer_id,
        message_ids=message_ids,
        watermark=_timestamp(delivery.get("watermark")),
    )


def _decode_read(event: dict, page_id: str, customer_id: str) -> ReadReceipt | None:
    read = event["read"]
    if not isinstance(read, dict):
        return None

    watermark = _timestamp(read.get("watermark"))
    if watermark is None:
        return None

    return ReadReceipt(page_id=page_id, customer_id=customer_id, watermark=watermark)


def decode_messaging_event(event: Any) -> PlatformEvent | None:
    """Decode one ``entry[].messaging[]`` item, or return None if not actionable."""
    if not isinstance(event, dict):
        return None

    # The customer is the sender and the receiving page the recipient
    customer_id = _participant_id(event, "sender")
    page_id = _participant_id(event, "recipient")
    if not customer_id or not page_id:
        return None

    if "message" in event:
        return _decode_message(event, page_id, customer_id)
    if "delivery" in event:
        return _decode_delivery(event, page_id, customer_id)
    if "read" in event:
        return _decode_read(event, page_id, customer_id)

    logger.debug(f"Ignoring unsupported messaging event keys: {sorted(event)}")
    return None


def decode_payload(payload: Any) -> list[PlatformEvent]:
    """Decode a webhook body into normalized events, in delivery order.

    Args:
        payload: Parsed JSON body as delivered by the platform

    Returns:
        Zero or more events; empty when nothing in the payload is actionable
    """
    if not isinstance(payload, dict) or payload.get("object") != PAGE_OBJECT:
        return []

    entries = payload.get("entry")
    if not isinstance(entries, list):
        return []

    events: list[PlatformEvent] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        messaging = entry.get("messaging")
        if not isinstance(messaging, list):
            continue
        for item in messaging:
            event = decode_messaging_event(item)
            if event is not None:
                events.append(event)

    return events
