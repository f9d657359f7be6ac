"""Normalized inbound platform events produced by the event decoder."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict


class NormalizedEvent(BaseModel):
    """Fields common to every event: who sent it and which page received it."""

    model_config = ConfigDict(frozen=True)

    page_id: str
    customer_id: str


class InboundMessage(NormalizedEvent):
    """A text message sent by a customer to a page."""

    kind: Literal["message"] = "message"
    message_id: str
    text: str
    timestamp: datetime


class DeliveryReceipt(NormalizedEvent):
    """The platform delivered the listed messages to the customer."""

    kind: Literal["delivery"] = "delivery"
    message_ids: tuple[str, ...]
    watermark: datetime | None = None


class ReadReceipt(NormalizedEvent):
    """The customer read everything up to ``watermark``."""

    kind: Literal["read"] = "read"
    watermark: datetime


PlatformEvent = InboundMessage | DeliveryReceipt | ReadReceipt
