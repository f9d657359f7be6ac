"""Webhook ingestion pipeline: decode, then apply each event in isolation."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from messengerflow.core.exceptions import PersistenceError
from messengerflow.core.telemetry import event_span, get_tracer
from messengerflow.schemas.events import (
    DeliveryReceipt,
    InboundMessage,
    PlatformEvent,
    ReadReceipt,
)
from messengerflow.services.change_bus import ChangeBus
from messengerflow.services.conversation_resolver import conversation_id_for
from messengerflow.services.event_decoder import decode_payload
from messengerflow.services.state_mutator import StateMutator

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


class IngestionService:
    """Applies webhook payloads to the store.

    Each event runs in its own session. A failing event is logged and
    dropped; the platform's redelivery recovers it and the idempotent writes
    make that safe. Later events in the same payload still run.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        bus: ChangeBus | None = None,
    ):
        self.session_maker = session_maker
        self.bus = bus

    async def process_payload(self, payload: Any) -> int:
        """Decode and apply a webhook body. Returns the number of events applied."""
        events = decode_payload(payload)
        if not events:
            logger.debug("Webhook payload contained no actionable events")
            return 0

        applied = 0
        with tracer.start_as_current_span("messenger.webhook.process") as span:
            span.set_attribute("messenger.events", len(events))
            for event in events:
                if await self.process_event(event):
                    applied += 1
            span.set_attribute("messenger.events_applied", applied)
        return applied

    async def process_event(self, event: PlatformEvent) -> bool:
        """Apply one event. Never raises for store or processing failures."""
        with event_span(tracer, event) as span:
            try:
                async with self.session_maker() as session:
                    await self._apply(StateMutator(session, self.bus), event)
                return True
            except PersistenceError as e:
                span.set_attribute("messenger.dropped", True)
                logger.error(f"Dropping {event.kind} event from {event.customer_id}: {e}")
            except Exception as e:
                span.record_exception(e)
                logger.exception(f"Unexpected error processing {event.kind} event: {e}")
            return False

    async def _apply(self, mutator: StateMutator, event: PlatformEvent) -> None:
        if isinstance(event, InboundMessage):
            await mutator.record_inbound_message(event)
        elif isinstance(event, DeliveryReceipt):
            await mutator.apply_delivery_receipt(event.message_ids)
        elif isinstance(event, ReadReceipt):
            await mutator.apply_read_receipt(
                conversation_id_for(event.page_id, event.customer_id),
                event.watermark,
            )
