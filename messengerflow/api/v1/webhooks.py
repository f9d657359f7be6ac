"""Webhook endpoints for the Messenger platform."""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Header, Query, Request
from fastapi.responses import PlainTextResponse

from messengerflow.api.deps import Bus, SessionMaker
from messengerflow.core.exceptions import ForbiddenError
from messengerflow.core.security import verify_signature, verify_subscription
from messengerflow.services.ingestion import IngestionService

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)

EVENT_RECEIVED = "EVENT_RECEIVED"


@router.get("/messenger", response_class=PlainTextResponse)
async def verify_webhook(
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str = Query("", alias="hub.challenge"),
):
    """Answer the platform's subscription handshake."""
    if not verify_subscription(mode, token):
        logger.error("Webhook verification failed")
        raise ForbiddenError()

    logger.info("Webhook verified successfully")
    return PlainTextResponse(challenge)


@router.post("/messenger", response_class=PlainTextResponse)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    session_maker: SessionMaker,
    bus: Bus,
    x_hub_signature_256: str | None = Header(None),
):
    """Acknowledge an event delivery and process it after responding.

    The platform enforces a short deadline, so the acknowledgment never waits
    for (or reports) processing results.
    """
    body = await request.body()
    if not verify_signature(body, x_hub_signature_256):
        logger.error("Webhook signature mismatch")
        raise ForbiddenError("Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError as e:
        logger.warning(f"Ignoring webhook with invalid JSON body: {e}")
        return PlainTextResponse(EVENT_RECEIVED)

    service = IngestionService(session_maker, bus)
    background_tasks.add_task(service.process_payload, payload)
    return PlainTextResponse(EVENT_RECEIVED)
