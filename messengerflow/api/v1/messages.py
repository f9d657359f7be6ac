"""Message endpoints."""

from fastapi import APIRouter, status

from messengerflow.api.deps import Bus, DbSession, MessengerClientFactory
from messengerflow.schemas import MessageCreate, MessageSendResult
from messengerflow.services.outbound import OutboundService

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("", response_model=MessageSendResult, status_code=status.HTTP_201_CREATED)
async def send_message(
    data: MessageCreate,
    db: DbSession,
    bus: Bus,
    client_factory: MessengerClientFactory,
):
    """Send an agent reply.

    The response carries the stored message and the messaging-window
    advisory. A platform refusal is returned as 502 with the platform reason.
    """
    service = OutboundService(db, bus, client_factory=client_factory)
    return await service.send(data)
