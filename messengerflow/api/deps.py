"""Common API dependencies."""

from typing import Annotated

from fastapi import Depends
from fastapi.requests import HTTPConnection
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from messengerflow.db.session import async_session_maker, get_db
from messengerflow.services.change_bus import ChangeBus
from messengerflow.services.messenger_client import MessengerClient
from messengerflow.services.outbound import ClientFactory


def get_change_bus(connection: HTTPConnection) -> ChangeBus:
    """Dependency for the application's change bus (HTTP and WebSocket)."""
    return connection.app.state.change_bus


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Dependency for the session factory used outside the request session."""
    return async_session_maker


def get_messenger_client_factory() -> ClientFactory:
    """Dependency for building Send API clients from a page token."""
    return MessengerClient


# Type aliases for cleaner annotations
DbSession = Annotated[AsyncSession, Depends(get_db)]
Bus = Annotated[ChangeBus, Depends(get_change_bus)]
SessionMaker = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)]
MessengerClientFactory = Annotated[ClientFactory, Depends(get_messenger_client_factory)]
