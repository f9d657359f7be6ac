"""Database module."""

from messengerflow.db.base import Base
from messengerflow.db.session import async_session_maker, get_db, init_db

__all__ = ["Base", "async_session_maker", "get_db", "init_db"]
