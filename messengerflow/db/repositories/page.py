"""Page repository."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from messengerflow.db.repositories.base import BaseRepository
from messengerflow.models import Page


class PageRepository(BaseRepository[Page]):
    """Read access to provisioned pages."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Page)

    async def get_access_token(self, page_id: str) -> str | None:
        """Access token for a connected page, or None if unknown/disconnected."""
        page = await self.get(page_id)
        if not page or not page.is_connected:
            return None
        return page.access_token or None
