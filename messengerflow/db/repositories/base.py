"""Base repository with generic read operations and dialect-aware upserts."""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from messengerflow.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)

# Dialects that can express an atomic "insert if absent"
_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class BaseRepository(Generic[ModelT]):
    """Base repository.

    Write helpers execute statements on the session but never commit; the
    caller owns the transaction so related writes land atomically.
    """

    def __init__(self, session: AsyncSession, model: type[ModelT]):
        self.session = session
        self.model = model

    async def get(self, id: Any) -> ModelT | None:
        """Get a single record by primary key."""
        return await self.session.get(self.model, id)

    async def refetch(self, id: Any) -> ModelT | None:
        """Get a record by primary key, overwriting any stale identity-map copy."""
        stmt = (
            select(self.model)
            .where(self.model.id == id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert_if_absent(self, **values: Any) -> bool:
        """Insert a row unless its primary key already exists.

        Expressed as a single ``INSERT ... ON CONFLICT DO NOTHING RETURNING``
        so concurrent writers of the same key never produce two rows.

        Returns:
            True if this call inserted the row, False if it already existed
        """
        dialect = self.session.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise NotImplementedError(
                f"Atomic insert-if-absent is not available for dialect '{dialect}'"
            )

        stmt = (
            insert(self.model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["id"])
            .returning(self.model.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None
