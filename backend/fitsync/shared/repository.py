"""
Generic async repository.

Subclasses bind a model and add lookups by their natural key:

    class SyncStateRepository(BaseRepository[SyncState]):
        def __init__(self, db: AsyncSession):
            super().__init__(db, SyncState)

Writes are flushed, never committed; the caller owns the transaction.
"""

from typing import Generic, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Lookup, insert and field update for one mapped model."""

    def __init__(self, db: AsyncSession, model: Type[T]):
        self.db = db
        self.model = model

    async def get_by(self, **filters) -> T | None:
        """Single row matching all column == value filters, or None."""
        query = select(self.model).filter_by(**filters)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def create(self, **values) -> T:
        """Insert a row and return it with server defaults loaded."""
        entity = self.model(**values)
        self.db.add(entity)
        await self.db.flush()
        await self.db.refresh(entity)
        return entity

    async def get_or_create(self, defaults: dict | None = None, **filters) -> T:
        """Row matching filters; inserted with filters + defaults if missing."""
        entity = await self.get_by(**filters)
        if entity is None:
            entity = await self.create(**filters, **(defaults or {}))
        return entity

    async def update(self, entity: T, **values) -> T:
        """Assign attributes and flush."""
        for key, value in values.items():
            setattr(entity, key, value)
        await self.db.flush()
        await self.db.refresh(entity)
        return entity
