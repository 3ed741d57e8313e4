"""
Fitness sync repositories.

Data access layer for persisted sync state.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fitsync.shared.repository import BaseRepository
from .models import SyncState


class SyncStateRepository(BaseRepository[SyncState]):
    """Repository for per-user sync state."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, SyncState)

    async def get_by_user_id(self, user_id: str) -> SyncState | None:
        return await self.get_by(user_id=user_id)

    async def get_or_create(self, user_id: str) -> SyncState:
        return await super().get_or_create(defaults={"was_connected": 0}, user_id=user_id)


@dataclass
class PersistedSyncState:
    """What the orchestrator restores on startup."""
    last_synced_at: Optional[datetime] = None
    last_saved_at: Optional[datetime] = None
    was_connected: bool = False


class SyncStateStore(Protocol):
    async def load(self) -> PersistedSyncState:
        ...

    async def save(self, state: PersistedSyncState, last_error: Optional[str] = None) -> None:
        ...


class SqlSyncStateStore:
    """
    SyncStateStore backed by the SyncState table.

    Usage:
        store = SqlSyncStateStore(AsyncSessionLocal, user_id="me")
        state = await store.load()
    """

    def __init__(self, session_factory: async_sessionmaker, user_id: str):
        self._session_factory = session_factory
        self.user_id = user_id

    async def load(self) -> PersistedSyncState:
        async with self._session_factory() as db:
            row = await SyncStateRepository(db).get_by_user_id(self.user_id)
            if row is None:
                return PersistedSyncState()
            return PersistedSyncState(
                last_synced_at=row.last_synced_at,
                last_saved_at=row.last_saved_at,
                was_connected=bool(row.was_connected),
            )

    async def save(self, state: PersistedSyncState, last_error: Optional[str] = None) -> None:
        async with self._session_factory() as db:
            repo = SyncStateRepository(db)
            row = await repo.get_or_create(self.user_id)
            await repo.update(
                row,
                last_synced_at=state.last_synced_at,
                last_saved_at=state.last_saved_at,
                was_connected=int(state.was_connected),
                last_error=last_error[:500] if last_error else None,
            )
            await db.commit()
