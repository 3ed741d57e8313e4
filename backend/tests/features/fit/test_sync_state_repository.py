"""
Tests for persisted sync state.

Uses in-memory SQLite through aiosqlite.
"""

from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fitsync.db.session import init_db
from fitsync.features.fit.repository import (
    PersistedSyncState,
    SqlSyncStateStore,
    SyncStateRepository,
)


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


class TestSqlSyncStateStore:
    """Tests for SqlSyncStateStore."""

    async def test_load_without_row(self, session_factory):
        store = SqlSyncStateStore(session_factory, "me")
        assert await store.load() == PersistedSyncState()

    async def test_save_and_load(self, session_factory):
        store = SqlSyncStateStore(session_factory, "me")
        synced_at = datetime(2026, 10, 19, 8, 30)
        state = PersistedSyncState(
            last_synced_at=synced_at,
            last_saved_at=synced_at,
            was_connected=True,
        )

        await store.save(state, last_error="Sync failed: API error: 500")
        loaded = await store.load()

        assert loaded.last_synced_at == synced_at
        assert loaded.last_saved_at == synced_at
        assert loaded.was_connected is True

        async with session_factory() as db:
            row = await SyncStateRepository(db).get_by_user_id("me")
            assert row.last_error == "Sync failed: API error: 500"

    async def test_save_overwrites_single_row(self, session_factory):
        store = SqlSyncStateStore(session_factory, "me")
        await store.save(PersistedSyncState(was_connected=True), last_error="x" * 600)
        await store.save(PersistedSyncState(was_connected=False))

        assert (await store.load()).was_connected is False
        async with session_factory() as db:
            row = await SyncStateRepository(db).get_by_user_id("me")
            assert row.last_error is None

    async def test_users_are_separate(self, session_factory):
        await SqlSyncStateStore(session_factory, "a").save(PersistedSyncState(was_connected=True))
        assert (await SqlSyncStateStore(session_factory, "b").load()).was_connected is False


class TestSyncStateRepository:
    """Tests for SyncStateRepository."""

    async def test_get_or_create(self, session_factory):
        async with session_factory() as db:
            repo = SyncStateRepository(db)
            first = await repo.get_or_create("me")
            second = await repo.get_or_create("me")

            assert first.id == second.id
            assert first.was_connected == 0
