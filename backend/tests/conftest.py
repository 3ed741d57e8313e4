"""
Shared fixtures and fakes for fitsync tests.
"""

import asyncio
from collections import deque
from datetime import date, datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from fitsync.features.fit import oauth as oauth_module
from fitsync.features.fit import (
    AuthorizationFlow,
    DailyMetrics,
    TokenStore,
)
from fitsync.features.fit.repository import PersistedSyncState
from fitsync.features.fit.sync import SyncOrchestrator
from fitsync.features.ledger import ActivityRecord, LedgerError


TODAY = date(2026, 10, 19)
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

DISCOVERY_DOCUMENT = {
    "resources": {
        "users": {
            "resources": {
                "dataset": {"methods": {"aggregate": {}}}
            }
        }
    }
}


async def wait_until(predicate, timeout: float = 2.0):
    """Yield to the loop until predicate() is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


# =============================================================================
# Fakes
# =============================================================================

class FakeSurface:
    """Authorization surface driven by the test."""

    origin = "http://127.0.0.1:9999"
    redirect_uri = "http://127.0.0.1:9999/oauth/callback"

    def __init__(self, auto_payload: dict | None = None):
        self.auto_payload = auto_payload
        self.opened: list[str] = []
        self.close_calls = 0
        self.on_message = None
        self.on_closed = None

    async def start(self, on_message, on_closed):
        self.on_message = on_message
        self.on_closed = on_closed

    async def launch(self, url):
        self.opened.append(url)
        if self.auto_payload is not None:
            # result arrives before the consent page "returns"
            self.deliver(dict(self.auto_payload))

    async def close(self):
        self.close_calls += 1

    @property
    def state(self) -> str:
        return parse_qs(urlparse(self.opened[-1]).query)["state"][0]

    def deliver(self, payload: dict, origin: str | None = None):
        payload.setdefault("state", self.state)
        self.on_message(origin or self.origin, payload)

    def approve(self, token: str = "token-1", expires_in: str | None = "3600"):
        payload = {"access_token": token}
        if expires_in is not None:
            payload["expires_in"] = expires_in
        self.deliver(payload)


class FakeDataClient:
    """Provider stand-in returning queued metrics."""

    def __init__(self, today: date = TODAY):
        self.today = today
        self.queue: deque = deque()
        self.default = DailyMetrics(date=today, calories_expended=300, steps=0)
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls = 0
        self.range_result: list[DailyMetrics] = []

    def push(self, *metrics: DailyMetrics):
        self.queue.extend(metrics)

    async def _next(self, day: date) -> DailyMetrics:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.queue:
            return self.queue.popleft()
        if day == self.today:
            return self.default
        return DailyMetrics.empty(day)

    async def fetch_today(self) -> DailyMetrics:
        return await self._next(self.today)

    async def fetch_day(self, day: date) -> DailyMetrics:
        return await self._next(day)

    async def fetch_range(self, start, end) -> list[DailyMetrics]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.range_result)


class FakeLedger:
    """In-memory activity ledger."""

    def __init__(self):
        self.records: dict[str, ActivityRecord] = {}
        self.creates = 0
        self.updates = 0
        self.lists = 0
        self.fail_writes: LedgerError | None = None
        self._next_id = 1

    @property
    def writes(self) -> int:
        return self.creates + self.updates

    def synced_for(self, day: date) -> list[ActivityRecord]:
        return [r for r in self.records.values() if r.date == day and r.is_synced]

    def add(self, record: ActivityRecord) -> ActivityRecord:
        stored = record.model_copy(update={"id": str(self._next_id)})
        self._next_id += 1
        self.records[stored.id] = stored
        return stored

    async def list(self, day: date) -> list[ActivityRecord]:
        self.lists += 1
        await asyncio.sleep(0)
        return [r for r in self.records.values() if r.date == day]

    async def create(self, record: ActivityRecord) -> ActivityRecord:
        await asyncio.sleep(0)
        if self.fail_writes is not None:
            raise self.fail_writes
        self.creates += 1
        return self.add(record)

    async def update(self, record_id: str, record: ActivityRecord) -> ActivityRecord:
        await asyncio.sleep(0)
        if self.fail_writes is not None:
            raise self.fail_writes
        self.updates += 1
        stored = record.model_copy(update={"id": record_id})
        self.records[record_id] = stored
        return stored


class FakeStateStore:
    """Sync state store kept in memory."""

    def __init__(self, state: PersistedSyncState | None = None):
        self.state = state or PersistedSyncState()
        self.saves = 0
        self.last_error = None

    async def load(self) -> PersistedSyncState:
        return self.state

    async def save(self, state: PersistedSyncState, last_error=None) -> None:
        self.saves += 1
        self.state = state
        self.last_error = last_error


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def discovery_loaded(monkeypatch):
    """Pretend the provider API discovery already happened in this process."""
    monkeypatch.setattr(oauth_module, "_discovery", DISCOVERY_DOCUMENT)


@pytest.fixture
def fresh_discovery():
    """Start and finish with no provider API discovery loaded."""
    oauth_module.reset_discovery()
    yield
    oauth_module.reset_discovery()


@pytest.fixture
async def make_orchestrator(discovery_loaded):
    """
    Factory for orchestrators wired to fakes.

    Returns (orchestrator, parts) where parts holds the fakes. Every
    orchestrator is disposed after the test.
    """
    created = []

    def _make(auto_approve: bool = True, **kwargs):
        surface = kwargs.pop("surface", None) or FakeSurface(
            auto_payload={"access_token": "token-1", "expires_in": "3600"}
            if auto_approve else None
        )
        clock = kwargs.pop("clock", lambda: NOW)
        token_store = kwargs.pop("token_store", None) or TokenStore(clock=clock)
        data_client = kwargs.pop("data_client", None) or FakeDataClient()
        ledger = kwargs.pop("ledger", None) or FakeLedger()
        flow = AuthorizationFlow(
            surface=surface,
            authorize_url="https://provider.example/auth",
            timeout_seconds=kwargs.pop("auth_timeout", 1.0),
            clock=clock,
        )
        orchestrator = SyncOrchestrator(
            auth_flow=flow,
            data_client=data_client,
            ledger=ledger,
            token_store=token_store,
            client_id="client-1",
            api_key="key-1",
            provider_name="Google Fit",
            sync_interval_seconds=kwargs.pop("sync_interval_seconds", 3600),
            debounce_seconds=kwargs.pop("debounce_seconds", 60),
            clock=clock,
            today=lambda: TODAY,
            **kwargs,
        )
        parts = {
            "surface": surface,
            "token_store": token_store,
            "data_client": data_client,
            "ledger": ledger,
            "flow": flow,
        }
        created.append(orchestrator)
        return orchestrator, parts

    yield _make

    for orchestrator in created:
        await orchestrator.dispose()
