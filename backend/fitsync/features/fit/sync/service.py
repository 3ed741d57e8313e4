"""
Fitness sync orchestration.

Owns the connection state machine and reconciles provider metrics with
the activity ledger.

State machine:
    disconnected --connect()--> connecting --ok--> connected
                                           --fail--> error
    connected --provider 401 / expired token--> error
    any --disconnect()--> disconnected

Sync flow (one day):
1. Fetch the day's metrics from the provider
2. Decompose calories into resting and activity parts
3. Look up the day's synced ledger record
   - activity calories <= 0: leave the ledger alone
   - exists: update it in place
   - missing: create it
4. Notify listeners

Triggers:
- Manual sync_now(): always runs (queued behind an in-flight sync)
- Timer and visibility go through request_sync(), which drops triggers
  while a sync runs or within the debounce window
"""

import asyncio
import logging
from dataclasses import replace
from datetime import date, datetime, time
from typing import Any, Callable, Optional

from fitsync.config import settings
from fitsync.features.ledger import ActivityLedger, ActivityRecord, LedgerError
from fitsync.shared.constants import Provenance, SYNCED_RECORD_NAME, SYNCED_RECORD_TYPE

from ..calories import CalorieDecomposer
from ..client import FetchError, FitnessDataClient, UnauthorizedError
from ..oauth import AuthError, AuthorizationFlow, InitError
from ..repository import PersistedSyncState, SyncStateStore
from ..schemas import (
    ConnectionStatus,
    DailyMetrics,
    DecomposedCalories,
    SyncAction,
    SyncResult,
    SyncSession,
)
from ..tokens import TokenStore, utcnow
from .config import SyncConfig
from .scheduler import SyncScheduler

logger = logging.getLogger(__name__)


ConnectionListener = Callable[[bool], Any]
DataListener = Callable[[SyncResult], Any]
ErrorListener = Callable[[str], Any]


def _local_today() -> date:
    return datetime.now().astimezone().date()


def build_sync_notes(metrics: DailyMetrics, provider_name: str) -> str:
    """Annotation stored on the synced ledger record."""
    return (
        f"{provider_name} data - {metrics.steps} steps, "
        f"{metrics.distance_km:.1f} km "
        f"(activity only, resting metabolism excluded)"
    )


class SyncOrchestrator:
    """
    Main sync orchestrator.

    One instance per user, owned by the composition root. TokenStore and
    SyncSession are mutated only here; callers read them through the
    properties.

    Usage:
        orchestrator = SyncOrchestrator(flow, client, ledger, token_store)
        await orchestrator.initialize()
        await orchestrator.connect()
        result = await orchestrator.sync_now()
        await orchestrator.dispose()
    """

    def __init__(
        self,
        auth_flow: AuthorizationFlow,
        data_client: FitnessDataClient,
        ledger: ActivityLedger,
        token_store: TokenStore,
        state_store: Optional[SyncStateStore] = None,
        decomposer: Optional[CalorieDecomposer] = None,
        client_id: Optional[str] = None,
        api_key: Optional[str] = None,
        provider_name: Optional[str] = None,
        sync_interval_seconds: Optional[float] = None,
        debounce_seconds: Optional[float] = None,
        backfill_days: Optional[int] = None,
        on_connection_change: Optional[ConnectionListener] = None,
        on_data_sync: Optional[DataListener] = None,
        on_error: Optional[ErrorListener] = None,
        clock: Callable[[], datetime] = utcnow,
        today: Callable[[], date] = _local_today,
    ):
        self.auth_flow = auth_flow
        self.data_client = data_client
        self.ledger = ledger
        self._token_store = token_store
        self.state_store = state_store
        self.decomposer = decomposer or CalorieDecomposer(
            settings.resting_baseline_kcal, settings.steps_baseline
        )
        self.client_id = client_id if client_id is not None else settings.fit_client_id
        self.api_key = api_key if api_key is not None else settings.fit_api_key
        self.provider_name = provider_name or settings.fit_provider_name
        self.debounce_seconds = (
            debounce_seconds if debounce_seconds is not None
            else SyncConfig.DEBOUNCE_SECONDS
        )
        self.backfill_days = backfill_days or SyncConfig.BACKFILL_DAYS
        self._clock = clock
        self._today = today

        self._session = SyncSession()
        self._sync_lock = asyncio.Lock()
        # Bumped on every connect/disconnect; stale syncs compare against it
        self._epoch = 0
        self._last_sync_started: Optional[float] = None
        self._connecting: Optional[asyncio.Task] = None
        # Keep strong references to triggered sync tasks to prevent GC
        self._tasks: set[asyncio.Task] = set()

        self._scheduler = SyncScheduler(
            sync_interval_seconds if sync_interval_seconds is not None
            else SyncConfig.SYNC_INTERVAL_SECONDS,
            lambda: self.request_sync("timer"),
        )

        self._connection_listeners: list[ConnectionListener] = []
        self._data_listeners: list[DataListener] = []
        self._error_listeners: list[ErrorListener] = []
        if on_connection_change:
            self._connection_listeners.append(on_connection_change)
        if on_data_sync:
            self._data_listeners.append(on_data_sync)
        if on_error:
            self._error_listeners.append(on_error)

    # -------------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._session.status

    @property
    def last_synced_at(self) -> Optional[datetime]:
        return self._session.last_synced_at

    @property
    def latest_metrics(self) -> Optional[DailyMetrics]:
        return self._session.latest_metrics

    @property
    def session(self) -> SyncSession:
        """Copy of the current session for the UI boundary."""
        return replace(self._session)

    @property
    def is_connected(self) -> bool:
        return self._session.status == ConnectionStatus.CONNECTED

    @property
    def scheduler_running(self) -> bool:
        return self._scheduler.running

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> bool:
        """
        Restore persisted state and prepare the authorization flow.

        Returns False if the provider API could not be loaded; connect()
        retries the initialization.
        """
        if self.state_store is not None:
            try:
                persisted = await self.state_store.load()
            except Exception as e:
                logger.error(f"Failed to load sync state: {e}")
            else:
                self._session.last_synced_at = persisted.last_synced_at
                self._session.last_saved_at = persisted.last_saved_at
                self._session.was_connected = persisted.was_connected

        if not await self._initialize_auth():
            return False

        if self._token_store.is_valid() and not self.is_connected:
            self._enter_connected()
            self.request_sync("startup")
        return True

    async def dispose(self) -> None:
        """
        Stop scheduling, abort a pending handshake and wait for triggered
        syncs to finish.
        """
        await self._scheduler.stop()
        if self.auth_flow.in_progress:
            await self.auth_flow.sign_out()
        connecting = self._connecting
        if connecting is not None and not connecting.done():
            connecting.cancel()
            await asyncio.gather(connecting, return_exceptions=True)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("Sync orchestrator disposed")

    async def _initialize_auth(self) -> bool:
        if self.auth_flow.is_initialized:
            return True
        try:
            await self.auth_flow.initialize(self.client_id, self.api_key)
            return True
        except InitError as e:
            logger.error(f"Fitness provider initialization failed: {e}")
            self._report_error(f"Could not initialize {self.provider_name}: {e}")
            return False

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        Authorize and start syncing.

        Returns True when connected. Failures are reported through the
        session and on_error; they are never raised.
        """
        if self.is_connected:
            return True

        if self._connecting is None or self._connecting.done():
            self._connecting = asyncio.create_task(self._connect())
        return await asyncio.shield(self._connecting)

    async def _connect(self) -> bool:
        epoch = self._epoch
        self._set_status(ConnectionStatus.CONNECTING)
        logger.info(f"Connecting to {self.provider_name}")

        if not await self._initialize_auth():
            self._set_status(ConnectionStatus.ERROR, self._session.error_message)
            return False

        try:
            credential = await self.auth_flow.authorize()
        except (AuthError, InitError) as e:
            if epoch != self._epoch:
                return False
            logger.warning(f"Fitness provider authorization failed: {e}")
            self._token_store.clear()
            self._set_status(ConnectionStatus.ERROR, f"Could not connect to {self.provider_name}: {e}")
            self._emit(self._error_listeners, self._session.error_message)
            await self._persist()
            return False
        except asyncio.CancelledError:
            if epoch != self._epoch:
                # disconnect() aborted the handshake
                return False
            raise

        if epoch != self._epoch:
            logger.info("Discarding authorization completed after disconnect")
            return False

        self._token_store.set(credential)
        self._enter_connected()
        await self._persist()

        await self.sync_now()
        return True

    def _enter_connected(self) -> None:
        self._epoch += 1
        self._set_status(ConnectionStatus.CONNECTED)
        self._session.was_connected = True
        self._scheduler.start()
        logger.info(f"Connected to {self.provider_name}")
        self._emit(self._connection_listeners, True)

    async def disconnect(self) -> None:
        """
        Sign out and stop syncing.

        Pending timer syncs are cancelled; an in-flight sync completes
        but its ledger write is skipped.
        """
        was_connected = self.is_connected
        self._epoch += 1
        self._scheduler.cancel()
        self._token_store.clear()

        await self.auth_flow.sign_out()

        self._session.status = ConnectionStatus.DISCONNECTED
        self._session.error_message = None
        self._session.latest_metrics = None
        self._session.latest_calories = None
        self._session.was_connected = False
        logger.info(f"Disconnected from {self.provider_name}")

        await self._persist()
        if was_connected:
            self._emit(self._connection_listeners, False)

    def _require_reconnect(self) -> None:
        """Credential is unusable: drop it and ask the user to reconnect."""
        was_connected = self.is_connected
        self._epoch += 1
        self._token_store.clear()
        self._scheduler.cancel()
        self._session.was_connected = False
        self._set_status(ConnectionStatus.ERROR, SyncConfig.RECONNECT_REQUIRED_MESSAGE)
        logger.warning("Fitness provider credential rejected, reconnect required")
        self._emit(self._error_listeners, SyncConfig.RECONNECT_REQUIRED_MESSAGE)
        if was_connected:
            self._emit(self._connection_listeners, False)

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def request_sync(self, trigger: str = "manual") -> Optional[asyncio.Task]:
        """
        Debounced entry point for background triggers.

        Returns the scheduled task, or None if the trigger was dropped.
        """
        if not self.is_connected:
            logger.debug(f"Sync trigger '{trigger}' dropped: not connected")
            return None

        if self._sync_lock.locked():
            logger.debug(f"Sync trigger '{trigger}' dropped: sync in progress")
            return None

        loop = asyncio.get_running_loop()
        now = loop.time()
        if (
            self._last_sync_started is not None
            and now - self._last_sync_started < self.debounce_seconds
        ):
            logger.debug(f"Sync trigger '{trigger}' dropped: debounced")
            return None

        # Reserve the slot so a second trigger in the same tick is dropped
        self._last_sync_started = now
        task = asyncio.create_task(self._run_triggered(trigger))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Sync triggered by {trigger}")
        return task

    def notify_visibility(self, visible: bool) -> Optional[asyncio.Task]:
        """Host came to the foreground (or went to the background)."""
        if not visible:
            return None
        return self.request_sync("visibility")

    async def _run_triggered(self, trigger: str) -> Optional[SyncResult]:
        async with self._sync_lock:
            return await self._sync_day(None, trigger)

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    async def sync_now(self, day: Optional[date] = None) -> Optional[SyncResult]:
        """
        Sync one day (default today). Always permitted while connected.

        Returns None when the sync did not reach reconciliation (not
        connected, credential rejected, fetch failed).
        """
        async with self._sync_lock:
            return await self._sync_day(day, "manual")

    async def sync_range(self, days: Optional[int] = None) -> list[SyncResult]:
        """
        Sync the last `days` days (including today) in one provider request.
        """
        days = days or self.backfill_days
        if days < 1:
            raise ValueError("days must be at least 1")

        async with self._sync_lock:
            if not self._can_sync("range"):
                return []

            epoch = self._epoch
            self._last_sync_started = asyncio.get_running_loop().time()
            today = self._today()
            start_day = date.fromordinal(today.toordinal() - (days - 1))
            tz = datetime.now().astimezone().tzinfo

            try:
                all_metrics = await self.data_client.fetch_range(
                    datetime.combine(start_day, time.min, tzinfo=tz),
                    datetime.combine(today, time.max, tzinfo=tz),
                )
            except FetchError as e:
                self._handle_fetch_error(e, epoch)
                return []

            results = []
            for metrics in all_metrics:
                result = await self._apply(metrics, epoch)
                results.append(result)
                if result.action == SyncAction.DISCARDED:
                    break
            await self._persist()

            logger.info(
                f"Synced {len(results)} days from {self.provider_name}: "
                f"{sum(1 for r in results if r.saved)} saved"
            )
            return results

    def _can_sync(self, trigger: str) -> bool:
        if not self.is_connected:
            logger.info(f"Sync ({trigger}) skipped: {self.status.value}")
            return False
        if not self._token_store.is_valid():
            self._require_reconnect()
            return False
        return True

    async def _sync_day(self, day: Optional[date], trigger: str) -> Optional[SyncResult]:
        """Fetch, decompose and reconcile one day. Caller holds the lock."""
        if not self._can_sync(trigger):
            await self._persist()
            return None

        epoch = self._epoch
        self._last_sync_started = asyncio.get_running_loop().time()

        try:
            if day is None or day == self._today():
                metrics = await self.data_client.fetch_today()
            else:
                metrics = await self.data_client.fetch_day(day)
        except FetchError as e:
            self._handle_fetch_error(e, epoch)
            await self._persist()
            return None

        result = await self._apply(metrics, epoch)
        await self._persist()

        logger.info(
            f"Sync ({trigger}) for {result.date}: {result.action.value}, "
            f"{result.calories.activity_calories} activity kcal"
        )
        return result

    def _handle_fetch_error(self, error: FetchError, epoch: int) -> None:
        if epoch != self._epoch:
            logger.info(f"Ignoring fetch error after disconnect: {error}")
            return
        if isinstance(error, UnauthorizedError):
            self._require_reconnect()
        else:
            logger.warning(f"Fitness data fetch failed: {error}")
            self._report_error(f"Sync failed: {error}")

    async def _apply(self, metrics: DailyMetrics, epoch: int) -> SyncResult:
        """Decompose, update session state and reconcile with the ledger."""
        calories = self.decomposer(metrics.calories_expended, metrics.steps)

        if epoch != self._epoch:
            logger.info(f"Discarding sync for {metrics.date}: disconnected")
            return SyncResult(metrics.date, metrics, calories, SyncAction.DISCARDED)

        now = self._clock()
        if metrics.date == self._today():
            self._session.latest_metrics = metrics
            self._session.latest_calories = calories
        self._session.last_synced_at = now

        result = await self._reconcile(metrics, calories, epoch)
        if result.action == SyncAction.DISCARDED:
            return result

        if result.saved:
            self._session.last_saved_at = now
            self._session.error_message = None
        self._emit(self._data_listeners, result)
        return result

    async def _reconcile(
        self,
        metrics: DailyMetrics,
        calories: DecomposedCalories,
        epoch: int,
    ) -> SyncResult:
        """Create-or-update the one synced record for the day."""
        day = metrics.date
        try:
            records = await self.ledger.list(day)
            synced = [r for r in records if r.is_synced]
            if len(synced) > 1:
                logger.warning(
                    f"{len(synced)} synced records for {day}; updating the first"
                )

            # Disconnected while waiting for the ledger
            if epoch != self._epoch:
                return SyncResult(day, metrics, calories, SyncAction.DISCARDED)

            record = ActivityRecord(
                name=SYNCED_RECORD_NAME,
                type=SYNCED_RECORD_TYPE,
                calories_burned=calories.activity_calories,
                notes=build_sync_notes(metrics, self.provider_name),
                date=day,
                provenance=Provenance.SYNCED,
            )

            # Ledger rejects caloriesBurned below 1; keep the last positive value
            if calories.activity_calories <= 0:
                return SyncResult(day, metrics, calories, SyncAction.SKIPPED)

            if synced:
                saved = await self.ledger.update(synced[0].id, record)
                return SyncResult(day, metrics, calories, SyncAction.UPDATED, saved.id or synced[0].id)

            saved = await self.ledger.create(record)
            return SyncResult(day, metrics, calories, SyncAction.CREATED, saved.id)

        except LedgerError as e:
            logger.error(f"Failed to save synced activity for {day}: {e}")
            self._report_error(f"Saving synced activity failed: {e}")
            return SyncResult(day, metrics, calories, SyncAction.FAILED)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus, message: Optional[str] = None) -> None:
        if self._session.status != status:
            logger.debug(f"Connection status {self._session.status.value} -> {status.value}")
        self._session.status = status
        self._session.error_message = message

    def _report_error(self, message: str) -> None:
        """Surface a non-fatal error without changing the connection."""
        self._session.error_message = message
        self._emit(self._error_listeners, message)

    def _emit(self, listeners: list, *args) -> None:
        for listener in list(listeners):
            try:
                listener(*args)
            except Exception as e:
                logger.error(f"Sync listener {listener!r} failed: {e}")

    async def _persist(self) -> None:
        if self.state_store is None:
            return
        state = PersistedSyncState(
            last_synced_at=self._session.last_synced_at,
            last_saved_at=self._session.last_saved_at,
            was_connected=self._session.was_connected,
        )
        try:
            await self.state_store.save(state, last_error=self._session.error_message)
        except Exception as e:
            logger.error(f"Failed to persist sync state: {e}")
