"""
Fitness provider integration module.

Usage:
    from fitsync.features.fit import AuthorizationFlow, FitnessDataClient
    from fitsync.features.fit.sync import SyncOrchestrator

Components:
- TokenStore: current bearer credential
- AuthorizationFlow: implicit-grant handshake via an authorization surface
- FitnessDataClient: day-bucketed metrics from the provider
- CalorieDecomposer: resting vs activity calories
- SyncOrchestrator: connection state machine and ledger reconciliation

Models:
- SyncState: persisted sync bookkeeping
"""

from .models import SyncState
from .schemas import (
    BodyMeasurement,
    ConnectionStatus,
    DailyMetrics,
    DecomposedCalories,
    HeartRate,
    SyncAction,
    SyncResult,
    SyncSession,
)
from .tokens import Credential, TokenStore
from .calories import CalorieDecomposer, decompose_calories
from .surface import AuthorizationSurface, LoopbackSurface
from .oauth import (
    AuthorizationFlow,
    InitError,
    AuthError,
    UserCancelledError,
    AuthTimeoutError,
    ProviderDeniedError,
)
from .client import (
    FitnessDataClient,
    FetchError,
    UnauthorizedError,
    ProviderError,
    MalformedResponseError,
)
from .repository import (
    SyncStateRepository,
    SqlSyncStateStore,
    PersistedSyncState,
)

__all__ = [
    # Models
    "SyncState",
    # Values
    "BodyMeasurement",
    "ConnectionStatus",
    "DailyMetrics",
    "DecomposedCalories",
    "HeartRate",
    "SyncAction",
    "SyncResult",
    "SyncSession",
    # Tokens
    "Credential",
    "TokenStore",
    # Calories
    "CalorieDecomposer",
    "decompose_calories",
    # OAuth
    "AuthorizationSurface",
    "LoopbackSurface",
    "AuthorizationFlow",
    "InitError",
    "AuthError",
    "UserCancelledError",
    "AuthTimeoutError",
    "ProviderDeniedError",
    # Client
    "FitnessDataClient",
    "FetchError",
    "UnauthorizedError",
    "ProviderError",
    "MalformedResponseError",
    # Repositories
    "SyncStateRepository",
    "SqlSyncStateStore",
    "PersistedSyncState",
]
