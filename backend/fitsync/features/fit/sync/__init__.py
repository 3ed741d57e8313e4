"""
Fitness sync orchestration.

Components:
- SyncOrchestrator: connection state machine and ledger reconciliation
- SyncScheduler: fixed-interval trigger
- SyncConfig: sync behaviour constants
"""

from .config import SyncConfig
from .scheduler import SyncScheduler
from .service import SyncOrchestrator, build_sync_notes

__all__ = [
    "SyncConfig",
    "SyncScheduler",
    "SyncOrchestrator",
    "build_sync_notes",
]
