"""
Fitness sync configuration constants.

Contains all configuration values for sync behavior.
"""

from fitsync.config import settings


class SyncConfig:
    """Configuration for sync behavior."""

    # Periodic sync while connected (seconds)
    SYNC_INTERVAL_SECONDS = settings.sync_interval_minutes * 60

    # Timer/visibility triggers within this window of the last sync
    # start are dropped (manual syncs are never debounced)
    DEBOUNCE_SECONDS = settings.sync_debounce_seconds

    # "Sync last N days" default range
    BACKFILL_DAYS = settings.sync_backfill_days

    # Error shown when the provider rejects the credential
    RECONNECT_REQUIRED_MESSAGE = "Reconnect required: fitness provider authorization expired"
