"""
Fitness sync database models.

Models:
- SyncState: durable per-user sync bookkeeping
"""

from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer

from fitsync.models.base import Base


class SyncState(Base):
    """
    Sync state that survives restarts.

    Holds the last successful sync time and a "was connected" hint used
    only to avoid showing a disconnected UI on reload. Tokens are not
    stored here; credential validity comes from the token expiry.
    """

    __tablename__ = "fit_sync_state"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), unique=True, nullable=False)

    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    last_saved_at = Column(DateTime(timezone=True), nullable=True)
    was_connected = Column(Integer, default=0)  # Boolean as int for SQLite
    last_error = Column(String(500), nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<SyncState user_id={self.user_id} last_synced_at={self.last_synced_at}>"
