"""
Value types of the fitness sync engine.

This module contains only dataclasses and enums so that the client,
the decomposer and the orchestrator can share them without import cycles.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class HeartRate:
    """Daily heart rate reduction. Zero means no reading."""
    average: float = 0
    min: float = 0
    max: float = 0


@dataclass(frozen=True)
class DailyMetrics:
    """
    Provider metrics for one calendar day (one response bucket).

    Immutable once produced by the data client.
    """
    date: date
    calories_expended: float = 0
    steps: int = 0
    distance_meters: float = 0
    heart_rate: HeartRate = field(default_factory=HeartRate)

    @classmethod
    def empty(cls, day: date) -> "DailyMetrics":
        """Zero-valued metrics for a day with no provider data."""
        return cls(date=day)

    @property
    def distance_km(self) -> float:
        """Distance in kilometers."""
        return round(self.distance_meters / 1000, 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "calories_expended": self.calories_expended,
            "steps": self.steps,
            "distance_meters": self.distance_meters,
            "heart_rate": {
                "average": self.heart_rate.average,
                "min": self.heart_rate.min,
                "max": self.heart_rate.max,
            },
        }


@dataclass(frozen=True)
class DecomposedCalories:
    """
    Raw calories split into an estimated resting part and the part
    attributed to exercise.
    """
    calories_expended: float
    steps: int
    estimated_rest: float
    activity_calories: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "calories_expended": self.calories_expended,
            "steps": self.steps,
            "estimated_rest": round(self.estimated_rest, 2),
            "activity_calories": self.activity_calories,
        }


@dataclass(frozen=True)
class BodyMeasurement:
    """A single weight reading."""
    date: date
    weight_kg: float


class ConnectionStatus(str, Enum):
    """Connection state of the sync orchestrator."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class SyncAction(str, Enum):
    """What a sync did to the ledger."""
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"      # nothing to record (no activity calories)
    DISCARDED = "discarded"  # disconnected while in flight
    FAILED = "failed"        # ledger write failed


@dataclass
class SyncResult:
    """Outcome of reconciling one day."""
    date: date
    metrics: DailyMetrics
    calories: DecomposedCalories
    action: SyncAction
    record_id: Optional[str] = None

    @property
    def saved(self) -> bool:
        """True when the ledger reflects this sync."""
        return self.action in (SyncAction.CREATED, SyncAction.UPDATED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "metrics": self.metrics.to_dict(),
            "calories": self.calories.to_dict(),
            "action": self.action.value,
            "record_id": self.record_id,
            "saved": self.saved,
        }


@dataclass
class SyncSession:
    """
    Snapshot of orchestrator state for the UI boundary.

    `last_synced_at` is set when metrics were fetched, `last_saved_at`
    when the ledger write succeeded. `was_connected` is a persisted hint
    only; token validity is decided by the credential expiry.
    """
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    error_message: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    last_saved_at: Optional[datetime] = None
    latest_metrics: Optional[DailyMetrics] = None
    latest_calories: Optional[DecomposedCalories] = None
    was_connected: bool = False

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "connected": self.is_connected,
            "error_message": self.error_message,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
            "last_saved_at": self.last_saved_at.isoformat() if self.last_saved_at else None,
            "latest_metrics": self.latest_metrics.to_dict() if self.latest_metrics else None,
            "latest_calories": self.latest_calories.to_dict() if self.latest_calories else None,
            "was_connected": self.was_connected,
        }
