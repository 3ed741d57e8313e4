"""
Activity ledger boundary.

The ledger is the tracker backend's store of per-day activity records.
The sync engine only needs to list a day's records and create or update
one of them.
"""

from datetime import date as date_type
from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fitsync.shared.constants import Provenance, SYNCED_RECORD_NAME, SYNCED_RECORD_TYPE


class LedgerError(Exception):
    """Ledger create/update/list failed."""

    def __init__(self, status: int, detail: str):
        self.status = status
        self.detail = detail
        super().__init__(f"Ledger error {status}: {detail}")


class ActivityRecord(BaseModel):
    """
    Ledger activity record.

    Wire names follow the tracker backend (`_id`, `caloriesBurned`).
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(default=None, alias="_id")
    name: str = SYNCED_RECORD_NAME
    type: str = SYNCED_RECORD_TYPE
    calories_burned: float = Field(default=0, alias="caloriesBurned", ge=0)
    notes: str = ""
    date: date_type
    provenance: Provenance = Provenance.MANUAL

    @field_validator("date", mode="before")
    @classmethod
    def date_only(cls, v):
        """Accept ISO datetimes (e.g. "2026-10-19T00:00:00.000Z") as their date."""
        if isinstance(v, str) and len(v) > 10:
            return v[:10]
        return v

    @property
    def is_synced(self) -> bool:
        return self.provenance == Provenance.SYNCED

    def to_payload(self) -> dict:
        """Body for create/update calls."""
        payload = self.model_dump(by_alias=True, exclude={"id"}, mode="json")
        return payload


class ActivityLedger(Protocol):
    """Operations the sync engine consumes."""

    async def list(self, day: date_type) -> list[ActivityRecord]:
        ...

    async def create(self, record: ActivityRecord) -> ActivityRecord:
        ...

    async def update(self, record_id: str, record: ActivityRecord) -> ActivityRecord:
        ...
