"""
HTTP client for the tracker's activity ledger.

Endpoints:
- GET  /activities?date=YYYY-MM-DD -> {"activities": [...]}
- POST /activities                 -> {"activity": {...}} or the record
- PUT  /activities/{id}            -> {"activity": {...}} or the record
"""

import logging
from datetime import date
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from fitsync.config import settings
from .base import ActivityRecord, LedgerError

logger = logging.getLogger(__name__)


class HttpActivityLedger:
    """
    Activity ledger over the tracker REST API.

    Usage:
        ledger = HttpActivityLedger("https://tracker.example.com/api", token)
        records = await ledger.list(date.today())
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.ledger_api_url).rstrip("/")
        self.api_token = api_token if api_token is not None else settings.ledger_api_token
        self.timeout = timeout or settings.ledger_timeout_seconds
        self._client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {}
            if self.api_token:
                headers["Authorization"] = f"Bearer {self.api_token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
            )
        return self._client

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        client = self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise LedgerError(0, f"Request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if not 200 <= response.status_code < 300:
            detail = "Unknown error"
            if isinstance(data, dict):
                detail = data.get("message") or data.get("detail") or detail
            raise LedgerError(response.status_code, str(detail))
        return data

    @staticmethod
    def _parse_record(data: Any) -> ActivityRecord:
        if isinstance(data, dict) and isinstance(data.get("activity"), dict):
            data = data["activity"]
        try:
            return ActivityRecord.model_validate(data)
        except ValidationError as e:
            raise LedgerError(200, f"Unexpected activity payload: {e}") from e

    async def list(self, day: date) -> list[ActivityRecord]:
        data = await self._request("GET", "/activities", params={"date": day.isoformat()})
        items = data.get("activities", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise LedgerError(200, "Unexpected activities payload")
        return [self._parse_record(item) for item in items]

    async def create(self, record: ActivityRecord) -> ActivityRecord:
        data = await self._request("POST", "/activities", json=record.to_payload())
        created = self._parse_record(data)
        logger.debug(f"Ledger record created: {created.id}")
        return created

    async def update(self, record_id: str, record: ActivityRecord) -> ActivityRecord:
        data = await self._request(
            "PUT", f"/activities/{record_id}", json=record.to_payload()
        )
        return self._parse_record(data)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
