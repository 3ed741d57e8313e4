"""
Tests for the activity ledger HTTP client and record model.
"""

import json
from datetime import date

import httpx
import pytest

from fitsync.features.ledger import ActivityRecord, HttpActivityLedger, LedgerError
from fitsync.shared.constants import Provenance


DAY = date(2026, 10, 19)


def make_ledger(handler) -> HttpActivityLedger:
    http_client = httpx.AsyncClient(
        base_url="https://tracker.example/api",
        transport=httpx.MockTransport(handler),
    )
    return HttpActivityLedger(
        base_url="https://tracker.example/api",
        api_token="ledger-token",
        http_client=http_client,
    )


# =============================================================================
# Record model
# =============================================================================

class TestActivityRecord:
    """Tests for ActivityRecord."""

    def test_parses_wire_names(self):
        record = ActivityRecord.model_validate({
            "_id": "abc123",
            "name": "Smartwatch activity",
            "type": "other",
            "caloriesBurned": 300,
            "notes": "",
            "date": "2026-10-19T00:00:00.000Z",
            "provenance": "synced",
            "__v": 0,
        })

        assert record.id == "abc123"
        assert record.calories_burned == 300
        assert record.date == DAY
        assert record.is_synced

    def test_manual_by_default(self):
        record = ActivityRecord.model_validate({"name": "Swim", "date": "2026-10-19"})
        assert record.provenance == Provenance.MANUAL
        assert not record.is_synced

    def test_negative_calories_rejected(self):
        with pytest.raises(ValueError):
            ActivityRecord(calories_burned=-1, date=DAY)

    def test_payload(self):
        record = ActivityRecord(
            id="abc123",
            calories_burned=300,
            notes="n",
            date=DAY,
            provenance=Provenance.SYNCED,
        )
        assert record.to_payload() == {
            "name": "Smartwatch activity",
            "type": "other",
            "caloriesBurned": 300,
            "notes": "n",
            "date": "2026-10-19",
            "provenance": "synced",
        }


# =============================================================================
# HTTP client
# =============================================================================

class TestHttpActivityLedger:
    """Tests for HttpActivityLedger."""

    async def test_list(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"activities": [
                {"_id": "1", "name": "Run", "type": "running", "caloriesBurned": 400,
                 "date": "2026-10-19T00:00:00.000Z"},
                {"_id": "2", "caloriesBurned": 300, "date": "2026-10-19",
                 "provenance": "synced"},
            ]})

        records = await make_ledger(handler).list(DAY)

        assert [r.id for r in records] == ["1", "2"]
        assert [r.is_synced for r in records] == [False, True]
        [request] = seen
        assert request.url.path == "/api/activities"
        assert request.url.params["date"] == "2026-10-19"

    async def test_list_accepts_bare_array(self):
        ledger = make_ledger(lambda r: httpx.Response(200, json=[
            {"_id": "1", "caloriesBurned": 10, "date": "2026-10-19"}
        ]))
        assert len(await ledger.list(DAY)) == 1

    async def test_create(self):
        seen = []

        def handler(request):
            seen.append(request)
            body = json.loads(request.content)
            return httpx.Response(201, json={"activity": {**body, "_id": "new-id"}})

        record = ActivityRecord(calories_burned=300, date=DAY, provenance=Provenance.SYNCED)
        created = await make_ledger(handler).create(record)

        assert created.id == "new-id"
        assert created.is_synced
        [request] = seen
        assert request.method == "POST"
        assert json.loads(request.content)["caloriesBurned"] == 300

    async def test_update(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={**json.loads(request.content), "_id": "1"})

        record = ActivityRecord(calories_burned=450, date=DAY, provenance=Provenance.SYNCED)
        updated = await make_ledger(handler).update("1", record)

        assert updated.calories_burned == 450
        assert seen[0].method == "PUT"
        assert seen[0].url.path == "/api/activities/1"

    async def test_error_status(self):
        ledger = make_ledger(lambda r: httpx.Response(500, json={"message": "db down"}))
        with pytest.raises(LedgerError) as exc_info:
            await ledger.list(DAY)
        assert exc_info.value.status == 500
        assert exc_info.value.detail == "db down"

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(LedgerError) as exc_info:
            await make_ledger(handler).create(ActivityRecord(date=DAY))
        assert exc_info.value.status == 0

    async def test_unexpected_payload(self):
        ledger = make_ledger(lambda r: httpx.Response(200, json={"activities": "nope"}))
        with pytest.raises(LedgerError):
            await ledger.list(DAY)

    async def test_bearer_token_on_own_client(self):
        ledger = HttpActivityLedger(base_url="https://tracker.example/api", api_token="t-1")
        client = ledger._get_client()
        assert client.headers["Authorization"] == "Bearer t-1"
        await ledger.close()
