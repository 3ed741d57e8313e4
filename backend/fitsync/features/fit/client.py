"""
Fitness provider API client.

Turns (credential, time range) into one DailyMetrics per calendar day.

Aggregation:
- Requests are bucketed by whole day (86400000 ms)
- Calories, steps and distance are summed within a bucket
- Heart rate is reduced to min / max / last non-zero reading
- Days the provider leaves out are zero-filled

Errors:
- UnauthorizedError: no valid credential, or provider answered 401
- ProviderError: any other non-2xx answer
- MalformedResponseError: body is not a parsable aggregation
"""

import logging
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Callable, Optional

import httpx

from fitsync.config import settings
from fitsync.shared.constants import (
    AGGREGATED_DATA_TYPES,
    DAY_MILLIS,
    WEIGHT_DATA_SOURCE_ID,
    FitDataType,
)
from .schemas import BodyMeasurement, DailyMetrics, HeartRate
from .tokens import TokenStore

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class FetchError(Exception):
    """Base fetch error."""
    pass


class UnauthorizedError(FetchError):
    """Credential missing, expired or rejected by the provider."""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class ProviderError(FetchError):
    """Provider returned a non-2xx answer other than 401."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"API error: {status} - {message}")


class MalformedResponseError(FetchError):
    """Response could not be parsed as an aggregation."""
    pass


# =============================================================================
# Response parsing
# =============================================================================

def _local_now() -> datetime:
    return datetime.now().astimezone()


def _as_aware(value: datetime) -> datetime:
    """Treat naive datetimes as local time."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


def _to_millis(value: datetime) -> int:
    return int(_as_aware(value).timestamp() * 1000)


def _data_type_of(dataset: dict, point: dict) -> str:
    """
    Data type name of a point.

    Points usually carry dataTypeName. Otherwise it is recovered from the
    data source id ("derived:<type>:<app>:<stream>").
    """
    name = point.get("dataTypeName")
    if name:
        return name
    source_id = point.get("originDataSourceId") or dataset.get("dataSourceId") or ""
    parts = source_id.split(":")
    if len(parts) > 1 and parts[0] in ("derived", "raw"):
        return parts[1]
    return parts[0]


def _number(value: dict, key: str) -> float:
    raw = value.get(key)
    if raw is None:
        return 0
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise MalformedResponseError(f"Non-numeric {key}: {raw!r}")
    return raw


def _first_value(point: dict, key: str) -> float:
    values = point.get("value") or []
    if not isinstance(values, list):
        raise MalformedResponseError("Point value is not a list")
    if not values or not isinstance(values[0], dict):
        return 0
    return _number(values[0], key)


class _DayAccumulator:
    """Mutable per-bucket totals, frozen into DailyMetrics at the end."""

    def __init__(self, day: date):
        self.day = day
        self.calories = 0.0
        self.steps = 0
        self.distance = 0.0
        self.hr_last = 0.0
        self.hr_min = 0.0
        self.hr_max = 0.0

    def add_heart_rate(self, bpm: float) -> None:
        if bpm <= 0:
            return
        self.hr_last = bpm
        self.hr_min = min(self.hr_min, bpm) if self.hr_min else bpm
        self.hr_max = max(self.hr_max, bpm)

    def add_point(self, data_type: str, point: dict) -> None:
        if data_type == FitDataType.CALORIES_EXPENDED.value:
            self.calories += _first_value(point, "fpVal")
        elif data_type == FitDataType.STEP_COUNT_DELTA.value:
            self.steps += int(_first_value(point, "intVal"))
        elif data_type == FitDataType.DISTANCE_DELTA.value:
            self.distance += _first_value(point, "fpVal")
        elif data_type == FitDataType.HEART_RATE_BPM.value:
            self.add_heart_rate(_first_value(point, "fpVal"))
        elif data_type == FitDataType.HEART_RATE_SUMMARY.value:
            # Summary triple: average, max, min
            values = point.get("value") or []
            if len(values) >= 3 and all(isinstance(v, dict) for v in values):
                average = _number(values[0], "fpVal")
                maximum = _number(values[1], "fpVal")
                minimum = _number(values[2], "fpVal")
                if average > 0:
                    self.hr_last = average
                if minimum > 0:
                    self.hr_min = min(self.hr_min, minimum) if self.hr_min else minimum
                self.hr_max = max(self.hr_max, maximum)

    def freeze(self) -> DailyMetrics:
        return DailyMetrics(
            date=self.day,
            calories_expended=round(max(self.calories, 0)),
            steps=max(self.steps, 0),
            distance_meters=round(max(self.distance, 0)),
            heart_rate=HeartRate(
                average=round(self.hr_last),
                min=self.hr_min,
                max=self.hr_max,
            ),
        )


def parse_aggregate_response(body: Any, tz: tzinfo) -> list[DailyMetrics]:
    """
    Convert an aggregation response into DailyMetrics, one per bucket.

    Buckets are dated by their start time in `tz`. A body without
    buckets means no data.

    Raises:
        MalformedResponseError: If the structure cannot be parsed
    """
    if not isinstance(body, dict):
        raise MalformedResponseError("Aggregation response is not an object")

    buckets = body.get("bucket")
    if buckets is None:
        return []
    if not isinstance(buckets, list):
        raise MalformedResponseError("'bucket' is not a list")

    days: dict[date, _DayAccumulator] = {}
    try:
        for bucket in buckets:
            start_ms = int(bucket["startTimeMillis"])
            day = datetime.fromtimestamp(start_ms / 1000, tz).date()
            acc = days.setdefault(day, _DayAccumulator(day))

            for dataset in bucket.get("dataset") or []:
                points = dataset.get("point") or []
                if not isinstance(points, list):
                    raise MalformedResponseError("'point' is not a list")
                for point in points:
                    acc.add_point(_data_type_of(dataset, point), point)
    except MalformedResponseError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise MalformedResponseError(f"Unparsable aggregation bucket: {e}") from e

    return [days[d].freeze() for d in sorted(days)]


def fill_days(metrics: list[DailyMetrics], start: date, end: date) -> list[DailyMetrics]:
    """One entry per day in [start, end]; missing days are zero-valued."""
    by_day = {m.date: m for m in metrics}
    result = []
    day = start
    while day <= end:
        result.append(by_day.get(day) or DailyMetrics.empty(day))
        day += timedelta(days=1)
    return result


# =============================================================================
# Client
# =============================================================================

class FitnessDataClient:
    """
    Async client for the provider's aggregation API.

    Usage:
        client = FitnessDataClient(token_store)
        days = await client.fetch_range(start, end)
        today = await client.fetch_today()
    """

    def __init__(
        self,
        token_store: TokenStore,
        api_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        now: Callable[[], datetime] = _local_now,
    ):
        self.token_store = token_store
        self.api_url = (api_url or settings.fit_api_url).rstrip("/")
        self.timeout = timeout or settings.fit_request_timeout_seconds
        self._http_client = http_client
        self._now = now

    # -------------------------------------------------------------------------
    # API Calls
    # -------------------------------------------------------------------------

    async def _api_request(
        self,
        method: str,
        endpoint: str,
        json: Optional[dict] = None,
    ) -> Any:
        """
        Make an authenticated API request.

        Raises:
            UnauthorizedError: If the credential is invalid or rejected
            ProviderError: If API returns error
            MalformedResponseError: If the body is not JSON
        """
        access_token = self.token_store.access_token
        if not access_token:
            raise UnauthorizedError("No valid credential")

        client = self._http_client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.request(
                method=method,
                url=f"{self.api_url}{endpoint}",
                headers={"Authorization": f"Bearer {access_token}"},
                json=json,
            )
        except httpx.HTTPError as e:
            raise ProviderError(0, f"Request failed: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()

        if response.status_code == 401:
            raise UnauthorizedError()
        elif not 200 <= response.status_code < 300:
            raise ProviderError(response.status_code, _error_message(response))

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError("Response is not JSON") from e

    async def fetch_range(self, start: datetime, end: datetime) -> list[DailyMetrics]:
        """
        Fetch day-bucketed metrics for [start, end].

        Args:
            start: Range start (naive values are local time)
            end: Range end, inclusive

        Returns:
            One DailyMetrics per calendar day of the range, ordered by date
        """
        start = _as_aware(start)
        end = _as_aware(end)
        if end < start:
            raise ValueError("end must not be before start")

        body = await self._api_request(
            "POST",
            "/users/me/dataset:aggregate",
            json={
                "aggregateBy": [
                    {"dataTypeName": name} for name in AGGREGATED_DATA_TYPES
                ],
                "bucketByTime": {"durationMillis": DAY_MILLIS},
                "startTimeMillis": _to_millis(start),
                "endTimeMillis": _to_millis(end),
            },
        )

        tz = start.tzinfo
        metrics = parse_aggregate_response(body, tz)
        first_day = start.date()
        last_day = end.astimezone(tz).date()
        in_range = [m for m in metrics if first_day <= m.date <= last_day]

        logger.debug(
            f"Fetched {len(metrics)} buckets for {first_day}..{last_day}"
        )
        return fill_days(in_range, first_day, last_day)

    async def fetch_day(self, day: date) -> DailyMetrics:
        """Metrics for one local calendar day (zero-valued if none)."""
        tz = self._now().tzinfo
        start = datetime.combine(day, time.min, tzinfo=tz)
        end = datetime.combine(day, time.max, tzinfo=tz)
        days = await self.fetch_range(start, end)
        return days[0] if days else DailyMetrics.empty(day)

    async def fetch_today(self) -> DailyMetrics:
        """Metrics from local midnight to the end of today."""
        return await self.fetch_day(self._now().date())

    async def fetch_body_measurements(
        self,
        start: datetime,
        end: datetime,
    ) -> list[BodyMeasurement]:
        """
        Read weight measurements from the merged weight stream.

        Returns:
            Measurements ordered by time, weight rounded to 0.1 kg
        """
        start = _as_aware(start)
        end = _as_aware(end)
        dataset_id = f"{_to_millis(start) * 1_000_000}-{_to_millis(end) * 1_000_000}"

        body = await self._api_request(
            "GET",
            f"/users/me/dataSources/{WEIGHT_DATA_SOURCE_ID}/datasets/{dataset_id}",
        )
        if not isinstance(body, dict):
            raise MalformedResponseError("Dataset response is not an object")

        measurements = []
        try:
            for point in body.get("point") or []:
                nanos = int(point["startTimeNanos"])
                weight = _first_value(point, "fpVal")
                if weight <= 0:
                    continue
                measurements.append(BodyMeasurement(
                    date=datetime.fromtimestamp(nanos / 1e9, start.tzinfo).date(),
                    weight_kg=round(weight, 1),
                ))
        except MalformedResponseError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Unparsable weight point: {e}") from e

        return measurements


def _error_message(response: httpx.Response) -> str:
    """Best-effort error text from a provider error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return body.get("error_description") or error
    return response.text[:200]
