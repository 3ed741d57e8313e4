"""
Constants shared between the provider client, the authorization flow
and the ledger reconciliation.
"""

from enum import Enum


class FitDataType(str, Enum):
    """
    Data type names of the fitness provider.

    These are the provider's naming conventions, not ours.
    """
    CALORIES_EXPENDED = "com.google.calories.expended"
    STEP_COUNT_DELTA = "com.google.step_count.delta"
    DISTANCE_DELTA = "com.google.distance.delta"
    HEART_RATE_BPM = "com.google.heart_rate.bpm"
    HEART_RATE_SUMMARY = "com.google.heart_rate.summary"
    WEIGHT = "com.google.weight"


# Metrics requested in every daily aggregation
AGGREGATED_DATA_TYPES: list[str] = [
    FitDataType.CALORIES_EXPENDED.value,
    FitDataType.STEP_COUNT_DELTA.value,
    FitDataType.DISTANCE_DELTA.value,
    FitDataType.HEART_RATE_BPM.value,
]

# Fixed consent scopes: activity, body, heart rate, location (all read-only)
FIT_SCOPES: list[str] = [
    "https://www.googleapis.com/auth/fitness.activity.read",
    "https://www.googleapis.com/auth/fitness.body.read",
    "https://www.googleapis.com/auth/fitness.heart_rate.read",
    "https://www.googleapis.com/auth/fitness.location.read",
]

# Merged weight stream
WEIGHT_DATA_SOURCE_ID = f"derived:{FitDataType.WEIGHT.value}:com.google.android.gms:merge_weight"

DAY_MILLIS = 86_400_000


class Provenance(str, Enum):
    """Where a ledger record came from."""
    SYNCED = "synced"
    MANUAL = "manual"


# Name and type of the one synced ledger record per day
SYNCED_RECORD_NAME = "Smartwatch activity"
SYNCED_RECORD_TYPE = "other"
