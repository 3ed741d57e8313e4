"""
Activity ledger integration.

Components:
- ActivityLedger: protocol consumed by the sync engine
- HttpActivityLedger: tracker REST backend implementation
"""

from .base import ActivityLedger, ActivityRecord, LedgerError
from .client import HttpActivityLedger

__all__ = [
    "ActivityLedger",
    "ActivityRecord",
    "LedgerError",
    "HttpActivityLedger",
]
