"""Data models for the civil registry store."""

from .records import (
    ACCOUNT_COLUMNS,
    ACCOUNTS,
    BIRTH_RECORD_COLUMNS,
    BIRTH_RECORDS,
    STATUSES,
    LedgerLayout,
    Record,
    RecordStatus,
    Schema,
)
from .search import Match, SearchQuery

__all__ = [
    "Record",
    "Schema",
    "LedgerLayout",
    "ACCOUNTS",
    "ACCOUNT_COLUMNS",
    "BIRTH_RECORDS",
    "BIRTH_RECORD_COLUMNS",
    "RecordStatus",
    "STATUSES",
    # Search
    "SearchQuery",
    "Match",
]
