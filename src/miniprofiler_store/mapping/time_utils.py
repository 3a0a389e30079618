"""Timestamp normalization between Python and the `timestamp` columns.

Run start times are stored in a `timestamp without time zone` column holding
the UTC wall clock. Drivers hand such values back as naive datetimes, so every
value crossing the storage boundary goes through this module.

Public Functions:
    ensure_utc: Tag or convert a datetime to timezone-aware UTC
    to_storage_timestamp: Convert a datetime to the naive UTC value stored

Design Invariant:
    A naive datetime is always read as a UTC wall clock, never as local time.
    Tagging never shifts the value; aware values are converted so the instant
    is preserved.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

__all__ = ["ensure_utc", "to_storage_timestamp"]


def ensure_utc(value: datetime) -> datetime:
    """Return `value` as a timezone-aware UTC datetime.

    Naive values are tagged UTC in place (same wall clock); aware values are
    converted to UTC (same instant).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    """Return the naive UTC datetime written to a `timestamp` column."""
    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)
