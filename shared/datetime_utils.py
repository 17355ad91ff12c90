"""
Date/time helpers: framework-agnostic.

Every timestamp the service stores or compares is a timezone-aware UTC
datetime. MongoDB hands back naive datetimes unless the client is tz-aware,
so values read from documents go through ``ensure_utc``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime.

    Naive datetimes (no ``tzinfo``) are assumed to already be UTC, which is
    how MongoDB stores them. ``None`` passes through.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
