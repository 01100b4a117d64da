"""Datetime utilities for timezone-aware UTC timestamps.

All timestamps handled by the workflow are timezone-aware UTC datetimes.
SQLite hands back naive values, and callers may pass naive values too, so
anything coming from outside goes through ensure_utc() first.

Usage:
    from src.utils.datetime_utils import utc_now, ensure_utc

    timestamp = utc_now()
    due = ensure_utc(request_payload["estimated_completion"])
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    This is the replacement for the deprecated datetime.utcnow().

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to timezone-aware UTC.

    Naive datetimes are assumed to already be in UTC.

    Args:
        value: Datetime to normalize, or None

    Returns:
        Timezone-aware UTC datetime, or None if value was None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
