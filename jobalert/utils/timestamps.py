"""Timestamp utilities for UTC handling.

Components that depend on the current time take a ``clock`` callable
(defaulting to ``utc_now``) so expiry and scheduling logic can be driven by
a fake clock in tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Example:
        >>> now = utc_now()
        >>> now.tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are treated as UTC; aware ones are converted.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def expires_at(now: datetime, ttl_seconds: int) -> datetime:
    """Return the instant a record created at ``now`` stops being valid."""
    return ensure_utc(now) + timedelta(seconds=ttl_seconds)
