"""
utils/time_utils.py

Purpose: Time and expiry helpers

- Subscription renewal arithmetic
- Timestamp formatting for chat replies
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extend_expiration(
    current: Optional[datetime],
    days: int,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Extends a subscription by `days`, counting from the later of now and the
    current expiration. A lapsed plan restarts from now; an active one is
    extended from its end.
    """
    now = now or utcnow()
    if current is not None and current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    base = current if current is not None and current > now else now
    return base + timedelta(days=days)


def format_date(dt: Optional[datetime], format_str: str = "%d/%m/%Y") -> str:
    """
    Formats a datetime for chat replies.
    """
    if not dt:
        return "No date"
    return dt.strftime(format_str)
