"""
utils/time_utils.py

Purpose: Time and expiry helpers

- Naive-UTC "now" matching what MongoDB hands back
- Business-day boundary for the daily usage counter
- Expiry checks for plan grants and grace periods
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """
    Current UTC time as a naive datetime.

    Motor returns naive UTC datetimes, so everything stored and compared
    in this codebase stays naive UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_day(now: Optional[datetime] = None, tz_name: str = "America/Mexico_City") -> str:
    """
    Returns the calendar day (YYYY-MM-DD) in the business timezone.

    Args:
        now: Naive UTC datetime (defaults to utcnow())
        tz_name: IANA timezone that defines the day boundary
    """
    now = now or utcnow()
    return now.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d")


def is_active_until(until: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    True when an expiry timestamp exists and lies in the future.
    """
    if not until:
        return False
    return until > (now or utcnow())


def days_from_now(days: int, now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) + timedelta(days=days)


def from_unix(ts: Optional[int]) -> Optional[datetime]:
    """
    Converts a Unix timestamp (as sent by Stripe) to naive UTC.
    """
    if ts is None:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).replace(tzinfo=None)


def format_date(dt: Optional[datetime], format_str: str = "%d/%m/%Y") -> str:
    """
    Formats a datetime for user-facing text.
    """
    if not dt:
        return "N/A"
    return dt.strftime(format_str)
