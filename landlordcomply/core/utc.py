"""
UTC DateTime Utilities for LandlordComply.

All datetimes are stored and compared in UTC with timezone awareness.
SQLite hands back naive values even for DateTime(timezone=True) columns,
so anything read from the database goes through to_utc() before arithmetic.
"""

from datetime import date, datetime, time, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as ISO 8601 with a Z suffix."""
    return utc_now().isoformat().replace("+00:00", "Z")


def to_utc(dt: Union[datetime, date]) -> datetime:
    """
    Normalize to a timezone-aware UTC datetime.

    - date: midnight UTC of that day
    - naive datetime: assumed to already be UTC
    - aware datetime: converted to UTC
    """
    if not isinstance(dt, datetime):
        return datetime.combine(dt, time.min, tzinfo=timezone.utc)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 string to an aware UTC datetime.

    Handles "2025-12-08T03:00:00Z", "2025-12-08T03:00:00+00:00",
    "2025-12-08T03:00:00" (assumed UTC) and bare dates "2025-12-08".
    """
    cleaned = iso_string.strip().replace("Z", "+00:00")
    return to_utc(datetime.fromisoformat(cleaned))


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """Lenient variant of parse_iso: None or unparseable input gives None."""
    if not value:
        return None
    try:
        return parse_iso(value)
    except ValueError:
        return None


def format_date(dt: Optional[datetime]) -> Optional[str]:
    """ISO string for API responses."""
    if not dt:
        return None
    return to_utc(dt).isoformat()
