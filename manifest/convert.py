"""Conversions between stored column text and Python values."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from uuid import UUID

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?"
    r"([Zz]|[+-]\d{2}:\d{2})$"
)

_SQLITE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_uuid(value: str) -> UUID:
    """Parse a UUID stored as text."""
    try:
        return UUID(value)
    except (ValueError, TypeError, AttributeError):
        raise ValueError(f"Invalid UUID stored in database: {value}") from None


def _parse_rfc3339(value: str) -> datetime:
    match = _RFC3339.match(value)
    if match is None:
        raise ValueError(value)
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    microsecond = int((fraction or "").ljust(6, "0")[:6])
    if offset in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if offset[0] == "-" else 1
        hours, minutes = int(offset[1:3]), int(offset[4:6])
        if hours > 23 or minutes > 59:
            raise ValueError(value)
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    parsed = datetime(
        int(year),
        int(month),
        int(day),
        int(hour),
        int(minute),
        int(second),
        microsecond,
        tzinfo=tz,
    )
    return parsed.astimezone(timezone.utc)


def parse_datetime(value: str) -> datetime:
    """Parse a stored timestamp into an aware UTC datetime.

    RFC 3339 is tried first; SQLite's ``YYYY-MM-DD HH:MM:SS`` is the fallback.
    """
    try:
        return _parse_rfc3339(value)
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(value, _SQLITE_FORMAT).replace(tzinfo=timezone.utc)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid timestamp stored in database: {value}") from None


def format_datetime(value: datetime) -> str:
    """Render a datetime as RFC 3339 in UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)