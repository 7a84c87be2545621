# backend/pos_server/time_utils.py
"""
Server time conventions.

Datetimes are stored UTC-naive and serialized as ISO-8601 with a trailing
'Z'. Terminals send their capture time in the same format.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(dt: datetime) -> datetime:
    """Midnight (UTC) of dt's calendar day; sale numbers restart here."""
    return datetime(dt.year, dt.month, dt.day)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2026-10-18T21:15:00.000Z" -> datetime(2026, 10, 18, 21, 15)

    Blank input gives None. Offsets are converted to UTC; a value without an
    offset is taken as UTC already. Raises ValueError on anything else.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"Expected an ISO-8601 string, got {type(value).__name__}")
    if not value.strip():
        return None

    text = value.strip()
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 in UTC with 'Z'. Naive input is taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
