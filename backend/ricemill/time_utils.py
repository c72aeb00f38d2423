"""
Timestamps are stored as naive datetimes that are implicitly UTC.

Incoming values are normalized with parse_iso_datetime, outgoing ones are
rendered by to_utc_z as ISO-8601 with a trailing 'Z'.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2024-03-01", "2024-03-01T08:30", "2024-03-01T08:30:00Z" or any offset
    form, converted to naive UTC. Offset-free input is taken as UTC already.
    Empty input gives None; garbage raises ValueError.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 string ending in 'Z'; naive input counts as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def parse_range_end(value: Optional[str]) -> Optional[datetime]:
    """
    Parse the upper bound of an inclusive date range.

    A bare "YYYY-MM-DD" covers the whole day (up to 23:59:59.999999 UTC).
    """
    dt = parse_iso_datetime(value)
    if dt is not None and len(value.strip()) == 10:
        dt = dt + timedelta(days=1) - timedelta(microseconds=1)
    return dt


def parse_date_range(
    start: Optional[str], end: Optional[str]
) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Parse start/end query values into an inclusive UTC-naive range.

    Raises ValueError on malformed input or when start is after end.
    """
    start_dt = parse_iso_datetime(start)
    end_dt = parse_range_end(end)
    if start_dt is not None and end_dt is not None and start_dt > end_dt:
        raise ValueError("start_date must be before end_date")
    return start_dt, end_dt
