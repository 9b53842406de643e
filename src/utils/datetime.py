# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for Pulseboard.

All timestamps are stored in UTC and all Python datetimes are
timezone-aware (with timezone.utc). Metric windows ("today", "the last
8 weeks") are computed from an explicit ``now`` so calculators stay pure
functions of their inputs and the clock.

Usage:
------
    from src.utils.datetime import utc_now, day_window

    start, end = day_window(utc_now())
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    SQLite drops tzinfo on round trips, so values read back from the
    database go through this before any comparison.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def start_of_day(dt: datetime) -> datetime:
    """Get midnight UTC of the day containing ``dt``."""
    dt = ensure_utc(dt)
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def day_window(dt: datetime, days_back: int = 0) -> tuple[datetime, datetime]:
    """Get the half-open [start, end) window of a UTC calendar day.

    Args:
        dt: Reference datetime.
        days_back: 0 for the day of ``dt``, 1 for the day before, etc.

    Returns:
        Tuple of (start, end) where end is the next midnight.
    """
    start = start_of_day(dt) - timedelta(days=days_back)
    return start, start + timedelta(days=1)


def hours_between(start: datetime, end: datetime) -> float:
    """Get the signed number of hours from ``start`` to ``end``."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 string.

    Args:
        dt: Datetime to format.

    Returns:
        ISO 8601 formatted string or None.
    """
    if dt is None:
        return None

    dt_utc = ensure_utc(dt)
    return dt_utc.isoformat()


def parse_iso(iso_string: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string.

    Args:
        iso_string: ISO 8601 formatted string.

    Returns:
        Timezone-aware UTC datetime or None.
    """
    if iso_string is None:
        return None

    dt = datetime.fromisoformat(iso_string.replace("Z", "+00:00"))
    return ensure_utc(dt)
