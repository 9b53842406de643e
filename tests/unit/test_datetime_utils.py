# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for datetime utilities."""

from datetime import datetime, timedelta, timezone

from src.utils.datetime import (
    day_window,
    ensure_utc,
    format_iso,
    hours_between,
    parse_iso,
    start_of_day,
)


class TestEnsureUtc:
    """Tests for ensure_utc."""

    def test_naive_is_assumed_utc(self):
        """Test naive datetimes (as read back from SQLite) become UTC."""
        assert ensure_utc(datetime(2026, 3, 11, 12, 0)) == datetime(
            2026, 3, 11, 12, 0, tzinfo=timezone.utc
        )

    def test_other_zone_converted(self):
        """Test aware datetimes are converted to UTC."""
        plus_two = timezone(timedelta(hours=2))

        assert ensure_utc(datetime(2026, 3, 11, 14, 0, tzinfo=plus_two)).hour == 12

    def test_none(self):
        """Test None passes through."""
        assert ensure_utc(None) is None


class TestWindows:
    """Tests for day windows and durations."""

    def test_day_window(self, now):
        """Test today and yesterday windows are half-open UTC days."""
        start, end = day_window(now)

        assert start == start_of_day(now) == datetime(2026, 3, 11, tzinfo=timezone.utc)
        assert end - start == timedelta(days=1)
        assert day_window(now, days_back=1)[1] == start

    def test_hours_between(self, now):
        """Test signed hour difference."""
        assert hours_between(now, now + timedelta(minutes=90)) == 1.5
        assert hours_between(now, now - timedelta(hours=2)) == -2

    def test_iso_round_trip(self, now):
        """Test ISO formatting and Z suffix parsing."""
        assert format_iso(now) == "2026-03-11T12:00:00+00:00"
        assert parse_iso("2026-03-11T12:00:00Z") == now
        assert format_iso(None) is None
