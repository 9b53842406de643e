# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for the shared calculator helpers and base class."""

from unittest.mock import AsyncMock

import pytest

from src.domains.metrics.calculators import build_calculators
from src.domains.metrics.calculators.base import (
    content_id,
    format_content_name,
    format_duration,
    format_trend,
    round_half_up,
)
from src.domains.metrics.calculators.popular_content import PopularContentCalculator
from src.domains.metrics.exceptions import EventStoreError
from src.domains.metrics.kinds import MetricKind


class TestContentId:
    """Tests for content_id and format_content_name."""

    def test_prefers_experience_id(self):
        """Test experience_id wins over action."""
        assert content_id({"experience_id": "intro", "action": "click"}) == "intro"

    def test_falls_back_to_action_then_unknown(self):
        """Test the fallback chain."""
        assert content_id({"action": "click"}) == "click"
        assert content_id({}) == "unknown"
        assert content_id(None) == "unknown"

    def test_format_content_name(self):
        """Test identifiers become title-cased display names."""
        assert format_content_name("intro_to_python") == "Intro To Python"
        assert format_content_name("quiz") == "Quiz"
        assert format_content_name("unknown") == "Unknown Content"


class TestFormatting:
    """Tests for rounding, trend and duration formatting."""

    @pytest.mark.parametrize(
        "current,previous,expected",
        [
            (15, 10, "+50%"),
            (3, 0, "+100%"),
            (0, 0, "0%"),
            (5, 10, "-50%"),
            (10, 10, "+0%"),
            (2, 3, "-33.3%"),
            (11, 3, "+266.7%"),
        ],
    )
    def test_format_trend(self, current, previous, expected):
        """Test percentage change formatting."""
        assert format_trend(current, previous) == expected

    def test_round_half_up(self):
        """Test halves round up rather than to even."""
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(1.25, 1) == 1.3
        assert round_half_up(33.333, 1) == 33.3

    @pytest.mark.parametrize(
        "hours,expected",
        [
            (0.5, "30m"),
            (2.5, "2.5h"),
            (3, "3h"),
            (36, "1.5d"),
            (48, "2d"),
        ],
    )
    def test_format_duration_compact(self, hours, expected):
        """Test compact durations."""
        assert format_duration(hours) == expected

    def test_format_duration_verbose(self):
        """Test verbose durations."""
        assert format_duration(0.75, verbose=True) == "45 minutes"
        assert format_duration(2.5, verbose=True) == "2.5 hours"
        assert format_duration(72, verbose=True) == "3 days"


class TestMetricCalculatorBase:
    """Tests for MetricCalculator.__call__."""

    @pytest.mark.asyncio
    async def test_failure_returns_empty_result(self, clock):
        """Test a store failure yields the documented empty result."""
        events = AsyncMock()
        events.query_events.side_effect = EventStoreError("connection reset")
        calculator = PopularContentCalculator(events, clock)

        result = await calculator("tenant-a")

        assert result.content == []
        assert result.total_engagements == 0
        assert result.last_updated == clock.now

    def test_build_calculators_covers_every_kind(self, metrics_settings, clock):
        """Test the registry has one calculator per metric kind."""
        calculators = build_calculators(AsyncMock(), metrics_settings, clock=clock)

        assert set(calculators) == set(MetricKind)
        for kind, calculator in calculators.items():
            assert calculator.kind is kind
