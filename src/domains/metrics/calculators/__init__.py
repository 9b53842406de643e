# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Metric calculators for the six dashboard metrics.

Example:
    calculators = build_calculators(SQLEventStore(sessionmaker), settings.metrics)
    result = await calculators[MetricKind.POPULAR_CONTENT](tenant_id)
"""

from datetime import datetime
from typing import TYPE_CHECKING, Callable

from src.domains.metrics.calculators.aha_moments import AhaMomentsCalculator
from src.domains.metrics.calculators.base import (
    COMMITMENT_EVENT_TYPES,
    ENGAGEMENT_EVENT_TYPES,
    SEQUENCE_EVENT_TYPES,
    MetricCalculator,
    content_id,
    format_content_name,
    format_duration,
    format_trend,
)
from src.domains.metrics.calculators.commitment import CommitmentCalculator
from src.domains.metrics.calculators.consistency import ConsistencyCalculator
from src.domains.metrics.calculators.content_pathways import ContentPathwaysCalculator
from src.domains.metrics.calculators.feedback_themes import FeedbackThemesCalculator
from src.domains.metrics.calculators.popular_content import PopularContentCalculator
from src.domains.metrics.event_store import EventStore
from src.domains.metrics.kinds import MetricKind
from src.utils.datetime import utc_now

if TYPE_CHECKING:
    from src.core.config.settings import MetricsSettings


def build_calculators(
    events: EventStore,
    settings: "MetricsSettings",
    clock: Callable[[], datetime] = utc_now,
) -> dict[MetricKind, MetricCalculator]:
    """Create one calculator per metric kind.

    Args:
        events: Event store the calculators read from.
        settings: Metrics settings with window sizes and limits.
        clock: Clock shared by all calculators.

    Returns:
        Registry of calculators keyed by metric kind.
    """
    return {
        MetricKind.POPULAR_CONTENT: PopularContentCalculator(
            events, clock, top_n=settings.popular_content_top_n
        ),
        MetricKind.ENGAGEMENT_CONSISTENCY: ConsistencyCalculator(
            events, clock, window_weeks=settings.consistency_window_weeks
        ),
        MetricKind.COMMITMENT_SCORES: CommitmentCalculator(
            events, clock, max_concurrency=settings.max_concurrency
        ),
        MetricKind.AHA_MOMENTS: AhaMomentsCalculator(
            events, clock, window_days=settings.history_window_days
        ),
        MetricKind.CONTENT_PATHWAYS: ContentPathwaysCalculator(
            events, clock, window_days=settings.history_window_days
        ),
        MetricKind.FEEDBACK_THEMES: FeedbackThemesCalculator(
            events,
            clock,
            min_submissions=settings.feedback_min_submissions,
            window_days=settings.feedback_window_days,
        ),
    }


__all__ = [
    "AhaMomentsCalculator",
    "COMMITMENT_EVENT_TYPES",
    "CommitmentCalculator",
    "ConsistencyCalculator",
    "ContentPathwaysCalculator",
    "ENGAGEMENT_EVENT_TYPES",
    "FeedbackThemesCalculator",
    "MetricCalculator",
    "PopularContentCalculator",
    "SEQUENCE_EVENT_TYPES",
    "build_calculators",
    "content_id",
    "format_content_name",
    "format_duration",
    "format_trend",
]
